"""Reservation routes."""

from datetime import date
from typing import List

from fastapi import APIRouter, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import CurrentUser, RequireWaiter
from tablequeue.db.session import DbSession
from tablequeue.schemas.restaurant import (
    ReservationCreate,
    ReservationResponse,
    ReservationStatusUpdate,
)
from tablequeue.services.reservation_service import ReservationService

router = APIRouter()


@router.get("", response_model=List[ReservationResponse])
def list_reservations(db: DbSession, bus: Bus, current_user: CurrentUser):
    return ReservationService(db, bus, current_user.scope).list_reservations()


@router.get("/date/{day}", response_model=List[ReservationResponse])
def reservations_on(day: date, db: DbSession, bus: Bus, current_user: CurrentUser):
    """Reservations on one day (UTC), earliest first."""
    return ReservationService(db, bus, current_user.scope).list_reservations(on_date=day)


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(data: ReservationCreate, db: DbSession, bus: Bus, current_user: RequireWaiter):
    return ReservationService(db, bus, current_user.scope).create_reservation(
        data.table_id,
        data.customer_name,
        data.guest_count,
        data.reservation_time,
        customer_phone=data.customer_phone,
        notes=data.notes,
    )


@router.patch("/{reservation_id}/status", response_model=ReservationResponse)
def update_reservation_status(reservation_id: int, data: ReservationStatusUpdate, db: DbSession,
                              bus: Bus, current_user: RequireWaiter):
    return ReservationService(db, bus, current_user.scope).update_status(reservation_id, data.status)


@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reservation(reservation_id: int, db: DbSession, bus: Bus, current_user: RequireWaiter):
    ReservationService(db, bus, current_user.scope).delete_reservation(reservation_id)
