"""Tables management routes."""

from typing import List

from fastapi import APIRouter, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import CurrentUser, RequireOrgAdmin, RequireWaiter
from tablequeue.db.session import DbSession
from tablequeue.schemas.restaurant import (
    OccupiedTableResponse,
    OrderResponse,
    TableCreate,
    TableQRResponse,
    TableResponse,
    TableUpdate,
)
from tablequeue.services.order_service import OrderService
from tablequeue.services.qr_service import qr_data_url, table_url
from tablequeue.services.table_service import TableService

router = APIRouter()


@router.get("", response_model=List[TableResponse])
def list_tables(db: DbSession, bus: Bus, current_user: CurrentUser):
    return TableService(db, bus, current_user.scope).list_tables()


@router.get("/occupied", response_model=List[OccupiedTableResponse])
def occupied_tables(db: DbSession, bus: Bus, current_user: CurrentUser):
    """Occupied tables with their open orders (cashier view)."""
    rows = OrderService(db, bus, current_user.scope).occupied_tables_with_orders()
    return [OccupiedTableResponse.model_validate(row, from_attributes=True) for row in rows]


@router.get("/{table_id}", response_model=TableQRResponse)
def get_table(table_id: int, db: DbSession, bus: Bus, current_user: CurrentUser):
    """A table with its printable QR code."""
    table = TableService(db, bus, current_user.scope).get_table(table_id)
    return TableQRResponse(
        **TableResponse.model_validate(table).model_dump(),
        qr_url=table_url(table.qr_code),
        qr_code_image=qr_data_url(table.qr_code),
    )


@router.get("/{table_id}/orders", response_model=List[OrderResponse])
def table_orders(table_id: int, db: DbSession, bus: Bus, current_user: CurrentUser,
                 open_only: bool = False):
    return OrderService(db, bus, current_user.scope).list_table_orders(table_id, open_only=open_only)


@router.post("", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
def create_table(data: TableCreate, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    return TableService(db, bus, current_user.scope).create_table(data.number, data.capacity)


@router.patch("/{table_id}", response_model=TableResponse)
def update_table(table_id: int, data: TableUpdate, db: DbSession, bus: Bus,
                 current_user: RequireWaiter):
    """Manual status override (free, occupied, reserved) or capacity change."""
    return TableService(db, bus, current_user.scope).update_table(
        table_id, status=data.status, capacity=data.capacity
    )


@router.delete("/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_table(table_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    TableService(db, bus, current_user.scope).delete_table(table_id)
