"""Waiter call routes."""

from typing import List

from fastapi import APIRouter, Request, status

from tablequeue.api.deps import Bus
from tablequeue.core.rate_limit import PUBLIC_WRITE_LIMIT, limiter
from tablequeue.core.rbac import CurrentUser
from tablequeue.db.session import DbSession
from tablequeue.schemas.restaurant import WaiterCallCreate, WaiterCallResponse
from tablequeue.services.waiter_call_service import WaiterCallService

router = APIRouter()


@router.post("", response_model=WaiterCallResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(PUBLIC_WRITE_LIMIT)
def create_waiter_call(request: Request, data: WaiterCallCreate, db: DbSession, bus: Bus):
    """Customer at a table asks for a waiter."""
    return WaiterCallService(db, bus).create_call(data.table_token, data.reason)


@router.get("", response_model=List[WaiterCallResponse])
def list_waiter_calls(db: DbSession, bus: Bus, current_user: CurrentUser):
    return WaiterCallService(db, bus, current_user.scope).get_active_calls()


@router.patch("/{call_id}/resolve", response_model=WaiterCallResponse)
def resolve_waiter_call(call_id: int, db: DbSession, bus: Bus, current_user: CurrentUser):
    return WaiterCallService(db, bus, current_user.scope).resolve_call(call_id)
