"""Order lifecycle routes.

Order submission is public (customers at a table); everything else is staff.
"""

from typing import List, Optional

from fastapi import APIRouter, Request, status

from tablequeue.api.deps import Bus
from tablequeue.core.rate_limit import PUBLIC_WRITE_LIMIT, limiter
from tablequeue.core.rbac import CurrentUser, RequireKitchen, RequireWaiter
from tablequeue.db.session import DbSession
from tablequeue.models import OrderStatus
from tablequeue.schemas.restaurant import (
    OrderCreate,
    OrderItemResponse,
    OrderItemStatusUpdate,
    OrderResponse,
)
from tablequeue.services.order_service import CartLine, OrderService

router = APIRouter()


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(PUBLIC_WRITE_LIMIT)
def submit_order(request: Request, data: OrderCreate, db: DbSession, bus: Bus):
    """Submit a customer cart. Unavailable menu items are dropped from the order."""
    lines = [CartLine(menu_item_id=i.menu_item_id, quantity=i.quantity, notes=i.notes) for i in data.items]
    return OrderService(db, bus).submit_order(data.table_id, lines)


@router.get("", response_model=List[OrderResponse])
def list_orders(db: DbSession, bus: Bus, current_user: CurrentUser,
                order_status: Optional[OrderStatus] = None):
    return OrderService(db, bus, current_user.scope).list_orders(order_status)


@router.get("/status/{order_status}", response_model=List[OrderResponse])
def list_orders_by_status(order_status: OrderStatus, db: DbSession, bus: Bus,
                          current_user: CurrentUser):
    """Kitchen and waiter boards filter by status."""
    return OrderService(db, bus, current_user.scope).list_orders(order_status)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: DbSession, bus: Bus, current_user: CurrentUser):
    return OrderService(db, bus, current_user.scope).get_order(order_id)


@router.patch("/{order_id}/confirm", response_model=OrderResponse)
def confirm_order(order_id: int, db: DbSession, bus: Bus, current_user: RequireWaiter):
    """Waiter approval; the order becomes visible to the kitchen."""
    return OrderService(db, bus, current_user.scope).confirm_order(order_id)


@router.patch("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(order_id: int, db: DbSession, bus: Bus, current_user: RequireWaiter):
    return OrderService(db, bus, current_user.scope).cancel_order(order_id)


@router.patch("/{order_id}/items/{item_id}/status", response_model=OrderItemResponse)
def update_item_status(order_id: int, item_id: int, data: OrderItemStatusUpdate,
                       db: DbSession, bus: Bus, current_user: RequireKitchen):
    return OrderService(db, bus, current_user.scope).advance_item_status(
        order_id, item_id, data.status
    )


@router.patch("/{order_id}/items/{item_id}/cancel", response_model=OrderItemResponse)
def cancel_item(order_id: int, item_id: int, db: DbSession, bus: Bus,
                current_user: RequireWaiter):
    return OrderService(db, bus, current_user.scope).cancel_item(order_id, item_id)
