# Services module

from tablequeue.services.notification_bus import (
    Event,
    EventType,
    NotificationBus,
    WebSocketSubscription,
)
from tablequeue.services.order_service import CartLine, OrderService
from tablequeue.services.split_bill_service import ShareRequest, SplitBillService
from tablequeue.services.queue_service import QueueService
from tablequeue.services.organization_service import OrganizationService
from tablequeue.services.table_service import TableService
from tablequeue.services.menu_service import MenuService
from tablequeue.services.waiter_call_service import WaiterCallService
from tablequeue.services.auth_service import AuthService

__all__ = [
    "AuthService",
    "CartLine",
    "Event",
    "EventType",
    "MenuService",
    "NotificationBus",
    "OrderService",
    "OrganizationService",
    "QueueService",
    "ShareRequest",
    "SplitBillService",
    "TableService",
    "WaiterCallService",
    "WebSocketSubscription",
]
