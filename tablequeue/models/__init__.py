"""SQLAlchemy models."""

from tablequeue.models.organization import Organization, OrganizationType, User
from tablequeue.models.restaurant import (
    BillShare,
    DishReview,
    MenuCategory,
    MenuItem,
    Order,
    OrderItem,
    OrderItemStatus,
    OrderStatus,
    Payment,
    PaymentMethod,
    Reservation,
    ReservationStatus,
    Table,
    TableStatus,
    WaiterCall,
)
from tablequeue.models.queue import Queue, QueueStatus, QueueTicket, TicketStatus

__all__ = [
    "BillShare",
    "DishReview",
    "MenuCategory",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderItemStatus",
    "OrderStatus",
    "Organization",
    "OrganizationType",
    "Payment",
    "PaymentMethod",
    "Queue",
    "QueueStatus",
    "QueueTicket",
    "Reservation",
    "ReservationStatus",
    "Table",
    "TableStatus",
    "TicketStatus",
    "User",
    "WaiterCall",
]
