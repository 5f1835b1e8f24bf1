"""Restaurant operations models - tables, menu, orders, payments, bill shares, reservations."""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tablequeue.db.base import Base, TimestampMixin
from tablequeue.models.validators import count, money, payable


class TableStatus(str, enum.Enum):
    FREE = "free"
    OCCUPIED = "occupied"
    RESERVED = "reserved"


class MenuCategory(str, enum.Enum):
    APPETIZERS = "appetizers"
    MAINS = "mains"
    DRINKS = "drinks"
    DESSERTS = "desserts"
    SPECIALS = "specials"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderItemStatus(str, enum.Enum):
    QUEUED = "queued"
    PREPARING = "preparing"
    ALMOST_READY = "almost_ready"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Table(Base, TimestampMixin):
    """Physical seating unit, addressed by customers through its QR token."""

    __tablename__ = "tables"
    __table_args__ = (
        UniqueConstraint("organization_id", "number", name="uq_table_org_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    status: Mapped[TableStatus] = mapped_column(
        Enum(TableStatus), default=TableStatus.FREE, nullable=False
    )
    qr_code: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)

    organization: Mapped["Organization"] = relationship()
    orders: Mapped[list["Order"]] = relationship(back_populates="table")

    @validates("capacity")
    def _validate_capacity(self, key, value):
        return count(key, value, minimum=1)


class MenuItem(Base, TimestampMixin):
    """Catalog entry. Its price is copied into OrderItems and never re-read."""

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[MenuCategory] = mapped_column(
        Enum(MenuCategory), default=MenuCategory.MAINS, nullable=False
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    preparation_time_minutes: Mapped[int] = mapped_column(Integer, default=10, nullable=False)

    @validates("price")
    def _validate_price(self, key, value):
        return money(key, value)

    @validates("preparation_time_minutes")
    def _validate_prep_time(self, key, value):
        return count(key, value)


class Order(Base, TimestampMixin):
    """One customer visit at a table."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("tables.id"), index=True, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus), default=OrderStatus.PENDING, index=True, nullable=False
    )
    # Derived: always the sum over non-cancelled items
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    table: Mapped[Table] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    payment: Mapped[Optional["Payment"]] = relationship(back_populates="order", uselist=False)

    @validates("total")
    def _validate_total(self, key, value):
        return money(key, value)


class OrderItem(Base, TimestampMixin):
    """One cart line with the menu price snapshotted at order time."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    menu_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[OrderItemStatus] = mapped_column(
        Enum(OrderItemStatus), default=OrderItemStatus.QUEUED, nullable=False
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    started_preparing_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[Order] = relationship(back_populates="items")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return count(key, value, minimum=1)

    @validates("price")
    def _validate_price(self, key, value):
        return money(key, value)

    @property
    def subtotal(self) -> Decimal:
        return Decimal(self.price) * self.quantity


class Payment(Base):
    """Settlement record, exactly one per order."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), unique=True, nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("tables.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod), nullable=False)
    is_split: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    order: Mapped[Order] = relationship(back_populates="payment")
    shares: Mapped[list["BillShare"]] = relationship(
        back_populates="payment", cascade="all, delete-orphan", order_by="BillShare.id"
    )

    @validates("amount")
    def _validate_amount(self, key, value):
        return money(key, value)


class BillShare(Base):
    """One payer's portion of a split payment."""

    __tablename__ = "bill_shares"

    id: Mapped[int] = mapped_column(primary_key=True)
    payment_id: Mapped[int] = mapped_column(ForeignKey("payments.id", ondelete="CASCADE"), index=True, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    # Optional claimed order item ids
    order_item_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payment: Mapped[Payment] = relationship(back_populates="shares")

    @validates("amount")
    def _validate_amount(self, key, value):
        return payable(key, value)


class WaiterCall(Base):
    """Customer request for service at a table."""

    __tablename__ = "waiter_calls"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("tables.id", ondelete="CASCADE"), index=True, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), default="assistance", nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    table: Mapped[Table] = relationship()


class Reservation(Base, TimestampMixin):
    """Booking that holds a table for a party at a given time."""

    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("tables.id", ondelete="CASCADE"), index=True, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(120), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    # Stored in UTC
    reservation_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus), default=ReservationStatus.CONFIRMED, index=True, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    table: Mapped[Table] = relationship()

    @validates("guest_count")
    def _validate_guest_count(self, key, value):
        return count(key, value, minimum=1)


class DishReview(Base):
    """Customer rating of one menu item."""

    __tablename__ = "dish_reviews"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    menu_item_id: Mapped[int] = mapped_column(
        ForeignKey("menu_items.id", ondelete="CASCADE"), index=True, nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @validates("rating")
    def _validate_rating(self, key, value):
        value = count(key, value, minimum=1)
        if value is not None and value > 5:
            raise ValueError(f"{key} must be at most 5, got {value}")
        return value
