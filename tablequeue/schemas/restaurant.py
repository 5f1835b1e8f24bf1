"""Tables, menu, orders, payments, waiter calls, reservations and review schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from tablequeue.models import (
    MenuCategory,
    OrderItemStatus,
    OrderStatus,
    PaymentMethod,
    ReservationStatus,
    TableStatus,
)
from tablequeue.schemas.organization import PublicOrganization


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

class TableCreate(BaseModel):
    number: int = Field(..., ge=1)
    capacity: int = Field(default=4, ge=1, le=100)


class TableUpdate(BaseModel):
    status: Optional[TableStatus] = None
    capacity: Optional[int] = Field(default=None, ge=1, le=100)


class TableResponse(BaseModel):
    id: int
    organization_id: int
    number: int
    capacity: int
    status: TableStatus
    qr_code: str

    model_config = {"from_attributes": True}


class TableQRResponse(TableResponse):
    qr_url: str
    qr_code_image: str


# ---------------------------------------------------------------------------
# Menu
# ---------------------------------------------------------------------------

class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: MenuCategory = MenuCategory.MAINS
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    available: bool = True
    preparation_time_minutes: int = Field(default=10, ge=0, le=600)


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[MenuCategory] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    available: Optional[bool] = None
    preparation_time_minutes: Optional[int] = Field(default=None, ge=0, le=600)


class MenuItemResponse(BaseModel):
    id: int
    name: str
    category: MenuCategory
    price: Decimal
    description: Optional[str] = None
    image_url: Optional[str] = None
    available: bool
    preparation_time_minutes: int

    model_config = {"from_attributes": True}


class PublicTableResponse(BaseModel):
    """What a customer sees after scanning a table code."""

    table: TableResponse
    organization: PublicOrganization
    menu: List[MenuItemResponse]


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderLineCreate(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1, le=99)
    notes: Optional[str] = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    """Customer cart submission."""

    table_id: int
    items: List[OrderLineCreate] = Field(..., min_length=1)


class OrderItemStatusUpdate(BaseModel):
    status: OrderItemStatus


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    menu_item_id: Optional[int] = None
    name: str
    quantity: int
    notes: Optional[str] = None
    status: OrderItemStatus
    price: Decimal
    started_preparing_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderTable(BaseModel):
    id: int
    number: int
    status: TableStatus

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    table_id: int
    status: OrderStatus
    total: Decimal
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []
    table: Optional[OrderTable] = None

    model_config = {"from_attributes": True}


class OccupiedTableResponse(BaseModel):
    table: TableResponse
    orders: List[OrderResponse]


# ---------------------------------------------------------------------------
# Payments and split bills
# ---------------------------------------------------------------------------

class PaymentCreate(BaseModel):
    order_id: int
    table_id: int
    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    method: PaymentMethod


class BillShareCreate(BaseModel):
    customer_name: str = Field(..., max_length=120)
    amount: Decimal = Field(..., max_digits=10, decimal_places=2)
    order_item_ids: Optional[List[int]] = None


class SplitBillCreate(BaseModel):
    order_id: int
    table_id: int
    method: PaymentMethod
    shares: List[BillShareCreate] = Field(..., min_length=1)


class BillShareResponse(BaseModel):
    id: int
    payment_id: int
    customer_name: str
    amount: Decimal
    order_item_ids: Optional[List[int]] = None
    paid: bool
    paid_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    table_id: int
    amount: Decimal
    method: PaymentMethod
    is_split: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SplitBillResponse(BaseModel):
    payment: PaymentResponse
    shares: List[BillShareResponse]


class SharePaidResponse(BaseModel):
    success: bool = True
    share: BillShareResponse
    order_completed: bool


# ---------------------------------------------------------------------------
# Waiter calls
# ---------------------------------------------------------------------------

class WaiterCallCreate(BaseModel):
    table_token: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(default="assistance", max_length=50)

    @field_validator("reason")
    @classmethod
    def _strip_reason(cls, v: str) -> str:
        return v.strip() or "assistance"


class WaiterCallResponse(BaseModel):
    id: int
    table_id: int
    reason: str
    resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------

class ReservationCreate(BaseModel):
    table_id: int
    customer_name: str = Field(..., min_length=1, max_length=120)
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    guest_count: int = Field(..., ge=1, le=100)
    reservation_time: datetime
    notes: Optional[str] = Field(default=None, max_length=1000)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationResponse(BaseModel):
    id: int
    table_id: int
    customer_name: str
    customer_phone: Optional[str] = None
    guest_count: int
    reservation_time: datetime
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Dish reviews
# ---------------------------------------------------------------------------

class DishReviewCreate(BaseModel):
    menu_item_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)
    customer_name: Optional[str] = Field(default=None, max_length=120)


class DishReviewResponse(BaseModel):
    id: int
    menu_item_id: int
    rating: int
    comment: Optional[str] = None
    customer_name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class DishReviewList(BaseModel):
    reviews: List[DishReviewResponse]
    average_rating: float
    total: int
