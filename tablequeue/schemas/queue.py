"""Queue and ticket schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tablequeue.models import QueueStatus, TicketStatus
from tablequeue.schemas.organization import PublicOrganization


class QueueCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    avg_service_time: int = Field(default=5, ge=0, le=600)
    status: QueueStatus = QueueStatus.ACTIVE


class QueueUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    avg_service_time: Optional[int] = Field(default=None, ge=0, le=600)
    status: Optional[QueueStatus] = None


class QueueResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: QueueStatus
    current_ticket: int
    next_ticket: int
    avg_service_time: int
    qr_code: str
    created_at: datetime

    model_config = {"from_attributes": True}


class QueueDetailResponse(QueueResponse):
    waiting_count: int
    qr_url: str
    qr_code_image: str


class PublicQueueResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: QueueStatus
    avg_service_time: int
    waiting_count: int
    estimated_wait_minutes: int
    organization: PublicOrganization


class JoinQueueRequest(BaseModel):
    customer_name: Optional[str] = Field(default=None, max_length=120)
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    party_size: int = Field(default=1, ge=1, le=50)


class TicketResponse(BaseModel):
    id: int
    queue_id: int
    ticket_number: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    party_size: int
    status: TicketStatus
    estimated_wait_minutes: int
    created_at: datetime
    called_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class JoinQueueResponse(TicketResponse):
    position: int
    queue_name: str


class TicketStatusUpdate(BaseModel):
    status: TicketStatus


class TicketQueueInfo(BaseModel):
    name: str
    status: QueueStatus
    current_ticket: int

    model_config = {"from_attributes": True}


class PublicTicketResponse(BaseModel):
    """Live ticket view for the customer; position is recomputed on every read."""

    id: int
    ticket_number: int
    status: TicketStatus
    customer_name: Optional[str] = None
    party_size: int
    position: int
    estimated_wait_minutes: int
    called_at: Optional[datetime] = None
    created_at: datetime
    queue: TicketQueueInfo
    organization: PublicOrganization
