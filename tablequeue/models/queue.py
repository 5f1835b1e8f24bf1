"""Virtual queue models."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tablequeue.db.base import Base, TimestampMixin
from tablequeue.models.validators import count


class QueueStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class TicketStatus(str, enum.Enum):
    WAITING = "waiting"
    CALLED = "called"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Queue(Base, TimestampMixin):
    """A virtual line customers join by scanning its QR code."""

    __tablename__ = "queues"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organizations.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[QueueStatus] = mapped_column(
        Enum(QueueStatus), default=QueueStatus.ACTIVE, nullable=False
    )
    # Last number called
    current_ticket: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Next number to hand out, only ever incremented in SQL
    next_ticket: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    avg_service_time: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    qr_code: Mapped[str] = mapped_column(String(150), unique=True, index=True, nullable=False)

    organization: Mapped["Organization"] = relationship()
    tickets: Mapped[list["QueueTicket"]] = relationship(
        back_populates="queue", cascade="all, delete-orphan", passive_deletes=True
    )

    @validates("avg_service_time", "current_ticket")
    def _validate_counts(self, key, value):
        return count(key, value)


class QueueTicket(Base):
    """One customer's place in line."""

    __tablename__ = "queue_tickets"
    __table_args__ = (
        UniqueConstraint("queue_id", "ticket_number", name="uq_ticket_queue_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    queue_id: Mapped[int] = mapped_column(ForeignKey("queues.id", ondelete="CASCADE"), index=True, nullable=False)
    ticket_number: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus), default=TicketStatus.WAITING, index=True, nullable=False
    )
    # Snapshot taken at join time; live values are recomputed on read
    estimated_wait_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    called_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    queue: Mapped[Queue] = relationship(back_populates="tickets")

    @validates("party_size")
    def _validate_party_size(self, key, value):
        return count(key, value, minimum=1)
