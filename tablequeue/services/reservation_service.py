"""Table reservations.

A confirmed reservation holds its table: a free table turns ``reserved`` when
booked and goes back to ``free`` once no confirmed booking is left on it.
Occupied tables are never touched; seating is driven by orders.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from tablequeue.core.errors import DomainValidationError, InvalidStateError
from tablequeue.models import Reservation, ReservationStatus, Table, TableStatus
from tablequeue.services.base import ScopedService
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

# Terminal statuses a confirmed reservation may move to
CLOSING_STATUSES = {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_bounds(day: date):
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class ReservationService(ScopedService):
    """Bookings of one organization."""

    def list_reservations(self, on_date: Optional[date] = None) -> List[Reservation]:
        """All reservations by time, optionally only those on one (UTC) day."""
        query = self._scoped(self.db.query(Reservation), Reservation)
        if on_date is not None:
            start, end = day_bounds(on_date)
            query = query.filter(
                Reservation.reservation_time >= start,
                Reservation.reservation_time < end,
            )
        return query.order_by(Reservation.reservation_time, Reservation.id).all()

    def get_reservation(self, reservation_id: int) -> Reservation:
        return self._get_owned(Reservation, reservation_id, "Reservation")

    def create_reservation(self, table_id: int, customer_name: str, guest_count: int,
                           reservation_time: datetime, customer_phone: Optional[str] = None,
                           notes: Optional[str] = None) -> Reservation:
        table = self._get_owned(Table, table_id, "Table")
        if not customer_name or not customer_name.strip():
            raise DomainValidationError("Customer name is required")
        if guest_count < 1:
            raise DomainValidationError("A reservation needs at least one guest")
        if guest_count > table.capacity:
            raise DomainValidationError(
                f"Table {table.number} seats {table.capacity}, not {guest_count}"
            )

        reservation = Reservation(
            organization_id=table.organization_id,
            table_id=table.id,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone,
            guest_count=guest_count,
            reservation_time=as_utc(reservation_time),
            status=ReservationStatus.CONFIRMED,
            notes=notes,
        )
        if table.status == TableStatus.FREE:
            table.status = TableStatus.RESERVED
        self.db.add(reservation)
        self._commit("Reservation")
        self.db.refresh(reservation)

        logger.info(f"Reservation {reservation.id} for {guest_count} at table {table.number}")
        self._publish(
            EventType.RESERVATION_CREATED,
            {"reservation_id": reservation.id, "table_id": table.id, "table_status": table.status.value},
            organization_id=table.organization_id,
        )
        return reservation

    def _release_table(self, reservation: Reservation) -> None:
        """Free a reserved table once no other confirmed booking holds it."""
        table = reservation.table
        if table.status != TableStatus.RESERVED:
            return
        others = self.db.query(Reservation.id).filter(
            Reservation.table_id == table.id,
            Reservation.id != reservation.id,
            Reservation.status == ReservationStatus.CONFIRMED,
        ).first()
        if others is None:
            table.status = TableStatus.FREE

    def update_status(self, reservation_id: int, status: ReservationStatus) -> Reservation:
        """Cancel or complete a confirmed reservation. Repeating the current status is a no-op."""
        reservation = self.get_reservation(reservation_id)
        requested = ReservationStatus(status)
        if requested == reservation.status:
            return reservation
        if reservation.status != ReservationStatus.CONFIRMED or requested not in CLOSING_STATUSES:
            raise InvalidStateError(
                f"Reservation is {reservation.status.value} and cannot become {requested.value}",
                entity="Reservation",
                current=reservation.status.value,
                requested=requested.value,
            )

        reservation.status = requested
        self._release_table(reservation)
        self._commit("Reservation update")

        logger.info(f"Reservation {reservation.id} {requested.value}")
        self._publish(
            EventType.RESERVATION_UPDATED,
            {
                "reservation_id": reservation.id,
                "status": requested.value,
                "table_id": reservation.table_id,
                "table_status": reservation.table.status.value,
            },
            organization_id=reservation.organization_id,
        )
        return reservation

    def delete_reservation(self, reservation_id: int) -> None:
        reservation = self.get_reservation(reservation_id)
        organization_id = reservation.organization_id
        table_id = reservation.table_id
        if reservation.status == ReservationStatus.CONFIRMED:
            self._release_table(reservation)
        self.db.delete(reservation)
        self._commit("Reservation deletion")

        logger.info(f"Reservation {reservation_id} deleted")
        self._publish(
            EventType.RESERVATION_DELETED,
            {"reservation_id": reservation_id, "table_id": table_id},
            organization_id=organization_id,
        )
