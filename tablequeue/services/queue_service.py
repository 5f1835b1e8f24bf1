"""
Queue Ticketing Engine

Ticket lifecycle:

    waiting -> called -> serving -> completed
    waiting | called -> no_show
    waiting | called -> cancelled   (the row is deleted)

Ticket numbers come from an atomic ``UPDATE ... SET next_ticket = next_ticket + 1``
so concurrent joins can never be handed the same number.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tablequeue.core.errors import (
    InvalidStateError,
    NotFoundError,
    TransactionFailure,
)
from tablequeue.core.security import generate_token
from tablequeue.db.base import utcnow
from tablequeue.models import Queue, QueueStatus, QueueTicket, TicketStatus
from tablequeue.services.base import ScopedService
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

TICKET_TRANSITIONS = {
    TicketStatus.WAITING: {TicketStatus.CALLED, TicketStatus.NO_SHOW, TicketStatus.CANCELLED},
    TicketStatus.CALLED: {TicketStatus.SERVING, TicketStatus.NO_SHOW, TicketStatus.CANCELLED},
    TicketStatus.SERVING: {TicketStatus.COMPLETED},
    TicketStatus.COMPLETED: set(),
    TicketStatus.NO_SHOW: set(),
    TicketStatus.CANCELLED: set(),
}

# Number of attempts when two joins race on the unique ticket number
JOIN_ATTEMPTS = 3


@dataclass
class TicketPosition:
    ticket: QueueTicket
    position: int
    estimated_wait_minutes: int


class QueueService(ScopedService):
    """Queue administration and ticket operations."""

    # ------------------------------------------------------------------
    # Queue administration
    # ------------------------------------------------------------------

    def list_queues(self) -> List[Queue]:
        return self._scoped(self.db.query(Queue), Queue).order_by(Queue.id).all()

    def get_queue(self, queue_id: int) -> Queue:
        return self._get_owned(Queue, queue_id, "Queue")

    def waiting_count(self, queue_id: int) -> int:
        return self.db.query(func.count(QueueTicket.id)).filter(
            QueueTicket.queue_id == queue_id,
            QueueTicket.status == TicketStatus.WAITING,
        ).scalar() or 0

    def create_queue(self, name: str, description: Optional[str] = None,
                     avg_service_time: int = 5,
                     status: QueueStatus = QueueStatus.ACTIVE) -> Queue:
        """Create a queue and its QR token in one transaction.

        The token embeds the queue id, so the row is inserted with a
        placeholder first and the real token set after the flush.
        """
        organization_id = self._require_org()
        queue = Queue(
            organization_id=organization_id,
            name=name,
            description=description,
            avg_service_time=avg_service_time,
            status=QueueStatus(status),
            current_ticket=0,
            next_ticket=1,
            qr_code=generate_token(f"queue-{organization_id}-pending", 12),
        )
        self.db.add(queue)
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Queue insert failed: {e}")
            raise TransactionFailure()
        queue.qr_code = generate_token(f"queue-{organization_id}-{queue.id}")
        self._commit("Queue creation")

        logger.info(f"Queue {queue.id} created for organization {organization_id}")
        self._publish(
            EventType.QUEUE_UPDATED,
            {"queue_id": queue.id, "status": queue.status.value},
            organization_id=queue.organization_id,
        )
        return queue

    def update_queue(self, queue_id: int, **changes) -> Queue:
        queue = self.get_queue(queue_id)
        for field in ("name", "description", "avg_service_time", "status"):
            value = changes.get(field)
            if value is not None:
                setattr(queue, field, value)
        self._commit("Queue update")

        logger.info(f"Queue {queue.id} updated: status={queue.status.value}")
        self._publish(
            EventType.QUEUE_UPDATED,
            {"queue_id": queue.id, "status": queue.status.value},
            organization_id=queue.organization_id,
        )
        return queue

    def delete_queue(self, queue_id: int) -> None:
        queue = self.get_queue(queue_id)
        organization_id = queue.organization_id
        self.db.query(QueueTicket).filter(QueueTicket.queue_id == queue.id).delete(
            synchronize_session=False
        )
        self.db.delete(queue)
        self._commit("Queue deletion")

        logger.info(f"Queue {queue_id} deleted")
        self._publish(
            EventType.QUEUE_UPDATED,
            {"queue_id": queue_id, "deleted": True},
            organization_id=organization_id,
        )

    def list_tickets(self, queue_id: int, status: Optional[TicketStatus] = None) -> List[QueueTicket]:
        queue = self.get_queue(queue_id)
        query = self.db.query(QueueTicket).filter(QueueTicket.queue_id == queue.id)
        if status is not None:
            query = query.filter(QueueTicket.status == status)
        return query.order_by(QueueTicket.ticket_number).all()

    # ------------------------------------------------------------------
    # Customer side
    # ------------------------------------------------------------------

    def _queue_by_token(self, qr_token: str) -> Queue:
        queue = self.db.query(Queue).filter(Queue.qr_code == qr_token).first()
        if queue is None:
            raise NotFoundError("Queue", message="Queue not found, please scan the code again")
        return queue

    def public_queue_info(self, qr_token: str) -> dict:
        """Data shown on the join page before a customer takes a ticket."""
        queue = self._queue_by_token(qr_token)
        if queue.status == QueueStatus.CLOSED:
            raise InvalidStateError("This queue is currently closed", entity="Queue",
                                    current=queue.status.value)
        waiting = self.waiting_count(queue.id)
        return {
            "queue": queue,
            "organization": queue.organization,
            "waiting_count": waiting,
            "estimated_wait_minutes": waiting * queue.avg_service_time,
        }

    def _mint_ticket_number(self, queue_id: int) -> int:
        """Reserve the next number with an atomic increment in this transaction."""
        self.db.execute(
            update(Queue)
            .where(Queue.id == queue_id)
            .values(next_ticket=Queue.next_ticket + 1)
            .execution_options(synchronize_session=False)
        )
        next_ticket = self.db.execute(
            select(Queue.next_ticket).where(Queue.id == queue_id)
        ).scalar_one()
        return next_ticket - 1

    def join_queue(self, qr_token: str, customer_name: Optional[str] = None,
                   customer_phone: Optional[str] = None, party_size: int = 1) -> TicketPosition:
        queue = self._queue_by_token(qr_token)
        if queue.status != QueueStatus.ACTIVE:
            raise InvalidStateError(
                f"This queue is currently {queue.status.value}",
                entity="Queue", current=queue.status.value,
            )

        for attempt in range(1, JOIN_ATTEMPTS + 1):
            try:
                number = self._mint_ticket_number(queue.id)
                position = self.waiting_count(queue.id) + 1
                ticket = QueueTicket(
                    queue_id=queue.id,
                    ticket_number=number,
                    customer_name=(customer_name or "").strip() or None,
                    customer_phone=(customer_phone or "").strip() or None,
                    party_size=party_size,
                    status=TicketStatus.WAITING,
                    estimated_wait_minutes=position * queue.avg_service_time,
                    created_at=utcnow(),
                )
                self.db.add(ticket)
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(f"Ticket number clash on queue {queue.id} (attempt {attempt}): {e.orig}")
                if attempt == JOIN_ATTEMPTS:
                    raise TransactionFailure()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Joining queue {queue.id} failed: {e}")
                raise TransactionFailure()

        logger.info(f"Ticket #{ticket.ticket_number} issued on queue {queue.id}")
        self._publish(
            EventType.TICKET_CREATED,
            {"queue_id": queue.id, "ticket_id": ticket.id, "ticket_number": ticket.ticket_number},
            organization_id=queue.organization_id,
        )
        return TicketPosition(
            ticket=ticket,
            position=position,
            estimated_wait_minutes=ticket.estimated_wait_minutes,
        )

    def get_ticket_status(self, ticket_id: int) -> dict:
        """Live position for a ticket; 0 once it is no longer waiting."""
        ticket = self.db.query(QueueTicket).filter(QueueTicket.id == ticket_id).first()
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        queue = ticket.queue

        position = 0
        if ticket.status == TicketStatus.WAITING:
            ahead = self.db.query(func.count(QueueTicket.id)).filter(
                QueueTicket.queue_id == ticket.queue_id,
                QueueTicket.status == TicketStatus.WAITING,
                QueueTicket.ticket_number < ticket.ticket_number,
            ).scalar() or 0
            position = ahead + 1

        return {
            "ticket": ticket,
            "position": position,
            "estimated_wait_minutes": position * queue.avg_service_time,
            "queue": queue,
            "organization": queue.organization,
        }

    # ------------------------------------------------------------------
    # Staff side
    # ------------------------------------------------------------------

    def _get_ticket(self, queue: Queue, ticket_id: int) -> QueueTicket:
        ticket = self.db.query(QueueTicket).filter(
            QueueTicket.id == ticket_id,
            QueueTicket.queue_id == queue.id,
        ).first()
        if ticket is None:
            raise NotFoundError("Ticket", ticket_id)
        return ticket

    def _apply_status(self, queue: Queue, ticket: QueueTicket, status: TicketStatus) -> None:
        """Set status and stamp the matching timestamp once."""
        now = utcnow()
        ticket.status = status
        if status == TicketStatus.CALLED:
            if ticket.called_at is None:
                ticket.called_at = now
            if ticket.ticket_number > queue.current_ticket:
                queue.current_ticket = ticket.ticket_number
        elif status == TicketStatus.SERVING and ticket.served_at is None:
            ticket.served_at = now
        elif status == TicketStatus.COMPLETED and ticket.completed_at is None:
            ticket.completed_at = now

    def call_next(self, queue_id: int) -> QueueTicket:
        """Call the lowest-numbered waiting ticket."""
        queue = self.get_queue(queue_id)
        ticket = self.db.query(QueueTicket).filter(
            QueueTicket.queue_id == queue.id,
            QueueTicket.status == TicketStatus.WAITING,
        ).order_by(QueueTicket.ticket_number).first()
        if ticket is None:
            raise NotFoundError("Ticket", message="No waiting tickets in queue")

        self._apply_status(queue, ticket, TicketStatus.CALLED)
        queue.current_ticket = ticket.ticket_number
        self._commit("Call next")

        logger.info(f"Queue {queue.id} called ticket #{ticket.ticket_number}")
        self._publish(
            EventType.TICKET_CALLED,
            {"queue_id": queue.id, "ticket_id": ticket.id, "ticket_number": ticket.ticket_number},
            organization_id=queue.organization_id,
        )
        return ticket

    def advance_ticket(self, queue_id: int, ticket_id: int, status: TicketStatus) -> Optional[QueueTicket]:
        """Apply one edge of the ticket transition table.

        Moving to cancelled deletes the ticket and returns None.
        """
        status = TicketStatus(status)
        if status == TicketStatus.CANCELLED:
            self.cancel_ticket(queue_id, ticket_id)
            return None

        queue = self.get_queue(queue_id)
        ticket = self._get_ticket(queue, ticket_id)
        if status not in TICKET_TRANSITIONS[ticket.status]:
            logger.warning(
                f"Ticket {ticket.id} transition rejected: {ticket.status.value} -> {status.value}"
            )
            raise InvalidStateError(
                f"Ticket cannot move from {ticket.status.value} to {status.value}",
                entity="Ticket", current=ticket.status.value, requested=status.value,
            )

        self._apply_status(queue, ticket, status)
        self._commit("Ticket status update")

        logger.info(f"Ticket {ticket.id} on queue {queue.id} is now {status.value}")
        self._publish(
            EventType.TICKET_STATUS_UPDATED,
            {"queue_id": queue.id, "ticket_id": ticket.id, "status": ticket.status.value},
            organization_id=queue.organization_id,
        )
        return ticket

    def skip_ticket(self, queue_id: int, ticket_id: int) -> QueueTicket:
        """Mark a waiting or called ticket as a no-show."""
        return self.advance_ticket(queue_id, ticket_id, TicketStatus.NO_SHOW)

    def cancel_ticket(self, queue_id: int, ticket_id: int) -> None:
        """Delete a ticket that has not started being served."""
        queue = self.get_queue(queue_id)
        ticket = self._get_ticket(queue, ticket_id)
        if TicketStatus.CANCELLED not in TICKET_TRANSITIONS[ticket.status]:
            raise InvalidStateError(
                f"Ticket is {ticket.status.value} and can no longer be cancelled",
                entity="Ticket", current=ticket.status.value,
                requested=TicketStatus.CANCELLED.value,
            )

        self.db.delete(ticket)
        self._commit("Ticket cancellation")

        logger.info(f"Ticket {ticket_id} removed from queue {queue.id}")
        self._publish(
            EventType.TICKET_STATUS_UPDATED,
            {"queue_id": queue.id, "ticket_id": ticket_id, "deleted": True},
            organization_id=queue.organization_id,
        )
