"""Queue administration and ticket handling routes (staff side)."""

from typing import List, Optional

from fastapi import APIRouter, Response, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import RequireOrgAdmin
from tablequeue.db.session import DbSession
from tablequeue.models import Queue, TicketStatus
from tablequeue.schemas.queue import (
    QueueCreate,
    QueueDetailResponse,
    QueueResponse,
    QueueUpdate,
    TicketResponse,
    TicketStatusUpdate,
)
from tablequeue.services.qr_service import qr_data_url, queue_url
from tablequeue.services.queue_service import QueueService

router = APIRouter()


def _detail(service: QueueService, queue: Queue) -> QueueDetailResponse:
    return QueueDetailResponse(
        **QueueResponse.model_validate(queue).model_dump(),
        waiting_count=service.waiting_count(queue.id),
        qr_url=queue_url(queue.qr_code),
        qr_code_image=qr_data_url(queue.qr_code),
    )


@router.get("", response_model=List[QueueResponse])
def list_queues(db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    return QueueService(db, bus, current_user.scope).list_queues()


@router.post("", response_model=QueueDetailResponse, status_code=status.HTTP_201_CREATED)
def create_queue(data: QueueCreate, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    service = QueueService(db, bus, current_user.scope)
    queue = service.create_queue(
        name=data.name,
        description=data.description,
        avg_service_time=data.avg_service_time,
        status=data.status,
    )
    return _detail(service, queue)


@router.get("/{queue_id}", response_model=QueueDetailResponse)
def get_queue(queue_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    """Queue with its waiting count and printable QR code."""
    service = QueueService(db, bus, current_user.scope)
    return _detail(service, service.get_queue(queue_id))


@router.patch("/{queue_id}", response_model=QueueResponse)
def update_queue(queue_id: int, data: QueueUpdate, db: DbSession, bus: Bus,
                 current_user: RequireOrgAdmin):
    return QueueService(db, bus, current_user.scope).update_queue(
        queue_id, **data.model_dump(exclude_unset=True)
    )


@router.delete("/{queue_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_queue(queue_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    QueueService(db, bus, current_user.scope).delete_queue(queue_id)


@router.get("/{queue_id}/tickets", response_model=List[TicketResponse])
def list_tickets(queue_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin,
                 ticket_status: Optional[TicketStatus] = None):
    return QueueService(db, bus, current_user.scope).list_tickets(queue_id, ticket_status)


@router.post("/{queue_id}/call-next", response_model=TicketResponse)
def call_next(queue_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    """Call the lowest-numbered waiting ticket."""
    return QueueService(db, bus, current_user.scope).call_next(queue_id)


@router.post("/{queue_id}/skip/{ticket_id}", response_model=TicketResponse)
def skip_ticket(queue_id: int, ticket_id: int, db: DbSession, bus: Bus,
                current_user: RequireOrgAdmin):
    return QueueService(db, bus, current_user.scope).skip_ticket(queue_id, ticket_id)


@router.patch("/{queue_id}/tickets/{ticket_id}/status", response_model=Optional[TicketResponse])
def update_ticket_status(queue_id: int, ticket_id: int, data: TicketStatusUpdate,
                         db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    """Apply one legal ticket transition. Cancelling removes the ticket (204)."""
    ticket = QueueService(db, bus, current_user.scope).advance_ticket(queue_id, ticket_id, data.status)
    if ticket is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ticket


@router.delete("/{queue_id}/tickets/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_ticket(queue_id: int, ticket_id: int, db: DbSession, bus: Bus,
                  current_user: RequireOrgAdmin):
    QueueService(db, bus, current_user.scope).cancel_ticket(queue_id, ticket_id)
