"""Customer-facing routes. No authentication; customers hold QR tokens and ticket ids."""

from fastapi import APIRouter, Request, status

from tablequeue.api.deps import Bus
from tablequeue.core.rate_limit import PUBLIC_WRITE_LIMIT, limiter
from tablequeue.db.session import DbSession
from tablequeue.schemas.organization import PublicOrganization
from tablequeue.schemas.queue import (
    JoinQueueRequest,
    JoinQueueResponse,
    PublicQueueResponse,
    PublicTicketResponse,
    TicketQueueInfo,
    TicketResponse,
)
from tablequeue.schemas.restaurant import PublicTableResponse
from tablequeue.services.queue_service import QueueService
from tablequeue.services.table_service import TableService

router = APIRouter()


@router.get("/tables/{qr_code}", response_model=PublicTableResponse)
@limiter.limit("60/minute")
def get_table_menu(request: Request, qr_code: str, db: DbSession, bus: Bus):
    """Table information and menu for the QR ordering page."""
    result = TableService(db, bus).table_by_qr(qr_code)
    return PublicTableResponse.model_validate(result, from_attributes=True)


@router.get("/queue/{qr_code}", response_model=PublicQueueResponse)
@limiter.limit("60/minute")
def get_queue_info(request: Request, qr_code: str, db: DbSession, bus: Bus):
    info = QueueService(db, bus).public_queue_info(qr_code)
    queue = info["queue"]
    return PublicQueueResponse(
        id=queue.id,
        name=queue.name,
        description=queue.description,
        status=queue.status,
        avg_service_time=queue.avg_service_time,
        waiting_count=info["waiting_count"],
        estimated_wait_minutes=info["estimated_wait_minutes"],
        organization=PublicOrganization.model_validate(info["organization"]),
    )


@router.post("/queue/{qr_code}/join", response_model=JoinQueueResponse,
             status_code=status.HTTP_201_CREATED)
@limiter.limit(PUBLIC_WRITE_LIMIT)
def join_queue(request: Request, qr_code: str, data: JoinQueueRequest, db: DbSession, bus: Bus):
    """Take a ticket. Returns the ticket with its position and estimated wait."""
    service = QueueService(db, bus)
    joined = service.join_queue(
        qr_code,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        party_size=data.party_size,
    )
    return JoinQueueResponse(
        **TicketResponse.model_validate(joined.ticket).model_dump(),
        position=joined.position,
        queue_name=joined.ticket.queue.name,
    )


@router.get("/ticket/{ticket_id}", response_model=PublicTicketResponse)
@limiter.limit("120/minute")
def get_ticket(request: Request, ticket_id: int, db: DbSession, bus: Bus):
    """Live ticket status; position and wait are recomputed on every read."""
    info = QueueService(db, bus).get_ticket_status(ticket_id)
    ticket = info["ticket"]
    return PublicTicketResponse(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        status=ticket.status,
        customer_name=ticket.customer_name,
        party_size=ticket.party_size,
        position=info["position"],
        estimated_wait_minutes=info["estimated_wait_minutes"],
        called_at=ticket.called_at,
        created_at=ticket.created_at,
        queue=TicketQueueInfo.model_validate(info["queue"]),
        organization=PublicOrganization.model_validate(info["organization"]),
    )
