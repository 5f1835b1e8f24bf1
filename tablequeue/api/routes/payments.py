"""Payment, split-bill and bill-share routes."""

from typing import List

from fastapi import APIRouter, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import RequireCashier
from tablequeue.db.session import DbSession
from tablequeue.schemas.restaurant import (
    BillShareResponse,
    PaymentCreate,
    PaymentResponse,
    SharePaidResponse,
    SplitBillCreate,
    SplitBillResponse,
)
from tablequeue.services.order_service import OrderService
from tablequeue.services.split_bill_service import ShareRequest, SplitBillService

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def record_payment(data: PaymentCreate, db: DbSession, bus: Bus, current_user: RequireCashier):
    """Settle a whole order. The stored total is charged, never the submitted amount."""
    return OrderService(db, bus, current_user.scope).record_payment(
        data.order_id, data.table_id, data.amount, data.method
    )


@router.get("/payments/history", response_model=List[PaymentResponse])
def payment_history(db: DbSession, bus: Bus, current_user: RequireCashier, limit: int = 100):
    return OrderService(db, bus, current_user.scope).payment_history(limit=min(limit, 500))


@router.post("/split-bill", response_model=SplitBillResponse, status_code=status.HTTP_201_CREATED)
def create_split_bill(data: SplitBillCreate, db: DbSession, bus: Bus, current_user: RequireCashier):
    """Create one payment with a share per payer, all or nothing."""
    shares = [
        ShareRequest(customer_name=s.customer_name, amount=s.amount, order_item_ids=s.order_item_ids)
        for s in data.shares
    ]
    payment = SplitBillService(db, bus, current_user.scope).create_split_bill(
        data.order_id, data.table_id, data.method, shares
    )
    return SplitBillResponse(
        payment=PaymentResponse.model_validate(payment),
        shares=[BillShareResponse.model_validate(s) for s in payment.shares],
    )


@router.get("/bill-shares/payment/{payment_id}", response_model=List[BillShareResponse])
def list_bill_shares(payment_id: int, db: DbSession, bus: Bus, current_user: RequireCashier):
    return SplitBillService(db, bus, current_user.scope).list_shares(payment_id)


@router.patch("/bill-shares/{share_id}/paid", response_model=SharePaidResponse)
def mark_share_paid(share_id: int, db: DbSession, bus: Bus, current_user: RequireCashier):
    """Mark one share paid. Paying the last share completes the order and frees the table."""
    result = SplitBillService(db, bus, current_user.scope).mark_share_paid(share_id)
    return SharePaidResponse(
        share=BillShareResponse.model_validate(result.share),
        order_completed=result.completed,
    )
