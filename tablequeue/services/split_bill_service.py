"""
Split-Bill Settlement Protocol

A split payment is one Payment row fronting several BillShares. The table is
released and the order completed in the same transaction that marks the last
share paid, so partial settlement is never observable. Storage failures roll
the whole unit back and surface as a retryable TransactionFailure.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from tablequeue.core.errors import (
    ConflictError,
    DomainError,
    DomainValidationError,
    InvalidStateError,
    NotFoundError,
    TransactionFailure,
)
from tablequeue.db.base import utcnow
from tablequeue.models import (
    BillShare,
    Order,
    OrderItemStatus,
    OrderStatus,
    Payment,
    PaymentMethod,
    TableStatus,
)
from tablequeue.services.base import ScopedService, amounts_match, to_money
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

# Items that must be claimed once any share claims items
CLAIM_REQUIRED = {OrderItemStatus.READY, OrderItemStatus.DELIVERED}


@dataclass
class ShareRequest:
    customer_name: str
    amount: Decimal
    order_item_ids: Optional[List[int]] = field(default=None)


@dataclass
class SharePaidResult:
    share: BillShare
    payment: Payment
    completed: bool


class SplitBillService(ScopedService):
    """Create split bills and settle their shares."""

    def _get_payment(self, payment_id: int) -> Payment:
        payment = self._scoped(
            self.db.query(Payment).options(selectinload(Payment.shares)), Payment
        ).filter(Payment.id == payment_id).first()
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment

    def _get_share(self, share_id: int) -> BillShare:
        query = self.db.query(BillShare).join(Payment, BillShare.payment_id == Payment.id)
        share = self._scoped(query, Payment).filter(BillShare.id == share_id).first()
        if share is None:
            raise NotFoundError("Bill share", share_id)
        return share

    def list_shares(self, payment_id: int) -> List[BillShare]:
        return list(self._get_payment(payment_id).shares)

    def _validate_claims(self, order: Order, shares: List[ShareRequest]) -> None:
        """Server-side item claiming, used only when some share carries item ids."""
        if not any(s.order_item_ids for s in shares):
            return

        items = {item.id: item for item in order.items if item.status != OrderItemStatus.CANCELLED}
        claimed = set()
        for share in shares:
            if not share.order_item_ids:
                continue
            claimed_total = Decimal("0")
            for item_id in share.order_item_ids:
                if item_id not in items:
                    raise DomainValidationError(f"Item {item_id} is not part of this order")
                if item_id in claimed:
                    raise DomainValidationError(f"Item {item_id} is claimed by more than one person")
                claimed.add(item_id)
                claimed_total += items[item_id].subtotal
            if not amounts_match(claimed_total, share.amount):
                raise DomainValidationError(
                    f"{share.customer_name.strip()}'s amount does not match the claimed items"
                )

        unclaimed = [
            item_id for item_id, item in items.items()
            if item.status in CLAIM_REQUIRED and item_id not in claimed
        ]
        if unclaimed:
            raise DomainValidationError(
                f"Every served item must be claimed; unclaimed: {sorted(unclaimed)}"
            )

    def create_split_bill(self, order_id: int, table_id: int, method: PaymentMethod,
                          shares: Iterable[ShareRequest]) -> Payment:
        """Insert one Payment and one BillShare per payer, all or nothing.

        Share amounts must add up to the stored order total within tolerance.
        """
        shares = list(shares)
        try:
            query = self.db.query(Order).options(selectinload(Order.items))
            order = self._scoped(query, Order).filter(Order.id == order_id).first()
            if order is None:
                raise NotFoundError("Order", order_id)
            if order.status != OrderStatus.CONFIRMED:
                raise InvalidStateError(
                    f"Order is {order.status.value}, only confirmed orders can be split",
                    entity="Order", current=order.status.value,
                )
            if order.table_id != table_id:
                raise DomainValidationError("Table does not match the order")
            if not shares:
                raise DomainValidationError("At least one share is required")

            for share in shares:
                if not share.customer_name or not share.customer_name.strip():
                    raise DomainValidationError("Every share needs a customer name")
                if to_money(share.amount) <= 0:
                    raise DomainValidationError("Share amounts must be positive")

            total = to_money(order.total)
            share_sum = to_money(sum((to_money(s.amount) for s in shares), Decimal("0")))
            if not amounts_match(share_sum, total):
                logger.warning(f"Split for order {order.id} rejected: shares {share_sum} != {total}")
                raise DomainValidationError(
                    f"Shares add up to {share_sum} but the order total is {total}"
                )

            self._validate_claims(order, shares)

            existing = self.db.query(Payment.id).filter(Payment.order_id == order.id).first()
            if existing is not None:
                raise ConflictError("Order has already been paid")

            now = utcnow()
            payment = Payment(
                organization_id=order.organization_id,
                order_id=order.id,
                table_id=order.table_id,
                amount=total,
                method=PaymentMethod(method),
                is_split=True,
                created_at=now,
            )
            for share in shares:
                payment.shares.append(BillShare(
                    customer_name=share.customer_name.strip(),
                    amount=to_money(share.amount),
                    order_item_ids=list(share.order_item_ids) if share.order_item_ids else None,
                    paid=False,
                    created_at=now,
                ))
            self.db.add(payment)
            self._commit("Split bill")
        except DomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Split bill for order {order_id} rolled back: {e}")
            raise TransactionFailure()

        self.db.refresh(payment)
        logger.info(f"Split bill {payment.id} created for order {order_id} with {len(shares)} share(s)")
        return payment

    def _settle_if_complete(self, payment: Payment) -> bool:
        """Complete the order and free the table when every share is paid."""
        unpaid = self.db.query(BillShare).filter(
            BillShare.payment_id == payment.id,
            BillShare.paid.is_(False),
        ).count()
        if unpaid:
            return False

        order = self.db.query(Order).filter(Order.id == payment.order_id).one()
        order.status = OrderStatus.COMPLETED
        order.completed_at = utcnow()
        others = self.db.query(Order).filter(
            Order.table_id == order.table_id,
            Order.id != order.id,
            Order.status.in_((OrderStatus.PENDING, OrderStatus.CONFIRMED)),
        ).count()
        if others == 0:
            order.table.status = TableStatus.FREE
        return True

    def mark_share_paid(self, share_id: int) -> SharePaidResult:
        """Flip one share to paid; settle the order if it was the last one.

        Marking an already-paid share is a no-op.
        """
        try:
            share = self._get_share(share_id)
            # Serialize settlement per payment so concurrent last shares see each other
            payment = self.db.query(Payment).filter(
                Payment.id == share.payment_id
            ).with_for_update().one()
            self.db.refresh(share)
            if share.paid:
                return SharePaidResult(share=share, payment=payment, completed=False)

            share.paid = True
            share.paid_at = utcnow()
            self.db.flush()

            completed = self._settle_if_complete(payment)
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Marking share {share_id} paid rolled back: {e}")
            raise TransactionFailure()

        if completed:
            logger.info(f"Split bill {payment.id} fully settled, order {payment.order_id} completed")
            self._publish(
                EventType.SPLIT_BILL_COMPLETED,
                {"payment_id": payment.id, "order_id": payment.order_id, "table_id": payment.table_id},
                organization_id=payment.organization_id,
            )
        else:
            logger.info(f"Bill share {share.id} of payment {payment.id} paid")
            self._publish(
                EventType.BILL_SHARE_UPDATED,
                {"share_id": share.id, "payment_id": payment.id, "paid": True},
                organization_id=payment.organization_id,
            )
        return SharePaidResult(share=share, payment=payment, completed=completed)
