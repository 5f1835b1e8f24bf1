"""
Order Lifecycle Engine

Owns the order and order-item state machines:

    Order:      pending -> confirmed -> completed
                pending -> cancelled
    OrderItem:  queued -> preparing -> almost_ready -> ready -> delivered
                queued -> cancelled

Item prices are snapshotted from the menu at submit time. The order total is
derived data, recomputed from non-cancelled items on every item mutation and
re-derived again at payment time.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import selectinload

from tablequeue.core.errors import (
    ConflictError,
    DomainValidationError,
    InvalidStateError,
    NotFoundError,
)
from tablequeue.db.base import utcnow
from tablequeue.models import (
    MenuItem,
    Order,
    OrderItem,
    OrderItemStatus,
    OrderStatus,
    Payment,
    PaymentMethod,
    Table,
    TableStatus,
)
from tablequeue.services.base import ScopedService, amounts_match, to_money
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

# Forward order of the kitchen flow; cancelled sits outside it
ITEM_FLOW = [
    OrderItemStatus.QUEUED,
    OrderItemStatus.PREPARING,
    OrderItemStatus.ALMOST_READY,
    OrderItemStatus.READY,
    OrderItemStatus.DELIVERED,
]
ITEM_RANK = {status: rank for rank, status in enumerate(ITEM_FLOW)}

READY_OR_DONE = {OrderItemStatus.READY, OrderItemStatus.DELIVERED, OrderItemStatus.CANCELLED}
OPEN_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


@dataclass
class CartLine:
    menu_item_id: int
    quantity: int = 1
    notes: Optional[str] = None


def compute_total(items: Iterable[OrderItem]) -> Decimal:
    """Sum quantity x snapshot price over non-cancelled items."""
    return to_money(sum(
        (Decimal(item.price) * item.quantity
         for item in items if item.status != OrderItemStatus.CANCELLED),
        Decimal("0"),
    ))


class OrderService(ScopedService):
    """Order lifecycle operations. Each mutation is one commit, then one event."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _order_query(self):
        return self._scoped(
            self.db.query(Order).options(selectinload(Order.items), selectinload(Order.table)),
            Order,
        )

    def get_order(self, order_id: int) -> Order:
        order = self._order_query().filter(Order.id == order_id).first()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(self, status: Optional[OrderStatus] = None) -> List[Order]:
        query = self._order_query()
        if status is not None:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def list_table_orders(self, table_id: int, open_only: bool = False) -> List[Order]:
        self._get_owned(Table, table_id, "Table")
        query = self._order_query().filter(Order.table_id == table_id)
        if open_only:
            query = query.filter(Order.status.in_(OPEN_ORDER_STATUSES))
        return query.order_by(Order.id).all()

    def occupied_tables_with_orders(self) -> List[dict]:
        """Occupied tables with their open orders, for the cashier view."""
        tables = self._scoped(self.db.query(Table), Table).filter(
            Table.status == TableStatus.OCCUPIED
        ).order_by(Table.number).all()
        result = []
        for table in tables:
            orders = self._order_query().filter(
                Order.table_id == table.id,
                Order.status.in_(OPEN_ORDER_STATUSES),
            ).order_by(Order.id).all()
            result.append({"table": table, "orders": orders})
        return result

    def payment_history(self, limit: int = 100) -> List[Payment]:
        return self._scoped(self.db.query(Payment), Payment).options(
            selectinload(Payment.shares)
        ).order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit).all()

    def _get_item(self, order: Order, item_id: int) -> OrderItem:
        for item in order.items:
            if item.id == item_id:
                return item
        raise NotFoundError("Order item", item_id)

    def _release_table_if_idle(self, table: Table, closing_order_id: int) -> None:
        """Free the table unless another open order still sits on it."""
        others = self.db.query(Order).filter(
            Order.table_id == table.id,
            Order.id != closing_order_id,
            Order.status.in_(OPEN_ORDER_STATUSES),
        ).count()
        if others == 0:
            table.status = TableStatus.FREE

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def submit_order(self, table_id: int, lines: Iterable[CartLine]) -> Order:
        """Create a pending order from a customer cart.

        Menu items that are unknown, unavailable or belong to another
        organization are skipped. If nothing survives, nothing is written.
        """
        table = self.db.query(Table).filter(Table.id == table_id).first()
        if table is None:
            raise NotFoundError("Table", table_id)

        order = Order(
            organization_id=table.organization_id,
            table_id=table.id,
            status=OrderStatus.PENDING,
            total=Decimal("0.00"),
        )
        skipped = 0
        for line in lines:
            menu_item = self.db.query(MenuItem).filter(
                MenuItem.id == line.menu_item_id,
                MenuItem.organization_id == table.organization_id,
            ).first()
            if menu_item is None or not menu_item.available:
                skipped += 1
                continue
            order.items.append(OrderItem(
                menu_item_id=menu_item.id,
                name=menu_item.name,
                quantity=line.quantity,
                notes=line.notes,
                status=OrderItemStatus.QUEUED,
                price=to_money(menu_item.price),
            ))

        if not order.items:
            raise DomainValidationError("None of the selected menu items are available")
        if skipped:
            logger.info(f"Order for table {table.id}: skipped {skipped} unavailable line(s)")

        order.total = compute_total(order.items)
        table.status = TableStatus.OCCUPIED
        self.db.add(order)
        self._commit("Order submission")
        self.db.refresh(order)

        logger.info(f"Order {order.id} created for table {table.id}, total {order.total}")
        self._publish(
            EventType.ORDER_CREATED,
            {"order_id": order.id, "table_id": table.id, "status": order.status.value},
            organization_id=order.organization_id,
        )
        return order

    def confirm_order(self, order_id: int) -> Order:
        order = self.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            logger.warning(f"Confirm rejected for order {order.id} in status {order.status.value}")
            raise InvalidStateError(
                f"Order is already {order.status.value}",
                entity="Order", current=order.status.value, requested=OrderStatus.CONFIRMED.value,
            )

        order.status = OrderStatus.CONFIRMED
        order.confirmed_at = utcnow()
        self._commit("Order confirmation")

        logger.info(f"Order {order.id} confirmed")
        self._publish(
            EventType.ORDER_CONFIRMED,
            {"order_id": order.id, "table_id": order.table_id, "status": order.status.value},
            organization_id=order.organization_id,
        )
        return order

    def advance_item_status(self, order_id: int, item_id: int,
                            next_status: OrderItemStatus) -> OrderItem:
        """Move one item forward through the kitchen flow.

        Re-requesting the current status changes nothing. ``started_preparing_at``
        is stamped on the first move into preparing or any later stage.
        """
        order = self.get_order(order_id)
        item = self._get_item(order, item_id)
        next_status = OrderItemStatus(next_status)

        if order.status != OrderStatus.CONFIRMED:
            raise InvalidStateError(
                "Order must be confirmed before the kitchen can work on it",
                entity="Order", current=order.status.value, requested=next_status.value,
            )
        if next_status == OrderItemStatus.CANCELLED:
            raise InvalidStateError(
                "Use item cancellation to cancel an item",
                entity="OrderItem", current=item.status.value, requested=next_status.value,
            )
        if item.status == OrderItemStatus.CANCELLED:
            raise InvalidStateError(
                "Item was cancelled",
                entity="OrderItem", current=item.status.value, requested=next_status.value,
            )
        if ITEM_RANK[next_status] < ITEM_RANK[item.status]:
            logger.warning(
                f"Backward move rejected for item {item.id}: "
                f"{item.status.value} -> {next_status.value}"
            )
            raise InvalidStateError(
                f"Item is already {item.status.value}",
                entity="OrderItem", current=item.status.value, requested=next_status.value,
            )

        changed = next_status != item.status
        if changed:
            previous = item.status
            item.status = next_status
            if (ITEM_RANK[next_status] >= ITEM_RANK[OrderItemStatus.PREPARING]
                    and item.started_preparing_at is None):
                item.started_preparing_at = utcnow()
            self._commit("Item status update")
            logger.info(
                f"Order {order.id} item {item.id}: {previous.value} -> {next_status.value}"
            )

        self._publish(
            EventType.ORDER_ITEM_STATUS_UPDATED,
            {"order_id": order.id, "item_id": item.id, "status": item.status.value},
            organization_id=order.organization_id,
        )
        if changed and next_status == OrderItemStatus.READY and all(
            i.status in READY_OR_DONE for i in order.items
        ):
            self._publish(
                EventType.ORDER_READY,
                {"order_id": order.id, "table_id": order.table_id},
                organization_id=order.organization_id,
            )
        return item

    def cancel_item(self, order_id: int, item_id: int) -> OrderItem:
        """Cancel a queued item and recompute the order total.

        A pending order whose last surviving item is cancelled becomes
        cancelled itself.
        """
        order = self.get_order(order_id)
        item = self._get_item(order, item_id)

        if order.status not in OPEN_ORDER_STATUSES:
            raise InvalidStateError(
                f"Order is already {order.status.value}",
                entity="Order", current=order.status.value,
            )
        if order.payment is not None:
            logger.warning(f"Cancel rejected for item {item.id}: order {order.id} is being settled")
            raise InvalidStateError(
                "Order is being settled, its items can no longer change",
                entity="Order", current=order.status.value,
            )
        if item.status == OrderItemStatus.CANCELLED:
            raise InvalidStateError(
                "Item is already cancelled",
                entity="OrderItem", current=item.status.value,
            )
        if item.status != OrderItemStatus.QUEUED:
            logger.warning(f"Cancel rejected for item {item.id} in status {item.status.value}")
            raise InvalidStateError(
                "Item already in preparation or delivered",
                entity="OrderItem", current=item.status.value,
                requested=OrderItemStatus.CANCELLED.value,
            )

        item.status = OrderItemStatus.CANCELLED
        order.total = compute_total(order.items)
        if order.status == OrderStatus.PENDING and all(
            i.status == OrderItemStatus.CANCELLED for i in order.items
        ):
            order.status = OrderStatus.CANCELLED
            self._release_table_if_idle(order.table, order.id)
        self._commit("Item cancellation")

        logger.info(f"Order {order.id} item {item.id} cancelled, total now {order.total}")
        self._publish(
            EventType.ORDER_ITEM_CANCELLED,
            {
                "order_id": order.id,
                "item_id": item.id,
                "order_status": order.status.value,
            },
            organization_id=order.organization_id,
        )
        return item

    def cancel_order(self, order_id: int) -> Order:
        """Explicit pending -> cancelled transition."""
        order = self.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidStateError(
                "Only pending orders can be cancelled",
                entity="Order", current=order.status.value, requested=OrderStatus.CANCELLED.value,
            )

        for item in order.items:
            item.status = OrderItemStatus.CANCELLED
        order.status = OrderStatus.CANCELLED
        order.total = Decimal("0.00")
        self._release_table_if_idle(order.table, order.id)
        self._commit("Order cancellation")

        logger.info(f"Order {order.id} cancelled")
        self._publish(
            EventType.ORDER_CANCELLED,
            {"order_id": order.id, "table_id": order.table_id, "status": order.status.value},
            organization_id=order.organization_id,
        )
        return order

    def record_payment(self, order_id: int, table_id: int, amount,
                       method: PaymentMethod) -> Payment:
        """Settle a whole order in one payment.

        The charged amount is always the total re-derived from stored items;
        the caller's ``amount`` is only checked against it.
        """
        order = self.get_order(order_id)
        if order.status != OrderStatus.CONFIRMED:
            raise InvalidStateError(
                f"Order is {order.status.value}, only confirmed orders can be paid",
                entity="Order", current=order.status.value, requested=OrderStatus.COMPLETED.value,
            )
        if order.table_id != table_id:
            raise DomainValidationError("Table does not match the order")
        if order.payment is not None:
            raise ConflictError("Order has already been paid")

        total = compute_total(order.items)
        if not amounts_match(amount, total):
            logger.warning(f"Payment for order {order.id} rejected: {amount} != {total}")
            raise DomainValidationError(
                f"Payment amount {to_money(amount)} does not match order total {total}"
            )

        payment = Payment(
            organization_id=order.organization_id,
            order_id=order.id,
            table_id=order.table_id,
            amount=total,
            method=PaymentMethod(method),
            is_split=False,
            created_at=utcnow(),
        )
        self.db.add(payment)
        order.total = total
        order.status = OrderStatus.COMPLETED
        order.completed_at = utcnow()
        self._release_table_if_idle(order.table, order.id)
        self._commit("Payment")
        self.db.refresh(payment)

        logger.info(f"Order {order.id} paid {payment.amount} by {payment.method.value}")
        self._publish(
            EventType.PAYMENT_PROCESSED,
            {"payment_id": payment.id, "order_id": order.id, "table_id": order.table_id},
            organization_id=order.organization_id,
        )
        return payment
