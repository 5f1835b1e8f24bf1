"""Floor administration and customer-side table lookup."""

import logging
from typing import List, Optional

from tablequeue.core.errors import ConflictError, NotFoundError
from tablequeue.core.security import generate_token
from tablequeue.models import MenuItem, Order, Table, TableStatus
from tablequeue.services.base import ScopedService
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)


class TableService(ScopedService):
    """Tables of one organization."""

    def list_tables(self) -> List[Table]:
        return self._scoped(self.db.query(Table), Table).order_by(Table.number).all()

    def get_table(self, table_id: int) -> Table:
        return self._get_owned(Table, table_id, "Table")

    def create_table(self, number: int, capacity: int = 4) -> Table:
        organization_id = self._require_org()
        exists = self.db.query(Table.id).filter(
            Table.organization_id == organization_id,
            Table.number == number,
        ).first()
        if exists is not None:
            raise ConflictError(f"Table {number} already exists")

        table = Table(
            organization_id=organization_id,
            number=number,
            capacity=capacity,
            status=TableStatus.FREE,
            qr_code=generate_token(f"table-{organization_id}-{number}"),
        )
        self.db.add(table)
        self._commit("Table creation")

        logger.info(f"Table {table.number} created for organization {organization_id}")
        self._publish(
            EventType.TABLE_CREATED,
            {"table_id": table.id, "status": table.status.value},
            organization_id=organization_id,
        )
        return table

    def update_table(self, table_id: int, status: Optional[TableStatus] = None,
                     capacity: Optional[int] = None) -> Table:
        """Manual staff override of status or capacity."""
        table = self.get_table(table_id)
        if status is not None:
            table.status = TableStatus(status)
        if capacity is not None:
            table.capacity = capacity
        self._commit("Table update")

        logger.info(f"Table {table.id} updated: status={table.status.value}")
        self._publish(
            EventType.TABLE_UPDATED,
            {"table_id": table.id, "status": table.status.value},
            organization_id=table.organization_id,
        )
        return table

    def delete_table(self, table_id: int) -> None:
        table = self.get_table(table_id)
        if self.db.query(Order.id).filter(Order.table_id == table.id).first() is not None:
            raise ConflictError("Table has order history and cannot be deleted")
        organization_id = table.organization_id
        self.db.delete(table)
        self._commit("Table deletion")

        logger.info(f"Table {table_id} deleted")
        self._publish(
            EventType.TABLE_DELETED,
            {"table_id": table_id},
            organization_id=organization_id,
        )

    def table_by_qr(self, qr_token: str) -> dict:
        """Customer landing page: the table, its organization and available menu."""
        table = self.db.query(Table).filter(Table.qr_code == qr_token).first()
        if table is None or not table.organization.is_active:
            raise NotFoundError("Table", message="Table not found, please scan the code again")
        menu = self.db.query(MenuItem).filter(
            MenuItem.organization_id == table.organization_id,
            MenuItem.available.is_(True),
        ).order_by(MenuItem.category, MenuItem.name).all()
        return {"table": table, "organization": table.organization, "menu": menu}
