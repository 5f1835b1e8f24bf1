import logging
from typing import List

from tablequeue.core.errors import NotFoundError
from tablequeue.db.base import utcnow
from tablequeue.models import Table, WaiterCall
from tablequeue.services.base import ScopedService
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)


class WaiterCallService(ScopedService):
    def _table_by_token(self, token: str) -> Table:
        """Validate table token and return table."""
        table = self.db.query(Table).filter(Table.qr_code == token).first()
        if table is None:
            raise NotFoundError("Table", message="Invalid table code")
        return table

    def create_call(self, table_token: str, reason: str = "assistance") -> WaiterCall:
        """Create waiter call."""
        table = self._table_by_token(table_token)
        call = WaiterCall(
            organization_id=table.organization_id,
            table_id=table.id,
            reason=reason,
            resolved=False,
            created_at=utcnow(),
        )
        self.db.add(call)
        self._commit("Waiter call")
        self.db.refresh(call)

        logger.info(f"Waiter called to table {table.number} ({reason})")
        self._publish(
            EventType.WAITER_CALLED,
            {"call_id": call.id, "table_id": table.id, "table_number": table.number},
            organization_id=table.organization_id,
        )
        return call

    def get_active_calls(self) -> List[WaiterCall]:
        """Get all unresolved waiter calls."""
        return self._scoped(self.db.query(WaiterCall), WaiterCall).filter(
            WaiterCall.resolved.is_(False)
        ).order_by(WaiterCall.created_at.asc()).all()

    def resolve_call(self, call_id: int) -> WaiterCall:
        call = self._get_owned(WaiterCall, call_id, "Waiter call")
        if not call.resolved:
            call.resolved = True
            call.resolved_at = utcnow()
            self._commit("Waiter call resolution")

        self._publish(
            EventType.WAITER_CALL_RESOLVED,
            {"call_id": call.id, "table_id": call.table_id},
            organization_id=call.organization_id,
        )
        return call
