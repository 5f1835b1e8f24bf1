"""Shared plumbing for tenant-scoped services."""

import logging
from typing import Any, Dict, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tablequeue.core.config import settings
from tablequeue.core.errors import ConflictError, NotFoundError, TransactionFailure
from tablequeue.core.rbac import OrgScope
from tablequeue.models.validators import to_money
from tablequeue.services.notification_bus import EventType, NotificationBus

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

# Used by customer-facing entry points that are not bound to a staff session
PUBLIC_SCOPE = OrgScope(organization_id=None, is_super_admin=False)


def amounts_match(a, b) -> bool:
    """Compare two money amounts; a deviation of a full tolerance step is a mismatch."""
    diff = abs(to_money(a) - to_money(b))
    return diff == 0 or diff < settings.split_bill_tolerance


class ScopedService:
    """Base for services that act on behalf of one organization scope."""

    def __init__(self, db: Session, bus: NotificationBus, scope: Optional[OrgScope] = None):
        self.db = db
        self.bus = bus
        self.scope = scope or PUBLIC_SCOPE

    def _scoped(self, query, model):
        """Restrict a query on ``model`` to the caller's organization."""
        if self.scope.is_super_admin:
            return query
        return query.filter(model.organization_id == self.scope.organization_id)

    def _get_owned(self, model: Type[ModelT], entity_id: int, entity: str) -> ModelT:
        """Fetch by id inside the scope. Foreign-tenant rows look missing."""
        obj = self._scoped(self.db.query(model), model).filter(model.id == entity_id).first()
        if obj is None:
            raise NotFoundError(entity, entity_id)
        return obj

    def _require_org(self) -> int:
        """Organization id for writes that create tenant rows."""
        if self.scope.organization_id is None:
            raise NotFoundError("Organization", message="An organization context is required")
        return self.scope.organization_id

    def _commit(self, action: str) -> None:
        """Commit the unit of work, translating storage failures."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"{action} rejected by integrity constraint: {e.orig}")
            raise ConflictError(f"{action} conflicts with existing data")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"{action} failed to commit: {e}")
            raise TransactionFailure()

    def _publish(self, event_type: EventType, data: Dict[str, Any],
                 organization_id: Optional[int] = None) -> None:
        self.bus.publish(event_type, data, organization_id=organization_id)
