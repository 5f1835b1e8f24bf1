"""Staff login against stored credentials."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from tablequeue.db.base import utcnow
from tablequeue.core.security import verify_password
from tablequeue.models import Organization, User

logger = logging.getLogger(__name__)


class AccountDisabledError(Exception):
    """Credentials are valid but the user or its organization is inactive."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user for valid credentials, None otherwise."""
        user = self.db.query(User).filter(User.username == username).first()
        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"Failed login for username={username}")
            return None

        if not user.is_active:
            raise AccountDisabledError("Account is disabled")
        if user.organization_id is not None:
            org = self.db.query(Organization).filter(Organization.id == user.organization_id).first()
            if org is None or not org.is_active:
                raise AccountDisabledError("Organization is deactivated")

        user.last_login_at = utcnow()
        self.db.commit()
        logger.info(f"User {user.username} logged in")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()
