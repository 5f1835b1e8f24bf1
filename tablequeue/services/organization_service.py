"""Tenant administration: organizations, their admins and staff accounts."""

import logging
import re
import secrets
from typing import List, Optional

from tablequeue.core.errors import ConflictError, DomainValidationError, NotFoundError
from tablequeue.core.rbac import GlobalRole, StaffRole
from tablequeue.core.security import get_password_hash
from tablequeue.models import Organization, OrganizationType, User
from tablequeue.services.base import ScopedService
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

BRANDING_FIELDS = (
    "name", "phone", "address", "logo_url", "slogan",
    "primary_color", "secondary_color", "description",
)
ADMIN_FIELDS = ("name", "email", "phone", "address", "is_active")


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "organization"


class OrganizationService(ScopedService):
    """Organizations and staff users, scoped to the caller."""

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def _org_query(self):
        query = self.db.query(Organization)
        if not self.scope.is_super_admin:
            query = query.filter(Organization.id == self.scope.organization_id)
        return query

    def list_organizations(self) -> List[Organization]:
        return self._org_query().order_by(Organization.id).all()

    def get_organization(self, org_id: int) -> Organization:
        org = self._org_query().filter(Organization.id == org_id).first()
        if org is None:
            raise NotFoundError("Organization", org_id)
        return org

    def _ensure_username_free(self, username: str) -> None:
        if self.db.query(User.id).filter(User.username == username).first() is not None:
            raise ConflictError("Username already taken")

    def _create_with_admin(self, org: Organization, username: str, password: str,
                           admin_name: str, admin_email: Optional[str]) -> User:
        """Insert the organization and its first admin as one unit."""
        admin = User(
            username=username,
            email=admin_email or org.email,
            password_hash=get_password_hash(password),
            global_role=GlobalRole.ORG_ADMIN,
            role=StaffRole.ADMIN,
            name=admin_name,
            is_active=True,
        )
        org.users.append(admin)
        self.db.add(org)
        self._commit("Organization creation")
        self.db.refresh(org)
        self.db.refresh(admin)

        logger.info(f"Organization {org.id} ({org.slug}) created with admin {admin.username}")
        self._publish(
            EventType.ORGANIZATION_CREATED,
            {"organization_id": org.id, "type": org.type.value},
            organization_id=org.id,
        )
        return admin

    def create_organization_with_admin(
        self,
        name: str,
        email: str,
        type: OrganizationType,
        admin_username: str,
        admin_password: str,
        admin_name: str,
        admin_email: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[str] = None,
    ) -> tuple:
        """Super-admin onboarding. Slug comes from the name and must be unique."""
        slug = slugify(name)
        if self.db.query(Organization.id).filter(Organization.slug == slug).first() is not None:
            raise ConflictError("An organization with this name already exists")
        self._ensure_username_free(admin_username)

        org = Organization(
            name=name.strip(),
            slug=slug,
            type=OrganizationType(type),
            email=email,
            phone=phone,
            address=address,
            is_active=True,
        )
        admin = self._create_with_admin(org, admin_username, admin_password, admin_name, admin_email)
        return org, admin

    def register_organization(
        self,
        organization_name: str,
        organization_type: OrganizationType,
        email: str,
        username: str,
        password: str,
        name: str,
        phone: Optional[str] = None,
    ) -> tuple:
        """Self-service sign-up; the slug gets a random suffix to stay unique."""
        organization_type = OrganizationType(organization_type)
        if organization_type == OrganizationType.BOTH:
            raise DomainValidationError("Choose either restaurant or queue_business")
        self._ensure_username_free(username)

        org = Organization(
            name=organization_name.strip(),
            slug=f"{slugify(organization_name)}-{secrets.token_hex(3)}",
            type=organization_type,
            email=email,
            phone=phone,
            is_active=True,
        )
        admin = self._create_with_admin(org, username, password, name, email)
        return org, admin

    def _apply(self, org: Organization, fields, changes: dict) -> Organization:
        for field in fields:
            if field in changes:
                setattr(org, field, changes[field])
        self._commit("Organization update")

        logger.info(f"Organization {org.id} updated: {sorted(k for k in changes if k in fields)}")
        self._publish(
            EventType.ORGANIZATION_UPDATED,
            {"organization_id": org.id, "is_active": org.is_active},
            organization_id=org.id,
        )
        return org

    def update_organization(self, org_id: int, changes: dict) -> Organization:
        """Super-admin edit, including deactivation. Organizations are never deleted."""
        return self._apply(self.get_organization(org_id), ADMIN_FIELDS, changes)

    def get_settings(self) -> Organization:
        return self.get_organization(self._require_org())

    def update_settings(self, changes: dict) -> Organization:
        """Org-admin branding and contact details."""
        if "name" in changes and not (changes["name"] or "").strip():
            raise DomainValidationError("Organization name cannot be empty")
        return self._apply(self.get_settings(), BRANDING_FIELDS, changes)

    # ------------------------------------------------------------------
    # Staff users
    # ------------------------------------------------------------------

    def list_users(self) -> List[User]:
        query = self.db.query(User)
        if not self.scope.is_super_admin:
            query = query.filter(User.organization_id == self.scope.organization_id)
        return query.order_by(User.id).all()

    def get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User", user_id)
        if not self.scope.is_super_admin:
            # Other tenants and platform admins are invisible to org admins
            if user.organization_id != self.scope.organization_id or \
                    user.global_role == GlobalRole.SUPER_ADMIN:
                raise NotFoundError("User", user_id)
        return user

    def create_user(self, username: str, password: str, role: StaffRole,
                    name: Optional[str] = None, email: Optional[str] = None,
                    global_role: GlobalRole = GlobalRole.ORG_STAFF,
                    organization_id: Optional[int] = None) -> User:
        global_role = GlobalRole(global_role)
        if global_role == GlobalRole.SUPER_ADMIN:
            raise DomainValidationError("Super admin accounts cannot be created here")
        if not self.scope.is_super_admin or organization_id is None:
            organization_id = self._require_org()
        if self.db.query(Organization.id).filter(Organization.id == organization_id).first() is None:
            raise NotFoundError("Organization", organization_id)
        self._ensure_username_free(username)

        user = User(
            organization_id=organization_id,
            username=username,
            password_hash=get_password_hash(password),
            role=StaffRole(role),
            global_role=global_role,
            name=name,
            email=email,
            is_active=True,
        )
        self.db.add(user)
        self._commit("User creation")
        self.db.refresh(user)
        logger.info(f"User {user.username} created in organization {organization_id}")
        return user

    def update_user(self, user_id: int, changes: dict) -> User:
        user = self.get_user(user_id)
        for field in ("name", "email", "role", "is_active"):
            if changes.get(field) is not None:
                setattr(user, field, changes[field])
        self._commit("User update")
        logger.info(f"User {user.id} updated")
        return user

    def reset_password(self, user_id: int, password: str) -> None:
        if not password or len(password) < 6:
            raise DomainValidationError("Password must be at least 6 characters")
        user = self.get_user(user_id)
        user.password_hash = get_password_hash(password)
        self._commit("Password reset")
        logger.info(f"Password reset for user {user.id}")

    def delete_user(self, user_id: int, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise DomainValidationError("Cannot delete your own account")
        user = self.get_user(user_id)
        self.db.delete(user)
        self._commit("User deletion")
        logger.info(f"User {user_id} deleted")

