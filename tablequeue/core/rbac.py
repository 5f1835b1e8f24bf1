"""Role-Based Access Control (RBAC) utilities and tenant scoping."""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from tablequeue.core.security import ACCESS_TOKEN_COOKIE, decode_access_token


class GlobalRole(str, Enum):
    """Platform-level role."""

    SUPER_ADMIN = "super_admin"
    ORG_ADMIN = "org_admin"
    ORG_STAFF = "org_staff"


class StaffRole(str, Enum):
    """Role of a staff member inside an organization."""

    ADMIN = "admin"
    WAITER = "waiter"
    KITCHEN = "kitchen"
    CASHIER = "cashier"


@dataclass(frozen=True)
class OrgScope:
    """Tenant scope handed to every service.

    ``organization_id`` is None only for super admins, who see every tenant.
    """

    organization_id: Optional[int]
    is_super_admin: bool = False


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        username: Login name.
        role: Staff role inside the organization.
        global_role: Platform role (super_admin/org_admin/org_staff).
        organization_id: Tenant the user belongs to, None for super admins.
        name: Display name.
    """

    def __init__(self, user_id: int, username: str, role: StaffRole,
                 global_role: GlobalRole, organization_id: Optional[int] = None,
                 name: str = ""):
        self.user_id = user_id
        self.id = user_id
        self.username = username
        self.role = role
        self.global_role = global_role
        self.organization_id = organization_id
        self.name = name or username

    @property
    def is_super_admin(self) -> bool:
        return self.global_role == GlobalRole.SUPER_ADMIN

    @property
    def is_org_admin(self) -> bool:
        return self.global_role in (GlobalRole.SUPER_ADMIN, GlobalRole.ORG_ADMIN)

    @property
    def scope(self) -> OrgScope:
        return OrgScope(organization_id=self.organization_id, is_super_admin=self.is_super_admin)


def token_data_from_payload(payload: Optional[dict]) -> Optional[TokenData]:
    """Build TokenData from a decoded JWT payload, None if the claims are unusable."""
    if payload is None:
        return None

    user_id = payload.get("sub")
    username = payload.get("username")
    if user_id is None or username is None:
        return None

    try:
        role = StaffRole(payload.get("role"))
        global_role = GlobalRole(payload.get("global_role"))
    except ValueError:
        return None

    organization_id = payload.get("organization_id")
    if organization_id is None and global_role != GlobalRole.SUPER_ADMIN:
        return None

    return TokenData(
        user_id=int(user_id),
        username=username,
        role=role,
        global_role=global_role,
        organization_id=int(organization_id) if organization_id is not None else None,
        name=payload.get("name", ""),
    )


def _payload_from_request(request: Request) -> Optional[dict]:
    payload = None

    # Try Authorization header first
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    # Fall back to cookie if no Bearer or Bearer was invalid
    if payload is None:
        cookie_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        if cookie_token:
            payload = decode_access_token(cookie_token)

    return payload


async def get_current_user(request: Request) -> TokenData:
    """Get the current authenticated user from JWT token.

    Checks in order:
    1. Authorization: Bearer <token> header
    2. access_token cookie (HttpOnly)
    """
    payload = _payload_from_request(request)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = token_data_from_payload(payload)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return user


async def get_optional_current_user(request: Request) -> Optional[TokenData]:
    """Get the current user if a valid token is provided, otherwise return None."""
    return token_data_from_payload(_payload_from_request(request))


def require_roles(*roles: StaffRole):
    """Dependency requiring one of ``roles``; org admins and super admins always pass."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        if current_user.is_org_admin or current_user.role in roles:
            return current_user
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires role {' or '.join(r.value for r in roles)}",
        )

    return role_checker


async def require_org_admin(
    current_user: Annotated[TokenData, Depends(get_current_user)]
) -> TokenData:
    if not current_user.is_org_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization admin access required",
        )
    return current_user


async def require_super_admin(
    current_user: Annotated[TokenData, Depends(get_current_user)]
) -> TokenData:
    if not current_user.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return current_user


# Common role dependencies
CurrentUser = Annotated[TokenData, Depends(get_current_user)]
OptionalCurrentUser = Annotated[Optional[TokenData], Depends(get_optional_current_user)]
RequireOrgAdmin = Annotated[TokenData, Depends(require_org_admin)]
RequireSuperAdmin = Annotated[TokenData, Depends(require_super_admin)]
RequireWaiter = Annotated[TokenData, Depends(require_roles(StaffRole.WAITER))]
RequireKitchen = Annotated[TokenData, Depends(require_roles(StaffRole.KITCHEN, StaffRole.WAITER))]
RequireCashier = Annotated[TokenData, Depends(require_roles(StaffRole.CASHIER, StaffRole.WAITER))]
