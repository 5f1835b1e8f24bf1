"""Authentication schemas."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from tablequeue.core.rbac import GlobalRole, StaffRole
from tablequeue.models import OrganizationType


class LoginRequest(BaseModel):
    """Login request body."""

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    """Self-service organization sign-up."""

    organization_name: str = Field(..., min_length=2, max_length=200)
    organization_type: OrganizationType
    email: EmailStr
    phone: Optional[str] = None
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=2, max_length=255)


class SessionUser(BaseModel):
    id: int
    username: str
    name: Optional[str] = None
    email: Optional[str] = None
    global_role: GlobalRole
    role: StaffRole

    model_config = {"from_attributes": True}


class SessionOrganization(BaseModel):
    id: int
    name: str
    type: OrganizationType
    logo_url: Optional[str] = None

    model_config = {"from_attributes": True}


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    user: SessionUser
    organization: Optional[SessionOrganization] = None


class SessionResponse(BaseModel):
    authenticated: bool
    user: Optional[SessionUser] = None
    organization: Optional[SessionOrganization] = None
