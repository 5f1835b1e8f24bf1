"""Organization and staff user schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from tablequeue.core.rbac import GlobalRole, StaffRole
from tablequeue.models import OrganizationType


class OrganizationCreate(BaseModel):
    """Super-admin onboarding of a tenant together with its first admin."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    type: OrganizationType = OrganizationType.RESTAURANT
    admin_username: str = Field(..., min_length=3, max_length=100)
    admin_password: str = Field(..., min_length=6, max_length=128)
    admin_name: str = Field(..., min_length=1, max_length=255)
    admin_email: Optional[EmailStr] = None


class OrganizationUpdate(BaseModel):
    """Super-admin edit; ``is_active=False`` deactivates the tenant."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None


class OrganizationSettingsUpdate(BaseModel):
    """Org-admin branding."""

    name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = Field(default=None, max_length=500)
    slogan: Optional[str] = Field(default=None, max_length=255)
    primary_color: Optional[str] = Field(default=None, max_length=20)
    secondary_color: Optional[str] = Field(default=None, max_length=20)
    description: Optional[str] = None


class OrganizationResponse(BaseModel):
    id: int
    name: str
    slug: str
    type: OrganizationType
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    logo_url: Optional[str] = None
    slogan: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PublicOrganization(BaseModel):
    """Branding shown to anonymous customers."""

    name: str
    logo_url: Optional[str] = None
    slogan: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None

    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=6, max_length=128)
    role: StaffRole = StaffRole.WAITER
    global_role: GlobalRole = GlobalRole.ORG_STAFF
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[EmailStr] = None
    organization_id: Optional[int] = None


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[EmailStr] = None
    role: Optional[StaffRole] = None
    is_active: Optional[bool] = None


class PasswordReset(BaseModel):
    password: str = Field(..., min_length=6, max_length=128)


class UserResponse(BaseModel):
    id: int
    organization_id: Optional[int] = None
    username: str
    email: Optional[str] = None
    name: Optional[str] = None
    global_role: GlobalRole
    role: StaffRole
    is_active: bool
    last_login_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrganizationWithAdmin(BaseModel):
    organization: OrganizationResponse
    admin: UserResponse
