"""Super-admin tenant management routes."""

from typing import List

from fastapi import APIRouter, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import RequireSuperAdmin
from tablequeue.db.session import DbSession
from tablequeue.schemas.organization import (
    OrganizationCreate,
    OrganizationResponse,
    OrganizationUpdate,
    OrganizationWithAdmin,
    UserResponse,
)
from tablequeue.services.organization_service import OrganizationService

router = APIRouter()


@router.get("/organizations", response_model=List[OrganizationResponse])
def list_organizations(db: DbSession, bus: Bus, current_user: RequireSuperAdmin):
    return OrganizationService(db, bus, current_user.scope).list_organizations()


@router.post("/organizations", response_model=OrganizationWithAdmin, status_code=status.HTTP_201_CREATED)
def create_organization(data: OrganizationCreate, db: DbSession, bus: Bus,
                        current_user: RequireSuperAdmin):
    """Create an organization together with its first admin user."""
    org, admin = OrganizationService(db, bus, current_user.scope).create_organization_with_admin(
        name=data.name,
        email=data.email,
        type=data.type,
        admin_username=data.admin_username,
        admin_password=data.admin_password,
        admin_name=data.admin_name,
        admin_email=data.admin_email,
        phone=data.phone,
        address=data.address,
    )
    return OrganizationWithAdmin(
        organization=OrganizationResponse.model_validate(org),
        admin=UserResponse.model_validate(admin),
    )


@router.get("/organizations/{org_id}", response_model=OrganizationResponse)
def get_organization(org_id: int, db: DbSession, bus: Bus, current_user: RequireSuperAdmin):
    return OrganizationService(db, bus, current_user.scope).get_organization(org_id)


@router.patch("/organizations/{org_id}", response_model=OrganizationResponse)
def update_organization(org_id: int, data: OrganizationUpdate, db: DbSession, bus: Bus,
                        current_user: RequireSuperAdmin):
    """Edit or (de)activate an organization."""
    return OrganizationService(db, bus, current_user.scope).update_organization(
        org_id, data.model_dump(exclude_unset=True)
    )
