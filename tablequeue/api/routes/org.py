"""Organization settings for org admins."""

from fastapi import APIRouter

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import CurrentUser, RequireOrgAdmin
from tablequeue.db.session import DbSession
from tablequeue.schemas.organization import OrganizationResponse, OrganizationSettingsUpdate
from tablequeue.services.organization_service import OrganizationService

router = APIRouter()


@router.get("/settings", response_model=OrganizationResponse)
def get_settings(db: DbSession, bus: Bus, current_user: CurrentUser):
    return OrganizationService(db, bus, current_user.scope).get_settings()


@router.patch("/settings", response_model=OrganizationResponse)
def update_settings(data: OrganizationSettingsUpdate, db: DbSession, bus: Bus,
                    current_user: RequireOrgAdmin):
    """Update branding and contact details shown to customers."""
    return OrganizationService(db, bus, current_user.scope).update_settings(
        data.model_dump(exclude_unset=True)
    )
