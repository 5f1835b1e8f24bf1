"""Staff user management, scoped to the caller's organization."""

from typing import List

from fastapi import APIRouter, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import RequireOrgAdmin
from tablequeue.db.session import DbSession
from tablequeue.schemas.organization import PasswordReset, UserCreate, UserResponse, UserUpdate
from tablequeue.services.organization_service import OrganizationService

router = APIRouter()


@router.get("", response_model=List[UserResponse])
def list_users(db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    return OrganizationService(db, bus, current_user.scope).list_users()


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(data: UserCreate, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    return OrganizationService(db, bus, current_user.scope).create_user(
        username=data.username,
        password=data.password,
        role=data.role,
        name=data.name,
        email=data.email,
        global_role=data.global_role,
        organization_id=data.organization_id,
    )


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(user_id: int, data: UserUpdate, db: DbSession, bus: Bus,
                current_user: RequireOrgAdmin):
    return OrganizationService(db, bus, current_user.scope).update_user(
        user_id, data.model_dump(exclude_unset=True)
    )


@router.patch("/{user_id}/password")
def reset_password(user_id: int, data: PasswordReset, db: DbSession, bus: Bus,
                   current_user: RequireOrgAdmin):
    OrganizationService(db, bus, current_user.scope).reset_password(user_id, data.password)
    return {"message": "Password reset successfully"}


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    OrganizationService(db, bus, current_user.scope).delete_user(user_id, current_user.user_id)
