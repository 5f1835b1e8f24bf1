"""Menu management routes."""

from typing import List

from fastapi import APIRouter, status

from tablequeue.api.deps import Bus
from tablequeue.core.rbac import CurrentUser, RequireOrgAdmin
from tablequeue.db.session import DbSession
from tablequeue.schemas.restaurant import MenuItemCreate, MenuItemResponse, MenuItemUpdate
from tablequeue.services.menu_service import MenuService

router = APIRouter()


@router.get("", response_model=List[MenuItemResponse])
def list_menu(db: DbSession, bus: Bus, current_user: CurrentUser, available_only: bool = False):
    return MenuService(db, bus, current_user.scope).list_items(available_only=available_only)


@router.post("", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
def create_menu_item(data: MenuItemCreate, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    return MenuService(db, bus, current_user.scope).create_item(**data.model_dump())


@router.patch("/{item_id}", response_model=MenuItemResponse)
def update_menu_item(item_id: int, data: MenuItemUpdate, db: DbSession, bus: Bus,
                     current_user: RequireOrgAdmin):
    """Price changes only affect orders placed afterwards."""
    return MenuService(db, bus, current_user.scope).update_item(
        item_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_menu_item(item_id: int, db: DbSession, bus: Bus, current_user: RequireOrgAdmin):
    MenuService(db, bus, current_user.scope).delete_item(item_id)
