"""Menu catalog administration."""

import logging
from typing import List

from tablequeue.models import MenuItem
from tablequeue.services.base import ScopedService, to_money
from tablequeue.services.notification_bus import EventType

logger = logging.getLogger(__name__)

MENU_FIELDS = (
    "name", "category", "price", "description", "image_url",
    "available", "preparation_time_minutes",
)


class MenuService(ScopedService):
    """Menu items of one organization.

    Price edits only affect future orders; OrderItems keep their snapshot.
    """

    def list_items(self, available_only: bool = False) -> List[MenuItem]:
        query = self._scoped(self.db.query(MenuItem), MenuItem)
        if available_only:
            query = query.filter(MenuItem.available.is_(True))
        return query.order_by(MenuItem.category, MenuItem.name).all()

    def get_item(self, item_id: int) -> MenuItem:
        return self._get_owned(MenuItem, item_id, "Menu item")

    def create_item(self, **fields) -> MenuItem:
        organization_id = self._require_org()
        values = {k: v for k, v in fields.items() if k in MENU_FIELDS and v is not None}
        values["price"] = to_money(values["price"])
        item = MenuItem(organization_id=organization_id, **values)
        self.db.add(item)
        self._commit("Menu item creation")

        logger.info(f"Menu item {item.id} ({item.name}) created")
        self._publish(
            EventType.MENU_ITEM_CREATED,
            {"menu_item_id": item.id, "available": item.available},
            organization_id=organization_id,
        )
        return item

    def update_item(self, item_id: int, changes: dict) -> MenuItem:
        item = self.get_item(item_id)
        for field in MENU_FIELDS:
            if changes.get(field) is not None:
                value = changes[field]
                setattr(item, field, to_money(value) if field == "price" else value)
        self._commit("Menu item update")

        logger.info(f"Menu item {item.id} updated")
        self._publish(
            EventType.MENU_ITEM_UPDATED,
            {"menu_item_id": item.id, "available": item.available},
            organization_id=item.organization_id,
        )
        return item

    def delete_item(self, item_id: int) -> None:
        item = self.get_item(item_id)
        organization_id = item.organization_id
        self.db.delete(item)
        self._commit("Menu item deletion")

        logger.info(f"Menu item {item_id} deleted")
        self._publish(
            EventType.MENU_ITEM_DELETED,
            {"menu_item_id": item_id},
            organization_id=organization_id,
        )
