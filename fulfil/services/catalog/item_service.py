from __future__ import annotations

from typing import Any

from fulfil import db
from fulfil.business.errors import NotFound
from fulfil.data.catalog.item import Item


class ItemService:
    """Read access to the catalog. Items are maintained outside the engine."""

    @staticmethod
    def list_items(args: Any = None) -> list[Item]:
        query = Item.query
        search = ((args or {}).get("search") or "").strip()
        if search:
            query = query.filter(Item.name.ilike(f"%{search}%"))
        return query.order_by(Item.name, Item.version).all()

    @staticmethod
    def get_item(item_id: int) -> Item:
        item = db.session.get(Item, item_id)
        if item is None:
            raise NotFound(f"Item {item_id} not found")
        return item
