from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from repricer.db.models import InventoryItem


class InventoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_inventory_item_by_id(self, item_id: str) -> InventoryItem | None:
        return self.db.get(InventoryItem, item_id)

    def get_products_on_marketplace(
        self, marketplace_id: str, org_id: str | None = None
    ) -> list[InventoryItem]:
        q = select(InventoryItem)
        if org_id is not None:
            q = q.where(InventoryItem.org_id == org_id)
        items = self.db.execute(q.order_by(InventoryItem.id)).scalars().all()
        # JSON containment differs per backend; filter the listing map here
        return [i for i in items if i.listing_for(marketplace_id)]
