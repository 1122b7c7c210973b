from __future__ import annotations

import dataclasses
from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from repricer.core.errors import ProductNotFoundError
from repricer.core.pricing import utcnow
from repricer.db.models import BuyBoxHistory
from repricer.models.buybox import BuyBoxOwnershipStatus, BuyBoxSnapshot
from repricer.monitors.factory import MonitorFactory
from repricer.repositories.buybox_history import BuyBoxHistoryRepository
from repricer.repositories.inventory import InventoryRepository
from repricer.services.buybox_history import BuyBoxHistoryService

logger = structlog.get_logger(__name__)


class BuyBoxMonitoringService:
    """Polling and bulk operations on top of the per-marketplace monitors."""

    def __init__(self, db: Session, monitors: MonitorFactory):
        self.histories = BuyBoxHistoryRepository(db)
        self.inventory = InventoryRepository(db)
        self.monitors = monitors
        self.history_service = BuyBoxHistoryService(self.histories, monitors)

    async def check_buybox_status(
        self,
        product_id: str,
        marketplace_id: str,
        marketplace_product_id: str,
        user_id: str | None = None,
        org_id: str | None = None,
    ) -> BuyBoxSnapshot:
        monitor = self.monitors.get_monitor(marketplace_id, user_id, org_id)
        return await monitor.check_buybox_status(product_id, marketplace_product_id)

    async def initialize_monitoring(
        self,
        product_id: str,
        marketplace_id: str,
        marketplace_product_id: str | None = None,
        frequency: int | None = None,
    ) -> BuyBoxHistory:
        product = self.inventory.get_inventory_item_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return await self.history_service.initialize_monitoring(
            product, marketplace_id, marketplace_product_id, frequency
        )

    async def initialize_monitoring_for_marketplace(
        self, org_id: str, marketplace_id: str, frequency: int | None = None
    ) -> int:
        count = 0
        for product in self.inventory.get_products_on_marketplace(
            marketplace_id, org_id=org_id
        ):
            existing = self.histories.get(product.id, marketplace_id)
            if existing is not None and existing.is_monitoring:
                continue
            try:
                await self.history_service.initialize_monitoring(
                    product, marketplace_id, frequency=frequency
                )
                count += 1
            except Exception:
                logger.exception(
                    "buybox.bulk_initialize_failed",
                    sku=product.sku,
                    marketplace=marketplace_id,
                )
                self.histories.db.rollback()

        logger.info(
            "buybox.bulk_initialized",
            org_id=org_id,
            marketplace=marketplace_id,
            count=count,
        )
        return count

    def stop_monitoring(self, product_id: str, marketplace_id: str) -> bool:
        return self.history_service.stop_monitoring(product_id, marketplace_id)

    async def monitor_one(self, history: BuyBoxHistory) -> BuyBoxHistory | None:
        monitor = self.monitors.get_monitor(
            history.marketplace_id, history.user_id, history.org_id
        )
        snapshot = await monitor.check_buybox_status(
            history.product_id, history.marketplace_product_id
        )

        if snapshot.status != BuyBoxOwnershipStatus.UNKNOWN:
            product = self.inventory.get_inventory_item_by_id(history.product_id)
            if product is not None:
                suggestion = await monitor.calculate_suggested_price(product, snapshot)
                snapshot = dataclasses.replace(
                    snapshot,
                    suggested_price=suggestion.suggested_price,
                    suggested_price_reason=suggestion.reason,
                )

        return self.history_service.add_snapshot(
            history.product_id, history.marketplace_id, snapshot
        )

    async def check_due_products(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        checked = 0
        for history in self.histories.get_due_for_check(now):
            try:
                if await self.monitor_one(history) is not None:
                    checked += 1
            except Exception:
                # keep cycle alive
                logger.exception(
                    "buybox.monitor_failed",
                    history_id=history.id,
                    marketplace=history.marketplace_id,
                )
                self.histories.db.rollback()

        logger.info("buybox.monitor_cycle", checked=checked)
        return checked
