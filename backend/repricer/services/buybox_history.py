from __future__ import annotations

import structlog

from repricer.core.config import settings
from repricer.core.errors import MarketplaceListingNotFoundError
from repricer.core.pricing import ensure_utc
from repricer.db.models import BuyBoxHistory, BuyBoxSnapshotRecord, InventoryItem, history_key
from repricer.models.buybox import BuyBoxOwnershipStatus, BuyBoxSnapshot
from repricer.monitors.factory import MonitorFactory
from repricer.repositories.buybox_history import BuyBoxHistoryRepository
from repricer.services.buybox_stats import compute_window_stats, transition_marker

logger = structlog.get_logger(__name__)


class BuyBoxHistoryService:
    def __init__(self, histories: BuyBoxHistoryRepository, monitors: MonitorFactory):
        self.histories = histories
        self.monitors = monitors

    async def initialize_monitoring(
        self,
        product: InventoryItem,
        marketplace_id: str,
        marketplace_product_id: str | None = None,
        frequency: int | None = None,
    ) -> BuyBoxHistory:
        listing = product.listing_for(marketplace_id)
        if not listing:
            logger.error(
                "buybox.initialize_failed",
                sku=product.sku,
                marketplace=marketplace_id,
                reason="no_listing",
            )
            raise MarketplaceListingNotFoundError(product.sku, marketplace_id)

        marketplace_product_id = marketplace_product_id or listing.get("product_id")
        frequency = frequency or settings.DEFAULT_MONITORING_FREQUENCY

        monitor = self.monitors.get_monitor(
            marketplace_id, product.user_id, product.org_id
        )
        snapshot = await monitor.check_buybox_status(product.id, marketplace_product_id)

        existing = self.histories.get(product.id, marketplace_id)
        if existing is not None:
            existing.is_monitoring = True
            existing.monitoring_frequency = frequency
            existing.marketplace_product_id = marketplace_product_id
            self.histories.save(existing)
            updated = self.add_snapshot(product.id, marketplace_id, snapshot)
            logger.info(
                "buybox.monitoring_resumed", sku=product.sku, marketplace=marketplace_id
            )
            return updated or existing

        stats = compute_window_stats([snapshot], snapshot.captured_at)
        history = BuyBoxHistory(
            id=history_key(product.id, marketplace_id),
            product_id=product.id,
            sku=product.sku,
            marketplace_id=marketplace_id,
            marketplace_product_id=marketplace_product_id,
            user_id=product.user_id,
            org_id=product.org_id,
            is_monitoring=True,
            monitoring_frequency=frequency,
            buybox_win_percentage=(
                100.0 if snapshot.status == BuyBoxOwnershipStatus.OWNED else 0.0
            ),
            average_price_difference=stats.average_price_difference,
            lowest_price_to_win=stats.lowest_price_to_win,
            snapshots=[BuyBoxSnapshotRecord.from_snapshot(snapshot)],
        )
        history = self.histories.create(history)

        logger.info(
            "buybox.monitoring_initialized",
            sku=product.sku,
            marketplace=marketplace_id,
            status=snapshot.status.value,
        )
        return history

    def add_snapshot(
        self, product_id: str, marketplace_id: str, snapshot: BuyBoxSnapshot
    ) -> BuyBoxHistory | None:
        try:
            history = self.histories.get(product_id, marketplace_id)
            if history is None:
                logger.error(
                    "buybox.history_missing",
                    product_id=product_id,
                    marketplace=marketplace_id,
                )
                return None

            series = history.snapshot_series()
            previous = series[-1] if series else None

            if previous is not None and ensure_utc(snapshot.captured_at) < ensure_utc(
                previous.captured_at
            ):
                logger.warning(
                    "buybox.snapshot_rejected",
                    product_id=product_id,
                    marketplace=marketplace_id,
                    captured_at=snapshot.captured_at.isoformat(),
                    last_captured_at=previous.captured_at.isoformat(),
                )
                return None

            history.snapshots.append(BuyBoxSnapshotRecord.from_snapshot(snapshot))

            transition = transition_marker(previous, snapshot)
            if transition is not None:
                kind, marker = transition
                if kind == "win":
                    history.last_buybox_win = marker
                else:
                    history.last_buybox_loss = marker

            stats = compute_window_stats(series + [snapshot], snapshot.captured_at)
            if stats.win_percentage is not None:
                history.buybox_win_percentage = stats.win_percentage
            if stats.average_price_difference is not None:
                history.average_price_difference = stats.average_price_difference
            if stats.lowest_price_to_win is not None:
                history.lowest_price_to_win = stats.lowest_price_to_win

            return self.histories.save(history)
        except Exception:
            logger.exception(
                "buybox.add_snapshot_failed",
                product_id=product_id,
                marketplace=marketplace_id,
            )
            self.histories.db.rollback()
            return None

    def stop_monitoring(self, product_id: str, marketplace_id: str) -> bool:
        try:
            history = self.histories.get(product_id, marketplace_id)
            if history is None:
                logger.warning(
                    "buybox.stop_missing", product_id=product_id, marketplace=marketplace_id
                )
                return False
            if history.is_monitoring:
                history.is_monitoring = False
                self.histories.save(history)
            logger.info(
                "buybox.monitoring_stopped",
                product_id=product_id,
                marketplace=marketplace_id,
            )
            return True
        except Exception:
            logger.exception(
                "buybox.stop_failed", product_id=product_id, marketplace=marketplace_id
            )
            return False
