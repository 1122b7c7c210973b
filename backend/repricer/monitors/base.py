from __future__ import annotations

from typing import Protocol

import structlog

from repricer.core.pricing import round_price
from repricer.marketplaces.base import MarketplaceAdapter
from repricer.models.buybox import (
    BuyBoxOwnershipStatus,
    BuyBoxSnapshot,
    Competitor,
    PriceUpdateResult,
    SuggestedPrice,
)

logger = structlog.get_logger(__name__)


class BuyBoxMonitor(Protocol):
    marketplace_id: str

    async def check_buybox_status(
        self, product_id: str, marketplace_product_id: str
    ) -> BuyBoxSnapshot: ...

    async def get_competitors(
        self, product_id: str, marketplace_product_id: str
    ) -> list[Competitor]: ...

    async def calculate_suggested_price(
        self, product, snapshot: BuyBoxSnapshot
    ) -> SuggestedPrice: ...

    async def update_price(
        self, product_id: str, marketplace_product_id: str, new_price: float
    ) -> PriceUpdateResult: ...


def snapshot_against_winner(
    own_price: float,
    competitors: list[Competitor],
    winner: Competitor,
    status: BuyBoxOwnershipStatus | None = None,
) -> BuyBoxSnapshot:
    """
    Build a snapshot for a listing that has a Buy Box winner. Price gap and
    opportunity are only reported when somebody else holds the box.
    """
    buybox_price = winner.price
    if status is None:
        status = (
            BuyBoxOwnershipStatus.OWNED
            if winner.is_own
            else BuyBoxOwnershipStatus.NOT_OWNED
        )

    gap = None
    gap_percent = None
    opportunity = False
    if status == BuyBoxOwnershipStatus.NOT_OWNED:
        gap = round_price(own_price - buybox_price)
        gap_percent = (gap / buybox_price) * 100 if buybox_price else None
        opportunity = gap > 0

    return BuyBoxSnapshot(
        status=status,
        own_price=own_price,
        buybox_price=buybox_price,
        buybox_price_with_shipping=winner.price_with_shipping or winner.price,
        price_difference_amount=gap,
        price_difference_percent=gap_percent,
        competitor_count=len(competitors),
        competitors=tuple(competitors),
        has_pricing_opportunity=opportunity,
    )


def snapshot_without_winner(
    own_price: float, competitors: list[Competitor], status: BuyBoxOwnershipStatus
) -> BuyBoxSnapshot:
    return BuyBoxSnapshot(
        status=status,
        own_price=own_price,
        buybox_price=None,
        competitor_count=len(competitors),
        competitors=tuple(competitors),
        has_pricing_opportunity=False,
    )


def reference_price(product, snapshot: BuyBoxSnapshot | None = None) -> float:
    """Base price of the item, falling back to cost and then the live price."""
    base = getattr(product, "base_price", None)
    if base:
        return float(base)
    cost = getattr(product, "cost_price", None)
    if cost:
        return float(cost) * 1.1
    if snapshot is not None and snapshot.own_price:
        return float(snapshot.own_price)
    return 0.0


async def push_price(
    adapter: MarketplaceAdapter, marketplace_product_id: str, new_price: float
) -> PriceUpdateResult:
    marketplace = adapter.marketplace_id
    try:
        logger.info(
            "buybox.update_price",
            marketplace=marketplace,
            marketplace_product_id=marketplace_product_id,
            new_price=new_price,
        )
        result = await adapter.update_prices(
            [{"sku": marketplace_product_id, "price": new_price}]
        )
        if result.get("success"):
            return PriceUpdateResult(
                success=True, message=f"Price updated successfully on {marketplace}"
            )

        failed = (result.get("data") or {}).get("failed") or []
        reason = next(
            (f.get("reason") for f in failed if f.get("sku") == marketplace_product_id),
            None,
        )
        return PriceUpdateResult(
            success=False,
            message=f"Failed to update price: {reason or 'Unknown error'}",
        )
    except Exception as e:
        logger.exception(
            "buybox.update_price_failed",
            marketplace=marketplace,
            marketplace_product_id=marketplace_product_id,
        )
        return PriceUpdateResult(success=False, message=f"Error updating price: {e}")
