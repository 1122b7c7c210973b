from __future__ import annotations

import structlog

from repricer.core.errors import MarketplaceAdapterError
from repricer.core.pricing import round_price
from repricer.marketplaces.base import MarketplaceAdapter
from repricer.models.buybox import (
    BuyBoxOwnershipStatus,
    BuyBoxSnapshot,
    Competitor,
    PriceUpdateResult,
    SuggestedPrice,
    unknown_snapshot,
)
from repricer.monitors.base import (
    push_price,
    reference_price,
    snapshot_against_winner,
    snapshot_without_winner,
)

logger = structlog.get_logger(__name__)

OFFICIAL_STORE_NAME = "Takealot"


class TakealotBuyBoxMonitor:
    marketplace_id = "takealot"

    def __init__(self, adapter: MarketplaceAdapter, seller_name: str = "Your Store"):
        self.adapter = adapter
        self.seller_name = seller_name

    # -------------------------
    # Competitors
    # -------------------------

    def _to_competitor(self, offer: dict) -> Competitor:
        name = offer.get("seller_name") or "Unknown"
        price = float(offer.get("price") or 0)
        shipping = offer.get("shipping")
        return Competitor(
            name=name,
            seller_id=offer.get("seller_id"),
            price=price,
            price_with_shipping=price + float(shipping) if shipping else price,
            is_buy_box_winner=bool(offer.get("is_buy_box_winner")),
            is_own=name == self.seller_name,
            fulfillment_type=offer.get("fulfillment_type"),
            lead_time=offer.get("lead_time"),
            rating=offer.get("seller_rating"),
            review_count=offer.get("review_count"),
            is_official_store=bool(offer.get("is_official_store"))
            or name == OFFICIAL_STORE_NAME,
            badges=tuple(offer.get("badges") or ()),
        )

    async def _fetch_competitors(self, marketplace_product_id: str) -> list[Competitor]:
        offers = await self.adapter.get_offers(marketplace_product_id)
        return [self._to_competitor(o) for o in offers]

    async def get_competitors(
        self, product_id: str, marketplace_product_id: str
    ) -> list[Competitor]:
        try:
            return await self._fetch_competitors(marketplace_product_id)
        except Exception:
            logger.exception(
                "buybox.competitors_failed",
                marketplace=self.marketplace_id,
                product_id=product_id,
                marketplace_product_id=marketplace_product_id,
            )
            return []

    # -------------------------
    # Status
    # -------------------------

    async def check_buybox_status(
        self, product_id: str, marketplace_product_id: str
    ) -> BuyBoxSnapshot:
        try:
            logger.info(
                "buybox.check",
                marketplace=self.marketplace_id,
                marketplace_product_id=marketplace_product_id,
            )
            competitors = await self._fetch_competitors(marketplace_product_id)

            result = await self.adapter.get_product_by_id(marketplace_product_id)
            if not result.get("success") or not result.get("data"):
                raise MarketplaceAdapterError(
                    f"Failed to get product data for {marketplace_product_id} from Takealot"
                )
            own_price = float(result["data"]["price"])

            winner = next((c for c in competitors if c.is_buy_box_winner), None)

            if not competitors:
                return snapshot_without_winner(
                    own_price, competitors, BuyBoxOwnershipStatus.NO_BUY_BOX
                )
            if winner is not None:
                return snapshot_against_winner(own_price, competitors, winner)
            if len(competitors) == 1 and competitors[0].is_own:
                # sole seller on the listing
                return snapshot_without_winner(
                    own_price, competitors, BuyBoxOwnershipStatus.OWNED
                )
            return snapshot_without_winner(
                own_price, competitors, BuyBoxOwnershipStatus.NO_BUY_BOX
            )
        except Exception:
            logger.exception(
                "buybox.check_failed",
                marketplace=self.marketplace_id,
                product_id=product_id,
                marketplace_product_id=marketplace_product_id,
            )
            return unknown_snapshot()

    # -------------------------
    # Pricing
    # -------------------------

    async def calculate_suggested_price(
        self, product, snapshot: BuyBoxSnapshot
    ) -> SuggestedPrice:
        try:
            return self._suggest(product, snapshot)
        except Exception:
            logger.exception(
                "buybox.suggestion_failed",
                marketplace=self.marketplace_id,
                sku=getattr(product, "sku", None),
            )
            return SuggestedPrice(
                suggested_price=round_price(reference_price(product, snapshot)),
                reason="Using base price due to error in price calculation.",
            )

    def _suggest(self, product, snapshot: BuyBoxSnapshot) -> SuggestedPrice:
        own = snapshot.own_price

        if snapshot.status == BuyBoxOwnershipStatus.OWNED:
            if len(snapshot.competitors) <= 1:
                return SuggestedPrice(
                    round_price(own * 1.03),
                    "You own the Buy Box with no significant competition. "
                    "You can increase your price.",
                )

            rivals = sorted(snapshot.rivals(), key=lambda c: c.price)
            official = next((c for c in snapshot.competitors if c.is_official_store), None)

            if official is not None:
                if official.price > own * 1.02:
                    return SuggestedPrice(
                        round_price(min(official.price - 10, own * 1.03)),
                        "You own the Buy Box. You can increase price while staying "
                        "below the Takealot official store.",
                    )
            elif rivals and rivals[0].price > own * 1.02:
                return SuggestedPrice(
                    round_price(min(rivals[0].price - 5, own * 1.03)),
                    "You own the Buy Box. You can increase price while staying "
                    "below competitor pricing.",
                )

            return SuggestedPrice(
                round_price(own),
                "You own the Buy Box. Maintain current price to preserve your position.",
            )

        if (
            snapshot.status == BuyBoxOwnershipStatus.NOT_OWNED
            and snapshot.buybox_price is not None
        ):
            ours = next((c for c in snapshot.competitors if c.is_own), None)
            winner = next(
                (c for c in snapshot.competitors if c.is_buy_box_winner), None
            )
            if winner is not None:
                lead_time_gap = ((ours.lead_time if ours else None) or 0) - (
                    winner.lead_time or 0
                )
                if winner.is_official_store or lead_time_gap > 0:
                    reason = (
                        "Your lead time is longer than the Buy Box winner. "
                        "Significant price decrease needed."
                        if lead_time_gap > 0
                        else "Competing with Takealot official store. "
                        "Significant price decrease needed."
                    )
                    return SuggestedPrice(round_price(snapshot.buybox_price * 0.95), reason)

                return SuggestedPrice(
                    round_price(snapshot.buybox_price - 5),
                    "Similar lead time but need lower price to win Buy Box.",
                )

        return SuggestedPrice(
            round_price(reference_price(product, snapshot) * 0.97),
            "General pricing suggestion based on product base price.",
        )

    async def update_price(
        self, product_id: str, marketplace_product_id: str, new_price: float
    ) -> PriceUpdateResult:
        return await push_price(self.adapter, marketplace_product_id, new_price)
