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

# landed prices this close count as a tie for Buy Box rotation
TIE_TOLERANCE = 0.01


def _amount(money: dict | None) -> float:
    if not money:
        return 0.0
    return float(money.get("Amount") or 0)


class AmazonBuyBoxMonitor:
    marketplace_id = "amazon"

    def __init__(self, adapter: MarketplaceAdapter, seller_id: str = ""):
        self.adapter = adapter
        self.seller_id = seller_id

    def _to_competitor(self, offer: dict) -> Competitor:
        seller_id = offer.get("SellerId")
        price = _amount(offer.get("ListingPrice"))
        shipping = _amount(offer.get("Shipping"))
        feedback = offer.get("SellerFeedbackRating") or {}
        is_fba = bool(offer.get("IsFulfilledByAmazon"))
        return Competitor(
            name=seller_id or "Unknown",
            seller_id=seller_id,
            price=price,
            price_with_shipping=price + shipping,
            is_buy_box_winner=bool(offer.get("IsBuyBoxWinner")),
            is_own=bool(offer.get("MyOffer"))
            or (bool(self.seller_id) and seller_id == self.seller_id),
            fulfillment_type="FBA" if is_fba else "FBM",
            lead_time=(offer.get("ShippingTime") or {}).get("maximumHours"),
            rating=feedback.get("SellerPositiveFeedbackRating"),
            review_count=feedback.get("FeedbackCount"),
            is_featured_merchant=bool(offer.get("IsFeaturedMerchant")),
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

    async def check_buybox_status(
        self, product_id: str, marketplace_product_id: str
    ) -> BuyBoxSnapshot:
        try:
            competitors = await self._fetch_competitors(marketplace_product_id)

            result = await self.adapter.get_product_by_id(marketplace_product_id)
            if not result.get("success") or not result.get("data"):
                raise MarketplaceAdapterError(
                    result.get("error")
                    or f"Failed to get product data for {marketplace_product_id} from Amazon"
                )
            own_price = float(result["data"]["price"])

            winner = next((c for c in competitors if c.is_buy_box_winner), None)
            if not competitors or winner is None:
                # Amazon suppresses the Buy Box when nobody qualifies,
                # even for a single seller
                return snapshot_without_winner(
                    own_price, competitors, BuyBoxOwnershipStatus.NO_BUY_BOX
                )

            if not winner.is_own:
                ours = next((c for c in competitors if c.is_own), None)
                if (
                    ours is not None
                    and ours.is_featured_merchant
                    and abs(ours.landed_price - winner.landed_price) <= TIE_TOLERANCE
                ):
                    return snapshot_against_winner(
                        own_price,
                        competitors,
                        winner,
                        status=BuyBoxOwnershipStatus.SHARED,
                    )

            return snapshot_against_winner(own_price, competitors, winner)
        except Exception:
            logger.exception(
                "buybox.check_failed",
                marketplace=self.marketplace_id,
                product_id=product_id,
                marketplace_product_id=marketplace_product_id,
            )
            return unknown_snapshot()

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
            rivals = sorted(snapshot.rivals(), key=lambda c: c.landed_price)
            if not rivals:
                return SuggestedPrice(
                    round_price(own * 1.03),
                    "You own the Buy Box with no competing offers. "
                    "You can increase your price.",
                )
            next_price = rivals[0].landed_price
            if next_price > own * 1.02:
                return SuggestedPrice(
                    round_price(min(next_price - 0.01, own * 1.03)),
                    "You own the Buy Box. There is room to raise price below "
                    "the next cheapest offer.",
                )
            return SuggestedPrice(
                round_price(own),
                "You own the Buy Box. Maintain current price to preserve your position.",
            )

        if (
            snapshot.status
            in (BuyBoxOwnershipStatus.NOT_OWNED, BuyBoxOwnershipStatus.SHARED)
            and snapshot.buybox_price is not None
        ):
            ours = next((c for c in snapshot.competitors if c.is_own), None)
            winner = next(
                (c for c in snapshot.competitors if c.is_buy_box_winner), None
            )
            if (
                winner is not None
                and winner.fulfillment_type == "FBA"
                and (ours is None or ours.fulfillment_type != "FBA")
            ):
                return SuggestedPrice(
                    round_price(snapshot.buybox_price * 0.98),
                    "The Buy Box winner is fulfilled by Amazon. Merchant-fulfilled "
                    "offers need a larger undercut to win.",
                )
            return SuggestedPrice(
                round_price(snapshot.buybox_price - 0.01),
                "Undercut the Buy Box price by one cent.",
            )

        return SuggestedPrice(
            round_price(reference_price(product, snapshot) * 0.97),
            "General pricing suggestion based on product base price.",
        )

    async def update_price(
        self, product_id: str, marketplace_product_id: str, new_price: float
    ) -> PriceUpdateResult:
        return await push_price(self.adapter, marketplace_product_id, new_price)
