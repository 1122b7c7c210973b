from __future__ import annotations

import enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Optional

from repricer.core.pricing import utcnow


class BuyBoxOwnershipStatus(str, enum.Enum):
    OWNED = "owned"
    NOT_OWNED = "not_owned"
    SHARED = "shared"
    NO_BUY_BOX = "no_buy_box"
    UNKNOWN = "unknown"


WINNING_STATUSES = (BuyBoxOwnershipStatus.OWNED, BuyBoxOwnershipStatus.SHARED)


@dataclass(frozen=True)
class Competitor:
    """One seller's offer on a listing, as seen during a single poll."""

    name: str
    price: float
    is_buy_box_winner: bool = False
    is_own: bool = False
    seller_id: Optional[str] = None
    price_with_shipping: Optional[float] = None
    fulfillment_type: Optional[str] = None
    lead_time: Optional[int] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    is_official_store: bool = False
    is_featured_merchant: bool = False
    badges: tuple[str, ...] = ()

    @property
    def landed_price(self) -> float:
        return self.price_with_shipping if self.price_with_shipping else self.price

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["badges"] = list(self.badges)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Competitor":
        data = dict(data)
        data["badges"] = tuple(data.get("badges") or ())
        return cls(**data)


@dataclass(frozen=True)
class BuyBoxSnapshot:
    status: BuyBoxOwnershipStatus
    own_price: float
    captured_at: datetime = field(default_factory=utcnow)
    buybox_price: Optional[float] = None
    buybox_price_with_shipping: Optional[float] = None
    price_difference_amount: Optional[float] = None
    price_difference_percent: Optional[float] = None
    competitor_count: int = 0
    competitors: tuple[Competitor, ...] = ()
    has_pricing_opportunity: bool = False
    suggested_price: Optional[float] = None
    suggested_price_reason: Optional[str] = None

    @property
    def is_winning(self) -> bool:
        return self.status in WINNING_STATUSES

    def rivals(self) -> list[Competitor]:
        return [c for c in self.competitors if not c.is_own]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "own_price": self.own_price,
            "captured_at": self.captured_at.isoformat(),
            "buybox_price": self.buybox_price,
            "buybox_price_with_shipping": self.buybox_price_with_shipping,
            "price_difference_amount": self.price_difference_amount,
            "price_difference_percent": self.price_difference_percent,
            "competitor_count": self.competitor_count,
            "competitors": [c.to_dict() for c in self.competitors],
            "has_pricing_opportunity": self.has_pricing_opportunity,
            "suggested_price": self.suggested_price,
            "suggested_price_reason": self.suggested_price_reason,
        }


def unknown_snapshot() -> BuyBoxSnapshot:
    """Degraded snapshot returned when a marketplace check fails."""
    return BuyBoxSnapshot(
        status=BuyBoxOwnershipStatus.UNKNOWN,
        own_price=0.0,
        competitor_count=0,
        competitors=(),
        has_pricing_opportunity=False,
    )


@dataclass(frozen=True)
class SuggestedPrice:
    suggested_price: float
    reason: str


@dataclass(frozen=True)
class PriceUpdateResult:
    success: bool
    message: Optional[str] = None
