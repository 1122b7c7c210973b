from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class RepricingStrategy(str, enum.Enum):
    MATCH_BUY_BOX = "match_buy_box"
    BEAT_BUY_BOX = "beat_buy_box"
    FIXED_PERCENTAGE = "fixed_percentage"
    DYNAMIC_PRICING = "dynamic_pricing"
    MAINTAIN_MARGIN = "maintain_margin"


@dataclass
class RuleParameters:
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    price_difference_amount: Optional[float] = None
    price_difference_percent: Optional[float] = None
    target_margin: Optional[float] = None
    only_undercut_if_not_owned: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RuleParameters":
        data = data or {}
        return cls(
            min_price=data.get("min_price"),
            max_price=data.get("max_price"),
            price_difference_amount=data.get("price_difference_amount"),
            price_difference_percent=data.get("price_difference_percent"),
            target_margin=data.get("target_margin"),
            only_undercut_if_not_owned=bool(
                data.get("only_undercut_if_not_owned", False)
            ),
        )


@dataclass
class ProductFilter:
    skus: list[str] = field(default_factory=list)
    exclude_skus: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    min_price: Optional[float] = None
    max_price: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProductFilter":
        data = data or {}
        return cls(
            skus=list(data.get("skus") or []),
            exclude_skus=list(data.get("exclude_skus") or []),
            categories=list(data.get("categories") or []),
            min_price=data.get("min_price"),
            max_price=data.get("max_price"),
        )

    def matches(
        self, sku: str | None, category: str | None, current_price: float | None
    ) -> bool:
        if self.skus and sku not in self.skus:
            return False
        if sku is not None and sku in self.exclude_skus:
            return False
        if self.categories and category not in self.categories:
            return False
        if self.min_price is not None and (
            current_price is None or current_price < self.min_price
        ):
            return False
        if self.max_price is not None and (
            current_price is None or current_price > self.max_price
        ):
            return False
        return True


@dataclass(frozen=True)
class PriceDecision:
    should_update: bool
    new_price: Optional[float]
    reason: str

    @classmethod
    def skip(cls, reason: str) -> "PriceDecision":
        return cls(should_update=False, new_price=None, reason=reason)


@dataclass
class ExecutionSummary:
    success: bool
    message: str
    updates: int = 0
