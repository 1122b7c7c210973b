"""
Repricing rule evaluation.

Each strategy maps the rule parameters, the latest Buy Box snapshot and the
item's cost basis to a PriceDecision. Every decision carries a reason, the
"no update" ones included, since it ends up in the audit trail.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from repricer.core.config import settings
from repricer.core.pricing import clamp, is_noop_change, margin_floor, round_price
from repricer.models.buybox import BuyBoxOwnershipStatus, BuyBoxSnapshot
from repricer.models.repricing import PriceDecision, RepricingStrategy, RuleParameters

DEFAULT_UNDERCUT = 0.01
MAX_OWNED_INCREASE = 0.05


@dataclass(frozen=True)
class PricingContext:
    current_price: float
    cost: float
    min_price: float
    max_price: float


def resolve_cost(product, current_price: float, cost_ratio: float | None = None) -> float:
    cost = getattr(product, "cost_price", None) if product is not None else None
    if cost:
        return float(cost)
    ratio = settings.ASSUMED_COST_RATIO if cost_ratio is None else cost_ratio
    return current_price * ratio


def build_context(
    params: RuleParameters,
    snapshot: BuyBoxSnapshot,
    product=None,
    cost_ratio: float | None = None,
) -> PricingContext:
    current = snapshot.own_price
    cost = resolve_cost(product, current, cost_ratio)

    base = getattr(product, "base_price", None) if product is not None else None
    base = float(base) if base else current

    min_price = params.min_price if params.min_price is not None else cost * 1.1
    max_price = params.max_price if params.max_price is not None else base * 1.5
    if min_price > max_price:
        raise ValueError(
            f"Rule minimum price {min_price:.2f} exceeds maximum {max_price:.2f}"
        )
    return PricingContext(
        current_price=current, cost=cost, min_price=min_price, max_price=max_price
    )


def finalize(ctx: PricingContext, target: float, reason: str) -> PriceDecision:
    bounded = clamp(target, ctx.min_price, ctx.max_price)
    if bounded != target:
        side = "minimum" if bounded > target else "maximum"
        reason = f"{reason} Clamped to rule {side} {bounded:.2f}."
    new_price = round_price(bounded)

    if is_noop_change(ctx.current_price, new_price):
        return PriceDecision.skip(
            f"{reason} Target {new_price:.2f} is within the no-op threshold of "
            f"current price {ctx.current_price:.2f}; no update."
        )
    return PriceDecision(should_update=True, new_price=new_price, reason=reason)


# -------------------------
# Strategies
# -------------------------


def match_buy_box(
    params: RuleParameters, snapshot: BuyBoxSnapshot, ctx: PricingContext
) -> PriceDecision:
    if snapshot.buybox_price is None:
        return PriceDecision.skip("No Buy Box price available to match.")
    if abs(ctx.current_price - snapshot.buybox_price) <= 0.01:
        return PriceDecision.skip(
            f"Already matching Buy Box price {snapshot.buybox_price:.2f}."
        )
    return finalize(
        ctx,
        snapshot.buybox_price,
        f"Match Buy Box price {snapshot.buybox_price:.2f}.",
    )


def beat_buy_box(
    params: RuleParameters, snapshot: BuyBoxSnapshot, ctx: PricingContext
) -> PriceDecision:
    if (
        snapshot.status == BuyBoxOwnershipStatus.OWNED
        and params.only_undercut_if_not_owned
    ):
        return PriceDecision.skip(
            "Already own the Buy Box and the rule only undercuts when not owned."
        )
    if snapshot.buybox_price is None:
        return PriceDecision.skip("No Buy Box price available to beat.")

    bb = snapshot.buybox_price
    if params.price_difference_amount is not None:
        target = bb - params.price_difference_amount
        how = f"by {params.price_difference_amount:.2f}"
    elif params.price_difference_percent is not None:
        target = bb * (1 - params.price_difference_percent / 100.0)
        how = f"by {params.price_difference_percent:g}%"
    else:
        target = bb - DEFAULT_UNDERCUT
        how = f"by {DEFAULT_UNDERCUT:.2f}"

    return finalize(ctx, target, f"Beat Buy Box price {bb:.2f} {how}.")


def fixed_percentage(
    params: RuleParameters, snapshot: BuyBoxSnapshot, ctx: PricingContext
) -> PriceDecision:
    if params.target_margin is None:
        return PriceDecision.skip("Fixed percentage rule has no target margin.")
    target = margin_floor(ctx.cost, params.target_margin)
    return finalize(
        ctx,
        target,
        f"Price for {params.target_margin:g}% margin on cost {ctx.cost:.2f}.",
    )


def _lowest_rival_price(snapshot: BuyBoxSnapshot) -> Optional[float]:
    rivals = snapshot.rivals()
    if not rivals:
        return None
    return min(c.price for c in rivals)


def maintain_margin(
    params: RuleParameters, snapshot: BuyBoxSnapshot, ctx: PricingContext
) -> PriceDecision:
    if params.target_margin is None:
        return PriceDecision.skip("Maintain margin rule has no target margin.")

    floor = margin_floor(ctx.cost, params.target_margin)
    current = ctx.current_price
    bb = snapshot.buybox_price

    if current < floor:
        return finalize(
            ctx,
            floor,
            f"Current price {current:.2f} is below the {params.target_margin:g}% "
            f"margin floor {floor:.2f}.",
        )

    if snapshot.status == BuyBoxOwnershipStatus.OWNED:
        ceiling = current * (1 + MAX_OWNED_INCREASE)
        rival = _lowest_rival_price(snapshot)
        if rival is not None:
            ceiling = min(ceiling, rival - DEFAULT_UNDERCUT)
        target = max(floor, current, ceiling)
        return finalize(
            ctx, target, "Own the Buy Box; raising price toward competitors."
        )

    if bb is None:
        return PriceDecision.skip(
            "No Buy Box price to compete against; holding current price above margin floor."
        )

    if bb < floor:
        return finalize(
            ctx,
            floor,
            f"Buy Box price {bb:.2f} is below margin floor {floor:.2f}; "
            "cannot win profitably, holding at floor.",
        )

    return finalize(
        ctx,
        max(floor, bb - DEFAULT_UNDERCUT),
        f"Undercut Buy Box price {bb:.2f} while keeping margin floor {floor:.2f}.",
    )


def dynamic_pricing(
    suggested_price: Optional[float], suggested_reason: Optional[str], ctx: PricingContext
) -> PriceDecision:
    if suggested_price is None:
        return PriceDecision.skip("No suggested price available.")
    reason = f"Suggested price {suggested_price:.2f}: {suggested_reason or 'no reason given'}"
    return finalize(ctx, suggested_price, reason)


_STATIC_STRATEGIES = {
    RepricingStrategy.MATCH_BUY_BOX: match_buy_box,
    RepricingStrategy.BEAT_BUY_BOX: beat_buy_box,
    RepricingStrategy.FIXED_PERCENTAGE: fixed_percentage,
    RepricingStrategy.MAINTAIN_MARGIN: maintain_margin,
}


async def evaluate_rule(
    strategy: RepricingStrategy | str,
    params: RuleParameters,
    snapshot: BuyBoxSnapshot | None,
    product=None,
    monitor=None,
    cost_ratio: float | None = None,
) -> PriceDecision:
    strategy = RepricingStrategy(strategy)

    if snapshot is None:
        return PriceDecision.skip("No Buy Box snapshot recorded yet.")
    if snapshot.status == BuyBoxOwnershipStatus.UNKNOWN or snapshot.own_price <= 0:
        return PriceDecision.skip("Buy Box status is unknown; skipping.")

    ctx = build_context(params, snapshot, product, cost_ratio)

    if strategy == RepricingStrategy.DYNAMIC_PRICING:
        suggested = snapshot.suggested_price
        reason = snapshot.suggested_price_reason
        if suggested is None and monitor is not None:
            suggestion = await monitor.calculate_suggested_price(product, snapshot)
            suggested, reason = suggestion.suggested_price, suggestion.reason
        return dynamic_pricing(suggested, reason, ctx)

    return _STATIC_STRATEGIES[strategy](params, snapshot, ctx)
