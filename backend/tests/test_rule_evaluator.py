from types import SimpleNamespace

import pytest

from factories import make_snapshot
from fakes import FakeMonitor
from repricer.models.buybox import BuyBoxOwnershipStatus, Competitor, SuggestedPrice
from repricer.models.repricing import RepricingStrategy, RuleParameters
from repricer.services.rule_evaluator import evaluate_rule


def params(**kwargs) -> RuleParameters:
    return RuleParameters.from_dict(kwargs)


@pytest.mark.asyncio
async def test_match_buy_box_moves_to_buy_box_price():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    decision = await evaluate_rule(
        RepricingStrategy.MATCH_BUY_BOX, params(min_price=15, max_price=30), snapshot
    )
    assert decision.should_update
    assert decision.new_price == 18.0
    assert "18.00" in decision.reason


@pytest.mark.asyncio
async def test_match_buy_box_clamps_to_minimum():
    snapshot = make_snapshot(own_price=20.0, buybox_price=12.0)
    decision = await evaluate_rule(
        "match_buy_box", params(min_price=15, max_price=30), snapshot
    )
    assert decision.new_price == 15.0
    assert "minimum" in decision.reason


@pytest.mark.asyncio
async def test_match_buy_box_already_matching():
    snapshot = make_snapshot(own_price=18.0, buybox_price=18.005)
    decision = await evaluate_rule("match_buy_box", params(), snapshot)
    assert not decision.should_update
    assert decision.new_price is None
    assert decision.reason


@pytest.mark.asyncio
async def test_beat_buy_box_by_amount():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    decision = await evaluate_rule(
        "beat_buy_box", params(price_difference_amount=0.50), snapshot
    )
    assert decision.should_update
    assert decision.new_price == 17.50


@pytest.mark.asyncio
async def test_beat_buy_box_amount_takes_precedence_over_percent():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    decision = await evaluate_rule(
        "beat_buy_box",
        params(price_difference_amount=1.0, price_difference_percent=10),
        snapshot,
    )
    assert decision.new_price == 17.0


@pytest.mark.asyncio
async def test_beat_buy_box_by_percent_and_default_undercut():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    by_percent = await evaluate_rule(
        "beat_buy_box", params(price_difference_percent=5), snapshot
    )
    assert by_percent.new_price == 17.10

    default = await evaluate_rule("beat_buy_box", params(), snapshot)
    assert default.new_price == 17.99


@pytest.mark.asyncio
async def test_beat_buy_box_skipped_when_owned_and_flag_set():
    snapshot = make_snapshot(BuyBoxOwnershipStatus.OWNED, own_price=18.0, buybox_price=18.0)
    decision = await evaluate_rule(
        "beat_buy_box",
        params(price_difference_amount=0.5, only_undercut_if_not_owned=True),
        snapshot,
    )
    assert not decision.should_update
    assert "own the Buy Box" in decision.reason


@pytest.mark.asyncio
async def test_fixed_percentage_prices_from_cost():
    product = SimpleNamespace(cost_price=10.0, base_price=20.0)
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    decision = await evaluate_rule(
        "fixed_percentage", params(target_margin=20), snapshot, product=product
    )
    assert decision.new_price == 12.50


@pytest.mark.asyncio
async def test_fixed_percentage_without_cost_uses_assumed_ratio():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    decision = await evaluate_rule(
        "fixed_percentage",
        params(target_margin=30),
        snapshot,
        cost_ratio=0.5,
    )
    # cost 10.00 at a 30% margin
    assert decision.new_price == pytest.approx(14.29)


@pytest.mark.asyncio
async def test_maintain_margin_raises_to_floor_regardless_of_competition():
    product = SimpleNamespace(cost_price=10.0, base_price=None)
    for status, bb in (
        (BuyBoxOwnershipStatus.NOT_OWNED, 9.0),
        (BuyBoxOwnershipStatus.OWNED, 11.0),
        (BuyBoxOwnershipStatus.NO_BUY_BOX, None),
    ):
        snapshot = make_snapshot(status, own_price=11.0, buybox_price=bb)
        decision = await evaluate_rule(
            "maintain_margin", params(target_margin=20), snapshot, product=product
        )
        assert decision.should_update
        assert decision.new_price == 12.50


@pytest.mark.asyncio
async def test_maintain_margin_holds_floor_when_buy_box_unprofitable():
    product = SimpleNamespace(cost_price=10.0, base_price=20.0)
    snapshot = make_snapshot(own_price=14.0, buybox_price=12.0)
    decision = await evaluate_rule(
        "maintain_margin", params(target_margin=20), snapshot, product=product
    )
    assert decision.new_price == 12.50
    assert "cannot win profitably" in decision.reason


@pytest.mark.asyncio
async def test_maintain_margin_undercuts_when_not_owned():
    product = SimpleNamespace(cost_price=10.0, base_price=20.0)
    snapshot = make_snapshot(own_price=16.0, buybox_price=15.0)
    decision = await evaluate_rule(
        "maintain_margin", params(target_margin=20), snapshot, product=product
    )
    assert decision.new_price == 14.99


@pytest.mark.asyncio
async def test_maintain_margin_raises_when_owned_below_rivals():
    product = SimpleNamespace(cost_price=10.0, base_price=20.0)
    snapshot = make_snapshot(
        BuyBoxOwnershipStatus.OWNED,
        own_price=14.0,
        buybox_price=14.0,
        competitors=(
            Competitor(name="Us", price=14.0, is_own=True, is_buy_box_winner=True),
            Competitor(name="Rival", price=16.0),
        ),
    )
    decision = await evaluate_rule(
        "maintain_margin", params(target_margin=20), snapshot, product=product
    )
    # capped at +5%
    assert decision.new_price == 14.70


@pytest.mark.asyncio
async def test_dynamic_pricing_uses_snapshot_suggestion():
    snapshot = make_snapshot(
        own_price=20.0,
        buybox_price=18.0,
        suggested_price=17.0,
        suggested_price_reason="Undercut winner",
    )
    monitor = FakeMonitor()
    decision = await evaluate_rule("dynamic_pricing", params(), snapshot, monitor=monitor)
    assert decision.new_price == 17.0
    assert "Undercut winner" in decision.reason
    assert monitor.suggested_for == []


@pytest.mark.asyncio
async def test_dynamic_pricing_asks_monitor_when_no_suggestion():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    monitor = FakeMonitor(suggestion=SuggestedPrice(18.5, "From monitor"))
    decision = await evaluate_rule("dynamic_pricing", params(), snapshot, monitor=monitor)
    assert decision.new_price == 18.5
    assert monitor.suggested_for == [snapshot]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "strategy,rule_params",
    [
        ("match_buy_box", {}),
        ("beat_buy_box", {"price_difference_amount": 0.5}),
        ("fixed_percentage", {"target_margin": 20}),
        ("maintain_margin", {"target_margin": 20}),
    ],
)
async def test_rerun_at_target_is_noop(strategy, rule_params):
    product = SimpleNamespace(cost_price=10.0, base_price=20.0)
    first = await evaluate_rule(
        strategy, params(**rule_params), make_snapshot(own_price=19.0, buybox_price=16.0), product
    )
    assert first.should_update

    # the next poll sees our price at the target and the Buy Box unchanged
    settled = make_snapshot(own_price=first.new_price, buybox_price=16.0)
    again = await evaluate_rule(strategy, params(**rule_params), settled, product)
    assert not again.should_update
    assert "no-op" in again.reason or "Already matching" in again.reason


@pytest.mark.asyncio
async def test_unknown_status_never_updates():
    snapshot = make_snapshot(BuyBoxOwnershipStatus.UNKNOWN, own_price=0.0, buybox_price=None)
    decision = await evaluate_rule("match_buy_box", params(), snapshot)
    assert not decision.should_update
    assert "unknown" in decision.reason


@pytest.mark.asyncio
async def test_inverted_bounds_are_rejected():
    snapshot = make_snapshot(own_price=20.0, buybox_price=18.0)
    with pytest.raises(ValueError):
        await evaluate_rule("match_buy_box", params(min_price=30, max_price=10), snapshot)
