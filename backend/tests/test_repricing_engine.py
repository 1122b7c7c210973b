from datetime import timedelta

import pytest

from factories import make_history, make_item, make_rule, make_snapshot
from fakes import FakeAdapter, FakeAdapterFactory, FakeCredits, FakeMonitor, FakeMonitorFactory
from repricer.core.errors import HistoryNotFoundError, InsufficientCreditsError, RuleNotFoundError
from repricer.core.pricing import ensure_utc
from repricer.db.models import CreditTransaction, InventoryItem, RepricingEvent, RepricingRule
from repricer.models.buybox import BuyBoxOwnershipStatus
from repricer.services.credits import CreditLedger
from repricer.services.repricing_engine import RepricingEngine


def build_engine(db, adapter=None, credits=None):
    adapter = adapter or FakeAdapter()
    return RepricingEngine(
        db,
        FakeAdapterFactory(adapter),
        FakeMonitorFactory(FakeMonitor()),
        credits or FakeCredits(),
    )


def events(db):
    return db.query(RepricingEvent).order_by(RepricingEvent.id).all()


@pytest.mark.asyncio
async def test_due_rule_updates_price_and_records_event(db, now):
    item = make_item(db)
    make_history(db, item)
    rule = make_rule(db, parameters={"min_price": 15, "max_price": 30})
    adapter = FakeAdapter()
    credits = FakeCredits()

    updates = await build_engine(db, adapter, credits).process_due_rules(now)

    assert updates == 1
    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 18.0}]]
    assert credits.checks == [("org-1", 1)]
    assert credits.used == [("org-1", 1, f"rule:{rule.id}")]

    [event] = events(db)
    assert event.success is True
    assert event.previous_price == 20.0
    assert event.new_price == 18.0
    assert event.buybox_status_before == "not_owned"
    assert event.reason

    db.refresh(rule)
    assert ensure_utc(rule.last_run_at) == now
    assert ensure_utc(rule.next_run_at) == now + timedelta(minutes=60)

    listing = db.get(InventoryItem, "p1").listing_for("takealot")
    assert listing["price"] == 18.0


@pytest.mark.asyncio
async def test_higher_priority_rule_wins_product(db, now):
    """Only the priority-10 rule touches a product both rules match."""
    item = make_item(db)
    make_history(db, item)
    low = make_rule(
        db,
        name="Beat",
        strategy="beat_buy_box",
        parameters={"price_difference_amount": 1.0},
        priority=5,
    )
    high = make_rule(db, name="Match", strategy="match_buy_box", priority=10)
    adapter = FakeAdapter()

    await build_engine(db, adapter).process_due_rules(now)

    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 18.0}]]
    recorded = events(db)
    assert [e.rule_id for e in recorded] == [high.id]

    # both rules ran this tick
    for rule in (low, high):
        db.refresh(rule)
        assert ensure_utc(rule.last_run_at) == now


@pytest.mark.asyncio
async def test_insufficient_credits_skips_organization(db, now):
    item = make_item(db)
    make_history(db, item)
    rule = make_rule(db)
    adapter = FakeAdapter()
    credits = FakeCredits(available=False)

    updates = await build_engine(db, adapter, credits).process_due_rules(now)

    assert updates == 0
    assert adapter.update_calls == []
    assert credits.used == []
    assert events(db) == []
    db.refresh(rule)
    assert rule.last_run_at is None
    assert rule.next_run_at is None


@pytest.mark.asyncio
async def test_credit_gate_is_per_organization(db, now):
    poor = make_item(db, item_id="p1", sku="SKU-1", org_id="org-poor")
    rich = make_item(db, item_id="p2", sku="SKU-2", org_id="org-rich")
    make_history(db, poor)
    make_history(db, rich)
    make_rule(db, org_id="org-poor")
    make_rule(db, org_id="org-rich")

    ledger = CreditLedger(db)
    ledger.top_up("org-rich", 10)
    adapter = FakeAdapter()

    await build_engine(db, adapter, ledger).process_due_rules(now)

    assert adapter.update_calls == [[{"sku": "TSIN-p2", "price": 18.0}]]
    assert ledger.balance("org-rich") == 9
    assert ledger.balance("org-poor") == 0
    assert db.query(CreditTransaction).filter_by(org_id="org-rich", amount=-1).count() == 1


@pytest.mark.asyncio
async def test_partial_batch_failure_is_recorded_per_sku(db, now):
    for i in (1, 2):
        make_history(db, make_item(db, item_id=f"p{i}", sku=f"SKU-{i}"))
    make_rule(db)
    adapter = FakeAdapter(failed_skus={"TSIN-p2": "Offer is disabled"})
    credits = FakeCredits()

    updates = await build_engine(db, adapter, credits).process_due_rules(now)

    assert updates == 1
    assert len(adapter.update_calls) == 1
    assert len(adapter.update_calls[0]) == 2
    # charged for the batch, not the outcome
    assert credits.used[0][1] == 2

    by_sku = {e.sku: e for e in events(db)}
    assert by_sku["SKU-1"].success is True
    assert by_sku["SKU-2"].success is False
    assert by_sku["SKU-2"].error_message == "Offer is disabled"


@pytest.mark.asyncio
async def test_rule_respects_marketplace_and_filters(db, now):
    make_history(db, make_item(db, item_id="p1", sku="SKU-1", category="toys"))
    make_history(db, make_item(db, item_id="p2", sku="SKU-2", category="books"))
    make_history(db, make_item(db, item_id="p3", sku="SKU-3", category="toys"))
    make_rule(db, product_filter={"categories": ["toys"], "exclude_skus": ["SKU-3"]})
    make_rule(db, name="Amazon only", marketplaces=["amazon"], priority=50)
    adapter = FakeAdapter()

    await build_engine(db, adapter).process_due_rules(now)

    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 18.0}]]


@pytest.mark.asyncio
async def test_rules_not_yet_due_are_ignored(db, now):
    make_history(db, make_item(db))
    make_rule(db, next_run_at=now + timedelta(minutes=30))
    make_rule(db, name="Inactive", is_active=False)
    adapter = FakeAdapter()

    assert await build_engine(db, adapter).process_due_rules(now) == 0
    assert adapter.update_calls == []


@pytest.mark.asyncio
async def test_unknown_snapshot_produces_no_update(db, now):
    make_history(
        db,
        make_item(db),
        snapshot=make_snapshot(BuyBoxOwnershipStatus.UNKNOWN, own_price=0.0, buybox_price=None),
    )
    rule = make_rule(db)
    adapter = FakeAdapter()
    credits = FakeCredits()

    assert await build_engine(db, adapter, credits).process_due_rules(now) == 0
    assert adapter.update_calls == []
    assert credits.used == []
    db.refresh(rule)
    assert rule.last_run_at is not None


@pytest.mark.asyncio
async def test_failing_rule_does_not_stop_others(db, now):
    make_history(db, make_item(db))
    broken = make_rule(
        db, name="Broken", priority=10, parameters={"min_price": 30, "max_price": 10}
    )
    healthy = make_rule(db, name="Healthy", priority=5)
    adapter = FakeAdapter()

    await build_engine(db, adapter).process_due_rules(now)

    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 18.0}]]
    assert [e.rule_id for e in events(db)] == [healthy.id]


@pytest.mark.asyncio
async def test_execute_rule_manually(db, now):
    make_history(db, make_item(db))
    rule = make_rule(db, next_run_at=now + timedelta(hours=1))
    credits = FakeCredits()
    adapter = FakeAdapter()

    summary = await build_engine(db, adapter, credits).execute_rule_manually(rule.id, now)

    assert summary.success is True
    assert summary.updates == 1
    assert credits.checks == []
    db.refresh(rule)
    assert ensure_utc(rule.last_run_at) == now
    assert ensure_utc(rule.next_run_at) == now + timedelta(hours=1)


@pytest.mark.asyncio
async def test_execute_missing_rule_raises(db):
    with pytest.raises(RuleNotFoundError):
        await build_engine(db).execute_rule_manually(999)


@pytest.mark.asyncio
async def test_dynamic_pricing_uses_stored_suggestion(db, now):
    make_history(
        db,
        make_item(db),
        snapshot=make_snapshot(
            own_price=20.0,
            buybox_price=18.0,
            suggested_price=17.25,
            suggested_price_reason="Undercut",
            captured_at=now - timedelta(minutes=1),
        ),
    )
    make_rule(db, strategy="dynamic_pricing")
    adapter = FakeAdapter()

    await build_engine(db, adapter).process_due_rules(now)

    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 17.25}]]
    assert db.query(RepricingRule).count() == 1


@pytest.mark.asyncio
async def test_apply_rules_to_one_product(db):
    """Active org rules run by priority against a single history, schedules untouched."""
    make_history(db, make_item(db))
    make_history(db, make_item(db, item_id="p2", sku="SKU-2"))
    low = make_rule(
        db,
        name="Beat",
        strategy="beat_buy_box",
        parameters={"price_difference_amount": 1.0},
        priority=5,
    )
    high = make_rule(db, name="Match", priority=10)
    make_rule(db, name="Paused", strategy="beat_buy_box", priority=50, is_active=False)
    make_rule(db, org_id="org-2", name="Foreign", priority=90)
    adapter = FakeAdapter()
    credits = FakeCredits()

    count = await build_engine(db, adapter, credits).apply_rules("p1", "takealot")

    assert count == 1
    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 18.0}]]
    assert [e.rule_id for e in events(db)] == [high.id]
    assert credits.checks == [("org-1", 1)]
    for rule in (low, high):
        db.refresh(rule)
        assert rule.last_run_at is None
        assert rule.next_run_at is None


@pytest.mark.asyncio
async def test_apply_selected_rules_only(db):
    make_history(db, make_item(db))
    beat = make_rule(
        db,
        name="Beat",
        strategy="beat_buy_box",
        parameters={"price_difference_amount": 1.0},
        priority=5,
    )
    make_rule(db, name="Match", priority=10)
    adapter = FakeAdapter()

    count = await build_engine(db, adapter).apply_rules("p1", "takealot", [beat.id, beat.id])

    assert count == 1
    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 17.0}]]
    assert [e.rule_id for e in events(db)] == [beat.id]


@pytest.mark.asyncio
async def test_apply_rules_rejects_unknown_targets(db):
    make_history(db, make_item(db))
    foreign = make_rule(db, org_id="org-2")
    engine = build_engine(db)

    with pytest.raises(HistoryNotFoundError):
        await engine.apply_rules("p1", "amazon")
    with pytest.raises(RuleNotFoundError):
        await engine.apply_rules("p1", "takealot", [foreign.id])
    assert events(db) == []


@pytest.mark.asyncio
async def test_apply_rules_without_credits_raises(db):
    make_history(db, make_item(db))
    make_rule(db)
    adapter = FakeAdapter()

    with pytest.raises(InsufficientCreditsError):
        await build_engine(db, adapter, FakeCredits(available=False)).apply_rules(
            "p1", "takealot"
        )
    assert adapter.update_calls == []
