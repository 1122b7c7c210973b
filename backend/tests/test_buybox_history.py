from datetime import timedelta

import pytest

from factories import make_history, make_item, make_snapshot
from fakes import FakeMonitor, FakeMonitorFactory
from repricer.core.errors import (
    MarketplaceListingNotFoundError,
    ProductNotFoundError,
    UnsupportedMarketplaceError,
)
from repricer.models.buybox import BuyBoxOwnershipStatus
from repricer.repositories.buybox_history import BuyBoxHistoryRepository
from repricer.services.buybox_history import BuyBoxHistoryService
from repricer.services.monitor import BuyBoxMonitoringService


def history_service(db, monitor):
    return BuyBoxHistoryService(BuyBoxHistoryRepository(db), FakeMonitorFactory(monitor))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,expected",
    [
        (BuyBoxOwnershipStatus.OWNED, 100.0),
        (BuyBoxOwnershipStatus.NOT_OWNED, 0.0),
        (BuyBoxOwnershipStatus.SHARED, 0.0),
    ],
)
async def test_initialize_monitoring_creates_history(db, status, expected):
    """A first check produces exactly one snapshot and a 0/100 win percentage."""
    item = make_item(db)
    monitor = FakeMonitor(snapshot=make_snapshot(status, own_price=20.0, buybox_price=18.0))

    history = await history_service(db, monitor).initialize_monitoring(item, "takealot")

    assert history.id == "p1_takealot"
    assert history.is_monitoring is True
    assert history.marketplace_product_id == "TSIN-p1"
    assert len(history.snapshots) == 1
    assert history.last_snapshot.status == status
    assert history.buybox_win_percentage == expected
    assert monitor.checked == [("p1", "TSIN-p1")]


@pytest.mark.asyncio
async def test_initialize_monitoring_without_listing_fails(db):
    item = make_item(db, marketplaces={})
    service = history_service(db, FakeMonitor())

    with pytest.raises(MarketplaceListingNotFoundError):
        await service.initialize_monitoring(item, "takealot")
    assert BuyBoxHistoryRepository(db).get("p1", "takealot") is None


@pytest.mark.asyncio
async def test_initialize_monitoring_unsupported_marketplace(db):
    item = make_item(db, marketplaces={"ebay": {"product_id": "E1"}})
    with pytest.raises(UnsupportedMarketplaceError):
        await history_service(db, FakeMonitor()).initialize_monitoring(item, "ebay")


@pytest.mark.asyncio
async def test_reinitialize_resumes_and_appends(db, now):
    item = make_item(db)
    make_history(
        db,
        item,
        snapshot=make_snapshot(captured_at=now - timedelta(hours=1)),
        is_monitoring=False,
    )
    monitor = FakeMonitor(snapshot=make_snapshot(BuyBoxOwnershipStatus.OWNED))

    history = await history_service(db, monitor).initialize_monitoring(
        item, "takealot", frequency=15
    )

    assert history.is_monitoring is True
    assert history.monitoring_frequency == 15
    assert len(history.snapshots) == 2
    assert history.last_snapshot.status == BuyBoxOwnershipStatus.OWNED


def test_add_snapshot_keeps_last_snapshot_current(db, now):
    item = make_item(db)
    make_history(
        db,
        item,
        snapshot=make_snapshot(
            BuyBoxOwnershipStatus.OWNED, captured_at=now - timedelta(hours=3)
        ),
    )
    service = history_service(db, FakeMonitor())

    statuses = [
        BuyBoxOwnershipStatus.NOT_OWNED,
        BuyBoxOwnershipStatus.SHARED,
        BuyBoxOwnershipStatus.OWNED,
    ]
    for i, status in enumerate(statuses):
        snapshot = make_snapshot(status, captured_at=now - timedelta(hours=2 - i))
        history = service.add_snapshot("p1", "takealot", snapshot)
        assert history.last_snapshot == snapshot

    captured = [s.captured_at for s in history.snapshot_series()]
    assert captured == sorted(captured)
    assert history.buybox_win_percentage == pytest.approx(75.0)


def test_add_snapshot_records_win_and_loss(db, now):
    item = make_item(db)
    make_history(
        db,
        item,
        snapshot=make_snapshot(
            BuyBoxOwnershipStatus.OWNED, own_price=18.0, captured_at=now - timedelta(hours=2)
        ),
    )
    service = history_service(db, FakeMonitor())

    history = service.add_snapshot(
        "p1",
        "takealot",
        make_snapshot(
            BuyBoxOwnershipStatus.NOT_OWNED,
            own_price=18.0,
            buybox_price=17.0,
            captured_at=now - timedelta(hours=1),
        ),
    )
    assert history.last_buybox_loss["competitor_price"] == 17.0
    assert history.last_buybox_win is None

    history = service.add_snapshot(
        "p1", "takealot", make_snapshot(BuyBoxOwnershipStatus.OWNED, captured_at=now)
    )
    assert history.last_buybox_win is not None


def test_add_snapshot_window_ignores_old_entries(db, now):
    item = make_item(db)
    make_history(
        db,
        item,
        snapshot=make_snapshot(
            BuyBoxOwnershipStatus.NOT_OWNED, captured_at=now - timedelta(days=40)
        ),
    )
    history = history_service(db, FakeMonitor()).add_snapshot(
        "p1", "takealot", make_snapshot(BuyBoxOwnershipStatus.OWNED, captured_at=now)
    )
    assert history.buybox_win_percentage == 100.0
    assert len(history.snapshots) == 2


def test_add_snapshot_without_history_returns_none(db):
    service = history_service(db, FakeMonitor())
    assert service.add_snapshot("missing", "takealot", make_snapshot()) is None


def test_add_snapshot_rejects_out_of_order(db, now):
    item = make_item(db)
    make_history(db, item, snapshot=make_snapshot(captured_at=now))
    service = history_service(db, FakeMonitor())

    result = service.add_snapshot(
        "p1", "takealot", make_snapshot(captured_at=now - timedelta(minutes=10))
    )

    assert result is None
    assert len(BuyBoxHistoryRepository(db).get("p1", "takealot").snapshots) == 1


def test_stop_monitoring_is_idempotent(db):
    item = make_item(db)
    make_history(db, item)
    service = history_service(db, FakeMonitor())

    assert service.stop_monitoring("p1", "takealot") is True
    assert service.stop_monitoring("p1", "takealot") is True
    assert BuyBoxHistoryRepository(db).get("p1", "takealot").is_monitoring is False
    assert service.stop_monitoring("missing", "takealot") is False


@pytest.mark.asyncio
async def test_monitoring_service_unknown_product(db):
    service = BuyBoxMonitoringService(db, FakeMonitorFactory(FakeMonitor()))
    with pytest.raises(ProductNotFoundError):
        await service.initialize_monitoring("nope", "takealot")


@pytest.mark.asyncio
async def test_initialize_monitoring_for_marketplace_skips_monitored(db):
    first = make_item(db, item_id="p1", sku="SKU-1")
    make_item(db, item_id="p2", sku="SKU-2")
    make_item(db, item_id="p3", sku="SKU-3", marketplaces={"amazon": {"product_id": "A3"}})
    make_item(db, item_id="p4", sku="SKU-4", org_id="org-2")
    make_history(db, first)

    monitor = FakeMonitor(snapshot=make_snapshot())
    service = BuyBoxMonitoringService(db, FakeMonitorFactory(monitor))

    count = await service.initialize_monitoring_for_marketplace("org-1", "takealot")

    assert count == 1
    assert monitor.checked == [("p2", "TSIN-p2")]


@pytest.mark.asyncio
async def test_check_due_products_polls_and_attaches_suggestion(db, now):
    due = make_item(db, item_id="p1", sku="SKU-1")
    fresh = make_item(db, item_id="p2", sku="SKU-2")
    make_history(db, due, snapshot=make_snapshot(captured_at=now - timedelta(hours=2)))
    make_history(db, fresh, snapshot=make_snapshot(captured_at=now - timedelta(minutes=5)))

    monitor = FakeMonitor(snapshot=make_snapshot(BuyBoxOwnershipStatus.NOT_OWNED))
    service = BuyBoxMonitoringService(db, FakeMonitorFactory(monitor))

    checked = await service.check_due_products(now)

    assert checked == 1
    assert monitor.checked == [("p1", "TSIN-p1")]
    history = BuyBoxHistoryRepository(db).get("p1", "takealot")
    assert len(history.snapshots) == 2
    assert history.last_snapshot.suggested_price == 19.5
    assert history.last_snapshot.suggested_price_reason == "Undercut the winner"


@pytest.mark.asyncio
async def test_check_due_products_skips_suggestion_for_unknown(db, now):
    item = make_item(db)
    make_history(db, item, snapshot=make_snapshot(captured_at=now - timedelta(hours=2)))
    monitor = FakeMonitor(snapshot=None)
    service = BuyBoxMonitoringService(db, FakeMonitorFactory(monitor))

    await service.check_due_products(now)

    history = BuyBoxHistoryRepository(db).get("p1", "takealot")
    assert history.last_snapshot.status == BuyBoxOwnershipStatus.UNKNOWN
    assert monitor.suggested_for == []
