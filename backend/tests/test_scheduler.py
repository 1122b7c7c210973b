import asyncio

import pytest

from factories import make_history, make_item, make_rule
from fakes import FakeAdapter, FakeAdapterFactory, FakeMonitor, FakeMonitorFactory
from repricer.db.models import RepricingEvent
from repricer.jobs.scheduler import IntervalScheduler, RepricingScheduler
from repricer.services.credits import CreditLedger


class FakeSession:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class BlockingScheduler(IntervalScheduler):
    def __init__(self, interval=3600):
        self.sessions = []
        super().__init__(interval, session_factory=self._session)
        self.release = asyncio.Event()
        self.runs = 0

    def _session(self):
        session = FakeSession()
        self.sessions.append(session)
        return session

    async def run_once(self, db):
        self.runs += 1
        await self.release.wait()


@pytest.mark.asyncio
async def test_overlapping_fire_is_a_noop():
    scheduler = BlockingScheduler()

    first = scheduler.fire()
    await asyncio.sleep(0)
    assert scheduler.is_executing

    assert scheduler.fire() is None

    scheduler.release.set()
    await first
    assert not scheduler.is_executing
    assert scheduler.runs == 1
    assert scheduler.sessions[0].closed


@pytest.mark.asyncio
async def test_stop_lets_in_flight_tick_finish():
    scheduler = BlockingScheduler()
    scheduler.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert scheduler.is_running
    assert scheduler.is_executing

    stopping = asyncio.create_task(scheduler.stop(wait=True))
    for _ in range(5):
        await asyncio.sleep(0)
    assert not stopping.done()
    assert not scheduler.is_running

    scheduler.release.set()
    await stopping
    assert scheduler.runs == 1
    assert not scheduler.is_executing


@pytest.mark.asyncio
async def test_failed_tick_clears_guard():
    class Failing(IntervalScheduler):
        async def run_once(self, db):
            raise RuntimeError("boom")

    scheduler = Failing(60, session_factory=FakeSession)
    await scheduler.fire()
    assert not scheduler.is_executing
    second = scheduler.fire()
    assert second is not None
    await second


def test_base_scheduler_requires_run_once():
    with pytest.raises(TypeError):
        IntervalScheduler(60, session_factory=FakeSession)


@pytest.mark.asyncio
async def test_repricing_tick_processes_due_rules(db, now):
    make_history(db, make_item(db))
    make_rule(db)
    CreditLedger(db).top_up("org-1", 5)
    adapter = FakeAdapter()

    scheduler = RepricingScheduler(
        adapters=FakeAdapterFactory(adapter),
        monitors=FakeMonitorFactory(FakeMonitor()),
        interval=60,
        session_factory=lambda: db,
    )
    await scheduler.fire()

    assert adapter.update_calls == [[{"sku": "TSIN-p1", "price": 18.0}]]
    assert db.query(RepricingEvent).count() == 1
    assert CreditLedger(db).balance("org-1") == 4
