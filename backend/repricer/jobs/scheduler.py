"""
In-process schedulers.

A single timer task fires every `interval` seconds. Each firing runs as its own
task with a fresh DB session; a firing that arrives while the previous tick is
still running is dropped.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Callable

import structlog
from sqlalchemy.orm import Session

from repricer.core.config import Settings, settings as default_settings
from repricer.core.logger import configure_logging
from repricer.db.session import SessionLocal
from repricer.marketplaces.factory import AdapterFactory
from repricer.monitors.factory import MonitorFactory
from repricer.services.credits import CreditLedger
from repricer.services.monitor import BuyBoxMonitoringService
from repricer.services.repricing_engine import RepricingEngine

logger = structlog.get_logger(__name__)


class IntervalScheduler(ABC):
    name = "scheduler"

    def __init__(
        self,
        interval: float,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.interval = interval
        self.session_factory = session_factory
        self._timer: asyncio.Task | None = None
        self._current: asyncio.Task | None = None
        self._executing = False

    @property
    def is_executing(self) -> bool:
        return self._executing

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @abstractmethod
    async def run_once(self, db: Session) -> None: ...

    def start(self) -> None:
        if self.is_running:
            return
        self._timer = asyncio.create_task(self._loop())
        logger.info(f"{self.name}.started", interval=self.interval)

    async def _loop(self) -> None:
        while True:
            self.fire()
            await asyncio.sleep(self.interval)

    def fire(self) -> asyncio.Task | None:
        if self._executing:
            logger.info(f"{self.name}.tick_skipped")
            return None
        self._executing = True
        self._current = asyncio.create_task(self._tick())
        return self._current

    async def _tick(self) -> None:
        db = self.session_factory()
        try:
            await self.run_once(db)
        except Exception:
            logger.exception(f"{self.name}.tick_failed")
        finally:
            db.close()
            self._executing = False

    async def stop(self, wait: bool = False) -> None:
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        # an in-flight tick is never cancelled
        if wait and self._current is not None and not self._current.done():
            await self._current
        logger.info(f"{self.name}.stopped")


class RepricingScheduler(IntervalScheduler):
    name = "scheduler"

    def __init__(
        self,
        adapters: AdapterFactory | None = None,
        monitors: MonitorFactory | None = None,
        interval: float | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        super().__init__(
            interval if interval is not None else self.config.REPRICING_TICK_SECONDS,
            session_factory,
        )
        self.adapters = adapters or AdapterFactory(self.config)
        self.monitors = monitors or MonitorFactory(self.adapters, self.config)

    def build_engine(self, db: Session) -> RepricingEngine:
        return RepricingEngine(
            db, self.adapters, self.monitors, CreditLedger(db), self.config
        )

    async def run_once(self, db: Session) -> None:
        updates = await self.build_engine(db).process_due_rules()
        logger.info("scheduler.tick_completed", updates=updates)


class BuyBoxCheckScheduler(IntervalScheduler):
    name = "buybox_scheduler"

    def __init__(
        self,
        monitors: MonitorFactory,
        interval: float | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        super().__init__(
            interval if interval is not None else self.config.BUYBOX_CHECK_TICK_SECONDS,
            session_factory,
        )
        self.monitors = monitors

    async def run_once(self, db: Session) -> None:
        await BuyBoxMonitoringService(db, self.monitors).check_due_products()


async def run_forever() -> None:
    repricing = RepricingScheduler()
    buybox = BuyBoxCheckScheduler(repricing.monitors)
    repricing.start()
    buybox.start()
    try:
        await asyncio.Event().wait()
    finally:
        await buybox.stop(wait=True)
        await repricing.stop(wait=True)
        await repricing.adapters.aclose()


def main():
    configure_logging()
    try:
        asyncio.run(run_forever())
    except KeyboardInterrupt:
        logger.info("scheduler.interrupted")


if __name__ == "__main__":
    main()
