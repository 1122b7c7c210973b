import asyncio

from repricer.core.logger import configure_logging
from repricer.db.session import SessionLocal
from repricer.marketplaces.factory import AdapterFactory
from repricer.monitors.factory import MonitorFactory
from repricer.services.monitor import BuyBoxMonitoringService


async def run_cycle(db) -> int:
    adapters = AdapterFactory()
    try:
        service = BuyBoxMonitoringService(db, MonitorFactory(adapters))
        return await service.check_due_products()
    finally:
        await adapters.aclose()


def main():
    configure_logging()
    db = SessionLocal()
    try:
        asyncio.run(run_cycle(db))
    finally:
        db.close()


if __name__ == "__main__":
    main()
