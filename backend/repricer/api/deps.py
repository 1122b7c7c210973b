from fastapi import Depends, Request
from sqlalchemy.orm import Session

from repricer.db.session import get_db
from repricer.marketplaces.factory import AdapterFactory
from repricer.monitors.factory import MonitorFactory
from repricer.services.credits import CreditLedger, CreditService
from repricer.services.monitor import BuyBoxMonitoringService
from repricer.services.repricing_engine import RepricingEngine


def get_adapter_factory(request: Request) -> AdapterFactory:
    adapters = getattr(request.app.state, "adapters", None)
    if adapters is None:
        adapters = AdapterFactory()
        request.app.state.adapters = adapters
    return adapters


def get_monitor_factory(
    adapters: AdapterFactory = Depends(get_adapter_factory),
) -> MonitorFactory:
    return MonitorFactory(adapters)


def get_credit_service(db: Session = Depends(get_db)) -> CreditService:
    return CreditLedger(db)


def get_monitoring_service(
    db: Session = Depends(get_db),
    monitors: MonitorFactory = Depends(get_monitor_factory),
) -> BuyBoxMonitoringService:
    return BuyBoxMonitoringService(db, monitors)


def get_repricing_engine(
    db: Session = Depends(get_db),
    adapters: AdapterFactory = Depends(get_adapter_factory),
    monitors: MonitorFactory = Depends(get_monitor_factory),
    credits: CreditService = Depends(get_credit_service),
) -> RepricingEngine:
    return RepricingEngine(db, adapters, monitors, credits)
