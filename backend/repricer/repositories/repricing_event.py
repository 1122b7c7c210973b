from __future__ import annotations

from datetime import datetime

from sqlalchemy import case, desc, func, select
from sqlalchemy.orm import Session

from repricer.db.models import RepricingEvent


class RepricingEventRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, event: RepricingEvent) -> RepricingEvent:
        self.db.add(event)
        self.db.commit()
        return event

    def create_many(self, events: list[RepricingEvent]) -> list[RepricingEvent]:
        self.db.add_all(events)
        self.db.commit()
        return events

    def _newest_first(self, q, limit: int) -> list[RepricingEvent]:
        q = q.order_by(desc(RepricingEvent.timestamp), desc(RepricingEvent.id))
        return list(self.db.execute(q.limit(limit)).scalars().all())

    def find_by_rule(self, rule_id: int, limit: int = 100) -> list[RepricingEvent]:
        q = select(RepricingEvent).where(RepricingEvent.rule_id == rule_id)
        return self._newest_first(q, limit)

    def find_by_product(
        self, product_id: str, org_id: str | None = None, limit: int = 100
    ) -> list[RepricingEvent]:
        q = select(RepricingEvent).where(RepricingEvent.product_id == product_id)
        if org_id is not None:
            q = q.where(RepricingEvent.org_id == org_id)
        return self._newest_first(q, limit)

    def find_by_marketplace(
        self, marketplace_id: str, org_id: str | None = None, limit: int = 100
    ) -> list[RepricingEvent]:
        q = select(RepricingEvent).where(
            RepricingEvent.marketplace_id == marketplace_id
        )
        if org_id is not None:
            q = q.where(RepricingEvent.org_id == org_id)
        return self._newest_first(q, limit)

    def find_recent(
        self, org_id: str | None = None, limit: int = 100
    ) -> list[RepricingEvent]:
        q = select(RepricingEvent)
        if org_id is not None:
            q = q.where(RepricingEvent.org_id == org_id)
        return self._newest_first(q, limit)

    def find_by_date_range(
        self,
        start: datetime,
        end: datetime,
        org_id: str | None = None,
        limit: int = 500,
    ) -> list[RepricingEvent]:
        q = select(RepricingEvent).where(
            RepricingEvent.timestamp >= start, RepricingEvent.timestamp <= end
        )
        if org_id is not None:
            q = q.where(RepricingEvent.org_id == org_id)
        return self._newest_first(q, limit)

    def rule_success_rate(self, rule_id: int) -> dict:
        total, successful = self.db.execute(
            select(
                func.count(RepricingEvent.id),
                func.coalesce(
                    func.sum(case((RepricingEvent.success.is_(True), 1), else_=0)), 0
                ),
            ).where(RepricingEvent.rule_id == rule_id)
        ).one()
        total = int(total or 0)
        successful = int(successful or 0)
        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": (successful / total * 100.0) if total else 0.0,
        }
