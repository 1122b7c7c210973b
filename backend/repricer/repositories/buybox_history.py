from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from repricer.core.pricing import ensure_utc
from repricer.db.models import BuyBoxHistory, history_key


class BuyBoxHistoryRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: str, marketplace_id: str) -> BuyBoxHistory | None:
        return self.get_by_id(history_key(product_id, marketplace_id))

    def get_by_id(self, history_id: str) -> BuyBoxHistory | None:
        return self.db.get(BuyBoxHistory, history_id)

    def create(self, history: BuyBoxHistory) -> BuyBoxHistory:
        self.db.add(history)
        self.db.commit()
        self.db.refresh(history)
        return history

    def save(self, history: BuyBoxHistory) -> BuyBoxHistory:
        self.db.add(history)
        self.db.commit()
        return history

    def get_by_org(self, org_id: str, monitoring_only: bool = True) -> list[BuyBoxHistory]:
        q = select(BuyBoxHistory).where(BuyBoxHistory.org_id == org_id)
        if monitoring_only:
            q = q.where(BuyBoxHistory.is_monitoring.is_(True))
        return list(self.db.execute(q.order_by(BuyBoxHistory.id)).scalars().all())

    def get_by_marketplace(
        self,
        marketplace_id: str,
        org_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[BuyBoxHistory]:
        q = select(BuyBoxHistory).where(BuyBoxHistory.marketplace_id == marketplace_id)
        if org_id is not None:
            q = q.where(BuyBoxHistory.org_id == org_id)
        q = q.order_by(desc(BuyBoxHistory.updated_at)).offset(offset).limit(limit)
        return list(self.db.execute(q).scalars().all())

    def get_monitored(self) -> list[BuyBoxHistory]:
        q = select(BuyBoxHistory).where(BuyBoxHistory.is_monitoring.is_(True))
        return list(self.db.execute(q).scalars().all())

    def get_due_for_check(self, now: datetime) -> list[BuyBoxHistory]:
        due = []
        for history in self.get_monitored():
            last = history.last_snapshot
            if last is None:
                due.append(history)
                continue
            next_check = ensure_utc(last.captured_at) + timedelta(
                minutes=history.monitoring_frequency
            )
            if next_check <= now:
                due.append(history)
        return due
