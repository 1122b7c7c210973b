from __future__ import annotations

from datetime import datetime

from sqlalchemy import desc, or_, select
from sqlalchemy.orm import Session

from repricer.db.models import RepricingRule


class RepricingRuleRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, rule: RepricingRule) -> RepricingRule:
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def get(self, rule_id: int) -> RepricingRule | None:
        return self.db.get(RepricingRule, rule_id)

    def update(self, rule: RepricingRule, changes: dict) -> RepricingRule:
        for key, value in changes.items():
            setattr(rule, key, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete(self, rule: RepricingRule) -> None:
        self.db.delete(rule)
        self.db.commit()

    def find_by_org(self, org_id: str) -> list[RepricingRule]:
        q = (
            select(RepricingRule)
            .where(RepricingRule.org_id == org_id)
            .order_by(desc(RepricingRule.priority), RepricingRule.id)
        )
        return list(self.db.execute(q).scalars().all())

    def find_due(self, now: datetime) -> list[RepricingRule]:
        q = (
            select(RepricingRule)
            .where(RepricingRule.is_active.is_(True))
            .where(
                or_(
                    RepricingRule.next_run_at.is_(None),
                    RepricingRule.next_run_at <= now,
                )
            )
            .order_by(RepricingRule.org_id, desc(RepricingRule.priority))
        )
        return list(self.db.execute(q).scalars().all())

    def save_all(self, rules: list[RepricingRule]) -> None:
        for rule in rules:
            self.db.add(rule)
        self.db.commit()
