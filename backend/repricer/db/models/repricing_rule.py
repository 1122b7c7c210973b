from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from repricer.db.base import Base
from repricer.models.repricing import ProductFilter, RuleParameters


class RepricingRule(Base):
    __tablename__ = "repricing_rules"

    id: Mapped[int] = mapped_column(primary_key=True)

    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    strategy: Mapped[str] = mapped_column(String(32), nullable=False)
    parameters: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    product_filter: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    marketplaces: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    update_frequency: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )  # minutes
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    last_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def rule_parameters(self) -> RuleParameters:
        return RuleParameters.from_dict(self.parameters)

    @property
    def filter(self) -> ProductFilter:
        return ProductFilter.from_dict(self.product_filter)

    def advance_schedule(self, now: datetime) -> None:
        self.last_run_at = now
        self.next_run_at = now + timedelta(minutes=self.update_frequency)
