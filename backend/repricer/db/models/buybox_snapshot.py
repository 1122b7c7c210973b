from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repricer.core.pricing import ensure_utc
from repricer.db.base import Base
from repricer.models.buybox import BuyBoxOwnershipStatus, BuyBoxSnapshot, Competitor


class BuyBoxSnapshotRecord(Base):
    __tablename__ = "buybox_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)

    history_id: Mapped[str] = mapped_column(
        ForeignKey("buybox_histories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    own_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    buybox_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    buybox_price_with_shipping: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )
    price_difference_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    price_difference_percent: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )

    competitor_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    competitors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    has_pricing_opportunity: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    suggested_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    suggested_price_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    history = relationship("BuyBoxHistory", back_populates="snapshots")

    @classmethod
    def from_snapshot(cls, snapshot: BuyBoxSnapshot) -> "BuyBoxSnapshotRecord":
        return cls(
            captured_at=snapshot.captured_at,
            status=snapshot.status.value,
            own_price=snapshot.own_price,
            buybox_price=snapshot.buybox_price,
            buybox_price_with_shipping=snapshot.buybox_price_with_shipping,
            price_difference_amount=snapshot.price_difference_amount,
            price_difference_percent=snapshot.price_difference_percent,
            competitor_count=snapshot.competitor_count,
            competitors=[c.to_dict() for c in snapshot.competitors],
            has_pricing_opportunity=snapshot.has_pricing_opportunity,
            suggested_price=snapshot.suggested_price,
            suggested_price_reason=snapshot.suggested_price_reason,
        )

    def to_snapshot(self) -> BuyBoxSnapshot:
        return BuyBoxSnapshot(
            status=BuyBoxOwnershipStatus(self.status),
            own_price=self.own_price,
            captured_at=ensure_utc(self.captured_at),
            buybox_price=self.buybox_price,
            buybox_price_with_shipping=self.buybox_price_with_shipping,
            price_difference_amount=self.price_difference_amount,
            price_difference_percent=self.price_difference_percent,
            competitor_count=self.competitor_count,
            competitors=tuple(Competitor.from_dict(c) for c in self.competitors or []),
            has_pricing_opportunity=self.has_pricing_opportunity,
            suggested_price=self.suggested_price,
            suggested_price_reason=self.suggested_price_reason,
        )
