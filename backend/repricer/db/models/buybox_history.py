from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from repricer.db.base import Base
from repricer.models.buybox import BuyBoxSnapshot


def history_key(product_id: str, marketplace_id: str) -> str:
    return f"{product_id}_{marketplace_id}"


class BuyBoxHistory(Base):
    __tablename__ = "buybox_histories"

    # "{product_id}_{marketplace_id}"
    id: Mapped[str] = mapped_column(String(160), primary_key=True)

    product_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    sku: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    marketplace_id: Mapped[str] = mapped_column(
        String(32), index=True, nullable=False
    )
    marketplace_product_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    is_monitoring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    monitoring_frequency: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )  # minutes

    buybox_win_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    average_price_difference: Mapped[float | None] = mapped_column(
        Float, nullable=True
    )
    lowest_price_to_win: Mapped[float | None] = mapped_column(Float, nullable=True)

    # {"timestamp", "reason", "previous_price", "competitor_price"}
    last_buybox_win: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_buybox_loss: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    snapshots = relationship(
        "BuyBoxSnapshotRecord",
        back_populates="history",
        cascade="all, delete-orphan",
        order_by="[BuyBoxSnapshotRecord.captured_at, BuyBoxSnapshotRecord.id]",
    )

    @property
    def last_snapshot(self) -> BuyBoxSnapshot | None:
        if not self.snapshots:
            return None
        return self.snapshots[-1].to_snapshot()

    def snapshot_series(self) -> list[BuyBoxSnapshot]:
        return [s.to_snapshot() for s in self.snapshots]
