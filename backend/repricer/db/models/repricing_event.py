from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from repricer.db.base import Base


class RepricingEvent(Base):
    """Immutable audit row, one per attempted price change."""

    __tablename__ = "repricing_events"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    rule_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    sku: Mapped[str] = mapped_column(String(128), nullable=False)
    marketplace_id: Mapped[str] = mapped_column(
        String(32), index=True, nullable=False
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), index=True, nullable=False
    )

    previous_price: Mapped[float] = mapped_column(Float, nullable=False)
    new_price: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    buybox_status_before: Mapped[str] = mapped_column(String(16), nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
