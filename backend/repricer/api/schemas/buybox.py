from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from repricer.db.models import BuyBoxHistory


class InitializeMonitoringIn(BaseModel):
    product_id: str
    marketplace_id: str
    marketplace_product_id: Optional[str] = None
    monitoring_frequency: Optional[int] = Field(None, ge=5, le=1440)


class BulkMonitoringIn(BaseModel):
    marketplace_id: str
    monitoring_frequency: Optional[int] = Field(None, ge=5, le=1440)


class BuyBoxCheckIn(BaseModel):
    product_id: str
    marketplace_id: str
    marketplace_product_id: str


class ApplyRulesIn(BaseModel):
    product_id: str
    marketplace_id: str
    rule_ids: Optional[list[int]] = None


class HistoryOut(BaseModel):
    id: str
    product_id: str
    sku: str
    marketplace_id: str
    marketplace_product_id: str
    is_monitoring: bool
    monitoring_frequency: int
    buybox_win_percentage: float
    average_price_difference: Optional[float] = None
    lowest_price_to_win: Optional[float] = None
    last_buybox_win: Optional[dict] = None
    last_buybox_loss: Optional[dict] = None
    last_snapshot: Optional[dict] = None
    snapshots: Optional[list[dict]] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_history(
        cls, history: BuyBoxHistory, include_snapshots: bool = False
    ) -> "HistoryOut":
        last = history.last_snapshot
        return cls(
            id=history.id,
            product_id=history.product_id,
            sku=history.sku,
            marketplace_id=history.marketplace_id,
            marketplace_product_id=history.marketplace_product_id,
            is_monitoring=history.is_monitoring,
            monitoring_frequency=history.monitoring_frequency,
            buybox_win_percentage=history.buybox_win_percentage,
            average_price_difference=history.average_price_difference,
            lowest_price_to_win=history.lowest_price_to_win,
            last_buybox_win=history.last_buybox_win,
            last_buybox_loss=history.last_buybox_loss,
            last_snapshot=last.to_dict() if last is not None else None,
            snapshots=(
                [s.to_dict() for s in history.snapshot_series()]
                if include_snapshots
                else None
            ),
            updated_at=history.updated_at,
        )
