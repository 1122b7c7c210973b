from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from repricer.marketplaces.factory import SUPPORTED_MARKETPLACES
from repricer.models.repricing import RepricingStrategy


def _check_marketplaces(value: Optional[list[str]]) -> Optional[list[str]]:
    if value is None:
        return value
    unknown = [m for m in value if m not in SUPPORTED_MARKETPLACES]
    if unknown:
        raise ValueError(f"Unsupported marketplaces: {', '.join(unknown)}")
    return list(dict.fromkeys(value))


class RuleParametersIn(BaseModel):
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    price_difference_amount: Optional[float] = Field(None, ge=0)
    price_difference_percent: Optional[float] = Field(None, ge=0, lt=100)
    target_margin: Optional[float] = Field(None, ge=0, lt=100)
    only_undercut_if_not_owned: bool = False

    @model_validator(mode="after")
    def check_bounds(self):
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self


class ProductFilterIn(BaseModel):
    skus: list[str] = []
    exclude_skus: list[str] = []
    categories: list[str] = []
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)


class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: bool = True
    strategy: RepricingStrategy
    parameters: RuleParametersIn = Field(default_factory=RuleParametersIn)
    product_filter: Optional[ProductFilterIn] = None
    marketplaces: list[str] = Field(..., min_length=1)
    update_frequency: int = Field(60, ge=5, le=1440)
    priority: int = Field(1, ge=1, le=100)

    check_marketplaces = field_validator("marketplaces")(_check_marketplaces)


class RuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    strategy: Optional[RepricingStrategy] = None
    parameters: Optional[RuleParametersIn] = None
    product_filter: Optional[ProductFilterIn] = None
    marketplaces: Optional[list[str]] = Field(None, min_length=1)
    update_frequency: Optional[int] = Field(None, ge=5, le=1440)
    priority: Optional[int] = Field(None, ge=1, le=100)

    check_marketplaces = field_validator("marketplaces")(_check_marketplaces)


class RuleOut(BaseModel):
    id: int
    org_id: str
    user_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    is_active: bool
    strategy: str
    parameters: dict
    product_filter: Optional[dict] = None
    marketplaces: list[str]
    update_frequency: int
    priority: int
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EventOut(BaseModel):
    id: int
    rule_id: int
    product_id: str
    sku: str
    marketplace_id: str
    timestamp: datetime
    previous_price: float
    new_price: float
    reason: str
    buybox_status_before: str
    success: bool
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class RuleStats(BaseModel):
    total: int
    successful: int
    failed: int
    success_rate: float


class ExecutionOut(BaseModel):
    success: bool
    message: str
    updates: int
