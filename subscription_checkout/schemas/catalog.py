from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PlanFeatureRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    feature_key: str
    name: str | None = None
    limit_count: int | None = None
    sort_order: int = 0


class PlanPriceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    amount: Decimal


class PlanView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_code: str
    name: str
    category: str | None = None
    interval_unit: str | None = None
    trial_period_days: int | None = None
    license_limit: int | None = None
    is_active: bool = True
    features: list[PlanFeatureRead] = []
    prices: list[PlanPriceRead] = []
