from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class TransactionView(BaseModel):
    order_id: str
    plan_code: str
    plan_category: str | None = None
    interval_unit: str | None = None
    # Provider payment date as sent, else the checkout creation time
    purchase_date: str | None = None
    invoice_id: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    status: str
    expiring_time: datetime | None = None
    email: str | None = None
    payment_method: str | None = None


class TransactionPage(BaseModel):
    page: int
    size: int
    total_elements: int
    total_pages: int
    items: list[TransactionView]
