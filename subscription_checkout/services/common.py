"""Common helper functions for the service layer."""

from __future__ import annotations

from calendar import monthrange
from datetime import datetime


def clean_text(value) -> str | None:
    """Strip a value to a non-empty string, or None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def first_text(*values) -> str | None:
    for value in values:
        text = clean_text(value)
        if text:
            return text
    return None


def add_months(value: datetime, months: int) -> datetime:
    total = value.month - 1 + months
    year = value.year + total // 12
    month = total % 12 + 1
    day = min(value.day, monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def apply_pagination(query, limit: int, offset: int):
    return query.limit(limit).offset(offset)
