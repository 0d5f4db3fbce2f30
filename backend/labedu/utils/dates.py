from __future__ import annotations

import calendar
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(base: date, months: int) -> date:
    """
    Add a number of calendar months to a date.

    The day is clamped to the last valid day of the target month, so
    2024-01-31 + 1 month is 2024-02-29.
    """
    if months <= 0:
        return base

    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def as_naive_utc(value: datetime | None) -> datetime | None:
    """
    Drop tzinfo after converting to UTC so values read back from SQLite
    (naive) and freshly created ones (aware) compare cleanly.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_date(value: date | datetime | None) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    return value
