"""
Billing period arithmetic.

Billing periods are calendar months expressed as half-open ranges
``[start, end)``. Consecutive months are contiguous and never overlap.
All datetimes are naive UTC.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import ValidationError


@dataclass(frozen=True)
class BillingPeriod:
    """Half-open time window used to scope aggregation."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError("period start must be before period end", field="start")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def utc_now() -> datetime:
    """Current wall-clock time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def month_period(moment: Optional[datetime] = None) -> BillingPeriod:
    """Return the calendar month containing ``moment`` (defaults to now)."""
    moment = moment or utc_now()
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    start = datetime(moment.year, moment.month, 1)
    return BillingPeriod(start=start, end=_add_months(start, 1))


def next_period(period: BillingPeriod) -> BillingPeriod:
    """The calendar month immediately after ``period``."""
    return month_period(period.end)


def rolling_period(name: str, now: Optional[datetime] = None) -> BillingPeriod:
    """Reporting window ending at ``now``.

    Args:
        name: One of ``week``, ``month`` or ``quarter``
        now: End of the window (defaults to the current time)

    Raises:
        ValidationError: If the window name is unknown
    """
    now = now or utc_now()
    if name == "week":
        start = now - timedelta(days=7)
    elif name == "month":
        start = _add_months(now, -1)
    elif name == "quarter":
        start = _add_months(now, -3)
    else:
        raise ValidationError(
            f"Unknown period '{name}'; expected one of: week, month, quarter",
            field="period"
        )
    # End is exclusive, so include events stamped exactly at ``now``
    return BillingPeriod(start=start, end=now + timedelta(microseconds=1))


def _add_months(moment: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, _days_in_month(year, month))
    return moment.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        following = datetime(year + 1, 1, 1)
    else:
        following = datetime(year, month + 1, 1)
    return (following - timedelta(days=1)).day
