"""
Period aggregation over the usage ledger.

Totals are recomputed from raw ledger rows on every call; there is no
cached counter, so the cost is linear in the number of events in the
period.
"""

from datetime import datetime
from typing import Dict, Union

from .errors import ValidationError
from .ledger import parse_feature
from ai_quota_guard.storage.models import Feature, UsageAggregate
from ai_quota_guard.storage.repository import UsageRepository


def aggregate(
    repository: UsageRepository,
    user_id: str,
    feature: Union[Feature, str],
    period_start: datetime,
    period_end: datetime
) -> UsageAggregate:
    """Sum a user's usage of one feature within ``[period_start, period_end)``.

    Args:
        repository: Usage ledger to read from
        user_id: Owner of the events
        feature: Feature to aggregate
        period_start: Inclusive lower bound
        period_end: Exclusive upper bound

    Returns:
        UsageAggregate; an empty period yields all zeros

    Raises:
        ValidationError: If the range is empty or the feature is unknown
    """
    feature = parse_feature(feature)
    if period_start >= period_end:
        raise ValidationError("period_start must be before period_end", field="period_start")

    totals = repository.aggregate(user_id, feature, period_start, period_end)
    return aggregate_from_totals(totals)


def aggregate_from_totals(totals: Dict[str, float]) -> UsageAggregate:
    """Convert raw repository totals into a UsageAggregate."""
    count = int(totals["count"])
    return UsageAggregate(
        usage_count=count,
        total_cost=float(totals["total_cost"]),
        total_tokens=int(totals["total_tokens"]),
        avg_response_time=float(totals["avg_response_time"]),
        success_rate=success_rate(int(totals["success_count"]), count)
    )


def success_rate(success_count: int, total_count: int) -> float:
    """Percentage of successful calls; 0.0 when there were no calls."""
    if total_count == 0:
        return 0.0
    return success_count / total_count * 100
