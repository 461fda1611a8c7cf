"""
Cost reporting and optimization suggestions.

Summaries are grouped sums over the usage ledger. Suggestions are stored
text records authored by people; the only transition they support is
``proposed -> applied``. Performance metrics and cost analysis snapshots
are plain records kept alongside for later comparison.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .aggregator import aggregate_from_totals
from .context import UserContext
from .errors import AuthorizationError, NotFoundError, ValidationError
from .ledger import parse_feature
from .periods import BillingPeriod, utc_now
from ai_quota_guard.storage.analytics import AnalyticsRepository
from ai_quota_guard.storage.models import (
    AnalysisPeriod,
    CostAnalysis,
    Feature,
    OptimizationSuggestion,
    PerformanceMetric,
    PerformanceMetricName,
    SuggestionCategory,
    SuggestionImpact,
)
from ai_quota_guard.storage.repository import UsageRepository
from ai_quota_guard.storage.suggestions import SuggestionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureBreakdown:
    """Per-feature slice of a cost summary."""
    feature: Feature
    requests: int
    tokens: int
    cost: float
    avg_response_time: float
    success_rate: float


@dataclass
class CostSummary:
    """Totals for a user over one reporting period."""
    period: BillingPeriod
    total_cost: float = 0.0
    total_tokens: int = 0
    total_requests: int = 0
    per_feature: List[FeatureBreakdown] = field(default_factory=list)


def summarize(
    repository: UsageRepository,
    user_id: str,
    period: BillingPeriod,
    feature: Optional[Union[Feature, str]] = None
) -> CostSummary:
    """Summarize a user's cost and usage over ``period``.

    A period without events produces zero totals and an empty breakdown.
    With ``feature`` set, both the breakdown and the totals cover that
    feature only.
    """
    grouped = repository.feature_breakdown(user_id, period.start, period.end)
    if feature is not None:
        wanted = parse_feature(feature)
        grouped = {key: totals for key, totals in grouped.items() if key == wanted}

    summary = CostSummary(period=period)
    for feature, totals in grouped.items():
        usage = aggregate_from_totals(totals)
        summary.per_feature.append(FeatureBreakdown(
            feature=feature,
            requests=usage.usage_count,
            tokens=usage.total_tokens,
            cost=usage.total_cost,
            avg_response_time=usage.avg_response_time,
            success_rate=usage.success_rate
        ))
        summary.total_cost += usage.total_cost
        summary.total_tokens += usage.total_tokens
        summary.total_requests += usage.usage_count

    return summary


def add_suggestion(
    user: UserContext,
    repository: SuggestionRepository,
    category: Union[SuggestionCategory, str],
    title: str,
    description: str,
    impact: Union[SuggestionImpact, str],
    estimated_savings: Optional[float] = None,
    implementation: Optional[str] = None,
    now: Optional[datetime] = None
) -> int:
    """Store a new proposed suggestion for ``user``.

    Raises:
        ValidationError: On an empty title/description, unknown category or
            impact, or negative savings
    """
    category = _parse_enum(SuggestionCategory, category, "category")
    impact = _parse_enum(SuggestionImpact, impact, "impact")
    if not title or not title.strip():
        raise ValidationError("title is required", field="title")
    if not description or not description.strip():
        raise ValidationError("description is required", field="description")
    if estimated_savings is not None and estimated_savings < 0:
        raise ValidationError("estimated_savings cannot be negative", field="estimated_savings")

    suggestion_id = repository.add(OptimizationSuggestion(
        user_id=user.user_id,
        category=category,
        title=title.strip(),
        description=description.strip(),
        impact=impact,
        estimated_savings=estimated_savings,
        implementation=implementation,
        created_at=now or utc_now()
    ))
    logger.info("Added suggestion %s for user=%s", suggestion_id, user.user_id)
    return suggestion_id


def list_suggestions(user: UserContext, repository: SuggestionRepository) -> List[OptimizationSuggestion]:
    return repository.list_for_user(user.user_id)


def apply_suggestion(
    user: UserContext,
    repository: SuggestionRepository,
    suggestion_id: int,
    now: Optional[datetime] = None
) -> OptimizationSuggestion:
    """Mark a proposed suggestion as applied.

    Raises:
        NotFoundError: If no suggestion has that id
        AuthorizationError: If the suggestion belongs to another user
        ValidationError: If the suggestion was already applied
    """
    suggestion = repository.get(suggestion_id)
    if suggestion is None:
        raise NotFoundError(f"Suggestion {suggestion_id} not found")
    if suggestion.user_id != user.user_id:
        raise AuthorizationError(f"Suggestion {suggestion_id} belongs to another user")
    if suggestion.is_applied:
        raise ValidationError(f"Suggestion {suggestion_id} is already applied", field="suggestion_id")

    applied_at = now or utc_now()
    if not repository.mark_applied(suggestion_id, user.user_id, applied_at):
        # Lost a race with another apply of the same suggestion
        raise ValidationError(f"Suggestion {suggestion_id} is already applied", field="suggestion_id")

    logger.info("Applied suggestion %s for user=%s", suggestion_id, user.user_id)
    return repository.get(suggestion_id)


def record_performance_metric(
    user: UserContext,
    repository: AnalyticsRepository,
    feature: Union[Feature, str],
    metric: Union[PerformanceMetricName, str],
    value: float,
    date: Optional[datetime] = None,
    unit: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> int:
    """Store one performance measurement for a feature.

    Raises:
        ValidationError: On an unknown feature or metric, a value that is not
            a finite non-negative number, or a non-mapping context
    """
    feature = parse_feature(feature)
    metric = _parse_enum(PerformanceMetricName, metric, "metric")
    value = _parse_amount(value, "value")
    if context is not None and not isinstance(context, dict):
        raise ValidationError("context must be a mapping", field="context")

    created_at = now or utc_now()
    metric_id = repository.add_metric(PerformanceMetric(
        user_id=user.user_id,
        feature=feature,
        metric=metric,
        value=value,
        unit=unit,
        context=context,
        date=date or created_at,
        created_at=created_at
    ))
    logger.info("Recorded %s metric %s for user=%s feature=%s",
                metric.value, metric_id, user.user_id, feature.value)
    return metric_id


def list_performance_metrics(
    user: UserContext,
    repository: AnalyticsRepository,
    feature: Optional[Union[Feature, str]] = None,
    period: Optional[BillingPeriod] = None
) -> List[PerformanceMetric]:
    if feature is not None:
        feature = parse_feature(feature)
    start = period.start if period else None
    end = period.end if period else None
    return repository.list_metrics(user.user_id, feature=feature, start=start, end=end)


def record_cost_analysis(
    user: UserContext,
    repository: AnalyticsRepository,
    period: Union[AnalysisPeriod, str],
    start_date: datetime,
    end_date: datetime,
    total_cost: float,
    feature_costs: Optional[Dict[str, float]] = None,
    token_usage: Optional[Dict[str, int]] = None,
    predictions: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> int:
    """Store a cost analysis snapshot covering ``[start_date, end_date)``.

    Keys of ``feature_costs`` and ``token_usage`` must name known features.

    Raises:
        ValidationError: On an unknown period, an empty or inverted window,
            a bad total, or malformed per-feature maps
    """
    period = _parse_enum(AnalysisPeriod, period, "period")
    if start_date >= end_date:
        raise ValidationError("start_date must be before end_date", field="start_date")
    total_cost = _parse_amount(total_cost, "total_cost")

    if feature_costs is not None:
        feature_costs = _parse_feature_map(feature_costs, "feature_costs", _parse_amount)
    if token_usage is not None:
        token_usage = _parse_feature_map(token_usage, "token_usage", _parse_count)
    if predictions is not None and not isinstance(predictions, dict):
        raise ValidationError("predictions must be a mapping", field="predictions")

    analysis_id = repository.add_cost_analysis(CostAnalysis(
        user_id=user.user_id,
        period=period,
        start_date=start_date,
        end_date=end_date,
        total_cost=total_cost,
        feature_costs=feature_costs,
        token_usage=token_usage,
        predictions=predictions,
        created_at=now or utc_now()
    ))
    logger.info("Recorded %s cost analysis %s for user=%s", period.value, analysis_id, user.user_id)
    return analysis_id


def list_cost_analyses(
    user: UserContext,
    repository: AnalyticsRepository,
    period: Optional[Union[AnalysisPeriod, str]] = None,
    limit: int = 20
) -> List[CostAnalysis]:
    if period is not None:
        period = _parse_enum(AnalysisPeriod, period, "period")
    return repository.list_cost_analyses(user.user_id, period=period, limit=limit)


def _parse_amount(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    amount = float(value)
    if not math.isfinite(amount) or amount < 0:
        raise ValidationError(f"{field_name} must be a finite non-negative number", field=field_name)
    return amount


def _parse_count(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer", field=field_name)
    return value


def _parse_feature_map(values: Any, field_name: str, parse_value) -> Dict[str, Any]:
    if not isinstance(values, dict):
        raise ValidationError(f"{field_name} must be a mapping", field=field_name)
    parsed = {}
    for key, value in values.items():
        try:
            feature = parse_feature(key)
        except ValidationError as e:
            raise ValidationError(f"{field_name}: {e}", field=field_name) from e
        parsed[feature.value] = parse_value(value, field_name)
    return parsed


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = [member.value for member in enum_cls]
        raise ValidationError(f"{field_name} must be one of: {valid}", field=field_name)
