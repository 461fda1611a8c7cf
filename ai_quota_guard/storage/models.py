"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class Feature(Enum):
    """Closed set of metered AI features."""
    CHAT = "chat"
    DOCUMENT_QA = "document_qa"
    DOCUMENT_ANALYSIS = "document_analysis"
    MEETING_SUMMARY = "meeting_summary"
    WORKFLOW = "workflow"


class SubscriptionStatus(Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class SuggestionCategory(Enum):
    COST = "cost"
    PERFORMANCE = "performance"
    USAGE = "usage"


class SuggestionImpact(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PerformanceMetricName(Enum):
    ACCURACY = "accuracy"
    RESPONSE_TIME = "response_time"
    USER_SATISFACTION = "user_satisfaction"


class AnalysisPeriod(Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one AI feature invocation.

    Append-only events that create an auditable ledger of usage and cost.
    Once written, these records must never be modified.
    """
    user_id: str
    timestamp: datetime
    feature: Feature
    model: str
    input_tokens: int
    output_tokens: int
    tokens_used: int
    cost: float
    response_time_ms: Optional[int] = None
    success: bool = True
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class UsageAggregate:
    """Totals derived from usage events for one (user, feature, period)."""
    usage_count: int
    total_cost: float
    total_tokens: int
    avg_response_time: float
    success_rate: float


@dataclass(frozen=True)
class SubscriptionPlan:
    """A billing tier with per-feature limits (None means unlimited)."""
    name: str
    display_name: str
    price: float
    billing_cycle: str = "monthly"
    limits: Dict[str, Optional[int]] = field(default_factory=dict)
    is_active: bool = True
    id: Optional[int] = None


@dataclass(frozen=True)
class UserSubscription:
    """A user's subscription row as maintained by billing webhooks."""
    user_id: str
    plan_name: str
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    external_subscription_id: Optional[str] = None
    external_customer_id: Optional[str] = None
    id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


@dataclass(frozen=True)
class OptimizationSuggestion:
    """Human-authored optimization advice shown next to cost reports."""
    user_id: str
    category: SuggestionCategory
    title: str
    description: str
    impact: SuggestionImpact
    created_at: datetime
    estimated_savings: Optional[float] = None
    implementation: Optional[str] = None
    is_applied: bool = False
    applied_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class PerformanceMetric:
    """A quality or latency measurement reported for a feature on a date."""
    user_id: str
    feature: Feature
    metric: PerformanceMetricName
    value: float
    date: datetime
    created_at: datetime
    unit: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class CostAnalysis:
    """A stored cost snapshot for a reporting window, with optional forecasts."""
    user_id: str
    period: AnalysisPeriod
    start_date: datetime
    end_date: datetime
    total_cost: float
    created_at: datetime
    feature_costs: Optional[Dict[str, float]] = None
    token_usage: Optional[Dict[str, int]] = None
    predictions: Optional[Dict[str, Any]] = None
    id: Optional[int] = None
