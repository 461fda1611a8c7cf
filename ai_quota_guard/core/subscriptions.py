"""
Subscription lifecycle driven by the payment processor.

Plans are seeded from the quota policy; user subscriptions are created on
checkout and updated by processor webhooks (renewal, cancellation,
expiry).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .context import UserContext
from .errors import NotFoundError, ValidationError
from .periods import month_period, utc_now
from .policy import BASIC_PLAN, DEFAULT_POLICY, QuotaPolicy
from .quota import QuotaDecision, check_quota
from ai_quota_guard.storage.billing import BillingRepository
from ai_quota_guard.storage.models import (
    Feature,
    SubscriptionPlan,
    SubscriptionStatus,
    UserSubscription,
)
from ai_quota_guard.storage.repository import UsageRepository

logger = logging.getLogger(__name__)

WEBHOOK_EVENT_TYPES = {
    "subscription.created",
    "subscription.renewed",
    "subscription.updated",
    "subscription.cancelled",
    "subscription.expired",
}


@dataclass(frozen=True)
class UsageOverview:
    """Current-period quota state across all features for one user."""
    plan: str
    decisions: List[QuotaDecision]
    total_usage: int
    total_limit: int
    usage_percentage: float


def seed_plans(billing_repository: BillingRepository, policy: QuotaPolicy = DEFAULT_POLICY) -> int:
    """Write every plan of ``policy`` to the plans table; returns the count."""
    for plan in policy.plans.values():
        billing_repository.upsert_plan(plan)
    logger.info("Seeded %d subscription plans", len(policy.plans))
    return len(policy.plans)


def list_plans(billing_repository: BillingRepository) -> List[SubscriptionPlan]:
    """Active plans, cheapest first."""
    return billing_repository.list_plans(active_only=True)


def activate_subscription(
    user: UserContext,
    billing_repository: BillingRepository,
    plan_name: str,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    external_subscription_id: Optional[str] = None,
    external_customer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> UserSubscription:
    """Create or renew ``user``'s subscription with status active.

    Period bounds default to the calendar month containing ``now``.

    Raises:
        NotFoundError: If the plan is not in the plans table
        ValidationError: If the period bounds are inverted
    """
    now = now or utc_now()
    if period_start is None or period_end is None:
        current = month_period(now)
        period_start = period_start or current.start
        period_end = period_end or current.end
    if period_start >= period_end:
        raise ValidationError("current_period_start must be before current_period_end",
                              field="current_period_start")

    if billing_repository.get_plan(plan_name) is None:
        raise NotFoundError(f"Unknown plan: {plan_name}")

    subscription = UserSubscription(
        user_id=user.user_id,
        plan_name=plan_name,
        status=SubscriptionStatus.ACTIVE,
        current_period_start=period_start,
        current_period_end=period_end,
        external_subscription_id=external_subscription_id,
        external_customer_id=external_customer_id
    )
    billing_repository.upsert_subscription(subscription, updated_at=now)
    logger.info("Activated %s subscription for user=%s", plan_name, user.user_id)
    return billing_repository.get_subscription(user.user_id)


def cancel_subscription(
    user: UserContext,
    billing_repository: BillingRepository,
    now: Optional[datetime] = None
) -> UserSubscription:
    """Mark ``user``'s subscription cancelled.

    Raises:
        NotFoundError: If the user has no subscription
    """
    return _set_status(user, billing_repository, SubscriptionStatus.CANCELLED, now)


def expire_subscription(
    user: UserContext,
    billing_repository: BillingRepository,
    now: Optional[datetime] = None
) -> UserSubscription:
    return _set_status(user, billing_repository, SubscriptionStatus.EXPIRED, now)


def apply_billing_webhook(
    payload: Dict[str, Any],
    billing_repository: BillingRepository,
    now: Optional[datetime] = None
) -> UserSubscription:
    """Apply a payment processor webhook to the subscriptions table.

    Expected payload::

        {"type": "subscription.renewed",
         "data": {"user_id": "...", "plan": "pro", "status": "active",
                  "current_period_start": "2024-05-01T00:00:00Z",
                  "current_period_end": 1717200000,
                  "subscription_id": "sub_123", "customer_id": "cus_456"}}

    Period bounds may be ISO-8601 strings or Unix timestamps.

    Raises:
        ValidationError: On an unknown event type, unknown status or
            missing fields
        NotFoundError: If the plan or (for cancel/expire) subscription is unknown
    """
    if not isinstance(payload, dict):
        raise ValidationError("webhook payload must be an object")

    event_type = payload.get("type")
    if event_type not in WEBHOOK_EVENT_TYPES:
        raise ValidationError(f"Unsupported webhook type: {event_type}", field="type")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValidationError("webhook 'data' must be an object", field="data")

    user = UserContext(data.get("user_id") or "")
    logger.info("Processing %s webhook for user=%s", event_type, user.user_id)

    if event_type == "subscription.cancelled":
        return cancel_subscription(user, billing_repository, now)
    if event_type == "subscription.expired":
        return expire_subscription(user, billing_repository, now)

    status_value = data.get("status", SubscriptionStatus.ACTIVE.value)
    try:
        status = SubscriptionStatus(status_value)
    except ValueError:
        valid = [s.value for s in SubscriptionStatus]
        raise ValidationError(f"status must be one of: {valid}", field="status")

    plan_name = data.get("plan")
    if not plan_name:
        raise ValidationError("webhook 'plan' is required", field="plan")

    subscription = activate_subscription(
        user,
        billing_repository,
        plan_name,
        period_start=_parse_processor_time(data.get("current_period_start"), "current_period_start"),
        period_end=_parse_processor_time(data.get("current_period_end"), "current_period_end"),
        external_subscription_id=data.get("subscription_id"),
        external_customer_id=data.get("customer_id"),
        now=now
    )
    if status != SubscriptionStatus.ACTIVE:
        subscription = _set_status(user, billing_repository, status, now)
    return subscription


def usage_overview(
    user: UserContext,
    usage_repository: UsageRepository,
    billing_repository: BillingRepository,
    policy: QuotaPolicy = DEFAULT_POLICY,
    fallback_plan: str = BASIC_PLAN,
    now: Optional[datetime] = None
) -> UsageOverview:
    """Quota decisions for every feature plus overall usage percentage.

    The percentage covers only limited features and is 0 when the plan has
    none.
    """
    decisions = [
        check_quota(user, feature, usage_repository, billing_repository,
                    policy=policy, fallback_plan=fallback_plan, now=now)
        for feature in Feature
    ]
    limited = [d for d in decisions if d.limit is not None]
    total_usage = sum(d.usage_count for d in limited)
    total_limit = sum(d.limit for d in limited)
    percentage = (total_usage / total_limit * 100) if total_limit > 0 else 0.0

    return UsageOverview(
        plan=decisions[0].plan,
        decisions=decisions,
        total_usage=total_usage,
        total_limit=total_limit,
        usage_percentage=percentage
    )


def _set_status(
    user: UserContext,
    billing_repository: BillingRepository,
    status: SubscriptionStatus,
    now: Optional[datetime]
) -> UserSubscription:
    if not billing_repository.set_subscription_status(user.user_id, status, now or utc_now()):
        raise NotFoundError(f"No subscription for user {user.user_id}")
    logger.info("Subscription for user=%s is now %s", user.user_id, status.value)
    return billing_repository.get_subscription(user.user_id)


def _parse_processor_time(value: Any, field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field_name} is not a valid timestamp", field=field_name)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValidationError(f"{field_name} is not a valid timestamp", field=field_name)
