"""
Quota enforcement.

Decides whether a user may make another call to a feature in the current
billing period.

Resolution Order:
1. Active user subscription - its plan supplies the limits
2. Fallback plan - used when there is no subscription, it is cancelled or
   expired, or it names a plan that cannot be found
3. Calendar month containing ``now`` - the period usage is summed over
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from .aggregator import aggregate
from .context import UserContext
from .errors import NotFoundError, QuotaExceededError
from .ledger import parse_feature
from .periods import BillingPeriod, month_period
from .policy import BASIC_PLAN, DEFAULT_POLICY, QuotaPolicy
from ai_quota_guard.storage.billing import BillingRepository
from ai_quota_guard.storage.models import Feature, SubscriptionPlan
from ai_quota_guard.storage.repository import UsageRepository

logger = logging.getLogger(__name__)


class QuotaMode(Enum):
    """How a denied quota check is acted on."""
    ENFORCE = "enforce"    # Reject the call
    ADVISORY = "advisory"  # Log and let the call through


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check for one (user, feature, period)."""
    feature: Feature
    plan: str
    period: BillingPeriod
    usage_count: int
    limit: Optional[int]
    allowed: bool
    remaining: Optional[int]

    @property
    def exceeded(self) -> bool:
        return not self.allowed


def evaluate_limit(
    feature: Feature,
    plan: str,
    period: BillingPeriod,
    usage_count: int,
    limit: Optional[int]
) -> QuotaDecision:
    """Apply a limit to a usage count.

    ``exceeded`` is true iff the limit is set and the count has reached it;
    ``remaining`` is never negative and is None for unlimited plans.
    """
    if limit is None:
        return QuotaDecision(
            feature=feature,
            plan=plan,
            period=period,
            usage_count=usage_count,
            limit=None,
            allowed=True,
            remaining=None
        )
    return QuotaDecision(
        feature=feature,
        plan=plan,
        period=period,
        usage_count=usage_count,
        limit=limit,
        allowed=usage_count < limit,
        remaining=max(0, limit - usage_count)
    )


def resolve_plan(
    user: UserContext,
    billing_repository: BillingRepository,
    policy: QuotaPolicy = DEFAULT_POLICY,
    fallback_plan: str = BASIC_PLAN
) -> SubscriptionPlan:
    """Find the plan whose limits apply to ``user`` right now."""
    subscription = billing_repository.get_subscription(user.user_id)

    if subscription is not None and subscription.is_active:
        if policy.has_plan(subscription.plan_name):
            return policy.get_plan(subscription.plan_name)
        stored = billing_repository.get_plan(subscription.plan_name)
        if stored is not None:
            return stored
        logger.warning(
            "Subscription for user=%s references unknown plan %s; using %s limits",
            user.user_id, subscription.plan_name, fallback_plan
        )
    elif subscription is not None:
        logger.info(
            "Subscription for user=%s is %s; using %s limits",
            user.user_id, subscription.status.value, fallback_plan
        )

    if not policy.has_plan(fallback_plan):
        raise NotFoundError(f"Fallback plan '{fallback_plan}' is not configured")
    return policy.get_plan(fallback_plan)


def check_quota(
    user: UserContext,
    feature: Union[Feature, str],
    usage_repository: UsageRepository,
    billing_repository: BillingRepository,
    policy: QuotaPolicy = DEFAULT_POLICY,
    fallback_plan: str = BASIC_PLAN,
    now: Optional[datetime] = None
) -> QuotaDecision:
    """Check a user's remaining quota for a feature this month.

    Args:
        user: Caller whose usage is checked
        feature: Feature about to be used
        usage_repository: Usage ledger
        billing_repository: Plans and subscriptions
        policy: Plan limit table
        fallback_plan: Plan applied when no active subscription exists
        now: Wall-clock override (defaults to the current UTC time)

    Returns:
        QuotaDecision with ``allowed``, ``remaining`` and ``limit``
    """
    feature = parse_feature(feature)
    plan = resolve_plan(user, billing_repository, policy, fallback_plan)
    period = month_period(now)

    usage = aggregate(usage_repository, user.user_id, feature, period.start, period.end)
    decision = evaluate_limit(
        feature=feature,
        plan=plan.name,
        period=period,
        usage_count=usage.usage_count,
        limit=plan.limits.get(feature.value)
    )
    logger.debug(
        "Quota check user=%s feature=%s plan=%s used=%d limit=%s allowed=%s",
        user.user_id, feature.value, plan.name, decision.usage_count,
        decision.limit, decision.allowed
    )
    return decision


def enforce_quota(
    user: UserContext,
    feature: Union[Feature, str],
    usage_repository: UsageRepository,
    billing_repository: BillingRepository,
    policy: QuotaPolicy = DEFAULT_POLICY,
    fallback_plan: str = BASIC_PLAN,
    mode: QuotaMode = QuotaMode.ENFORCE,
    now: Optional[datetime] = None
) -> QuotaDecision:
    """Gate a call on the user's quota.

    Returns:
        The decision when the call may proceed

    Raises:
        QuotaExceededError: If the quota is exhausted and mode is ENFORCE
    """
    decision = check_quota(
        user, feature, usage_repository, billing_repository,
        policy=policy, fallback_plan=fallback_plan, now=now
    )
    if decision.allowed:
        return decision

    message = (
        f"Monthly limit of {decision.limit} reached for {decision.feature.value} "
        f"on the {decision.plan} plan"
    )
    if mode == QuotaMode.ADVISORY:
        logger.warning("%s (user=%s); advisory mode, allowing call", message, user.user_id)
        return decision
    raise QuotaExceededError(message, decision)
