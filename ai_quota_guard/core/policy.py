"""
Plan quota policy.

Maps a subscription plan to per-feature monthly limits. A limit of None
means unlimited; a feature missing from a plan's limits is also unlimited.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from .errors import NotFoundError
from .ledger import parse_feature
from ai_quota_guard.storage.models import Feature, SubscriptionPlan

BASIC_PLAN = "basic"
PRO_PLAN = "pro"

DEFAULT_PLANS = (
    SubscriptionPlan(
        name=BASIC_PLAN,
        display_name="Basic",
        price=0.0,
        billing_cycle="monthly",
        limits={
            Feature.CHAT.value: 25,
            Feature.DOCUMENT_QA.value: 25,
            Feature.DOCUMENT_ANALYSIS.value: 50,
            Feature.MEETING_SUMMARY.value: 25,
            Feature.WORKFLOW.value: 25,
        }
    ),
    SubscriptionPlan(
        name=PRO_PLAN,
        display_name="Pro",
        price=10.0,
        billing_cycle="monthly",
        limits={feature.value: None for feature in Feature}
    ),
)


@dataclass(frozen=True)
class QuotaPolicy:
    """Static lookup table of plan limits."""
    plans: Dict[str, SubscriptionPlan]

    @classmethod
    def from_plans(cls, plans: Iterable[SubscriptionPlan]) -> "QuotaPolicy":
        return cls({plan.name: plan for plan in plans})

    def has_plan(self, plan: str) -> bool:
        return plan in self.plans

    def get_plan(self, plan: str) -> SubscriptionPlan:
        """Look up a plan by name.

        Raises:
            NotFoundError: If the plan is not in the table
        """
        if plan not in self.plans:
            raise NotFoundError(f"Unknown plan: {plan}")
        return self.plans[plan]

    def limit_for(self, plan: str, feature: Union[Feature, str]) -> Optional[int]:
        """Monthly limit for ``feature`` on ``plan`` (None means unlimited)."""
        feature = parse_feature(feature)
        return self.get_plan(plan).limits.get(feature.value)


DEFAULT_POLICY = QuotaPolicy.from_plans(DEFAULT_PLANS)
