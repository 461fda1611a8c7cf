# ai_quota_guard/demo/seed_demo_data.py

from datetime import datetime, timedelta
from typing import Optional

from ai_quota_guard.core.context import UserContext
from ai_quota_guard.core.ledger import UsageEventInput, record_usage_batch
from ai_quota_guard.core.periods import utc_now
from ai_quota_guard.core.reporting import add_suggestion
from ai_quota_guard.core.subscriptions import seed_plans
from ai_quota_guard.storage.billing import BillingRepository
from ai_quota_guard.storage.db import DEFAULT_DB_PATH
from ai_quota_guard.storage.models import Feature
from ai_quota_guard.storage.repository import initialize_schema
from ai_quota_guard.storage.suggestions import SuggestionRepository


def seed_demo_data(
    user_id: str = "demo-user",
    db_path: str = DEFAULT_DB_PATH,
    now: Optional[datetime] = None
) -> int:
    """Populate a database with plans, recent usage and one suggestion.

    Events are spread over the last hour and a half before ``now`` and are
    clamped to the start of the current month, so they all count toward the
    current billing period.

    The user is left without a subscription, so Basic limits apply.

    Returns:
        Number of usage events written
    """
    now = now or utc_now()
    user = UserContext(user_id)

    initialize_schema(db_path)
    seed_plans(BillingRepository(db_path))

    month_start = datetime(now.year, now.month, 1)

    def minutes_ago(minutes: int) -> datetime:
        # Never before the current billing period, never after now
        return max(month_start, now - timedelta(minutes=minutes))

    events = []
    for i in range(40):
        events.append(UsageEventInput(
            feature=Feature.DOCUMENT_ANALYSIS,
            model="gpt-4o-mini",
            input_tokens=1200 + i * 10,
            output_tokens=300,
            response_time_ms=850 + i,
            timestamp=minutes_ago(100 - i)
        ))
    for i in range(12):
        events.append(UsageEventInput(
            feature=Feature.MEETING_SUMMARY,
            model="gpt-4",
            input_tokens=4000,
            output_tokens=1000,
            response_time_ms=3200,
            success=i != 0,
            error_message="upstream timeout" if i == 0 else None,
            timestamp=minutes_ago(12 - i)
        ))
    ids = record_usage_batch(user, events, db_path=db_path)

    add_suggestion(
        user,
        SuggestionRepository(db_path),
        category="cost",
        title="Use gpt-4o-mini for meeting summaries",
        description="Meeting summaries run on gpt-4; a smaller model covers most transcripts.",
        impact="high",
        estimated_savings=12.5,
        now=now
    )
    return len(ids)
