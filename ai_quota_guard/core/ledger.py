"""
Usage event store.

Validates feature invocations and appends them to the usage ledger.
There is intentionally no update or delete path: a correction is recorded
as a new event whose metadata references the event it corrects.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .context import UserContext
from .errors import ValidationError
from .periods import utc_now
from .pricing import PRICING_TABLE, calculate_cost
from .token_counter import TokenUsage
from ai_quota_guard.storage.db import DEFAULT_DB_PATH
from ai_quota_guard.storage.models import Feature, UsageEvent
from ai_quota_guard.storage.repository import insert_usage_event, insert_usage_events

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageEventInput:
    """Caller-supplied description of one AI call, before validation."""
    feature: Union[Feature, str]
    model: str
    input_tokens: int
    output_tokens: int
    tokens_used: Optional[int] = None
    cost: Optional[float] = None
    response_time_ms: Optional[int] = None
    success: bool = True
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: Optional[datetime] = None


def parse_feature(value: Union[Feature, str]) -> Feature:
    """Resolve a feature name against the closed feature set.

    Raises:
        ValidationError: If the name is not a known feature
    """
    if isinstance(value, Feature):
        return value
    try:
        return Feature(value)
    except ValueError:
        valid = [f.value for f in Feature]
        raise ValidationError(f"feature must be one of: {valid}", field="feature")


def build_event(user: UserContext, data: UsageEventInput, now: Optional[datetime] = None) -> UsageEvent:
    """Validate input and produce the immutable event to be stored.

    ``tokens_used`` is always ``input_tokens + output_tokens``. A supplied
    total that disagrees is rejected rather than silently stored.

    Raises:
        ValidationError: On missing fields, bad values or an unknown feature
    """
    feature = parse_feature(data.feature)

    if not isinstance(data.model, str) or not data.model.strip():
        raise ValidationError("model is required and cannot be empty", field="model")

    for name in ("input_tokens", "output_tokens"):
        value = getattr(data, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError(f"{name} must be a non-negative integer", field=name)

    usage = TokenUsage(input_tokens=data.input_tokens, output_tokens=data.output_tokens)
    if data.tokens_used is not None and data.tokens_used != usage.total_tokens:
        raise ValidationError(
            f"tokens_used ({data.tokens_used}) must equal input_tokens + output_tokens "
            f"({usage.total_tokens})",
            field="tokens_used"
        )

    if data.cost is None:
        if PRICING_TABLE.supports(data.model):
            cost = calculate_cost(data.model, usage)
        else:
            logger.debug("No pricing for model %s; recording zero cost", data.model)
            cost = 0.0
    else:
        cost = _parse_cost(data.cost)

    if data.response_time_ms is not None:
        value = data.response_time_ms
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise ValidationError("response_time_ms must be a non-negative integer",
                                  field="response_time_ms")

    if not isinstance(data.success, bool):
        raise ValidationError("success must be a boolean", field="success")

    if data.metadata is not None and not isinstance(data.metadata, dict):
        raise ValidationError("metadata must be a JSON object", field="metadata")

    return UsageEvent(
        user_id=user.user_id,
        timestamp=data.timestamp or now or utc_now(),
        feature=feature,
        model=data.model,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        tokens_used=usage.total_tokens,
        cost=cost,
        response_time_ms=data.response_time_ms,
        success=data.success,
        error_message=data.error_message,
        metadata=data.metadata,
        request_id=data.request_id
    )


def record_usage(
    user: UserContext,
    data: UsageEventInput,
    db_path: str = DEFAULT_DB_PATH,
    now: Optional[datetime] = None
) -> int:
    """Append one usage event to the ledger.

    Args:
        user: Owner of the event
        data: Description of the AI call
        db_path: Path to SQLite database file
        now: Timestamp to use when the input carries none

    Returns:
        The id of the new ledger row

    Raises:
        ValidationError: If the input is invalid (nothing is written)
    """
    event = build_event(user, data, now)
    event_id = insert_usage_event(event, db_path)
    logger.info(
        "Recorded usage event %s: user=%s feature=%s model=%s tokens=%d cost=%.6f success=%s",
        event_id, event.user_id, event.feature.value, event.model,
        event.tokens_used, event.cost, event.success
    )
    return event_id


def record_usage_batch(
    user: UserContext,
    items: List[UsageEventInput],
    db_path: str = DEFAULT_DB_PATH,
    now: Optional[datetime] = None
) -> List[int]:
    """Validate every input first, then append all events in one transaction."""
    events = [build_event(user, item, now) for item in items]
    ids = insert_usage_events(events, db_path)
    logger.info("Recorded %d usage events for user=%s", len(ids), user.user_id)
    return ids


def _parse_cost(value: Any) -> float:
    """Accept only finite, non-negative numbers as a cost."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("cost must be a number", field="cost")
    cost = float(value)
    if not math.isfinite(cost):
        raise ValidationError("cost must be a finite number", field="cost")
    if cost < 0:
        raise ValidationError("cost cannot be negative", field="cost")
    return cost
