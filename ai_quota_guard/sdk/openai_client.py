"""
Metered OpenAI client wrapper.

Gates chat completions on the caller's quota and records one usage event
per call, successful or not.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from ..config.loader import AppConfig, default_config
from ..core.context import UserContext
from ..core.errors import ExternalServiceError
from ..core.ledger import UsageEventInput, parse_feature, record_usage
from ..core.quota import enforce_quota
from ..storage.billing import BillingRepository
from ..storage.repository import get_repository

logger = logging.getLogger(__name__)

DEGRADED_RESPONSE = "The AI service is temporarily unavailable. Please try again later."


class MeteredOpenAI:
    """OpenAI client wrapper that enforces quotas and records usage events.

    Every provider call produces exactly one ledger row. Provider failures
    are recorded with ``success=False`` and surfaced as ExternalServiceError;
    database failures propagate unchanged so no usage goes unrecorded
    silently.
    """

    def __init__(
        self,
        user: UserContext,
        feature: str,
        model: str,
        db_path: Optional[str] = None,
        config: Optional[AppConfig] = None
    ):
        """Initialize metered OpenAI client.

        Args:
            user: Authenticated caller the usage is billed to
            feature: Feature identifier for tracking (required)
            model: OpenAI model name (required)
            db_path: Database file path (defaults to the configured path)
            config: Application configuration (defaults to built-in)

        Raises:
            ValueError: If model is missing/empty or feature is unknown
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not feature:
            raise ValueError("feature is required and cannot be empty")

        self.user = user
        self.feature = parse_feature(feature)
        self.model = model
        self.config = config or default_config()
        self.db_path = db_path or self.config.database_path
        self.usage_repository = get_repository(self.db_path)
        self.billing_repository = BillingRepository(self.db_path)
        self.client = OpenAI()

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Any:
        """Create chat completion with quota gate and usage recording.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response

        Raises:
            ValueError: If messages is empty or the response lacks usage
            QuotaExceededError: If the quota is exhausted in enforce mode
            ExternalServiceError: If the provider call fails
            Database errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        enforce_quota(
            self.user,
            self.feature,
            self.usage_repository,
            self.billing_repository,
            policy=self.config.policy,
            fallback_plan=self.config.fallback_plan,
            mode=self.config.quota_mode
        )

        started = time.monotonic()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except OpenAIError as e:
            elapsed_ms = _elapsed_ms(started)
            logger.error("OpenAI call failed for feature=%s: %s", self.feature.value, e)
            self._record(
                input_tokens=0,
                output_tokens=0,
                response_time_ms=elapsed_ms,
                success=False,
                error_message=str(e)
            )
            raise ExternalServiceError(f"AI provider request failed: {e}") from e

        elapsed_ms = _elapsed_ms(started)

        usage = response.usage
        if not usage:
            message = "OpenAI response missing usage information"
            logger.error("%s for feature=%s request=%s", message, self.feature.value, response.id)
            self._record(
                input_tokens=0,
                output_tokens=0,
                response_time_ms=elapsed_ms,
                success=False,
                error_message=message,
                request_id=response.id
            )
            raise ValueError(message)

        self._record(
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            response_time_ms=elapsed_ms,
            request_id=response.id
        )

        # Return original OpenAI response unchanged
        return response

    def ask(self, prompt: str, system: Optional[str] = None, **kwargs: Any) -> str:
        """Send a single prompt and return the reply text.

        Provider failures degrade to a generic message instead of raising.
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.chat(messages, **kwargs)
        except ExternalServiceError:
            return DEGRADED_RESPONSE
        return response.choices[0].message.content or ""

    def _record(self, **fields: Any) -> int:
        return record_usage(
            self.user,
            UsageEventInput(feature=self.feature, model=self.model, **fields),
            db_path=self.db_path
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
