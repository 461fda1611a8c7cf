"""
SDK for AI Quota Guard.

Provides programmatic access to metered AI calls.
"""

from .openai_client import DEGRADED_RESPONSE, MeteredOpenAI

__all__ = ["MeteredOpenAI", "DEGRADED_RESPONSE"]
