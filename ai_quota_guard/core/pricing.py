"""
Pricing calculations and rate management.

Handles cost computations for the AI models the product calls.
"""

from dataclasses import dataclass
from typing import Dict
from decimal import Decimal, ROUND_UP

from .token_counter import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1k: Decimal  # USD per 1K input tokens
    output_cost_per_1k: Decimal  # USD per 1K output tokens


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def supports(self, model: str) -> bool:
        return model in self.prices

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            ValueError: If model is not supported
        """
        if model not in self.prices:
            raise ValueError(f"Unsupported model: {model}")
        return self.prices[model]


# Fixed pricing table - no dynamic fetching
PRICING_TABLE = PricingTable({
    "gpt-4": ModelPricing(
        input_cost_per_1k=Decimal("0.03"),
        output_cost_per_1k=Decimal("0.06")
    ),
    "gpt-4o": ModelPricing(
        input_cost_per_1k=Decimal("0.0025"),
        output_cost_per_1k=Decimal("0.01")
    ),
    "gpt-4o-mini": ModelPricing(
        input_cost_per_1k=Decimal("0.00015"),
        output_cost_per_1k=Decimal("0.0006")
    ),
    "gpt-3.5-turbo": ModelPricing(
        input_cost_per_1k=Decimal("0.0015"),
        output_cost_per_1k=Decimal("0.002")
    ),
})

# Ledger stores cost as numeric(10, 6)
COST_QUANTUM = Decimal("0.000001")


def calculate_cost(model: str, usage: TokenUsage) -> float:
    """Calculate total cost for model usage with conservative rounding.

    Args:
        model: Model identifier
        usage: Token usage data

    Returns:
        Total cost in USD rounded UP to 6 decimal places

    Raises:
        ValueError: If model is not supported
    """
    pricing = PRICING_TABLE.get_pricing(model)

    input_cost = (Decimal(usage.input_tokens) / Decimal("1000")) * pricing.input_cost_per_1k
    output_cost = (Decimal(usage.output_tokens) / Decimal("1000")) * pricing.output_cost_per_1k

    # Always round UP so the ledger never under-reports spend
    total_cost = input_cost + output_cost
    return float(total_cost.quantize(COST_QUANTUM, rounding=ROUND_UP))
