"""
Pricing calculations and rate management.

Rates are per 1K tokens and injectable; the default table only covers a few
common chat models.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional

from .token_counter import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_1k: Decimal  # Cost per 1K prompt tokens
    output_cost_per_1k: Decimal  # Cost per 1K completion tokens

    def __post_init__(self):
        """Validate rates are not negative."""
        if self.input_cost_per_1k < 0:
            raise ValueError("input_cost_per_1k cannot be negative")
        if self.output_cost_per_1k < 0:
            raise ValueError("output_cost_per_1k cannot be negative")


@dataclass(frozen=True)
class PricingTable:
    """Pricing table keyed by model identifier."""
    prices: Dict[str, ModelPricing]

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

    def find_pricing(self, model: Optional[str]) -> Optional[ModelPricing]:
        """Get pricing for a model, or None when the model is unknown."""
        if model is None:
            return None
        return self.prices.get(model)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Mapping[str, Any]]) -> "PricingTable":
        """Build a table from `{model: {"input": rate, "output": rate}}`.

        Raises:
            ValueError: If an entry is malformed
        """
        prices = {}
        for model, rates in data.items():
            if not isinstance(rates, Mapping):
                raise ValueError(f"Pricing for '{model}' must be a dictionary")
            unknown = set(rates.keys()) - {"input", "output"}
            if unknown:
                raise ValueError(f"Unknown pricing keys for '{model}': {unknown}")
            if "input" not in rates or "output" not in rates:
                raise ValueError(f"Pricing for '{model}' needs both 'input' and 'output'")
            prices[str(model)] = ModelPricing(
                input_cost_per_1k=_to_decimal(rates["input"], model),
                output_cost_per_1k=_to_decimal(rates["output"], model)
            )
        return cls(prices)


def _to_decimal(value: Any, model: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"Pricing rate for '{model}' must be a number")
    # str() keeps 0.15 as 0.15 instead of its binary float expansion
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Pricing rate for '{model}' must be a number") from e


DEFAULT_PRICING_TABLE = PricingTable({
    "gpt-4o-mini": ModelPricing(
        input_cost_per_1k=Decimal("0.150"),
        output_cost_per_1k=Decimal("0.600")
    ),
    "gpt-4o": ModelPricing(
        input_cost_per_1k=Decimal("2.50"),
        output_cost_per_1k=Decimal("5.00")
    ),
    "gpt-4.1-mini": ModelPricing(
        input_cost_per_1k=Decimal("0.150"),
        output_cost_per_1k=Decimal("0.600")
    ),
})


def calculate_cost(
    model: Optional[str],
    usage: Optional[TokenUsage],
    table: PricingTable = DEFAULT_PRICING_TABLE
) -> Optional[float]:
    """Calculate what a call costs at live rates.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Rates to price against

    Returns:
        Cost rounded to 6 decimal places, or None when the usage is missing
        or the model has no pricing
    """
    if usage is None:
        return None
    pricing = table.find_pricing(model)
    if pricing is None:
        return None

    prompt_cost = (Decimal(usage.prompt_tokens) / Decimal("1000")) * pricing.input_cost_per_1k
    completion_cost = (Decimal(usage.completion_tokens) / Decimal("1000")) * pricing.output_cost_per_1k

    total_cost = prompt_cost + completion_cost
    return float(total_cost.quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP))
