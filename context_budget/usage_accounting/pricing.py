"""
Rate Table Module

Per-model token pricing used to turn token counts into cost and savings.
Rates are configuration: the built-in table can be replaced or extended
through AccountingConfig.rate_overrides (MODEL_RATES_JSON).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import UnknownModelError
from .config import ModelRate

logger = logging.getLogger(__name__)


class PricingTier(str, Enum):
    """Pricing tiers for different model capabilities."""

    BUDGET = "budget"
    STANDARD = "standard"
    PREMIUM = "premium"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ModelPricing:
    """Pricing information for a specific model."""

    model_name: str
    provider: str
    input_price_per_1k: float  # USD per 1K tokens
    output_price_per_1k: float  # USD per 1K tokens
    tier: PricingTier = PricingTier.STANDARD
    last_updated: str = "2024-06"

    def calculate_input_cost(self, input_tokens: int) -> float:
        return (input_tokens / 1000) * self.input_price_per_1k

    def calculate_output_cost(self, output_tokens: int) -> float:
        return (output_tokens / 1000) * self.output_price_per_1k

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """
        Calculate total cost for token usage.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens

        Returns:
            Total cost in USD
        """
        return self.calculate_input_cost(input_tokens) + self.calculate_output_cost(output_tokens)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model_name,
            "provider": self.provider,
            "tier": self.tier.value,
            "input_per_1k": self.input_price_per_1k,
            "output_per_1k": self.output_price_per_1k,
            "last_updated": self.last_updated,
        }


DEFAULT_PRICING: tuple[ModelPricing, ...] = (
    # OpenAI
    ModelPricing("gpt-4o", "openai", 0.005, 0.015),
    ModelPricing("gpt-4o-mini", "openai", 0.00015, 0.0006, PricingTier.BUDGET),
    ModelPricing("gpt-4-turbo", "openai", 0.01, 0.03, PricingTier.PREMIUM),
    ModelPricing("gpt-4-32k", "openai", 0.06, 0.12, PricingTier.PREMIUM),
    ModelPricing("gpt-4", "openai", 0.03, 0.06, PricingTier.PREMIUM),
    ModelPricing("gpt-3.5-turbo", "openai", 0.0005, 0.0015, PricingTier.BUDGET),
    # Anthropic
    ModelPricing("claude-3-opus", "anthropic", 0.015, 0.075, PricingTier.PREMIUM),
    ModelPricing("claude-3-sonnet", "anthropic", 0.003, 0.015),
    ModelPricing("claude-3-5-sonnet", "anthropic", 0.003, 0.015),
    ModelPricing("claude-3-haiku", "anthropic", 0.00025, 0.00125, PricingTier.BUDGET),
    ModelPricing("claude-3-5-haiku", "anthropic", 0.0008, 0.004, PricingTier.BUDGET),
    # Google
    ModelPricing("gemini-1.5-pro", "google", 0.00125, 0.005),
    ModelPricing("gemini-1.5-flash", "google", 0.000075, 0.0003, PricingTier.BUDGET),
)


class RateTable:
    """
    Model name to pricing lookup.

    Lookup order: exact name, longest known prefix ("gpt-4o-2024-08-06" ->
    "gpt-4o"), then longest known name contained in the identifier
    ("prod-gpt-4o-eastus" -> "gpt-4o"). Unknown models raise.
    """

    def __init__(
        self,
        pricing: list[ModelPricing] | tuple[ModelPricing, ...] | None = None,
        overrides: dict[str, ModelRate] | None = None,
    ) -> None:
        self._pricing: dict[str, ModelPricing] = {}
        for entry in DEFAULT_PRICING if pricing is None else pricing:
            self._pricing[entry.model_name.lower()] = entry
        for model, rate in (overrides or {}).items():
            self.set_rate(model, rate)

    def set_rate(self, model: str, rate: ModelRate) -> None:
        self._pricing[model.lower()] = ModelPricing(
            model_name=model,
            provider=rate.provider,
            input_price_per_1k=rate.input_price_per_1k,
            output_price_per_1k=rate.output_price_per_1k,
            tier=PricingTier.CUSTOM,
        )
        logger.debug(f"Rate for {model} set to {rate.input_price_per_1k}/{rate.output_price_per_1k} per 1K")

    def get_pricing(self, model: str) -> ModelPricing:
        """
        Get pricing for a model.

        Args:
            model: Model or deployment name

        Returns:
            ModelPricing

        Raises:
            UnknownModelError: If no rate is configured for the model
        """
        name = model.strip().lower()
        if name in self._pricing:
            return self._pricing[name]

        by_length = sorted(self._pricing, key=len, reverse=True)
        for key in by_length:
            if name.startswith(key):
                return self._pricing[key]
        for key in by_length:
            if key in name:
                return self._pricing[key]

        raise UnknownModelError(model, {"reason": "no rate configured", "priced_models": self.list_models()})

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int = 0) -> float:
        return self.get_pricing(model).calculate_cost(input_tokens, output_tokens)

    def list_models(self, tier: PricingTier | None = None) -> list[str]:
        return sorted(
            pricing.model_name for pricing in self._pricing.values() if tier is None or pricing.tier == tier
        )
