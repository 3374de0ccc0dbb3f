"""
Usage Accounting Configuration

Typed configuration for usage recording, retention and the per-model rate table.
"""

from pydantic import BaseModel, ConfigDict, Field


class ModelRate(BaseModel):
    """USD price per 1K tokens for one model."""

    input_price_per_1k: float = Field(..., ge=0.0, description="USD per 1K prompt tokens")
    output_price_per_1k: float = Field(..., ge=0.0, description="USD per 1K completion tokens")
    provider: str = Field(default="custom", description="Model provider")


class AccountingConfig(BaseModel):
    """Configuration for the usage & savings accountant."""

    enabled: bool = Field(default=True, description="Record usage for optimized prompts")
    retention_days: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Records older than this are removed by clear_old_records()",
    )
    rate_overrides: dict[str, ModelRate] = Field(
        default_factory=dict,
        description="Per-model rates replacing or extending the built-in rate table",
    )

    model_config = ConfigDict(validate_assignment=True)
