"""
Context Budget — Configuration Schemas

Typed configuration models using Pydantic for validation and type safety.
All configuration is defined here and validated at startup.

Feature sections are owned by their packages and imported here so there is a
single source of truth for each.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..context_optimization.config import TokenManagementConfig as TokenManagementConfig
from ..errors import ConfigurationError
from ..usage_accounting.config import AccountingConfig as AccountingConfig


class Environment(str, Enum):
    """Runtime environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    TEXT = "text"


class ObservabilityConfig(BaseModel):
    """Observability and monitoring configuration."""

    enable_metrics: bool = Field(default=True, description="Enable in-process metrics collection")
    enable_tracing: bool = Field(default=False, description="Enable span tracing in logs")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Structured JSON or plain text logs")
    histogram_max_samples: int = Field(
        default=1000,
        ge=10,
        description="Samples kept per histogram metric",
    )


class ContextBudgetConfig(BaseModel):
    """Root configuration for the context budget runtime."""

    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    token_cache_size: int = Field(default=4096, ge=0, description="Memoized token counts (0 = disabled)")

    token_management: TokenManagementConfig = Field(default_factory=TokenManagementConfig)
    accounting: AccountingConfig = Field(default_factory=AccountingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @field_validator("token_management")
    @classmethod
    def validate_default_model(cls, v: TokenManagementConfig) -> TokenManagementConfig:
        """The default model must resolve and its derived options must be consistent."""
        try:
            v.prompt_options().check()
        except ConfigurationError as e:
            raise ValueError(e.message) from e
        return v

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)
