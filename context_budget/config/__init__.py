"""
Context Budget — Configuration Module

Provides typed configuration loading and validation.
"""

from .loader import get_config, load_config, reload_config
from .schemas import (
    AccountingConfig,
    ContextBudgetConfig,
    Environment,
    LogFormat,
    LogLevel,
    ObservabilityConfig,
    TokenManagementConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "get_config",
    "reload_config",
    # Main config
    "ContextBudgetConfig",
    # Enums
    "Environment",
    "LogFormat",
    "LogLevel",
    # Config sections
    "AccountingConfig",
    "ObservabilityConfig",
    "TokenManagementConfig",
]
