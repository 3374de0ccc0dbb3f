"""
Context Budget — Configuration Loader

Loads and validates configuration from environment variables and .env files.
Provides a singleton configuration instance for the runtime.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import ContextBudgetConfig

logger = logging.getLogger(__name__)

_config_instance: ContextBudgetConfig | None = None


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


def _env_list(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


def _build_config_dict() -> dict[str, Any]:
    """Read every supported environment variable into a nested dict."""
    return {
        "environment": os.getenv("ENVIRONMENT", "development"),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "token_cache_size": int(os.getenv("TOKEN_CACHE_SIZE", "4096")),
        "token_management": {
            "enabled": _env_bool("TOKEN_MANAGEMENT_ENABLED", "true"),
            "enable_logging": _env_bool("TOKEN_MANAGEMENT_LOGGING", "true"),
            "default_model": os.getenv("DEFAULT_MODEL", "gpt-4o"),
            "reserved_completion_tokens": _env_optional_int("RESERVED_COMPLETION_TOKENS"),
            "safety_buffer_percentage": float(os.getenv("SAFETY_BUFFER_PERCENTAGE", "10")),
            "warning_threshold_percentage": float(os.getenv("WARNING_THRESHOLD_PERCENTAGE", "80")),
            "default_retrieval_score": float(os.getenv("DEFAULT_RETRIEVAL_SCORE", "0.7")),
            "system_prompt_priority": int(os.getenv("SYSTEM_PROMPT_PRIORITY", "10")),
            "user_message_priority": int(os.getenv("USER_MESSAGE_PRIORITY", "10")),
            "retrieval_context_priority": int(os.getenv("RETRIEVAL_CONTEXT_PRIORITY", "6")),
            "conversation_history_priority": int(os.getenv("CONVERSATION_HISTORY_PRIORITY", "4")),
            "min_retrieval_items": int(os.getenv("MIN_RETRIEVAL_ITEMS", "3")),
            "min_history_turns": int(os.getenv("MIN_HISTORY_TURNS", "2")),
            "retrieval": {
                "max_tokens": int(os.getenv("RETRIEVAL_MAX_TOKENS", "4000")),
                "min_relevance_score": float(os.getenv("RETRIEVAL_MIN_RELEVANCE_SCORE", "0.3")),
                "min_results": int(os.getenv("RETRIEVAL_MIN_RESULTS", "3")),
                "max_results": int(os.getenv("RETRIEVAL_MAX_RESULTS", "10")),
                "max_tokens_per_result": int(os.getenv("RETRIEVAL_MAX_TOKENS_PER_RESULT", "1000")),
                "trim_large_results": _env_bool("RETRIEVAL_TRIM_LARGE_RESULTS", "true"),
                "prefer_diverse_sources": _env_bool("RETRIEVAL_PREFER_DIVERSE_SOURCES", "false"),
            },
            "history": {
                "max_messages": int(os.getenv("HISTORY_MAX_MESSAGES", "20")),
                "max_tokens": int(os.getenv("HISTORY_MAX_TOKENS", "5000")),
                "min_messages": int(os.getenv("HISTORY_MIN_MESSAGES", "3")),
                "strategy": os.getenv("HISTORY_STRATEGY", "recent_messages"),
                "compressed_response_max_length": int(os.getenv("HISTORY_COMPRESSED_RESPONSE_MAX_LENGTH", "200")),
                "summarization_threshold": int(os.getenv("HISTORY_SUMMARIZATION_THRESHOLD", "15")),
                "summarization_keep_recent": int(os.getenv("HISTORY_SUMMARIZATION_KEEP_RECENT", "5")),
                "current_topics": _env_list("HISTORY_CURRENT_TOPICS"),
            },
        },
        "accounting": {
            "enabled": _env_bool("ACCOUNTING_ENABLED", "true"),
            "retention_days": int(os.getenv("ACCOUNTING_RETENTION_DAYS", "30")),
            # {"model": {"input_price_per_1k": 0.001, "output_price_per_1k": 0.002}}
            "rate_overrides": json.loads(os.getenv("MODEL_RATES_JSON", "{}")),
        },
        "observability": {
            "enable_metrics": _env_bool("ENABLE_METRICS", "true"),
            "enable_tracing": _env_bool("ENABLE_TRACING", "false"),
            "log_format": os.getenv("LOG_FORMAT", "json"),
            "histogram_max_samples": int(os.getenv("HISTOGRAM_MAX_SAMPLES", "1000")),
        },
    }


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> ContextBudgetConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated ContextBudgetConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    env_path = Path(env_file) if env_file else Path.cwd() / ".env"

    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        try:
            load_dotenv(env_path, override=True)
        except OSError as e:
            logger.error(
                f"Failed to load .env file from {env_path}: {e}",
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    try:
        config_dict = _build_config_dict()
    except ValueError as e:
        # Malformed numbers and MODEL_RATES_JSON both land here
        logger.error(f"Invalid environment value: {e}", exc_info=True)
        raise ConfigurationError(
            f"Invalid environment value: {e}",
            details={"error": str(e)},
        ) from e

    try:
        _config_instance = ContextBudgetConfig(**config_dict)
    except ValidationError as e:
        logger.error(
            f"Configuration validation failed: {e}",
            extra={"validation_errors": e.errors(), "config_dict_keys": list(config_dict.keys())},
            exc_info=True,
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors(include_url=False, include_context=False)},
        ) from e

    logger.info(
        f"Configuration loaded successfully (environment: {_config_instance.environment})",
        extra={
            "environment": _config_instance.environment,
            "default_model": _config_instance.token_management.default_model,
        },
    )
    return _config_instance


def get_config() -> ContextBudgetConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current ContextBudgetConfig instance
    """
    if _config_instance is None:
        return load_config()
    return _config_instance


def reload_config(env_file: str | None = None) -> ContextBudgetConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded ContextBudgetConfig instance
    """
    return load_config(env_file=env_file, reload=True)
