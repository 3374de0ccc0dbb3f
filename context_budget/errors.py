"""
Context Budget - Core Error Types

Defines the exception hierarchy for the context budget core.
All exceptions inherit from ContextBudgetError for consistent error handling.

Over-limit results are NOT errors: when trimming cannot reach the budget the
optimizers return a best-effort result flagged with warnings.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """
    Standard error codes for tool responses.

    Used for structured error handling and client-side error recovery.
    """

    # Input validation errors
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_PARAMETER = "MISSING_PARAMETER"
    INVALID_PARAMETER_VALUE = "INVALID_PARAMETER_VALUE"

    # Configuration errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    UNKNOWN_MODEL = "UNKNOWN_MODEL"

    # Feature availability errors
    FEATURE_DISABLED = "FEATURE_DISABLED"
    OPTIMIZATION_DISABLED = "OPTIMIZATION_DISABLED"
    ACCOUNTING_DISABLED = "ACCOUNTING_DISABLED"

    # Token counting errors
    TOKEN_COUNTING_FAILED = "TOKEN_COUNTING_FAILED"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ContextBudgetError(Exception):
    """Base exception for all context budget errors."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "error_code": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ContextBudgetError):
    """Raised when configuration or per-call options are invalid."""

    error_code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, status_code=400)


class UnknownModelError(ConfigurationError):
    """Raised when a model identifier cannot be resolved to a known model."""

    error_code = ErrorCode.UNKNOWN_MODEL

    def __init__(self, model_id: str, details: dict[str, Any] | None = None):
        message = f"Unknown model: {model_id}"
        super().__init__(message, {"model": model_id, **(details or {})})
        self.model_id = model_id


class ValidationError(ContextBudgetError):
    """Raised when input validation fails."""

    error_code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details, status_code=400)


class TokenCountingError(ContextBudgetError):
    """Raised by counters that wrap an external tokenizer failure."""

    error_code = ErrorCode.TOKEN_COUNTING_FAILED


class FeatureDisabledError(ContextBudgetError):
    """Raised when a disabled feature is invoked through the tool surface."""

    error_code = ErrorCode.FEATURE_DISABLED

    def __init__(
        self,
        feature: str,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.FEATURE_DISABLED,
    ):
        super().__init__(f"Feature disabled: {feature}", details, status_code=403)
        self.feature = feature
        self.error_code = error_code


def make_error_response(
    error_code: ErrorCode,
    message: str,
    context: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create a standardized error response for tools.

    Args:
        error_code: Standard error code from ErrorCode enum
        message: Human-readable error message
        context: Optional additional context (parameter names, values, etc.)

    Returns:
        Standardized error response dictionary

    Example:
        >>> make_error_response(
        ...     ErrorCode.UNKNOWN_MODEL,
        ...     "Unknown model: gpt-9",
        ...     {"model": "gpt-9"}
        ... )
        {
            "success": False,
            "error_code": "UNKNOWN_MODEL",
            "message": "Unknown model: gpt-9",
            "details": {"model": "gpt-9"}
        }
    """
    return {
        "success": False,
        "error_code": error_code.value,
        "message": message,
        "details": context or {},
    }


def error_response_from_exception(error: ContextBudgetError) -> dict[str, Any]:
    """Build a tool error response from a ContextBudgetError."""
    return make_error_response(error.error_code, error.message, error.details)


def extract_error_code(error: Exception) -> ErrorCode:
    """
    Extract appropriate ErrorCode from exception type.

    Args:
        error: Exception instance

    Returns:
        Corresponding ErrorCode enum value
    """
    if isinstance(error, ContextBudgetError):
        return error.error_code
    if isinstance(error, ValueError | TypeError):
        return ErrorCode.INVALID_PARAMETER_VALUE
    return ErrorCode.UNKNOWN_ERROR
