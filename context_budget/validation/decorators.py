"""
Context Budget - Validation Decorators

Applies Pydantic validation to tool functions.

- validate_input decorator for automatic input validation
- Structured error responses with ErrorCode
- Integration with observability for validation failures
"""

import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from ..errors import ErrorCode, make_error_response
from ..observability.monitoring import get_observability

logger = logging.getLogger(__name__)


def _validation_failure(func_name: str, error: ValidationError, kwargs: dict[str, Any]) -> dict[str, Any]:
    validation_errors = [
        {
            "field": " -> ".join(str(loc) for loc in item["loc"]),
            "message": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]

    logger.warning(
        f"Input validation failed for {func_name}",
        extra={
            "function": func_name,
            "validation_errors": validation_errors,
            "input_keys": sorted(kwargs),
        },
    )
    get_observability().increment(
        "validation.failed",
        tags={"function": func_name, "error_count": str(len(validation_errors))},
    )

    return make_error_response(
        error_code=ErrorCode.INVALID_INPUT,
        message="Input validation failed",
        context={"validation_errors": validation_errors, "function": func_name},
    )


def _unexpected_failure(func_name: str, error: Exception) -> dict[str, Any]:
    logger.error(
        f"Unexpected error in {func_name}: {error}",
        extra={"function": func_name, "error": str(error), "error_type": type(error).__name__},
        exc_info=True,
    )
    get_observability().increment(
        "validation.error",
        tags={"function": func_name, "error_type": type(error).__name__},
    )
    return make_error_response(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=f"Internal error: {error}",
        context={"function": func_name},
    )


def validate_input(schema: type[BaseModel]) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator to validate tool inputs using a Pydantic schema.

    The wrapped function receives the validated fields as keyword arguments
    (nested models are passed as plain dicts).

    Args:
        schema: Pydantic model class for input validation

    Returns:
        Decorated function with automatic validation

    Example:
        >>> @validate_input(CountTokensInput)
        ... async def count_tokens(content: str, model: str | None = None, **kwargs):
        ...     pass

    Error Response:
        {
            "success": False,
            "error_code": "INVALID_INPUT",
            "message": "Input validation failed",
            "details": {
                "validation_errors": [
                    {
                        "field": "content",
                        "message": "String should have at least 1 character",
                        "type": "string_too_short"
                    }
                ],
                "function": "count_tokens"
            }
        }
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                validated = schema(**kwargs)
            except ValidationError as e:
                return _validation_failure(func.__name__, e, kwargs)

            try:
                return await func(*args, **validated.model_dump(exclude_unset=False))
            except Exception as e:
                return _unexpected_failure(func.__name__, e)

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                validated = schema(**kwargs)
            except ValidationError as e:
                return _validation_failure(func.__name__, e, kwargs)

            try:
                return func(*args, **validated.model_dump(exclude_unset=False))
            except Exception as e:
                return _unexpected_failure(func.__name__, e)

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
