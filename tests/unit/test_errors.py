"""
Unit Tests for Error Types and Error Responses
"""

from context_budget.errors import (
    ConfigurationError,
    ContextBudgetError,
    ErrorCode,
    FeatureDisabledError,
    TokenCountingError,
    UnknownModelError,
    ValidationError,
    error_response_from_exception,
    extract_error_code,
    make_error_response,
)


class TestErrorHierarchy:
    """Tests for the exception classes."""

    def test_unknown_model_is_configuration_error(self):
        error = UnknownModelError("gpt-9", {"hint": "check spelling"})

        assert isinstance(error, ConfigurationError)
        assert isinstance(error, ContextBudgetError)
        assert error.model_id == "gpt-9"
        assert error.message == "Unknown model: gpt-9"
        assert error.details == {"model": "gpt-9", "hint": "check spelling"}
        assert error.status_code == 400

    def test_to_dict(self):
        data = ConfigurationError("bad window", {"max_context_window": 0}).to_dict()

        assert data == {
            "error": "ConfigurationError",
            "error_code": "CONFIGURATION_ERROR",
            "message": "bad window",
            "details": {"max_context_window": 0},
        }

    def test_feature_disabled_code_override(self):
        error = FeatureDisabledError("usage accounting", error_code=ErrorCode.ACCOUNTING_DISABLED)

        assert error.error_code == ErrorCode.ACCOUNTING_DISABLED
        assert error.status_code == 403
        assert FeatureDisabledError("x").error_code == ErrorCode.FEATURE_DISABLED

    def test_default_codes(self):
        assert ValidationError("x").error_code == ErrorCode.INVALID_INPUT
        assert TokenCountingError("x").error_code == ErrorCode.TOKEN_COUNTING_FAILED
        assert ContextBudgetError("x").error_code == ErrorCode.INTERNAL_ERROR


class TestErrorResponses:
    """Tests for tool error response helpers."""

    def test_make_error_response(self):
        response = make_error_response(ErrorCode.MISSING_PARAMETER, "content is required", {"parameter": "content"})

        assert response == {
            "success": False,
            "error_code": "MISSING_PARAMETER",
            "message": "content is required",
            "details": {"parameter": "content"},
        }

    def test_empty_context(self):
        assert make_error_response(ErrorCode.UNKNOWN_ERROR, "oops")["details"] == {}

    def test_from_exception(self):
        response = error_response_from_exception(UnknownModelError("gpt-9"))

        assert response["error_code"] == "UNKNOWN_MODEL"
        assert response["details"] == {"model": "gpt-9"}

    def test_extract_error_code(self):
        assert extract_error_code(UnknownModelError("gpt-9")) == ErrorCode.UNKNOWN_MODEL
        assert extract_error_code(ValueError("x")) == ErrorCode.INVALID_PARAMETER_VALUE
        assert extract_error_code(TypeError("x")) == ErrorCode.INVALID_PARAMETER_VALUE
        assert extract_error_code(RuntimeError("x")) == ErrorCode.UNKNOWN_ERROR
