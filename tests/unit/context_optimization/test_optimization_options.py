"""
Unit Tests for Optimization Options

Tests the per-call option objects and the TokenManagementConfig that
builds them.
"""

import pytest
from pydantic import ValidationError

from context_budget.context_optimization import (
    HistoryOptimizationOptions,
    PromptCategory,
    PromptOptimizationOptions,
    RetrievalOptimizationOptions,
    TokenManagementConfig,
)
from context_budget.errors import ConfigurationError, UnknownModelError


class TestPromptOptimizationOptions:
    """Tests for PromptOptimizationOptions."""

    def test_defaults(self):
        options = PromptOptimizationOptions()

        assert options.safety_buffer_percentage == 10.0
        assert options.priority_of(PromptCategory.SYSTEM_PROMPT) == 10
        assert options.priority_of(PromptCategory.CONVERSATION_HISTORY) == 4
        options.check()

    def test_effective_window_applies_buffer(self):
        options = PromptOptimizationOptions(max_context_window=10000, reserved_completion_tokens=1000)
        assert options.effective_context_window == 9000

    def test_effective_window_capped_by_target(self):
        options = PromptOptimizationOptions(
            max_context_window=10000,
            reserved_completion_tokens=1000,
            target_token_count=5000,
        )
        assert options.effective_context_window == 6000

    def test_for_model_uses_catalog(self):
        options = PromptOptimizationOptions.for_model("gpt-4", safety_buffer_percentage=0.0)

        assert options.max_context_window == 8192
        assert options.reserved_completion_tokens == 4096
        assert options.effective_context_window == 8192

    def test_for_unknown_model(self):
        with pytest.raises(UnknownModelError):
            PromptOptimizationOptions.for_model("mystery-model")

    def test_min_history_over_max_messages(self):
        options = PromptOptimizationOptions(
            min_history_turns=5,
            history=HistoryOptimizationOptions(max_messages=4, min_messages=2),
        )

        with pytest.raises(ConfigurationError, match="min_history_turns"):
            options.check()

    def test_nested_options_checked(self):
        options = PromptOptimizationOptions(
            min_retrieval_items=0,
            retrieval=RetrievalOptimizationOptions(min_results=5, max_results=2),
        )

        with pytest.raises(ConfigurationError, match="min_results"):
            options.check()

    def test_field_constraints(self):
        with pytest.raises(ValidationError):
            PromptOptimizationOptions(safety_buffer_percentage=100.0)
        with pytest.raises(ValidationError):
            PromptOptimizationOptions(max_context_window=0)

    def test_assignment_validated(self):
        options = RetrievalOptimizationOptions()

        with pytest.raises(ValidationError):
            options.max_results = 0


class TestTokenManagementConfig:
    """Tests for building per-call options from the service defaults."""

    def test_prompt_options_for_model(self):
        options = TokenManagementConfig().prompt_options("gpt-4o")

        assert options.model_name == "gpt-4o"
        assert options.max_context_window == 128000
        assert options.reserved_completion_tokens == 16384
        assert options.retrieval.model_name == "gpt-4o"
        assert options.history.model_name == "gpt-4o"

    def test_default_model_used(self):
        options = TokenManagementConfig(default_model="gpt-4").prompt_options()
        assert options.model_name == "gpt-4"

    def test_reservation_override(self):
        config = TokenManagementConfig(reserved_completion_tokens=1000, safety_buffer_percentage=5.0)
        options = config.prompt_options("gpt-4")

        assert options.reserved_completion_tokens == 1000
        assert options.safety_buffer_percentage == 5.0

    def test_priorities_carried(self):
        config = TokenManagementConfig(retrieval_context_priority=3, conversation_history_priority=7)
        options = config.prompt_options()

        assert options.priority_of(PromptCategory.RETRIEVAL_CONTEXT) == 3
        assert options.priority_of(PromptCategory.CONVERSATION_HISTORY) == 7

    def test_config_retrieval_not_mutated(self):
        config = TokenManagementConfig()
        config.prompt_options("gpt-4")

        assert config.retrieval.model_name == "gpt-4o"

    def test_unknown_model(self):
        with pytest.raises(UnknownModelError):
            TokenManagementConfig().prompt_options("mystery-model")
