"""
Unit Tests for TokenBudgetManager

Tests the configured facade: option building, passthrough when disabled,
utilization warnings and usage recording.
"""

import logging

import pytest

from context_budget.context_optimization import PruningStrategy, TokenManagementConfig
from context_budget.errors import UnknownModelError
from context_budget.manager import (
    DISABLED_STRATEGY,
    TokenBudgetManager,
    get_token_budget_manager,
    reset_token_budget_manager,
)
from context_budget.models import RankedItem
from context_budget.usage_accounting import MetadataKey, UsageAccountant, get_usage_accountant


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{index}" for index in range(count))


@pytest.fixture
def config():
    return TokenManagementConfig(default_model="gpt-4", reserved_completion_tokens=1000, safety_buffer_percentage=0.0)


@pytest.fixture
def accountant():
    return UsageAccountant()


@pytest.fixture
def manager(config, word_counter, accountant):
    return TokenBudgetManager(config=config, counter=word_counter, accountant=accountant)


class TestOptimizePrompt:
    """Tests for composite prompt optimization through the manager."""

    def test_configured_options(self, manager):
        options = manager.prompt_options()

        assert options.model_name == "gpt-4"
        assert options.max_context_window == 8192
        assert options.reserved_completion_tokens == 1000
        assert options.effective_context_window == 8192

    def test_history_pruned_and_recorded(self, manager, accountant, make_turns):
        turns = make_turns(20, tokens=400)

        result = manager.optimize_prompt(
            _words(100), _words(10), history_turns=turns, agent_id="planner", task_id="task-7",
            metadata={MetadataKey.TASK_TYPE: "planning"},
        )

        assert result.was_optimized is True
        assert len(result.conversation_history) == 17
        assert result.history_turns_removed == 3
        assert result.optimized_estimate.exceeds_limit is False

        (record,) = accountant.get_records()
        assert record.agent_id == "planner"
        assert record.conversation_id == "planner"
        assert record.task_id == "task-7"
        assert record.model == "gpt-4"
        assert record.tokens_saved == 1200
        assert record.metadata[MetadataKey.TASK_TYPE] == "planning"

    def test_no_recording_without_agent(self, manager, accountant, make_turns):
        manager.optimize_prompt("system", "question", history_turns=make_turns(3))
        assert len(accountant) == 0

    def test_plain_string_passages(self, manager, config):
        result = manager.optimize_prompt("system", "question", retrieval_items=["first passage", "second"])

        assert [item.source for item in result.retrieval_context] == ["Result 1", "Result 2"]
        assert all(item.relevance_score == config.default_retrieval_score for item in result.retrieval_context)

    def test_optimization_logged(self, manager, make_turns, caplog):
        with caplog.at_level(logging.WARNING, logger="context_budget.manager"):
            manager.optimize_prompt(_words(100), _words(10), history_turns=make_turns(20, tokens=400))

        assert "Prompt optimization required" in caplog.text

    def test_high_utilization_warning(self, manager, caplog):
        with caplog.at_level(logging.WARNING, logger="context_budget.manager"):
            result = manager.optimize_prompt(_words(6000), _words(10))

        assert result.was_optimized is False
        assert "High token usage" in caplog.text

    def test_logging_disabled(self, config, word_counter, caplog):
        manager = TokenBudgetManager(config=config.model_copy(update={"enable_logging": False}), counter=word_counter)

        with caplog.at_level(logging.WARNING, logger="context_budget.manager"):
            manager.optimize_prompt(_words(6000), _words(10))

        assert "High token usage" not in caplog.text

    def test_unknown_model(self, manager):
        with pytest.raises(UnknownModelError):
            manager.optimize_prompt("system", "question", model="mystery-model")


class TestDisabledManager:
    """Tests for passthrough behaviour when token management is disabled."""

    @pytest.fixture
    def disabled(self, config, word_counter, accountant):
        return TokenBudgetManager(
            config=config.model_copy(update={"enabled": False}), counter=word_counter, accountant=accountant
        )

    def test_prompt_passthrough(self, disabled, accountant, make_turns):
        turns = make_turns(20, tokens=400)

        result = disabled.optimize_prompt(_words(100), _words(10), history_turns=turns, agent_id="planner")

        assert result.conversation_history == turns
        assert result.optimization_strategy == DISABLED_STRATEGY
        assert result.optimized_estimate.exceeds_limit is True
        assert len(accountant) == 0

    def test_retrieval_passthrough(self, disabled, make_item):
        items = [make_item(2000, score=0.1) for _ in range(5)]

        result = disabled.optimize_retrieval_context(items)

        assert result.items == items
        assert result.total_tokens == 10000
        assert result.optimization_strategy == DISABLED_STRATEGY

    def test_history_passthrough(self, disabled, make_turns):
        turns = make_turns(50)

        result = disabled.optimize_conversation_history(turns)

        assert result.turns == turns
        assert result.turns_removed == 0
        assert result.final_tokens == 500


class TestStandaloneOptimizers:
    """Tests for retrieval and history optimization through the manager."""

    def test_retrieval_uses_configured_options(self, config, word_counter, make_item):
        retrieval = config.retrieval.model_copy(update={"max_tokens": 100, "min_results": 0})
        manager = TokenBudgetManager(config=config.model_copy(update={"retrieval": retrieval}), counter=word_counter)

        result = manager.optimize_retrieval_context([make_item(60, score=0.9), make_item(60, score=0.8)])

        assert len(result.items) == 1
        assert result.items_removed == 1

    def test_retrieval_empty(self, manager):
        result = manager.optimize_retrieval_context([])
        assert result.optimization_strategy == "No results to optimize"

    def test_history_overrides(self, manager, make_turns):
        turns = make_turns(10, tokens=10)

        result = manager.optimize_conversation_history(turns, max_tokens=50)

        assert result.turns == turns[5:]
        assert result.strategy == PruningStrategy.RECENT_MESSAGES

    def test_history_strategy_override(self, manager, make_turns):
        result = manager.optimize_conversation_history(make_turns(20), strategy=PruningStrategy.SUMMARIZATION)

        assert result.turns_summarized == 15
        assert result.turns[0].was_summarized is True

    def test_history_options(self, manager):
        options = manager.history_options(model="gpt-4o", strategy="topic_based", current_topics=["billing"])

        assert options.model_name == "gpt-4o"
        assert options.strategy == PruningStrategy.TOPIC_BASED
        assert options.current_topics == ("billing",)


class TestEstimation:
    """Tests for estimation helpers."""

    def test_estimate_uses_full_window(self, manager):
        estimate = manager.estimate_tokens("a b", "c", [RankedItem(content="d e f")])

        assert estimate.max_context_window == 8192
        assert estimate.reserved_completion_tokens == 1000
        assert estimate.total_input_tokens == 6

    def test_estimate_catalog_reservation(self, word_counter):
        manager = TokenBudgetManager(counter=word_counter)
        assert manager.estimate_tokens("a", "b", model="gpt-4").reserved_completion_tokens == 4096

    def test_count_tokens_default_model(self, manager):
        assert manager.count_tokens("one two three") == 3

    def test_analyze_conversation(self, manager, make_turns):
        health = manager.analyze_conversation(make_turns(4))
        assert health.total_turns == 4


class TestSharedManager:
    """Tests for the module singleton."""

    def test_accountant_attached(self):
        manager = get_token_budget_manager()

        assert manager is get_token_budget_manager()
        assert manager.accountant is get_usage_accountant()

    def test_accounting_disabled(self, monkeypatch):
        monkeypatch.setenv("ACCOUNTING_ENABLED", "false")

        assert get_token_budget_manager().accountant is None

    def test_reset(self):
        first = get_token_budget_manager()
        reset_token_budget_manager()
        assert get_token_budget_manager() is not first
