"""
Integration Tests for the Budgeting Pipeline

Configuration from the environment drives the manager, the allocator trims a
composite prompt, and the accountant's aggregates reflect what was saved.
"""

import pytest

from context_budget.config import get_config
from context_budget.manager import TokenBudgetManager
from context_budget.tools import TokenBudgetTools
from context_budget.usage_accounting import GroupBy, get_usage_accountant

pytestmark = pytest.mark.integration


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{index}" for index in range(count))


@pytest.fixture
def configured_env(monkeypatch):
    monkeypatch.setenv("DEFAULT_MODEL", "gpt-4")
    monkeypatch.setenv("RESERVED_COMPLETION_TOKENS", "1000")
    monkeypatch.setenv("SAFETY_BUFFER_PERCENTAGE", "0")


@pytest.fixture
def manager(configured_env, word_counter):
    config = get_config()
    return TokenBudgetManager(config=config.token_management, counter=word_counter, accountant=get_usage_accountant())


class TestPromptToAccounting:
    """A pruned prompt is recorded, priced and aggregated."""

    def test_savings_flow_through(self, manager, make_turns):
        result = manager.optimize_prompt(
            _words(100),
            _words(10),
            history_turns=make_turns(20, tokens=400),
            agent_id="planner",
            conversation_id="conv-1",
            completion_tokens=500,
        )
        manager.optimize_prompt("system", "question", agent_id="researcher")

        assert result.tokens_saved == 1200

        accountant = get_usage_accountant()
        (planner,) = accountant.get_records(agent_id="planner")
        assert planner.conversation_id == "conv-1"
        assert planner.optimized_prompt_tokens == 6910
        assert planner.estimated_cost == pytest.approx(6910 * 0.03 / 1000 + 500 * 0.06 / 1000)
        assert planner.cost_saved == pytest.approx(1200 * 0.03 / 1000)
        assert planner.history_turns_before == 20
        assert planner.history_turns_after == 17

        metrics = accountant.aggregate(group_by=GroupBy.AGENT)
        assert metrics.total_prompts_processed == 2
        assert metrics.prompts_optimized == 1
        assert metrics.total_tokens_saved == 1200
        assert metrics.agent_stats["researcher"].tokens_saved == 0

    def test_repeated_aggregation_stable(self, manager, make_turns):
        for _ in range(3):
            manager.optimize_prompt(_words(100), _words(10), history_turns=make_turns(20, tokens=400), agent_id="a")

        accountant = get_usage_accountant()
        first = accountant.aggregate(group_by=GroupBy.DAY)
        second = accountant.aggregate(group_by=GroupBy.DAY)

        assert first.to_dict() == second.to_dict()
        (day,) = first.daily_usage.values()
        assert day.operation_count == 3
        assert day.total_tokens_saved == 3600


class TestConfigWiring:
    """Environment settings reach the tool surface."""

    def test_accounting_disabled_from_env(self, monkeypatch):
        monkeypatch.setenv("ACCOUNTING_ENABLED", "false")

        tools = TokenBudgetTools()

        assert tools.check_status()["accounting_enabled"] is False
        assert tools.get_usage_summary()["error_code"] == "ACCOUNTING_DISABLED"

    def test_disabled_management_is_passthrough(self, monkeypatch, configured_env, word_counter, make_turns):
        monkeypatch.setenv("TOKEN_MANAGEMENT_ENABLED", "false")
        manager = TokenBudgetManager(config=get_config().token_management, counter=word_counter)
        turns = make_turns(20, tokens=400)

        result = manager.optimize_prompt(_words(100), _words(10), history_turns=turns)

        assert result.was_optimized is False
        assert result.conversation_history == turns
        assert result.optimized_estimate.exceeds_limit is True
