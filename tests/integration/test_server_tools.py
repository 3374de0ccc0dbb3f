"""
Integration Tests for the MCP Server

Calls tools through an in-memory FastMCP client so the registered
signatures, input validation and tool delegation are exercised together.
"""

import pytest
from fastmcp import Client

from context_budget import server
from context_budget.context_optimization import TokenManagementConfig
from context_budget.manager import TokenBudgetManager
from context_budget.observability import ObservabilityAdapter
from context_budget.tools import TokenBudgetTools
from context_budget.usage_accounting import UsageAccountant

pytestmark = pytest.mark.integration


def _words(count: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{index}" for index in range(count))


@pytest.fixture
def server_tools(monkeypatch, word_counter):
    """Install word-counting tools so startup keeps them instead of building tiktoken-backed ones."""
    config = TokenManagementConfig(default_model="gpt-4", reserved_completion_tokens=1000, safety_buffer_percentage=0.0)
    tools = TokenBudgetTools(
        manager=TokenBudgetManager(config=config, counter=word_counter, accountant=UsageAccountant()),
        observability=ObservabilityAdapter(),
    )
    monkeypatch.setattr(server, "_tools", tools)
    return tools


async def _call(name: str, arguments: dict) -> dict:
    async with Client(server.mcp) as client:
        result = await client.call_tool(name, arguments)
    return result.structured_content


class TestServerTools:
    """Tools called over MCP."""

    @pytest.mark.asyncio
    async def test_tools_registered(self, server_tools):
        async with Client(server.mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == {
            "check_status",
            "get_metrics",
            "count_tokens",
            "estimate_tokens",
            "optimize_prompt",
            "optimize_retrieval_context",
            "optimize_conversation_history",
            "get_usage_summary",
            "aggregate_usage",
        }

    @pytest.mark.asyncio
    async def test_count_tokens(self, server_tools):
        result = await _call("count_tokens", {"content": "one two three"})

        assert result["success"] is True
        assert result["token_count"] == 3
        assert result["model"] == "gpt-4"

    @pytest.mark.asyncio
    async def test_invalid_input(self, server_tools):
        result = await _call("count_tokens", {"content": "   "})

        assert result["success"] is False
        assert result["error_code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_unknown_model(self, server_tools):
        result = await _call("estimate_tokens", {"user_message": "hello", "model": "mystery-model"})

        assert result["success"] is False
        assert result["error_code"] == "UNKNOWN_MODEL"

    @pytest.mark.asyncio
    async def test_optimize_prompt_then_usage(self, server_tools):
        turns = [{"role": "user", "content": _words(400, f"t{index}_")} for index in range(20)]

        # One session: shutdown releases the installed tools
        async with Client(server.mcp) as client:
            optimized = await client.call_tool(
                "optimize_prompt",
                {
                    "system_prompt": _words(100),
                    "user_message": _words(10),
                    "history_turns": turns,
                    "agent_id": "planner",
                    "metadata": {"task_type": "planning"},
                },
            )
            usage = await client.call_tool("aggregate_usage", {"group_by": "day"})

        optimized, usage = optimized.structured_content, usage.structured_content
        assert optimized["prompt"]["history_turns_removed"] == 3
        assert usage["metrics"]["total_tokens_saved"] == 1200
        assert usage["metrics"]["daily_usage"][0]["agent_id"] == "planner"

    @pytest.mark.asyncio
    async def test_history_strategy(self, server_tools):
        turns = [{"role": "user", "content": _words(10, f"t{index}_")} for index in range(20)]

        result = await _call("optimize_conversation_history", {"turns": turns, "strategy": "summarization"})

        assert result["history"]["turns_summarized"] == 15


class TestLifecycle:
    """Startup and shutdown hooks."""

    def test_cleanup_releases_tools(self, server_tools):
        server.initialize_server()
        assert server._tools is server_tools

        server.cleanup_server()

        assert server._tools is None
