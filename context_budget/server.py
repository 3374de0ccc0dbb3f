"""
Context Budget — Server

FastMCP server using stdio transport (Model Context Protocol).

Each tool validates its input with a Pydantic schema and delegates to
TokenBudgetTools; all budgeting logic lives outside this module.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastmcp import FastMCP

from .config import load_config
from .context_optimization.config import PruningStrategy
from .manager import get_token_budget_manager, reset_token_budget_manager
from .observability import get_observability, initialize_observability, setup_logging
from .tools import TokenBudgetTools
from .usage_accounting.models import GroupBy
from .validation import validate_input
from .validation.tool_schemas import (
    AggregateUsageInput,
    CheckStatusInput,
    CountTokensInput,
    EstimateTokensInput,
    GetMetricsInput,
    GetUsageSummaryInput,
    OptimizeConversationHistoryInput,
    OptimizePromptInput,
    OptimizeRetrievalContextInput,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def server_lifespan(server: Any) -> Any:
    """Server lifespan manager (startup/shutdown)."""
    initialize_server()
    yield
    cleanup_server()


# Create FastMCP server with lifespan
mcp = FastMCP("Context Budget - Prompt Token Budgeting", lifespan=server_lifespan)

# Global state
_tools: TokenBudgetTools | None = None


def _get_tools() -> TokenBudgetTools:
    global _tools
    if _tools is None:
        _tools = TokenBudgetTools(manager=get_token_budget_manager(), observability=get_observability())
    return _tools


@mcp.tool()
@validate_input(CheckStatusInput)
async def check_status(include_details: bool = False) -> dict[str, Any]:
    """
    Check system health and status.

    Args:
        include_details: Include token cache, accounting and metrics details

    Returns:
        System status information
    """
    return _get_tools().check_status(include_details=include_details)


@mcp.tool()
@validate_input(GetMetricsInput)
async def get_metrics() -> dict[str, Any]:
    """
    Get observability metrics.

    Returns:
        Current metrics snapshot
    """
    return _get_tools().get_metrics()


@mcp.tool()
@validate_input(CountTokensInput)
async def count_tokens(
    content: str,
    model: str | None = None,
    include_breakdown: bool = False,
) -> dict[str, Any]:
    """
    Count tokens in content for the specified model.

    Args:
        content: Content to count tokens for
        model: Model name (e.g., "gpt-4o"); defaults to the configured model
        include_breakdown: Include line, word and code block breakdown

    Returns:
        Token count and optional breakdown
    """
    return _get_tools().count_tokens(content=content, model=model, include_breakdown=include_breakdown)


@mcp.tool()
@validate_input(EstimateTokensInput)
async def estimate_tokens(
    system_prompt: str = "",
    user_message: str = "",
    retrieval_items: list[dict[str, Any]] | None = None,
    history_turns: list[dict[str, Any]] | None = None,
    model: str | None = None,
) -> dict[str, Any]:
    """
    Estimate token usage of a composite prompt against the model's window.

    Args:
        system_prompt: System instructions
        user_message: Current user input
        retrieval_items: Retrieved passages ({"content", "relevance_score", "source"})
        history_turns: Prior turns, oldest first ({"role", "content", ...})
        model: Model name; defaults to the configured model

    Returns:
        Per-category token estimate and utilization
    """
    return _get_tools().estimate_tokens(
        system_prompt=system_prompt,
        user_message=user_message,
        retrieval_items=retrieval_items or [],
        history_turns=history_turns or [],
        model=model,
    )


@mcp.tool()
@validate_input(OptimizePromptInput)
async def optimize_prompt(
    system_prompt: str = "",
    user_message: str = "",
    retrieval_items: list[dict[str, Any]] | None = None,
    history_turns: list[dict[str, Any]] | None = None,
    model: str | None = None,
    agent_id: str | None = None,
    conversation_id: str | None = None,
    task_id: str | None = None,
    completion_tokens: int = 0,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Fit a composite prompt into the model's token budget.

    Retrieval context and conversation history are trimmed in priority
    order; the system prompt and user message are never altered.

    Args:
        system_prompt: System instructions
        user_message: Current user input
        retrieval_items: Retrieved passages
        history_turns: Prior turns, oldest first
        model: Model name; defaults to the configured model
        agent_id: Agent issuing the call (enables usage recording)
        conversation_id: Conversation the call belongs to
        task_id: Optional task identifier
        completion_tokens: Completion tokens to include in the usage record
        metadata: Usage-record metadata (task_type, user_id, ...)

    Returns:
        Optimized prompt with before/after estimates
    """
    return _get_tools().optimize_prompt(
        system_prompt=system_prompt,
        user_message=user_message,
        retrieval_items=retrieval_items or [],
        history_turns=history_turns or [],
        model=model,
        agent_id=agent_id,
        conversation_id=conversation_id,
        task_id=task_id,
        completion_tokens=completion_tokens,
        metadata=metadata,
    )


@mcp.tool()
@validate_input(OptimizeRetrievalContextInput)
async def optimize_retrieval_context(
    items: list[dict[str, Any]],
    model: str | None = None,
) -> dict[str, Any]:
    """
    Select and trim retrieval results by relevance within the token ceiling.

    Args:
        items: Retrieved passages ({"content", "relevance_score", "source"})
        model: Model name; defaults to the configured model

    Returns:
        Admitted items in ranking order with removal statistics
    """
    return _get_tools().optimize_retrieval_context(items=items, model=model)


@mcp.tool()
@validate_input(OptimizeConversationHistoryInput)
async def optimize_conversation_history(
    turns: list[dict[str, Any]],
    model: str | None = None,
    strategy: PruningStrategy | None = None,
    max_tokens: int | None = None,
    current_topics: list[str] | None = None,
    include_health: bool = False,
) -> dict[str, Any]:
    """
    Prune a conversation history with the configured or given strategy.

    Args:
        turns: Conversation turns, oldest first
        model: Model name; defaults to the configured model
        strategy: recent_messages, relevance_scoring, summarization,
            topic_based or compress_assistant_responses
        max_tokens: Token ceiling override
        current_topics: Topics of the current request (topic_based)
        include_health: Include conversation health analysis

    Returns:
        Surviving turns in chronological order with pruning statistics
    """
    return _get_tools().optimize_conversation_history(
        turns=turns,
        model=model,
        strategy=strategy,
        max_tokens=max_tokens,
        current_topics=current_topics,
        include_health=include_health,
    )


@mcp.tool()
@validate_input(GetUsageSummaryInput)
async def get_usage_summary(
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, Any]:
    """
    Get recorded usage: totals, per-agent and per-day breakdowns, savings.

    Args:
        start: Window start (inclusive)
        end: Window end (exclusive)

    Returns:
        Usage summary dictionary
    """
    return _get_tools().get_usage_summary(start=start, end=end)


@mcp.tool()
@validate_input(AggregateUsageInput)
async def aggregate_usage(
    start: datetime | None = None,
    end: datetime | None = None,
    group_by: GroupBy = GroupBy.AGENT,
) -> dict[str, Any]:
    """
    Aggregate recorded usage grouped by agent or by (agent, day).

    Args:
        start: Window start (inclusive)
        end: Window end (exclusive)
        group_by: "agent" or "day"

    Returns:
        Aggregate optimization metrics
    """
    return _get_tools().aggregate_usage(start=start, end=end, group_by=group_by)


def initialize_server() -> None:
    """Initialize server resources on startup."""
    global _tools

    if _tools is not None:
        return

    config = load_config()
    setup_logging(level=config.log_level, json_logs=config.observability.log_format == "json")
    logger.info(f"Configuration loaded: environment={config.environment}")

    obs = initialize_observability(
        enable_metrics=config.observability.enable_metrics,
        enable_tracing=config.observability.enable_tracing,
        histogram_max_samples=config.observability.histogram_max_samples,
    )
    _tools = TokenBudgetTools(manager=get_token_budget_manager(), observability=obs)

    obs.increment("server.startup")
    obs.event(
        "server_started",
        {
            "environment": config.environment,
            "default_model": config.token_management.default_model,
            "token_management_enabled": config.token_management.enabled,
            "accounting_enabled": config.accounting.enabled,
        },
    )
    logger.info("Context budget server initialized successfully")


def cleanup_server() -> None:
    """Cleanup server resources on shutdown."""
    global _tools

    if _tools is None:
        return

    obs = get_observability()
    _tools = None
    reset_token_budget_manager()

    obs.increment("server.shutdown")
    obs.event("server_stopped", {})
    logger.info("Context budget server cleanup complete")


def main() -> None:
    """CLI entry point for the context-budget command."""
    mcp.run()


if __name__ == "__main__":
    main()
