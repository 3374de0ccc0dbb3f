"""
Context Budget - Tool Implementations

Plain, synchronous implementations of every tool the server exposes. The
server module only validates input and delegates here, so the tools can be
exercised without a running MCP server.

Every tool returns a JSON-ready dict with "success": True, or the standard
error response (see errors.make_error_response) for context budget errors.
"""

import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from . import __version__
from .context_optimization.config import PruningStrategy
from .errors import ContextBudgetError, ErrorCode, FeatureDisabledError, error_response_from_exception
from .manager import TokenBudgetManager, get_token_budget_manager
from .models import ConversationTurn, MetadataValue, RankedItem
from .observability.monitoring import ObservabilityAdapter, get_observability
from .token_management.counter import TiktokenCounter
from .usage_accounting.models import GroupBy, MetadataKey, TimeRange
from .usage_accounting.tracker import UsageAccountant

logger = logging.getLogger(__name__)

SERVICE_NAME = "context-budget"

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")


class TokenBudgetTools:
    """Tool surface over a TokenBudgetManager and its usage accountant."""

    def __init__(
        self,
        manager: TokenBudgetManager | None = None,
        observability: ObservabilityAdapter | None = None,
    ) -> None:
        """
        Initialize tools.

        Args:
            manager: Budget manager (default: shared manager built from config)
            observability: Observability adapter (default: global adapter)
        """
        self.manager = manager or get_token_budget_manager()
        self.obs = observability or get_observability()

    @property
    def accountant(self) -> UsageAccountant | None:
        return self.manager.accountant

    def _run(self, tool: str, operation: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        self.obs.increment("tools.calls", tags={"tool": tool})
        try:
            with self.obs.trace(f"tools.{tool}"):
                result = operation()
        except ContextBudgetError as e:
            logger.warning(
                f"Tool {tool} failed: {e.message}",
                extra={"tool": tool, "error_code": e.error_code.value, "details": e.details},
            )
            self.obs.increment("tools.errors", tags={"tool": tool, "error_code": e.error_code.value})
            return error_response_from_exception(e)
        return {"success": True, **result}

    def _require_accountant(self) -> UsageAccountant:
        if self.accountant is None:
            raise FeatureDisabledError("usage accounting", error_code=ErrorCode.ACCOUNTING_DISABLED)
        return self.accountant

    def _ranked_items(self, items: Sequence[dict[str, Any]]) -> list[RankedItem]:
        default_score = self.manager.config.default_retrieval_score
        ranked = []
        for index, item in enumerate(items):
            score = item.get("relevance_score")
            ranked.append(
                RankedItem(
                    content=item["content"],
                    relevance_score=default_score if score is None else score,
                    source=item.get("source") or f"Result {index + 1}",
                    metadata=item.get("metadata") or {},
                )
            )
        return ranked

    @staticmethod
    def _turns(turns: Sequence[dict[str, Any]]) -> list[ConversationTurn]:
        converted = []
        for turn in turns:
            values = {key: value for key, value in turn.items() if value is not None}
            converted.append(ConversationTurn(**values))
        return converted

    def check_status(self, include_details: bool = False) -> dict[str, Any]:
        def operation() -> dict[str, Any]:
            config = self.manager.config
            status: dict[str, Any] = {
                "status": "healthy",
                "service": SERVICE_NAME,
                "version": __version__,
                "token_management_enabled": config.enabled,
                "accounting_enabled": self.accountant is not None,
                "default_model": config.default_model,
            }
            if include_details:
                counter = self.manager.estimator.counter
                status["models"] = self.manager.catalog.list_models()
                status["token_cache"] = counter.get_cache_stats() if isinstance(counter, TiktokenCounter) else None
                status["accounting"] = self.accountant.get_stats() if self.accountant is not None else None
                status["metrics"] = self.obs.get_metrics()
            return status

        return self._run("check_status", operation)

    def count_tokens(
        self,
        content: str,
        model: str | None = None,
        include_breakdown: bool = False,
    ) -> dict[str, Any]:
        """
        Count tokens in content for a model.

        Args:
            content: Content to count tokens for
            model: Model name (default: configured default model)
            include_breakdown: Include line/word/code block breakdown

        Returns:
            Token count and optional breakdown
        """

        def operation() -> dict[str, Any]:
            model_name = model or self.manager.config.default_model
            token_count = self.manager.count_tokens(content, model_name)
            result: dict[str, Any] = {
                "token_count": token_count,
                "model": model_name,
                "content_length": len(content),
            }

            if include_breakdown:
                lines = content.split("\n")
                code_blocks = _CODE_BLOCK.findall(content)
                code_tokens = sum(self.manager.count_tokens(block, model_name) for block in code_blocks)
                result["breakdown"] = {
                    "lines": len(lines),
                    "words": len(content.split()),
                    "characters": len(content),
                    "code_blocks": len(code_blocks),
                    "code_block_tokens": code_tokens,
                    "non_code_tokens": max(0, token_count - code_tokens),
                    "avg_tokens_per_line": token_count / len(lines) if lines else 0,
                }
            return result

        return self._run("count_tokens", operation)

    def estimate_tokens(
        self,
        system_prompt: str = "",
        user_message: str = "",
        retrieval_items: Sequence[dict[str, Any]] = (),
        history_turns: Sequence[dict[str, Any]] = (),
        model: str | None = None,
    ) -> dict[str, Any]:
        def operation() -> dict[str, Any]:
            estimate = self.manager.estimate_tokens(
                system_prompt,
                user_message,
                self._ranked_items(retrieval_items),
                self._turns(history_turns),
                model,
            )
            return {"estimate": estimate.to_dict(), "summary": estimate.get_summary()}

        return self._run("estimate_tokens", operation)

    def optimize_prompt(
        self,
        system_prompt: str = "",
        user_message: str = "",
        retrieval_items: Sequence[dict[str, Any]] = (),
        history_turns: Sequence[dict[str, Any]] = (),
        model: str | None = None,
        agent_id: str | None = None,
        conversation_id: str | None = None,
        task_id: str | None = None,
        completion_tokens: int = 0,
        metadata: dict[MetadataKey | str, MetadataValue] | None = None,
    ) -> dict[str, Any]:
        """
        Fit a composite prompt into the model's budget.

        Usage is recorded when agent_id is given and accounting is enabled.

        Returns:
            The optimized prompt, both estimates and a readable summary
        """

        def operation() -> dict[str, Any]:
            result = self.manager.optimize_prompt(
                system_prompt,
                user_message,
                self._ranked_items(retrieval_items),
                self._turns(history_turns),
                model=model,
                agent_id=agent_id,
                conversation_id=conversation_id,
                task_id=task_id,
                completion_tokens=completion_tokens,
                metadata=metadata,
            )
            estimate = result.optimized_estimate
            self.obs.gauge("prompt.utilization", estimate.utilization_percentage, tags={"model": estimate.model_name})
            if result.was_optimized:
                self.obs.histogram("prompt.tokens_saved", result.tokens_saved, tags={"model": estimate.model_name})
            return {"prompt": result.to_dict(), "summary": result.get_summary()}

        return self._run("optimize_prompt", operation)

    def optimize_retrieval_context(
        self,
        items: Sequence[dict[str, Any]],
        model: str | None = None,
    ) -> dict[str, Any]:
        def operation() -> dict[str, Any]:
            result = self.manager.optimize_retrieval_context(self._ranked_items(items), model)
            return {"context": result.to_dict(), "summary": result.get_summary()}

        return self._run("optimize_retrieval_context", operation)

    def optimize_conversation_history(
        self,
        turns: Sequence[dict[str, Any]],
        model: str | None = None,
        strategy: PruningStrategy | str | None = None,
        max_tokens: int | None = None,
        current_topics: Sequence[str] | None = None,
        include_health: bool = False,
    ) -> dict[str, Any]:
        def operation() -> dict[str, Any]:
            converted = self._turns(turns)
            result = self.manager.optimize_conversation_history(
                converted,
                model=model,
                strategy=PruningStrategy(strategy) if strategy is not None else None,
                max_tokens=max_tokens,
                current_topics=current_topics,
            )
            response: dict[str, Any] = {"history": result.to_dict(), "summary": result.get_summary()}
            if include_health:
                response["health"] = self.manager.analyze_conversation(converted, model).to_dict()
            return response

        return self._run("optimize_conversation_history", operation)

    def get_usage_summary(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        def operation() -> dict[str, Any]:
            accountant = self._require_accountant()
            return {"summary": accountant.get_summary(TimeRange(start=start, end=end))}

        return self._run("get_usage_summary", operation)

    def aggregate_usage(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        group_by: GroupBy | str = GroupBy.AGENT,
    ) -> dict[str, Any]:
        def operation() -> dict[str, Any]:
            accountant = self._require_accountant()
            metrics = accountant.aggregate(TimeRange(start=start, end=end), GroupBy(group_by))
            return {"metrics": metrics.to_dict(), "summary": metrics.get_summary()}

        return self._run("aggregate_usage", operation)

    def get_metrics(self) -> dict[str, Any]:
        return self._run("get_metrics", self.obs.get_metrics)
