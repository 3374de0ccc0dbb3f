"""
Usage Accountant

In-memory, thread-safe store of per-call usage and savings records.

Writes append under a lock and drop records older than the retention window
once the oldest stored record falls past it. Reads copy the record list under the
lock and reduce the copy outside it, so aggregation never blocks writers for
longer than a list copy.
"""

import logging
import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from ..models import MetadataValue
from ..token_management.estimator import TokenEstimate
from .analytics import aggregate_metrics, calculate_savings, select_records
from .config import AccountingConfig
from .models import AgentCostMetrics, GroupBy, MetadataKey, PromptOptimizationMetrics, TimeRange
from .pricing import RateTable

if TYPE_CHECKING:
    from ..context_optimization.models import OptimizedPrompt

logger = logging.getLogger(__name__)


class UsageAccountant:
    """
    Records AgentCostMetrics and answers aggregate queries.

    Cost is derived from the configured RateTable: the optimized prompt is
    priced at the input rate, completion tokens at the output rate, and the
    tokens removed by optimization at the input rate as savings.
    """

    def __init__(
        self,
        config: AccountingConfig | None = None,
        rate_table: RateTable | None = None,
    ) -> None:
        """
        Initialize usage accountant.

        Args:
            config: Accounting configuration (retention, rate overrides)
            rate_table: Rate table (default: built-in rates plus config overrides)
        """
        self.config = config or AccountingConfig()
        self.rate_table = rate_table or RateTable(overrides=self.config.rate_overrides)
        self._records: list[AgentCostMetrics] = []
        self._oldest: datetime | None = None
        self._lock = threading.Lock()

    def record(
        self,
        agent_id: str,
        conversation_id: str,
        before: TokenEstimate,
        after: TokenEstimate,
        strategy: str,
        model: str | None = None,
        completion_tokens: int = 0,
        task_id: str | None = None,
        was_optimized: bool | None = None,
        metadata: dict[MetadataKey | str, MetadataValue] | None = None,
        timestamp: datetime | None = None,
    ) -> AgentCostMetrics:
        """
        Record one model call.

        Args:
            agent_id: Agent that issued the call
            conversation_id: Conversation the call belongs to
            before: Estimate of the unoptimized prompt
            after: Estimate of the prompt actually sent
            strategy: Optimization strategy description
            model: Model used for pricing (default: after.model_name)
            completion_tokens: Tokens produced by the model
            task_id: Optional task identifier
            was_optimized: Override; defaults to whether the prompt shrank
            metadata: Well-known metadata (see MetadataKey)
            timestamp: Record time (default: now, UTC)

        Returns:
            The stored, immutable record

        Raises:
            UnknownModelError: If no rate is configured for the model
        """
        model = model or after.model_name
        pricing = self.rate_table.get_pricing(model)

        original_tokens = before.total_input_tokens
        optimized_tokens = after.total_input_tokens
        tokens_saved = max(0, original_tokens - optimized_tokens)
        percentage = tokens_saved / original_tokens * 100.0 if original_tokens else 0.0

        values: dict[str, Any] = {
            "agent_id": agent_id,
            "task_id": task_id,
            "conversation_id": conversation_id,
            "original_prompt_tokens": original_tokens,
            "optimized_prompt_tokens": optimized_tokens,
            "tokens_saved": tokens_saved,
            "optimization_percentage": percentage,
            "completion_tokens": completion_tokens,
            "total_tokens": optimized_tokens + completion_tokens,
            "estimated_cost": pricing.calculate_cost(optimized_tokens, completion_tokens),
            "cost_saved": pricing.calculate_input_cost(tokens_saved),
            "model": model,
            "optimization_strategy": strategy,
            "was_optimized": tokens_saved > 0 if was_optimized is None else was_optimized,
            "retrieval_items_before": len(before.retrieval_item_tokens),
            "retrieval_items_after": len(after.retrieval_item_tokens),
            "history_turns_before": len(before.history_turn_tokens),
            "history_turns_after": len(after.history_turn_tokens),
            "metadata": metadata or {},
        }
        if timestamp is not None:
            values["timestamp"] = timestamp
        metric = AgentCostMetrics(**values)

        cutoff = self._retention_cutoff()
        with self._lock:
            self._records.append(metric)
            if self._oldest is None or metric.timestamp < self._oldest:
                self._oldest = metric.timestamp
            expired = self._prune(cutoff) if self._oldest < cutoff else 0

        if expired:
            logger.info(f"Dropped {expired} usage records older than {cutoff.isoformat()}")

        logger.debug(
            f"Recorded usage for {agent_id}/{conversation_id}: {optimized_tokens} prompt tokens, "
            f"{tokens_saved} saved, ${metric.estimated_cost:.6f}"
        )
        return metric

    def record_prompt(
        self,
        agent_id: str,
        conversation_id: str,
        prompt: "OptimizedPrompt",
        completion_tokens: int = 0,
        task_id: str | None = None,
        metadata: dict[MetadataKey | str, MetadataValue] | None = None,
    ) -> AgentCostMetrics:
        """Record the outcome of a PromptBudgetAllocator call."""
        metadata = dict(metadata or {})
        metadata.setdefault(MetadataKey.EXCEEDS_LIMIT, prompt.optimized_estimate.exceeds_limit)
        if prompt.retrieval_items_trimmed:
            metadata.setdefault(MetadataKey.TRUNCATED_ITEMS, prompt.retrieval_items_trimmed)
        return self.record(
            agent_id=agent_id,
            conversation_id=conversation_id,
            before=prompt.original_estimate,
            after=prompt.optimized_estimate,
            strategy=prompt.optimization_strategy,
            completion_tokens=completion_tokens,
            task_id=task_id,
            was_optimized=prompt.was_optimized,
            metadata=metadata,
        )

    def get_records(
        self,
        time_range: TimeRange | None = None,
        agent_id: str | None = None,
    ) -> list[AgentCostMetrics]:
        """Snapshot of stored records, optionally filtered."""
        with self._lock:
            snapshot = list(self._records)
        records = select_records(snapshot, time_range)
        if agent_id is not None:
            records = [record for record in records if record.agent_id == agent_id]
        return records

    def aggregate(
        self,
        time_range: TimeRange | None = None,
        group_by: GroupBy = GroupBy.AGENT,
    ) -> PromptOptimizationMetrics:
        """
        Aggregate recorded usage.

        Args:
            time_range: Optional window filter
            group_by: Breakdown dimension (agent or day)

        Returns:
            PromptOptimizationMetrics; zeroed when nothing was recorded
        """
        return aggregate_metrics(self.get_records(), time_range, group_by)

    def get_summary(self, time_range: TimeRange | None = None) -> dict[str, Any]:
        """Dashboard view: totals, per-agent and per-day breakdowns, savings."""
        records = self.get_records(time_range)
        by_agent = aggregate_metrics(records, group_by=GroupBy.AGENT)
        by_day = aggregate_metrics(records, group_by=GroupBy.DAY)

        summary = by_agent.to_dict()
        summary.pop("group_by")
        summary["daily_usage"] = by_day.to_dict()["daily_usage"]
        summary["savings"] = calculate_savings(records)
        return summary

    def calculate_savings(self, time_range: TimeRange | None = None) -> dict[str, Any]:
        return calculate_savings(self.get_records(), time_range)

    def clear_old_records(self, days: int | None = None) -> int:
        """
        Remove records older than the retention window.

        Args:
            days: Days to keep (default: config.retention_days)

        Returns:
            Number of records removed
        """
        cutoff = self._retention_cutoff(days)
        with self._lock:
            removed = self._prune(cutoff)

        if removed:
            logger.info(f"Cleared {removed} usage records older than {cutoff.isoformat()}")
        return removed

    def _retention_cutoff(self, days: int | None = None) -> datetime:
        return datetime.now(UTC) - timedelta(days=days if days is not None else self.config.retention_days)

    def _prune(self, cutoff: datetime) -> int:
        """Drop records older than cutoff. Caller holds the lock."""
        before = len(self._records)
        self._records = [record for record in self._records if record.timestamp >= cutoff]
        self._oldest = min((record.timestamp for record in self._records), default=None)
        return before - len(self._records)

    def get_stats(self) -> dict[str, Any]:
        records = self.get_records()
        oldest = min((record.timestamp for record in records), default=None)
        newest = max((record.timestamp for record in records), default=None)
        return {
            "total_records": len(records),
            "agents": len({record.agent_id for record in records}),
            "conversations": len({record.conversation_id for record in records}),
            "oldest_record": oldest.isoformat() if oldest else None,
            "newest_record": newest.isoformat() if newest else None,
            "retention_days": self.config.retention_days,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


# Singleton instance
_accountant_instance: UsageAccountant | None = None


def get_usage_accountant() -> UsageAccountant:
    """
    Get singleton UsageAccountant instance, configured from the global config.

    Returns:
        Shared UsageAccountant instance
    """
    global _accountant_instance
    if _accountant_instance is None:
        from ..config import get_config

        _accountant_instance = UsageAccountant(config=get_config().accounting)
    return _accountant_instance


def reset_usage_accountant() -> None:
    """Drop the shared accountant (tests, config reload)."""
    global _accountant_instance
    _accountant_instance = None
