"""
Usage Analytics

Pure reductions over AgentCostMetrics records. Nothing here reads or mutates
accountant state; callers pass in a snapshot, so repeated aggregation never
double counts.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from datetime import UTC, date
from typing import Any

from .models import (
    AgentCostMetrics,
    AgentOptimizationStats,
    GroupBy,
    PromptOptimizationMetrics,
    TimeRange,
    TokenUsageRecord,
    UsageGroupKey,
)

logger = logging.getLogger(__name__)


def _record_day(record: AgentCostMetrics) -> date:
    return record.timestamp.astimezone(UTC).date()


def _most_common(strategies: list[str]) -> str | None:
    if not strategies:
        return None
    return Counter(strategies).most_common(1)[0][0]


def select_records(records: Iterable[AgentCostMetrics], time_range: TimeRange | None = None) -> list[AgentCostMetrics]:
    """Records whose timestamp falls inside the window (all records when no window)."""
    if time_range is None:
        return list(records)
    return [record for record in records if time_range.contains(record.timestamp)]


def aggregate_metrics(
    records: Iterable[AgentCostMetrics],
    time_range: TimeRange | None = None,
    group_by: GroupBy = GroupBy.AGENT,
) -> PromptOptimizationMetrics:
    """
    Reduce usage records to PromptOptimizationMetrics.

    Args:
        records: Usage records (not modified)
        time_range: Optional window filter
        group_by: AGENT fills agent_stats, DAY fills daily_usage keyed by (agent, day)

    Returns:
        Aggregate metrics; zeroed when no record matches
    """
    selected = select_records(records, time_range)
    metrics = PromptOptimizationMetrics(group_by=group_by)
    if not selected:
        return metrics

    metrics.total_prompts_processed = len(selected)
    metrics.prompts_optimized = sum(1 for record in selected if record.was_optimized)
    metrics.total_tokens_processed = sum(record.original_prompt_tokens for record in selected)
    metrics.total_tokens_after_optimization = sum(record.optimized_prompt_tokens for record in selected)
    metrics.total_tokens_saved = sum(record.tokens_saved for record in selected)
    metrics.total_completion_tokens = sum(record.completion_tokens for record in selected)
    metrics.average_optimization_percentage = sum(record.optimization_percentage for record in selected) / len(
        selected
    )
    metrics.total_cost_saved = sum(record.cost_saved for record in selected)
    metrics.total_cost_incurred = sum(record.estimated_cost for record in selected)
    metrics.period_start = min(record.timestamp for record in selected)
    metrics.period_end = max(record.timestamp for record in selected)
    metrics.most_common_strategy = _most_common(
        [record.optimization_strategy for record in selected if record.was_optimized]
    )

    if group_by == GroupBy.AGENT:
        metrics.agent_stats = _group_by_agent(selected)
    else:
        metrics.daily_usage = _group_by_day(selected)

    logger.debug(f"Aggregated {len(selected)} usage records by {group_by.value}")
    return metrics


def _group_by_agent(records: list[AgentCostMetrics]) -> dict[str, AgentOptimizationStats]:
    grouped: dict[str, list[AgentCostMetrics]] = defaultdict(list)
    for record in records:
        grouped[record.agent_id].append(record)

    stats: dict[str, AgentOptimizationStats] = {}
    for agent_id, agent_records in grouped.items():
        stats[agent_id] = AgentOptimizationStats(
            agent_id=agent_id,
            operation_count=len(agent_records),
            optimized_operation_count=sum(1 for record in agent_records if record.was_optimized),
            tokens_processed=sum(record.original_prompt_tokens for record in agent_records),
            tokens_saved=sum(record.tokens_saved for record in agent_records),
            cost_incurred=sum(record.estimated_cost for record in agent_records),
            cost_saved=sum(record.cost_saved for record in agent_records),
            average_optimization_percentage=sum(record.optimization_percentage for record in agent_records)
            / len(agent_records),
            preferred_strategy=_most_common(
                [record.optimization_strategy for record in agent_records if record.was_optimized]
            ),
        )
    return stats


def _group_by_day(records: list[AgentCostMetrics]) -> dict[UsageGroupKey, TokenUsageRecord]:
    usage: dict[UsageGroupKey, TokenUsageRecord] = {}
    for record in sorted(records, key=lambda r: r.timestamp):
        key = UsageGroupKey(record.agent_id, _record_day(record))
        bucket = usage.get(key)
        if bucket is None:
            bucket = TokenUsageRecord(agent_id=key.agent_id, date=key.date)
            usage[key] = bucket
        bucket.operation_count += 1
        bucket.optimized_operation_count += int(record.was_optimized)
        bucket.total_tokens_used += record.total_tokens
        bucket.total_tokens_saved += record.tokens_saved
        bucket.daily_estimated_cost += record.estimated_cost
        bucket.daily_cost_saved += record.cost_saved
    return usage


def calculate_savings(
    records: Iterable[AgentCostMetrics],
    time_range: TimeRange | None = None,
) -> dict[str, Any]:
    """
    Savings breakdown by strategy and by model.

    Args:
        records: Usage records
        time_range: Optional window filter

    Returns:
        Dictionary with totals, ROI and per-strategy / per-model breakdowns
    """
    selected = select_records(records, time_range)
    cost_incurred = sum(record.estimated_cost for record in selected)
    cost_saved = sum(record.cost_saved for record in selected)

    by_strategy: dict[str, dict[str, float]] = defaultdict(lambda: {"count": 0, "tokens_saved": 0, "cost_saved": 0.0})
    by_model: dict[str, dict[str, float]] = defaultdict(
        lambda: {"count": 0, "tokens_saved": 0, "cost_saved": 0.0, "cost_incurred": 0.0}
    )
    for record in selected:
        if record.was_optimized:
            entry = by_strategy[record.optimization_strategy]
            entry["count"] += 1
            entry["tokens_saved"] += record.tokens_saved
            entry["cost_saved"] += record.cost_saved
        model_entry = by_model[record.model]
        model_entry["count"] += 1
        model_entry["tokens_saved"] += record.tokens_saved
        model_entry["cost_saved"] += record.cost_saved
        model_entry["cost_incurred"] += record.estimated_cost

    return {
        "operations": len(selected),
        "tokens_saved": sum(record.tokens_saved for record in selected),
        "cost_saved": round(cost_saved, 6),
        "cost_incurred": round(cost_incurred, 6),
        "cost_without_optimization": round(cost_incurred + cost_saved, 6),
        "roi_percentage": round(cost_saved / cost_incurred * 100.0, 2) if cost_incurred else 0.0,
        "by_strategy": dict(by_strategy),
        "by_model": dict(by_model),
    }
