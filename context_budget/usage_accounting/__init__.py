"""
Usage Accounting

Per-call usage and savings records for optimized prompts, with pure
aggregation by agent or by (agent, day).

Usage:
    from context_budget.usage_accounting import UsageAccountant, GroupBy

    accountant = UsageAccountant()
    accountant.record_prompt("cost-agent", "conv-42", optimized_prompt, completion_tokens=350)

    metrics = accountant.aggregate(group_by=GroupBy.DAY)
    print(metrics.get_summary())
"""

from .analytics import aggregate_metrics, calculate_savings
from .config import AccountingConfig, ModelRate
from .models import (
    AgentCostMetrics,
    AgentOptimizationStats,
    GroupBy,
    MetadataKey,
    PromptOptimizationMetrics,
    TimeRange,
    TokenUsageRecord,
    UsageGroupKey,
)
from .pricing import ModelPricing, PricingTier, RateTable
from .tracker import UsageAccountant, get_usage_accountant, reset_usage_accountant

__all__ = [
    "aggregate_metrics",
    "calculate_savings",
    "AccountingConfig",
    "ModelRate",
    "AgentCostMetrics",
    "AgentOptimizationStats",
    "GroupBy",
    "MetadataKey",
    "PromptOptimizationMetrics",
    "TimeRange",
    "TokenUsageRecord",
    "UsageGroupKey",
    "ModelPricing",
    "PricingTier",
    "RateTable",
    "UsageAccountant",
    "get_usage_accountant",
    "reset_usage_accountant",
]
