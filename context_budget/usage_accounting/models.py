"""
Usage Accounting Models

AgentCostMetrics is the write-once per-call record. The aggregate types
(PromptOptimizationMetrics, AgentOptimizationStats, TokenUsageRecord) are
produced by reducing a snapshot of records and are never stored.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, NamedTuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from ..models import MetadataValue


class MetadataKey(str, Enum):
    """
    Well-known metadata keys for usage records.

    TASK_TYPE: kind of work the agent was doing (e.g. "cost_analysis")
    USER_ID: caller identity, if the dispatcher knows it
    SESSION_ID: client session spanning several conversations
    REQUEST_ID: dispatcher request correlation id
    ENVIRONMENT: deployment environment the call ran in
    HISTORY_STRATEGY: conversation pruning strategy in effect
    TRUNCATED_ITEMS: retrieval items that were cut to fit
    EXCEEDS_LIMIT: prompt was still over budget after optimization
    """

    TASK_TYPE = "task_type"
    USER_ID = "user_id"
    SESSION_ID = "session_id"
    REQUEST_ID = "request_id"
    ENVIRONMENT = "environment"
    HISTORY_STRATEGY = "history_strategy"
    TRUNCATED_ITEMS = "truncated_items"
    EXCEEDS_LIMIT = "exceeds_limit"


class GroupBy(str, Enum):
    """Breakdown dimension for aggregation."""

    AGENT = "agent"
    DAY = "day"


class UsageGroupKey(NamedTuple):
    """Composite key of the per-agent, per-day breakdown."""

    agent_id: str
    date: date


class TimeRange(BaseModel):
    """Half-open time window [start, end); either bound may be omitted."""

    start: datetime | None = None
    end: datetime | None = None

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    def contains(self, timestamp: datetime) -> bool:
        if self.start is not None and timestamp < self.start:
            return False
        if self.end is not None and timestamp >= self.end:
            return False
        return True


class AgentCostMetrics(BaseModel):
    """Per-call usage and savings record. Immutable once created."""

    metric_id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str = Field(..., min_length=1)
    task_id: str | None = None
    conversation_id: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    original_prompt_tokens: int = Field(..., ge=0)
    optimized_prompt_tokens: int = Field(..., ge=0)
    tokens_saved: int = Field(..., ge=0)
    optimization_percentage: float = Field(..., ge=0.0, le=100.0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(..., ge=0, description="Optimized prompt tokens plus completion tokens")

    estimated_cost: float = Field(..., ge=0.0, description="USD cost of the optimized call")
    cost_saved: float = Field(..., ge=0.0, description="USD saved by prompt optimization")

    model: str
    optimization_strategy: str
    was_optimized: bool

    retrieval_items_before: int = Field(default=0, ge=0)
    retrieval_items_after: int = Field(default=0, ge=0)
    history_turns_before: int = Field(default=0, ge=0)
    history_turns_after: int = Field(default=0, ge=0)

    metadata: Mapping[MetadataKey, MetadataValue] = Field(default_factory=dict, validate_default=True)

    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v.replace(tzinfo=UTC) if v.tzinfo is None else v

    @field_validator("metadata")
    @classmethod
    def _read_only(cls, v: Mapping[MetadataKey, MetadataValue]) -> Mapping[MetadataKey, MetadataValue]:
        return MappingProxyType(dict(v))

    @field_serializer("metadata")
    def _serialize_metadata(self, v: Mapping[MetadataKey, MetadataValue]) -> dict[str, MetadataValue]:
        return {key.value: value for key, value in v.items()}

    def get_cost_without_optimization(self) -> float:
        """What the call would have cost had the prompt not been optimized."""
        return self.estimated_cost + self.cost_saved

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def get_summary(self) -> str:
        summary = (
            f"Agent: {self.agent_id}\n"
            f"Timestamp: {self.timestamp.isoformat()}\n"
            f"Original tokens: {self.original_prompt_tokens:,}\n"
            f"Optimized tokens: {self.optimized_prompt_tokens:,}\n"
            f"Tokens saved: {self.tokens_saved:,} ({self.optimization_percentage:.1f}%)\n"
            f"Completion tokens: {self.completion_tokens:,}\n"
            f"Total tokens: {self.total_tokens:,}\n"
            f"Estimated cost: ${self.estimated_cost:.4f}\n"
            f"Cost saved: ${self.cost_saved:.4f}\n"
        )
        if self.was_optimized:
            summary += f"Optimization strategy: {self.optimization_strategy}\n"
        return summary


@dataclass
class AgentOptimizationStats:
    """Totals for one agent over the aggregation window."""

    agent_id: str
    operation_count: int = 0
    optimized_operation_count: int = 0
    tokens_processed: int = 0
    tokens_saved: int = 0
    cost_incurred: float = 0.0
    cost_saved: float = 0.0
    average_optimization_percentage: float = 0.0
    preferred_strategy: str | None = None

    @property
    def optimization_rate(self) -> float:
        if self.operation_count == 0:
            return 0.0
        return self.optimized_operation_count / self.operation_count * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "operation_count": self.operation_count,
            "optimized_operation_count": self.optimized_operation_count,
            "optimization_rate": round(self.optimization_rate, 2),
            "tokens_processed": self.tokens_processed,
            "tokens_saved": self.tokens_saved,
            "cost_incurred": round(self.cost_incurred, 6),
            "cost_saved": round(self.cost_saved, 6),
            "average_optimization_percentage": round(self.average_optimization_percentage, 2),
            "preferred_strategy": self.preferred_strategy,
        }


@dataclass
class TokenUsageRecord:
    """Totals for one agent on one UTC day."""

    agent_id: str
    date: date
    total_tokens_used: int = 0
    total_tokens_saved: int = 0
    operation_count: int = 0
    optimized_operation_count: int = 0
    daily_estimated_cost: float = 0.0
    daily_cost_saved: float = 0.0

    @property
    def key(self) -> UsageGroupKey:
        return UsageGroupKey(self.agent_id, self.date)

    @property
    def average_tokens_per_operation(self) -> float:
        if self.operation_count == 0:
            return 0.0
        return self.total_tokens_used / self.operation_count

    @property
    def optimization_rate(self) -> float:
        if self.operation_count == 0:
            return 0.0
        return self.optimized_operation_count / self.operation_count * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "date": self.date.isoformat(),
            "operation_count": self.operation_count,
            "total_tokens_used": self.total_tokens_used,
            "total_tokens_saved": self.total_tokens_saved,
            "average_tokens_per_operation": round(self.average_tokens_per_operation, 2),
            "optimization_rate": round(self.optimization_rate, 2),
            "daily_estimated_cost": round(self.daily_estimated_cost, 6),
            "daily_cost_saved": round(self.daily_cost_saved, 6),
        }

    def get_daily_summary(self) -> str:
        return (
            f"{self.date.isoformat()} {self.agent_id}:\n"
            f"  Operations: {self.operation_count:,}\n"
            f"  Avg tokens/op: {self.average_tokens_per_operation:,.0f}\n"
            f"  Total tokens: {self.total_tokens_used:,}\n"
            f"  Tokens saved: {self.total_tokens_saved:,}\n"
            f"  Optimization rate: {self.optimization_rate:.1f}%\n"
            f"  Estimated cost: ${self.daily_estimated_cost:.4f}\n"
            f"  Cost saved: ${self.daily_cost_saved:.4f}\n"
        )


@dataclass
class PromptOptimizationMetrics:
    """Aggregate over a window of AgentCostMetrics records."""

    group_by: GroupBy = GroupBy.AGENT
    total_prompts_processed: int = 0
    prompts_optimized: int = 0
    total_tokens_processed: int = 0
    total_tokens_after_optimization: int = 0
    total_tokens_saved: int = 0
    total_completion_tokens: int = 0
    average_optimization_percentage: float = 0.0
    total_cost_saved: float = 0.0
    total_cost_incurred: float = 0.0
    period_start: datetime | None = None
    period_end: datetime | None = None
    most_common_strategy: str | None = None
    agent_stats: dict[str, AgentOptimizationStats] = field(default_factory=dict)
    daily_usage: dict[UsageGroupKey, TokenUsageRecord] = field(default_factory=dict)

    def get_optimization_roi(self) -> float:
        """Cost saved as a percentage of cost incurred."""
        if self.total_cost_incurred == 0:
            return 0.0
        return self.total_cost_saved / self.total_cost_incurred * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_by": self.group_by.value,
            "total_prompts_processed": self.total_prompts_processed,
            "prompts_optimized": self.prompts_optimized,
            "total_tokens_processed": self.total_tokens_processed,
            "total_tokens_after_optimization": self.total_tokens_after_optimization,
            "total_tokens_saved": self.total_tokens_saved,
            "total_completion_tokens": self.total_completion_tokens,
            "average_optimization_percentage": round(self.average_optimization_percentage, 2),
            "total_cost_saved": round(self.total_cost_saved, 6),
            "total_cost_incurred": round(self.total_cost_incurred, 6),
            "optimization_roi": round(self.get_optimization_roi(), 2),
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "most_common_strategy": self.most_common_strategy,
            "agent_stats": {agent: stats.to_dict() for agent, stats in self.agent_stats.items()},
            "daily_usage": [record.to_dict() for record in self.daily_usage.values()],
        }

    def get_summary(self) -> str:
        optimized_share = (
            self.prompts_optimized / self.total_prompts_processed * 100.0 if self.total_prompts_processed else 0.0
        )
        return (
            "Prompt optimization metrics:\n"
            f"  Total prompts processed: {self.total_prompts_processed:,}\n"
            f"  Prompts optimized: {self.prompts_optimized:,} ({optimized_share:.1f}%)\n"
            f"  Total tokens processed: {self.total_tokens_processed:,}\n"
            f"  Tokens after optimization: {self.total_tokens_after_optimization:,}\n"
            f"  Total tokens saved: {self.total_tokens_saved:,}\n"
            f"  Average optimization: {self.average_optimization_percentage:.1f}%\n"
            f"  Total cost saved: ${self.total_cost_saved:.4f}\n"
            f"  Total cost incurred: ${self.total_cost_incurred:.4f}\n"
            f"  Optimization ROI: {self.get_optimization_roi():.1f}%\n"
        )
