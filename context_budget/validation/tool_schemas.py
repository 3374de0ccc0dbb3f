"""
Context Budget - Tool Input Validation Schemas

Pydantic models for validating all tool inputs.

- Strict type validation
- Field constraints (min/max lengths, value ranges)
- Default values where appropriate
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from ..context_optimization.config import PruningStrategy
from ..models import MessageRole, MetadataValue
from ..usage_accounting.models import GroupBy, MetadataKey

MAX_TEXT_LENGTH = 1_000_000


class CheckStatusInput(BaseModel):
    """Input validation for check_status tool."""

    include_details: bool = Field(
        default=False,
        description="Include counter cache, accounting and metrics details",
    )


class GetMetricsInput(BaseModel):
    """Input validation for get_metrics tool (no parameters)."""

    pass


class CountTokensInput(BaseModel):
    """Input validation for count_tokens tool."""

    content: str = Field(
        ...,
        min_length=1,
        max_length=MAX_TEXT_LENGTH,
        description="Content to count tokens for (1-1M characters)",
    )
    model: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        description="Model name for tokenization, uses config default if None",
    )
    include_breakdown: bool = Field(
        default=False,
        description="Include character/word/code block breakdown",
    )

    @field_validator("content")
    @classmethod
    def validate_content_not_empty(cls, v: str) -> str:
        """Ensure content is not just whitespace."""
        if not v.strip():
            raise ValueError("Content cannot be empty or only whitespace")
        return v


class RetrievalItemInput(BaseModel):
    """One retrieval passage as supplied by a tool caller."""

    content: str = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)
    relevance_score: float | None = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Relevance score (0-1), uses config default if None",
    )
    source: str | None = Field(default=None, max_length=1000)
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class ConversationTurnInput(BaseModel):
    """One conversation turn as supplied by a tool caller."""

    role: MessageRole
    content: str = Field(..., max_length=MAX_TEXT_LENGTH)
    timestamp: datetime | None = Field(default=None, description="Turn time, now if None")
    relevance_score: float = Field(default=1.0, ge=0.0, le=1.0)
    topics: list[str] = Field(default_factory=list, max_length=50)


class EstimateTokensInput(BaseModel):
    """Input validation for estimate_tokens tool."""

    system_prompt: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    user_message: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    retrieval_items: list[RetrievalItemInput] = Field(default_factory=list, max_length=1000)
    history_turns: list[ConversationTurnInput] = Field(default_factory=list, max_length=10_000)
    model: str | None = Field(default=None, min_length=1, max_length=100)


class OptimizePromptInput(EstimateTokensInput):
    """Input validation for optimize_prompt tool."""

    agent_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=200,
        description="Agent issuing the call; usage is recorded when set",
    )
    conversation_id: str | None = Field(default=None, min_length=1, max_length=200)
    task_id: str | None = Field(default=None, max_length=200)
    completion_tokens: int = Field(default=0, ge=0)
    metadata: dict[MetadataKey, MetadataValue] = Field(
        default_factory=dict,
        description="Usage-record metadata keyed by well-known names",
    )

    @model_validator(mode="after")
    def validate_conversation_needs_agent(self) -> "OptimizePromptInput":
        if self.conversation_id is not None and self.agent_id is None:
            raise ValueError("conversation_id requires agent_id")
        return self


class OptimizeRetrievalContextInput(BaseModel):
    """Input validation for optimize_retrieval_context tool."""

    items: list[RetrievalItemInput] = Field(..., max_length=1000)
    model: str | None = Field(default=None, min_length=1, max_length=100)


class OptimizeConversationHistoryInput(BaseModel):
    """Input validation for optimize_conversation_history tool."""

    turns: list[ConversationTurnInput] = Field(..., max_length=10_000)
    model: str | None = Field(default=None, min_length=1, max_length=100)
    strategy: PruningStrategy | None = Field(default=None, description="Uses config default if None")
    max_tokens: int | None = Field(default=None, ge=0)
    current_topics: list[str] | None = Field(default=None, max_length=50)
    include_health: bool = Field(default=False, description="Include conversation health analysis")


class _TimeWindowInput(BaseModel):
    start: datetime | None = Field(default=None, description="Window start (inclusive)")
    end: datetime | None = Field(default=None, description="Window end (exclusive)")

    @field_validator("start", "end")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def validate_window(self) -> Any:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class GetUsageSummaryInput(_TimeWindowInput):
    """Input validation for get_usage_summary tool."""

    pass


class AggregateUsageInput(_TimeWindowInput):
    """Input validation for aggregate_usage tool."""

    group_by: GroupBy = Field(default=GroupBy.AGENT, description="agent or day")
