"""
Context Budget - Prompt Part Models

Input value types shared by the estimator and the optimizers: retrieval
candidates (RankedItem) and conversation turns (ConversationTurn).

Both are frozen; optimizers never mutate caller-owned objects and produce
modified copies instead.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

MetadataValue = str | int | float | bool


class MessageRole(str, Enum):
    """Conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class RankedItem(BaseModel):
    """A retrieval candidate produced by the search collaborator."""

    content: str = Field(..., description="Passage text")
    relevance_score: float = Field(default=1.0, ge=0.0, le=1.0, description="Relevance score (0-1)")
    source: str | None = Field(default=None, description="Source label (document, index, URL)")
    token_count: int | None = Field(
        default=None,
        ge=0,
        description="Precomputed token count; counted on demand when missing",
    )
    metadata: dict[str, MetadataValue] = Field(default_factory=dict, description="Opaque retriever metadata")
    was_trimmed: bool = Field(default=False, description="Content was cut to fit a per-item ceiling")

    model_config = ConfigDict(frozen=True)


class ConversationTurn(BaseModel):
    """A single message in the conversation history."""

    role: MessageRole = Field(..., description="Message author role")
    content: str = Field(..., description="Message text")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC), description="When the turn happened")
    token_count: int | None = Field(
        default=None,
        ge=0,
        description="Precomputed token count; counted on demand when missing",
    )
    relevance_score: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Relevance to the current request, supplied by the caller",
    )
    topics: tuple[str, ...] = Field(default=(), description="Topic tags assigned by the caller")
    was_summarized: bool = Field(default=False, description="Content is a synthesized summary")
    was_compressed: bool = Field(default=False, description="Content was shortened")
    original_content: str | None = Field(
        default=None,
        description="Content before summarization or compression",
    )

    model_config = ConfigDict(frozen=True)
