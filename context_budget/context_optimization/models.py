"""
Context Optimization Models

Result types returned by the retrieval, history and prompt optimizers.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..models import ConversationTurn, RankedItem
from ..token_management.estimator import TokenEstimate
from .config import PruningStrategy


class OptimizedRetrievalContext(BaseModel):
    """Chosen subset of retrieval candidates, in ranking order."""

    items: list[RankedItem] = Field(default_factory=list)
    original_item_count: int = Field(default=0, ge=0)
    items_removed: int = Field(default=0, ge=0)
    items_trimmed: int = Field(default=0, ge=0)
    original_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    average_relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    lowest_relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    exceeded_ceiling: bool = Field(default=False, description="Minimum-count override pushed past the ceiling")
    was_optimized: bool = Field(default=False)
    optimization_strategy: str = Field(default="None")
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=False)

    @property
    def tokens_saved(self) -> int:
        return max(0, self.original_tokens - self.total_tokens)

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["tokens_saved"] = self.tokens_saved
        return data

    def get_summary(self) -> str:
        return (
            f"Retrieval context: {len(self.items)}/{self.original_item_count} items kept, "
            f"{self.items_removed} removed, {self.items_trimmed} trimmed, "
            f"{self.original_tokens:,} -> {self.total_tokens:,} tokens, "
            f"avg score {self.average_relevance_score:.2f}, min {self.lowest_relevance_score:.2f}"
        )


class OptimizedConversationHistory(BaseModel):
    """Pruned conversation history, oldest first."""

    turns: list[ConversationTurn] = Field(default_factory=list)
    original_turn_count: int = Field(default=0, ge=0)
    final_turn_count: int = Field(default=0, ge=0)
    turns_removed: int = Field(default=0, ge=0)
    turns_summarized: int = Field(default=0, ge=0)
    turns_compressed: int = Field(default=0, ge=0)
    summary: str | None = Field(default=None, description="Synthetic summary standing in for collapsed turns")
    original_tokens: int = Field(default=0, ge=0)
    final_tokens: int = Field(default=0, ge=0)
    strategies_applied: list[PruningStrategy] = Field(
        default_factory=list,
        description="Strategies run, in order; the last one produced the result",
    )
    fallback_applied: bool = Field(default=False)
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=False)

    @property
    def strategy(self) -> PruningStrategy | None:
        return self.strategies_applied[-1] if self.strategies_applied else None

    @property
    def tokens_saved(self) -> int:
        return max(0, self.original_tokens - self.final_tokens)

    @property
    def optimization_percentage(self) -> float:
        if self.original_tokens == 0:
            return 0.0
        return self.tokens_saved / self.original_tokens * 100.0

    @property
    def was_optimized(self) -> bool:
        return self.turns_removed > 0 or self.turns_summarized > 0 or self.turns_compressed > 0

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data.update(
            {
                "tokens_saved": self.tokens_saved,
                "optimization_percentage": round(self.optimization_percentage, 2),
                "was_optimized": self.was_optimized,
            }
        )
        return data

    def get_summary(self) -> str:
        strategies = " -> ".join(s.value for s in self.strategies_applied) or "none"
        return (
            f"Conversation history ({strategies}): "
            f"{self.original_turn_count} -> {self.final_turn_count} turns, "
            f"{self.turns_removed} removed, {self.turns_summarized} summarized, "
            f"{self.turns_compressed} compressed, "
            f"{self.original_tokens:,} -> {self.final_tokens:,} tokens "
            f"({self.optimization_percentage:.1f}% saved)"
        )


class OptimizedPrompt(BaseModel):
    """Composite prompt after budget allocation."""

    system_prompt: str
    user_message: str
    retrieval_context: list[RankedItem] = Field(default_factory=list)
    conversation_history: list[ConversationTurn] = Field(default_factory=list)
    original_estimate: TokenEstimate
    optimized_estimate: TokenEstimate
    retrieval_items_removed: int = Field(default=0, ge=0)
    retrieval_items_trimmed: int = Field(default=0, ge=0)
    history_turns_removed: int = Field(default=0, ge=0)
    history_turns_summarized: int = Field(default=0, ge=0)
    was_optimized: bool = False
    optimization_strategy: str = "None - within token limits"
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=False)

    @property
    def tokens_saved(self) -> int:
        return max(0, self.original_estimate.total_input_tokens - self.optimized_estimate.total_input_tokens)

    @property
    def optimization_percentage(self) -> float:
        original = self.original_estimate.total_input_tokens
        if original == 0:
            return 0.0
        return self.tokens_saved / original * 100.0

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"original_estimate", "optimized_estimate"})
        data.update(
            {
                "original_estimate": self.original_estimate.to_dict(),
                "optimized_estimate": self.optimized_estimate.to_dict(),
                "tokens_saved": self.tokens_saved,
                "optimization_percentage": round(self.optimization_percentage, 2),
            }
        )
        return data

    def get_summary(self) -> str:
        lines = [
            f"Prompt optimization: {self.optimization_strategy}",
            f"  Tokens: {self.original_estimate.total_input_tokens:,} -> "
            f"{self.optimized_estimate.total_input_tokens:,} "
            f"({self.tokens_saved:,} saved, {self.optimization_percentage:.1f}%)",
            f"  Retrieval items removed: {self.retrieval_items_removed} (trimmed: {self.retrieval_items_trimmed})",
            f"  History turns removed: {self.history_turns_removed} "
            f"(summarized: {self.history_turns_summarized})",
            f"  Within limit: {not self.optimized_estimate.exceeds_limit}",
        ]
        lines.extend(f"  Warning: {warning}" for warning in self.warnings)
        return "\n".join(lines)


class ConversationHealthMetrics(BaseModel):
    """Diagnostics for deciding whether and how to prune a conversation."""

    total_turns: int = 0
    total_tokens: int = 0
    average_tokens_per_turn: float = 0.0
    user_turns: int = 0
    assistant_turns: int = 0
    summarized_turns: int = 0
    conversation_age_seconds: float = 0.0
    topic_switches: int = 0
    distinct_topics: int = 0
    token_efficiency: float = Field(default=1.0, ge=0.0, le=1.0, description="Share of the token ceiling left unused")
    needs_optimization: bool = False
    optimization_reason: str | None = None
    recommended_pruning_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    recommended_strategy: PruningStrategy = PruningStrategy.RECENT_MESSAGES

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def get_health_summary(self) -> str:
        lines = [
            "Conversation health:",
            f"  Total turns: {self.total_turns} ({self.user_turns} user, {self.assistant_turns} assistant)",
            f"  Average tokens/turn: {self.average_tokens_per_turn:.1f}",
            f"  Age: {self.conversation_age_seconds / 86400:.1f} days",
            f"  Topic switches: {self.topic_switches}",
            f"  Token efficiency: {self.token_efficiency * 100:.1f}%",
            f"  Needs optimization: {self.needs_optimization}",
        ]
        if self.needs_optimization:
            lines.append(f"  Reason: {self.optimization_reason}")
            lines.append(f"  Recommended strategy: {self.recommended_strategy.value}")
        if self.recommended_pruning_percentage > 0:
            lines.append(f"  Recommended pruning: {self.recommended_pruning_percentage:.1f}%")
        return "\n".join(lines)
