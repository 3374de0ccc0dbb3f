"""
Token Estimator Module

Composes per-fragment token counts for a composite prompt (system prompt,
user message, retrieval context, conversation history) into an immutable
TokenEstimate with utilization and over-limit flags.

Every retrieval item and history turn is counted individually so that the
optimizers can trim at item granularity without recounting the whole prompt.
"""

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..models import ConversationTurn, RankedItem
from .catalog import ModelCatalog, get_model_catalog
from .counter import TokenCounter, get_token_counter

logger = logging.getLogger(__name__)


class TokenEstimate(BaseModel):
    """Immutable token breakdown for one composite prompt."""

    system_prompt_tokens: int = Field(default=0, ge=0)
    user_message_tokens: int = Field(default=0, ge=0)
    retrieval_context_tokens: int = Field(default=0, ge=0)
    conversation_history_tokens: int = Field(default=0, ge=0)
    retrieval_item_tokens: tuple[int, ...] = Field(default=(), description="Per-item retrieval token counts")
    history_turn_tokens: tuple[int, ...] = Field(default=(), description="Per-turn history token counts")
    model_name: str = Field(..., description="Model the counts were computed for")
    max_context_window: int = Field(..., gt=0, description="Context window the estimate is judged against")
    reserved_completion_tokens: int = Field(default=0, ge=0, description="Tokens held back for the response")

    model_config = ConfigDict(frozen=True)

    @property
    def total_input_tokens(self) -> int:
        return (
            self.system_prompt_tokens
            + self.user_message_tokens
            + self.retrieval_context_tokens
            + self.conversation_history_tokens
        )

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.reserved_completion_tokens

    @property
    def remaining_tokens(self) -> int:
        return self.max_context_window - self.total_tokens

    @property
    def utilization_percentage(self) -> float:
        return self.total_tokens / self.max_context_window * 100.0

    @property
    def exceeds_limit(self) -> bool:
        return self.total_tokens > self.max_context_window

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data.update(
            {
                "total_input_tokens": self.total_input_tokens,
                "total_tokens": self.total_tokens,
                "remaining_tokens": self.remaining_tokens,
                "utilization_percentage": round(self.utilization_percentage, 2),
                "exceeds_limit": self.exceeds_limit,
            }
        )
        return data

    def get_summary(self) -> str:
        status = "EXCEEDS LIMIT" if self.exceeds_limit else "within limit"
        return (
            f"Token estimate for {self.model_name} ({status}):\n"
            f"  System prompt:        {self.system_prompt_tokens:,}\n"
            f"  User message:         {self.user_message_tokens:,}\n"
            f"  Retrieval context:    {self.retrieval_context_tokens:,} ({len(self.retrieval_item_tokens)} items)\n"
            f"  Conversation history: {self.conversation_history_tokens:,} ({len(self.history_turn_tokens)} turns)\n"
            f"  Reserved completion:  {self.reserved_completion_tokens:,}\n"
            f"  Total: {self.total_tokens:,} / {self.max_context_window:,} "
            f"({self.utilization_percentage:.1f}% utilization, {self.remaining_tokens:,} remaining)"
        )


class TokenEstimator:
    """
    Builds TokenEstimates with a pluggable TokenCounter.

    Stateless apart from its collaborators; safe to share between threads.
    Counter exceptions propagate unchanged.
    """

    def __init__(
        self,
        counter: TokenCounter | None = None,
        catalog: ModelCatalog | None = None,
    ) -> None:
        self.counter = counter or get_token_counter()
        self.catalog = catalog or get_model_catalog()

    def count_text(self, text: str, model: str) -> int:
        # Empty text still goes to the counter so unknown models are rejected
        return self.counter.count_tokens(text, model)

    def count_item(self, item: RankedItem | str, model: str) -> int:
        """Token count of a retrieval item, preferring its precomputed count."""
        if isinstance(item, str):
            return self.count_text(item, model)
        if item.token_count is not None:
            return item.token_count
        return self.count_text(item.content, model)

    def count_turn(self, turn: ConversationTurn | str, model: str) -> int:
        """Token count of a conversation turn, preferring its precomputed count."""
        if isinstance(turn, str):
            return self.count_text(turn, model)
        if turn.token_count is not None:
            return turn.token_count
        return self.count_text(turn.content, model)

    def estimate(
        self,
        system_prompt: str,
        user_message: str,
        retrieval_items: Sequence[RankedItem | str] | None = None,
        history_turns: Sequence[ConversationTurn | str] | None = None,
        model: str = "gpt-4o",
        max_context_window: int | None = None,
        reserved_completion_tokens: int | None = None,
    ) -> TokenEstimate:
        """
        Estimate tokens for a composite prompt.

        Args:
            system_prompt: System instructions
            user_message: Current user input
            retrieval_items: Retrieved passages, in ranking order
            history_turns: Prior turns, oldest first
            model: Model identifier passed to the counter
            max_context_window: Window to judge against (default: catalog value)
            reserved_completion_tokens: Response reservation (default: catalog value)

        Returns:
            TokenEstimate snapshot

        Raises:
            UnknownModelError: If a limit is omitted and the model is not in the catalog
        """
        if max_context_window is None:
            max_context_window = self.catalog.get_context_window(model)
        if reserved_completion_tokens is None:
            reserved_completion_tokens = self.catalog.get_max_completion_tokens(model)

        item_tokens = tuple(self.count_item(item, model) for item in retrieval_items or ())
        turn_tokens = tuple(self.count_turn(turn, model) for turn in history_turns or ())

        estimate = TokenEstimate(
            system_prompt_tokens=self.count_text(system_prompt, model),
            user_message_tokens=self.count_text(user_message, model),
            retrieval_context_tokens=sum(item_tokens),
            conversation_history_tokens=sum(turn_tokens),
            retrieval_item_tokens=item_tokens,
            history_turn_tokens=turn_tokens,
            model_name=model,
            max_context_window=max_context_window,
            reserved_completion_tokens=reserved_completion_tokens,
        )

        logger.debug(
            f"Estimated {estimate.total_tokens} tokens for {model} "
            f"({estimate.utilization_percentage:.1f}% of {max_context_window})"
        )
        return estimate
