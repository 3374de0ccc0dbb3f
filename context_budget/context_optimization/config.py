"""
Context Optimization Configuration

Per-call option objects for the retrieval, history and prompt optimizers.

Options are passed explicitly into every call; nothing here is process-wide
state. Field constraints are enforced by pydantic at construction time.
Cross-field rules are enforced by check(), which every optimizer calls on
entry (so copies made with model_copy(update=...) are validated too).
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ConfigurationError
from ..token_management.catalog import ModelCatalog, get_model_catalog

TRUNCATION_NOTICE = "\n\n[Content truncated to fit token limits]"


class PruningStrategy(str, Enum):
    """Conversation history reduction policies."""

    RECENT_MESSAGES = "recent_messages"
    RELEVANCE_SCORING = "relevance_scoring"
    SUMMARIZATION = "summarization"
    TOPIC_BASED = "topic_based"
    COMPRESS_ASSISTANT_RESPONSES = "compress_assistant_responses"


class PromptCategory(str, Enum):
    """The four content categories of a composite prompt."""

    SYSTEM_PROMPT = "system_prompt"
    USER_MESSAGE = "user_message"
    RETRIEVAL_CONTEXT = "retrieval_context"
    CONVERSATION_HISTORY = "conversation_history"


class RetrievalOptimizationOptions(BaseModel):
    """Options for selecting retrieval context."""

    max_tokens: int = Field(default=4000, ge=0, description="Token ceiling for all admitted items")
    min_relevance_score: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Items scoring below this are skipped once the minimum count is met",
    )
    min_results: int = Field(default=3, ge=0, description="Items always admitted if available")
    max_results: int = Field(default=10, ge=1, description="Maximum admitted items")
    max_tokens_per_result: int = Field(default=1000, ge=1, description="Per-item token ceiling")
    trim_large_results: bool = Field(
        default=True,
        description="Truncate oversized items instead of skipping them",
    )
    prefer_diverse_sources: bool = Field(
        default=False,
        description="Admit one item per source before admitting repeats",
    )
    model_name: str = Field(default="gpt-4o", description="Model used for token counting")
    truncation_notice: str = Field(default=TRUNCATION_NOTICE, description="Appended to trimmed items")

    model_config = ConfigDict(validate_assignment=True)

    def check(self) -> None:
        """
        Raises:
            ConfigurationError: If min_results exceeds max_results
        """
        if self.min_results > self.max_results:
            raise ConfigurationError(
                "min_results cannot exceed max_results",
                {"min_results": self.min_results, "max_results": self.max_results},
            )


class HistoryOptimizationOptions(BaseModel):
    """Options for pruning conversation history."""

    max_messages: int = Field(default=20, ge=1, description="Maximum turns kept")
    max_tokens: int = Field(default=5000, ge=0, description="Token ceiling for the kept history")
    min_messages: int = Field(default=3, ge=0, description="Most recent turns that are never removed")
    strategy: PruningStrategy = Field(default=PruningStrategy.RECENT_MESSAGES)
    model_name: str = Field(default="gpt-4o", description="Model used for token counting")
    compressed_response_max_length: int = Field(
        default=200,
        ge=1,
        description="Character limit for compressed assistant responses",
    )
    summarization_threshold: int = Field(
        default=15,
        ge=1,
        description="Summarize only when the history has more turns than this",
    )
    summarization_keep_recent: int = Field(default=5, ge=0, description="Recent turns kept verbatim")
    summary_max_length: int = Field(default=1500, ge=50, description="Character limit for the synthetic summary")
    current_topics: tuple[str, ...] = Field(
        default=(),
        description="Topics still relevant to the conversation (topic-based pruning)",
    )

    model_config = ConfigDict(validate_assignment=True)

    def check(self) -> None:
        """
        Raises:
            ConfigurationError: If min_messages exceeds max_messages
        """
        if self.min_messages > self.max_messages:
            raise ConfigurationError(
                "min_messages cannot exceed max_messages",
                {"min_messages": self.min_messages, "max_messages": self.max_messages},
            )


class PromptOptimizationOptions(BaseModel):
    """Options for fitting a composite prompt into a model's context window."""

    model_name: str = Field(default="gpt-4o", description="Target model")
    max_context_window: int = Field(default=128000, gt=0, description="Model context window")
    reserved_completion_tokens: int = Field(default=4096, ge=0, description="Tokens held back for the response")
    target_token_count: int = Field(
        default=0,
        ge=0,
        description="Prompt token target; 0 derives the target from the window",
    )
    safety_buffer_percentage: float = Field(
        default=10.0,
        ge=0.0,
        lt=100.0,
        description="Share of the window withheld to absorb tokenizer drift",
    )

    # Higher priority is trimmed later
    system_prompt_priority: int = Field(default=10, ge=0)
    user_message_priority: int = Field(default=10, ge=0)
    retrieval_context_priority: int = Field(default=6, ge=0)
    conversation_history_priority: int = Field(default=4, ge=0)

    min_retrieval_items: int = Field(default=3, ge=0, description="Retrieval items kept when available")
    min_history_turns: int = Field(default=2, ge=0, description="Most recent turns always kept")

    retrieval: RetrievalOptimizationOptions = Field(default_factory=RetrievalOptimizationOptions)
    history: HistoryOptimizationOptions = Field(default_factory=HistoryOptimizationOptions)

    model_config = ConfigDict(validate_assignment=True)

    @property
    def effective_context_window(self) -> int:
        """Window after the safety buffer, capped by the target when one is set."""
        window = self.max_context_window - int(self.max_context_window * self.safety_buffer_percentage / 100.0)
        if self.target_token_count > 0:
            window = min(window, self.target_token_count + self.reserved_completion_tokens)
        return window

    def priority_of(self, category: PromptCategory) -> int:
        return {
            PromptCategory.SYSTEM_PROMPT: self.system_prompt_priority,
            PromptCategory.USER_MESSAGE: self.user_message_priority,
            PromptCategory.RETRIEVAL_CONTEXT: self.retrieval_context_priority,
            PromptCategory.CONVERSATION_HISTORY: self.conversation_history_priority,
        }[category]

    def check(self) -> None:
        """
        Validate cross-field constraints.

        Raises:
            ConfigurationError: If the reservation leaves no room for input or
                a minimum guarantee exceeds its category's maximum
        """
        if self.reserved_completion_tokens >= self.effective_context_window:
            raise ConfigurationError(
                "Reserved completion tokens leave no room for the prompt",
                {
                    "reserved_completion_tokens": self.reserved_completion_tokens,
                    "effective_context_window": self.effective_context_window,
                    "max_context_window": self.max_context_window,
                },
            )
        if self.min_retrieval_items > self.retrieval.max_results:
            raise ConfigurationError(
                "min_retrieval_items cannot exceed retrieval max_results",
                {"min_retrieval_items": self.min_retrieval_items, "max_results": self.retrieval.max_results},
            )
        if self.min_history_turns > self.history.max_messages:
            raise ConfigurationError(
                "min_history_turns cannot exceed history max_messages",
                {"min_history_turns": self.min_history_turns, "max_messages": self.history.max_messages},
            )
        self.retrieval.check()
        self.history.check()

    @classmethod
    def for_model(
        cls,
        model: str,
        catalog: ModelCatalog | None = None,
        **overrides: object,
    ) -> "PromptOptimizationOptions":
        """
        Build options using the catalog's limits for a model.

        Raises:
            UnknownModelError: If the model is not in the catalog
        """
        spec = (catalog or get_model_catalog()).resolve(model)
        values: dict[str, object] = {
            "model_name": model,
            "max_context_window": spec.context_window,
            "reserved_completion_tokens": spec.max_completion_tokens,
        }
        values.update(overrides)
        return cls(**values)


class TokenManagementConfig(BaseModel):
    """
    Defaults for the TokenBudgetManager facade and the tool server.

    The optimizers themselves never read this; the manager turns it into
    per-call option objects.
    """

    enabled: bool = Field(default=True, description="Enable token budget management (disabled = passthrough)")
    enable_logging: bool = Field(default=True, description="Log optimizations and high utilization")
    default_model: str = Field(default="gpt-4o", description="Model used when a call names none")
    reserved_completion_tokens: int | None = Field(
        default=None,
        ge=0,
        description="Response reservation (None = model's catalog default)",
    )
    safety_buffer_percentage: float = Field(default=10.0, ge=0.0, lt=100.0)
    warning_threshold_percentage: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Log a warning when utilization exceeds this",
    )
    default_retrieval_score: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Relevance assumed for retrieval passages supplied without a score",
    )

    system_prompt_priority: int = Field(default=10, ge=0)
    user_message_priority: int = Field(default=10, ge=0)
    retrieval_context_priority: int = Field(default=6, ge=0)
    conversation_history_priority: int = Field(default=4, ge=0)
    min_retrieval_items: int = Field(default=3, ge=0)
    min_history_turns: int = Field(default=2, ge=0)

    retrieval: RetrievalOptimizationOptions = Field(default_factory=RetrievalOptimizationOptions)
    history: HistoryOptimizationOptions = Field(default_factory=HistoryOptimizationOptions)

    model_config = ConfigDict(validate_assignment=True)

    def prompt_options(
        self,
        model: str | None = None,
        catalog: ModelCatalog | None = None,
    ) -> PromptOptimizationOptions:
        """
        Build per-call prompt options for a model.

        Raises:
            UnknownModelError: If the model is not in the catalog
        """
        model = model or self.default_model
        overrides: dict[str, object] = {
            "safety_buffer_percentage": self.safety_buffer_percentage,
            "system_prompt_priority": self.system_prompt_priority,
            "user_message_priority": self.user_message_priority,
            "retrieval_context_priority": self.retrieval_context_priority,
            "conversation_history_priority": self.conversation_history_priority,
            "min_retrieval_items": self.min_retrieval_items,
            "min_history_turns": self.min_history_turns,
            "retrieval": self.retrieval.model_copy(update={"model_name": model}),
            "history": self.history.model_copy(update={"model_name": model}),
        }
        if self.reserved_completion_tokens is not None:
            overrides["reserved_completion_tokens"] = self.reserved_completion_tokens
        return PromptOptimizationOptions.for_model(model, catalog, **overrides)
