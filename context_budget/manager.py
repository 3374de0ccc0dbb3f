"""
Token Budget Manager

Facade used by agents and the tool server. It turns the configured
TokenManagementConfig into per-call option objects, runs the optimizers and,
when an accountant is attached and an agent is named, records the outcome.

When token management is disabled every call is a passthrough: inputs come
back unchanged, but estimates are still computed so callers can see what
they are sending.
"""

import logging
from collections.abc import Sequence

from .context_optimization.allocator import PromptBudgetAllocator
from .context_optimization.config import (
    HistoryOptimizationOptions,
    PromptOptimizationOptions,
    PruningStrategy,
    TokenManagementConfig,
)
from .context_optimization.models import (
    ConversationHealthMetrics,
    OptimizedConversationHistory,
    OptimizedPrompt,
    OptimizedRetrievalContext,
)
from .models import ConversationTurn, MetadataValue, RankedItem
from .token_management.catalog import ModelCatalog, get_model_catalog
from .token_management.counter import TokenCounter
from .token_management.estimator import TokenEstimate, TokenEstimator
from .usage_accounting.models import MetadataKey
from .usage_accounting.tracker import UsageAccountant

logger = logging.getLogger(__name__)

DISABLED_STRATEGY = "Token management disabled"


class TokenBudgetManager:
    """
    Configured entry point for prompt budgeting.

    Features:
    - Composite prompt optimization with high-utilization warnings
    - Standalone retrieval and history optimization
    - Token estimation and conversation health analysis
    - Optional usage recording per agent
    """

    def __init__(
        self,
        config: TokenManagementConfig | None = None,
        counter: TokenCounter | None = None,
        catalog: ModelCatalog | None = None,
        accountant: UsageAccountant | None = None,
    ) -> None:
        """
        Initialize token budget manager.

        Args:
            config: Token management defaults (default: built-in defaults)
            counter: Token counter (default: shared tiktoken counter)
            catalog: Model catalog (default: shared catalog)
            accountant: Usage accountant; recording is skipped when None
        """
        self.config = config or TokenManagementConfig()
        self.catalog = catalog or get_model_catalog()
        self.estimator = TokenEstimator(counter, self.catalog)
        self.allocator = PromptBudgetAllocator(estimator=self.estimator)
        self.accountant = accountant

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled

    def prompt_options(self, model: str | None = None) -> PromptOptimizationOptions:
        """Per-call prompt options for a model (default: configured default model)."""
        return self.config.prompt_options(model, self.catalog)

    def count_tokens(self, text: str, model: str | None = None) -> int:
        return self.estimator.count_text(text, model or self.config.default_model)

    def optimize_prompt(
        self,
        system_prompt: str,
        user_message: str,
        retrieval_items: Sequence[RankedItem | str] | None = None,
        history_turns: Sequence[ConversationTurn] | None = None,
        model: str | None = None,
        options: PromptOptimizationOptions | None = None,
        agent_id: str | None = None,
        conversation_id: str | None = None,
        task_id: str | None = None,
        completion_tokens: int = 0,
        metadata: dict[MetadataKey | str, MetadataValue] | None = None,
    ) -> OptimizedPrompt:
        """
        Fit a composite prompt into the model's budget.

        Args:
            system_prompt: System instructions
            user_message: Current user input
            retrieval_items: Retrieved passages; plain strings get the default score
            history_turns: Prior turns, oldest first
            model: Target model (default: configured default model)
            options: Explicit options; overrides the configured defaults
            agent_id: Agent issuing the call; enables usage recording
            conversation_id: Conversation the call belongs to
            task_id: Optional task identifier for the usage record
            completion_tokens: Completion tokens already known for the call
            metadata: Extra usage-record metadata

        Returns:
            OptimizedPrompt

        Raises:
            UnknownModelError: If the model is not in the catalog
            ConfigurationError: If the options are inconsistent
        """
        items = self.as_ranked_items(retrieval_items or [])
        turns = list(history_turns or [])

        if not self.is_enabled:
            estimate = self.estimate_tokens(system_prompt, user_message, items, turns, model)
            return OptimizedPrompt(
                system_prompt=system_prompt,
                user_message=user_message,
                retrieval_context=items,
                conversation_history=turns,
                original_estimate=estimate,
                optimized_estimate=estimate,
                was_optimized=False,
                optimization_strategy=DISABLED_STRATEGY,
            )

        options = options or self.prompt_options(model)
        result = self.allocator.optimize(system_prompt, user_message, items, turns, options)

        if self.config.enable_logging:
            if result.was_optimized:
                logger.warning(f"Prompt optimization required:\n{result.get_summary()}")
            elif result.optimized_estimate.utilization_percentage > self.config.warning_threshold_percentage:
                estimate = result.optimized_estimate
                logger.warning(
                    f"High token usage: {estimate.utilization_percentage:.1f}% "
                    f"({estimate.total_tokens:,} / {estimate.max_context_window:,} tokens)"
                )

        if agent_id is not None and self.accountant is not None:
            self.accountant.record_prompt(
                agent_id=agent_id,
                conversation_id=conversation_id or agent_id,
                prompt=result,
                completion_tokens=completion_tokens,
                task_id=task_id,
                metadata=metadata,
            )

        return result

    def optimize_retrieval_context(
        self,
        items: Sequence[RankedItem | str],
        model: str | None = None,
    ) -> OptimizedRetrievalContext:
        """
        Trim retrieval results using the configured retrieval options.

        Args:
            items: Ranked items or plain passages (given the default score)
            model: Model used for counting (default: configured default model)

        Returns:
            OptimizedRetrievalContext
        """
        model = model or self.config.default_model
        ranked = self.as_ranked_items(items)

        if not self.is_enabled or not ranked:
            tokens = sum(self.estimator.count_item(item, model) for item in ranked)
            scores = [item.relevance_score for item in ranked]
            return OptimizedRetrievalContext(
                items=ranked,
                original_item_count=len(ranked),
                original_tokens=tokens,
                total_tokens=tokens,
                average_relevance_score=sum(scores) / len(scores) if scores else 0.0,
                lowest_relevance_score=min(scores, default=0.0),
                optimization_strategy=DISABLED_STRATEGY if not self.is_enabled else "No results to optimize",
            )

        options = self.config.retrieval.model_copy(update={"model_name": model})
        result = self.allocator.retrieval_optimizer.optimize(ranked, options)

        if self.config.enable_logging and result.was_optimized:
            logger.info(f"Retrieval context optimized: {result.get_summary()}")
        return result

    def optimize_conversation_history(
        self,
        turns: Sequence[ConversationTurn],
        model: str | None = None,
        strategy: PruningStrategy | None = None,
        max_tokens: int | None = None,
        current_topics: Sequence[str] | None = None,
    ) -> OptimizedConversationHistory:
        """
        Prune a conversation history using the configured history options.

        Args:
            turns: Conversation turns, oldest first
            model: Model used for counting (default: configured default model)
            strategy: Pruning strategy override
            max_tokens: Token ceiling override
            current_topics: Topics for topic-based pruning

        Returns:
            OptimizedConversationHistory
        """
        options = self.history_options(model, strategy, max_tokens, current_topics)
        turns = list(turns)

        if not self.is_enabled:
            tokens = sum(self.estimator.count_turn(turn, options.model_name) for turn in turns)
            return OptimizedConversationHistory(
                turns=turns,
                original_turn_count=len(turns),
                final_turn_count=len(turns),
                original_tokens=tokens,
                final_tokens=tokens,
            )

        result = self.allocator.history_optimizer.optimize(turns, options)
        if self.config.enable_logging and result.was_optimized:
            logger.info(f"Conversation history optimized: {result.get_summary()}")
        return result

    def history_options(
        self,
        model: str | None = None,
        strategy: PruningStrategy | None = None,
        max_tokens: int | None = None,
        current_topics: Sequence[str] | None = None,
    ) -> HistoryOptimizationOptions:
        update: dict[str, object] = {"model_name": model or self.config.default_model}
        if strategy is not None:
            update["strategy"] = PruningStrategy(strategy)
        if max_tokens is not None:
            update["max_tokens"] = max_tokens
        if current_topics is not None:
            update["current_topics"] = tuple(current_topics)
        return self.config.history.model_copy(update=update)

    def estimate_tokens(
        self,
        system_prompt: str,
        user_message: str,
        retrieval_items: Sequence[RankedItem | str] | None = None,
        history_turns: Sequence[ConversationTurn | str] | None = None,
        model: str | None = None,
    ) -> TokenEstimate:
        """
        Estimate a composite prompt against the model's full context window.

        Uses the configured completion reservation, or the model's default
        when none is configured.
        """
        return self.estimator.estimate(
            system_prompt,
            user_message,
            retrieval_items,
            history_turns,
            model=model or self.config.default_model,
            reserved_completion_tokens=self.config.reserved_completion_tokens,
        )

    def analyze_conversation(
        self,
        turns: Sequence[ConversationTurn],
        model: str | None = None,
    ) -> ConversationHealthMetrics:
        return self.allocator.history_optimizer.analyze_health(turns, self.history_options(model))

    def as_ranked_items(self, items: Sequence[RankedItem | str]) -> list[RankedItem]:
        """Wrap plain passages as RankedItems carrying the configured default score."""
        ranked: list[RankedItem] = []
        for index, item in enumerate(items):
            if isinstance(item, RankedItem):
                ranked.append(item)
            else:
                ranked.append(
                    RankedItem(
                        content=item,
                        relevance_score=self.config.default_retrieval_score,
                        source=f"Result {index + 1}",
                    )
                )
        return ranked


# Singleton instance
_manager_instance: TokenBudgetManager | None = None


def get_token_budget_manager() -> TokenBudgetManager:
    """
    Get singleton TokenBudgetManager configured from the global config.

    Usage recording is attached only when accounting is enabled.

    Returns:
        Shared TokenBudgetManager instance
    """
    global _manager_instance
    if _manager_instance is None:
        from .config import get_config
        from .usage_accounting.tracker import get_usage_accountant

        config = get_config()
        accountant = get_usage_accountant() if config.accounting.enabled else None
        _manager_instance = TokenBudgetManager(config=config.token_management, accountant=accountant)
    return _manager_instance


def reset_token_budget_manager() -> None:
    """Drop the shared manager (tests, config reload)."""
    global _manager_instance
    _manager_instance = None
