"""
Prompt Budget Allocator

Fits a composite prompt (system prompt, user message, retrieval context,
conversation history) into a model's context window.

Per call: Unoptimized -> Estimated -> (over limit) Trimming -> Reestimated -> Done.

The system prompt and user message always round-trip unchanged; only the
retrieval context and the conversation history are reduced. The category
with the lower priority is trimmed first (history first on a tie), each
stage is followed by a fresh estimate, and a prompt that cannot be brought
under the limit at the configured minimums is returned as the best
achievable result with warnings and exceeds_limit set.
"""

import logging
from collections.abc import Sequence

from ..models import ConversationTurn, RankedItem
from ..token_management.counter import TokenCounter
from ..token_management.estimator import TokenEstimate, TokenEstimator
from .config import PromptCategory, PromptOptimizationOptions
from .history import ConversationHistoryOptimizer
from .models import OptimizedPrompt
from .retrieval import RetrievalContextOptimizer

logger = logging.getLogger(__name__)

REDUCIBLE_CATEGORIES = (PromptCategory.RETRIEVAL_CONTEXT, PromptCategory.CONVERSATION_HISTORY)


class _Allocation:
    """Mutable working state for one optimize() call."""

    def __init__(self, retrieval: list[RankedItem], history: list[ConversationTurn]) -> None:
        self.retrieval = retrieval
        self.history = history
        self.retrieval_trimmed = 0
        self.history_removed = 0
        self.history_summarized = 0
        self.history_compressed = 0
        self.warnings: list[str] = []


class PromptBudgetAllocator:
    """
    Priority-aware budget allocation across the four prompt categories.

    Stateless and re-entrant; the estimator and both optimizers share one
    token counter.
    """

    def __init__(self, counter: TokenCounter | None = None, estimator: TokenEstimator | None = None) -> None:
        self.estimator = estimator or TokenEstimator(counter)
        self.retrieval_optimizer = RetrievalContextOptimizer(estimator=self.estimator)
        self.history_optimizer = ConversationHistoryOptimizer(estimator=self.estimator)

    def estimate(
        self,
        system_prompt: str,
        user_message: str,
        retrieval_items: Sequence[RankedItem],
        history_turns: Sequence[ConversationTurn],
        options: PromptOptimizationOptions,
    ) -> TokenEstimate:
        """Estimate against the effective window (safety buffer and target applied)."""
        return self.estimator.estimate(
            system_prompt,
            user_message,
            retrieval_items,
            history_turns,
            model=options.model_name,
            max_context_window=options.effective_context_window,
            reserved_completion_tokens=options.reserved_completion_tokens,
        )

    def needs_optimization(
        self,
        system_prompt: str,
        user_message: str,
        retrieval_items: Sequence[RankedItem] | None = None,
        history_turns: Sequence[ConversationTurn] | None = None,
        options: PromptOptimizationOptions | None = None,
    ) -> bool:
        options = options or PromptOptimizationOptions()
        options.check()
        estimate = self.estimate(system_prompt, user_message, retrieval_items or [], history_turns or [], options)
        return estimate.exceeds_limit

    def calculate_token_distribution(
        self,
        estimate: TokenEstimate,
        options: PromptOptimizationOptions,
    ) -> dict[PromptCategory, int]:
        """
        Split the input budget across the four categories.

        System prompt and user message are allotted their actual size. The
        remainder is shared between retrieval context and history in
        proportion to their priorities, capped at each category's actual
        size, with any unused share handed to the other category
        (higher priority first).

        Args:
            estimate: Estimate of the untrimmed prompt
            options: Priorities and limits

        Returns:
            Token allotment per category
        """
        input_budget = max(0, options.effective_context_window - options.reserved_completion_tokens)
        fixed = estimate.system_prompt_tokens + estimate.user_message_tokens
        reducible_budget = max(0, input_budget - fixed)

        actual = {
            PromptCategory.RETRIEVAL_CONTEXT: estimate.retrieval_context_tokens,
            PromptCategory.CONVERSATION_HISTORY: estimate.conversation_history_tokens,
        }
        total_priority = sum(options.priority_of(category) for category in REDUCIBLE_CATEGORIES)

        distribution: dict[PromptCategory, int] = {
            PromptCategory.SYSTEM_PROMPT: estimate.system_prompt_tokens,
            PromptCategory.USER_MESSAGE: estimate.user_message_tokens,
        }
        for category in REDUCIBLE_CATEGORIES:
            if total_priority > 0:
                share = int(reducible_budget * options.priority_of(category) / total_priority)
            else:
                share = reducible_budget // len(REDUCIBLE_CATEGORIES)
            distribution[category] = min(actual[category], share)

        unused = reducible_budget - sum(distribution[category] for category in REDUCIBLE_CATEGORIES)
        for category in sorted(REDUCIBLE_CATEGORIES, key=options.priority_of, reverse=True):
            if unused <= 0:
                break
            additional = min(unused, actual[category] - distribution[category])
            distribution[category] += additional
            unused -= additional

        return distribution

    def optimize(
        self,
        system_prompt: str,
        user_message: str,
        retrieval_items: Sequence[RankedItem] | None = None,
        history_turns: Sequence[ConversationTurn] | None = None,
        options: PromptOptimizationOptions | None = None,
    ) -> OptimizedPrompt:
        """
        Fit a composite prompt into the configured budget.

        Args:
            system_prompt: System instructions (never altered)
            user_message: Current user input (never altered)
            retrieval_items: Retrieved passages
            history_turns: Prior turns, oldest first
            options: Budget options

        Returns:
            OptimizedPrompt; inputs are returned untouched when already within budget

        Raises:
            ConfigurationError: If the options are inconsistent
        """
        options = options or PromptOptimizationOptions()
        options.check()
        retrieval_items = list(retrieval_items or [])
        history_turns = list(history_turns or [])

        original = self.estimate(system_prompt, user_message, retrieval_items, history_turns, options)

        if not original.exceeds_limit:
            logger.debug(
                f"Prompt within budget for {options.model_name}: "
                f"{original.total_tokens}/{original.max_context_window} tokens"
            )
            return OptimizedPrompt(
                system_prompt=system_prompt,
                user_message=user_message,
                retrieval_context=retrieval_items,
                conversation_history=history_turns,
                original_estimate=original,
                optimized_estimate=original,
                was_optimized=False,
                optimization_strategy="None - within token limits",
            )

        logger.info(
            f"Prompt exceeds budget for {options.model_name}: "
            f"{original.total_tokens}/{original.max_context_window} tokens, trimming"
        )

        state = _Allocation(retrieval_items, history_turns)
        input_budget = options.effective_context_window - options.reserved_completion_tokens
        available = input_budget - original.system_prompt_tokens - original.user_message_tokens
        if available < 0:
            state.warnings.append(
                f"System prompt and user message alone need {-available} tokens more than the "
                f"{input_budget}-token input budget"
            )
            available = 0

        distribution = self.calculate_token_distribution(original, options)
        first, second = sorted(
            REDUCIBLE_CATEGORIES,
            key=lambda category: (
                options.priority_of(category),
                0 if category == PromptCategory.CONVERSATION_HISTORY else 1,
            ),
        )

        current = original
        tokens = self._category_tokens(current)
        first_ceiling = max(distribution[first], available - tokens[second])
        current = self._trim(first, max(0, first_ceiling), state, system_prompt, user_message, options, current)

        tokens = self._category_tokens(current)
        current = self._trim(
            second, max(0, available - tokens[first]), state, system_prompt, user_message, options, current
        )

        tokens = self._category_tokens(current)
        if tokens[first] + tokens[second] > available:
            current = self._trim(
                first, max(0, available - tokens[second]), state, system_prompt, user_message, options, current
            )

        retrieval_removed = len(retrieval_items) - len(state.retrieval)
        if retrieval_removed > 0:
            state.warnings.append(f"Removed {retrieval_removed} retrieval context items to fit token limits")
        if state.history_removed > 0:
            state.warnings.append(
                f"Removed {state.history_removed} conversation history turns to fit token limits"
            )
        if current.exceeds_limit:
            state.warnings.append(
                f"Prompt still exceeds the token budget after trimming to configured minimums "
                f"({current.total_tokens}/{current.max_context_window} tokens)"
            )
            logger.warning(state.warnings[-1])

        result = OptimizedPrompt(
            system_prompt=system_prompt,
            user_message=user_message,
            retrieval_context=state.retrieval,
            conversation_history=state.history,
            original_estimate=original,
            optimized_estimate=current,
            retrieval_items_removed=retrieval_removed,
            retrieval_items_trimmed=state.retrieval_trimmed,
            history_turns_removed=state.history_removed,
            history_turns_summarized=state.history_summarized,
            was_optimized=True,
            optimization_strategy=self._strategy_name(retrieval_removed, state),
            warnings=state.warnings,
        )
        logger.info(
            f"Prompt optimized for {options.model_name}: {original.total_tokens} -> "
            f"{current.total_tokens} tokens ({result.optimization_strategy})"
        )
        return result

    def _trim(
        self,
        category: PromptCategory,
        ceiling: int,
        state: _Allocation,
        system_prompt: str,
        user_message: str,
        options: PromptOptimizationOptions,
        current: TokenEstimate,
    ) -> TokenEstimate:
        """Reduce one category to the ceiling and return a fresh estimate."""
        if self._category_tokens(current)[category] <= ceiling:
            return current

        if category == PromptCategory.RETRIEVAL_CONTEXT:
            retrieval_options = options.retrieval.model_copy(
                update={
                    "max_tokens": ceiling,
                    "min_results": options.min_retrieval_items,
                    "model_name": options.model_name,
                }
            )
            optimized = self.retrieval_optimizer.optimize(state.retrieval, retrieval_options)
            state.retrieval = optimized.items
            state.retrieval_trimmed += optimized.items_trimmed
            state.warnings.extend(optimized.warnings)
        else:
            history_options = options.history.model_copy(
                update={
                    "max_tokens": ceiling,
                    "min_messages": options.min_history_turns,
                    "model_name": options.model_name,
                }
            )
            optimized = self.history_optimizer.optimize(state.history, history_options)
            state.history = optimized.turns
            state.history_removed += optimized.turns_removed
            state.history_summarized += optimized.turns_summarized
            state.history_compressed += optimized.turns_compressed
            state.warnings.extend(optimized.warnings)

        return self.estimate(system_prompt, user_message, state.retrieval, state.history, options)

    @staticmethod
    def _category_tokens(estimate: TokenEstimate) -> dict[PromptCategory, int]:
        return {
            PromptCategory.RETRIEVAL_CONTEXT: estimate.retrieval_context_tokens,
            PromptCategory.CONVERSATION_HISTORY: estimate.conversation_history_tokens,
        }

    @staticmethod
    def _strategy_name(retrieval_removed: int, state: _Allocation) -> str:
        strategies = []
        if retrieval_removed > 0:
            strategies.append(f"Retrieval context reduction ({retrieval_removed} items)")
        if state.retrieval_trimmed > 0:
            strategies.append(f"Retrieval item trimming ({state.retrieval_trimmed} items)")
        if state.history_removed > 0:
            strategies.append(f"History pruning ({state.history_removed} turns)")
        if state.history_summarized > 0:
            strategies.append(f"History summarization ({state.history_summarized} turns)")
        if state.history_compressed > 0:
            strategies.append(f"History compression ({state.history_compressed} turns)")
        return ", ".join(strategies) or "No reduction possible at configured minimums"
