"""
Conversation History Optimizer

Reduces a conversation history to fit message-count and token ceilings with
a pluggable pruning strategy:

- RECENT_MESSAGES: keep the newest turns that fit (chronological suffix)
- RELEVANCE_SCORING: drop the lowest-scored turns first
- SUMMARIZATION: collapse older turns into one synthetic summary turn
- TOPIC_BASED: drop turns whose topics are no longer current, oldest first
- COMPRESS_ASSISTANT_RESPONSES: shorten long assistant turns, remove nothing

Guarantees, whatever the strategy:
- surviving turns keep their chronological order;
- the min_messages most recent turns are never removed;
- output never has more tokens than input;
- if the strategy leaves the history over a ceiling, RECENT_MESSAGES runs on
  its result as a fallback and a warning is recorded.

Turns that are kept unchanged are returned as the caller's own objects.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..models import ConversationTurn, MessageRole
from ..token_management.counter import TokenCounter, truncate_to_token_limit
from ..token_management.estimator import TokenEstimator
from .config import HistoryOptimizationOptions, PruningStrategy
from .models import ConversationHealthMetrics, OptimizedConversationHistory

logger = logging.getLogger(__name__)

COMPRESSION_MARKER = "..."


@dataclass
class _Entry:
    """A turn being worked on, with its token count and how many originals it stands for."""

    turn: ConversationTurn
    tokens: int
    represents: int = 1


@dataclass
class _PruneState:
    entries: list[_Entry]
    removed: int = 0
    summarized: int = 0
    compressed: int = 0
    summary: str | None = None

    @property
    def tokens(self) -> int:
        return sum(entry.tokens for entry in self.entries)

    def drop(self, index: int) -> None:
        entry = self.entries.pop(index)
        if entry.turn.was_summarized and entry.represents > 1:
            self.summarized -= entry.represents
            self.summary = None
        self.removed += entry.represents


class ConversationHistoryOptimizer:
    """Strategy-driven conversation pruning. Stateless."""

    def __init__(self, counter: TokenCounter | None = None, estimator: TokenEstimator | None = None) -> None:
        self.estimator = estimator or TokenEstimator(counter)
        self.counter = self.estimator.counter

    def optimize(
        self,
        turns: Sequence[ConversationTurn],
        options: HistoryOptimizationOptions | None = None,
    ) -> OptimizedConversationHistory:
        """
        Prune a conversation history.

        Args:
            turns: Conversation turns, oldest first
            options: Pruning options

        Returns:
            OptimizedConversationHistory with surviving turns in chronological order

        Raises:
            ConfigurationError: If the options are inconsistent
        """
        options = options or HistoryOptimizationOptions()
        options.check()

        if not turns:
            return OptimizedConversationHistory()

        model = options.model_name
        state = _PruneState(entries=[_Entry(turn, self.estimator.count_turn(turn, model)) for turn in turns])
        original_tokens = state.tokens
        protected = min(options.min_messages, len(turns))
        strategies = [options.strategy]
        warnings: list[str] = []
        fallback_applied = False

        self._apply_strategy(options.strategy, state, protected, options)

        if self._over_limits(state, options) and options.strategy != PruningStrategy.RECENT_MESSAGES:
            warnings.append(
                f"{options.strategy.value} left {len(state.entries)} turns ({state.tokens} tokens) over the "
                f"limits of {options.max_messages} turns / {options.max_tokens} tokens; "
                f"fell back to recent_messages"
            )
            logger.warning(warnings[-1])
            self._apply_recent_messages(state, protected, options)
            strategies.append(PruningStrategy.RECENT_MESSAGES)
            fallback_applied = True

        if self._over_limits(state, options):
            warnings.append(
                f"Protected minimum of {protected} recent turns needs {state.tokens} tokens; "
                f"history still exceeds the limits of {options.max_messages} turns / {options.max_tokens} tokens"
            )
            logger.warning(warnings[-1])

        result = OptimizedConversationHistory(
            turns=[entry.turn for entry in state.entries],
            original_turn_count=len(turns),
            final_turn_count=len(state.entries),
            turns_removed=state.removed,
            turns_summarized=state.summarized,
            turns_compressed=state.compressed,
            summary=state.summary,
            original_tokens=original_tokens,
            final_tokens=state.tokens,
            strategies_applied=strategies,
            fallback_applied=fallback_applied,
            warnings=warnings,
        )
        logger.debug(result.get_summary())
        return result

    def analyze_health(
        self,
        turns: Sequence[ConversationTurn],
        options: HistoryOptimizationOptions | None = None,
    ) -> ConversationHealthMetrics:
        """
        Diagnose a conversation against the pruning ceilings.

        Args:
            turns: Conversation turns, oldest first
            options: Ceilings and thresholds to judge against

        Returns:
            ConversationHealthMetrics with a recommended strategy
        """
        options = options or HistoryOptimizationOptions()
        if not turns:
            return ConversationHealthMetrics()

        model = options.model_name
        token_counts = [self.estimator.count_turn(turn, model) for turn in turns]
        total_tokens = sum(token_counts)
        assistant_tokens = sum(
            tokens for turn, tokens in zip(turns, token_counts, strict=True) if turn.role == MessageRole.ASSISTANT
        )

        topic_switches = 0
        previous_topics: set[str] | None = None
        distinct_topics: set[str] = set()
        for turn in turns:
            topics = {topic.lower() for topic in turn.topics}
            if not topics:
                continue
            distinct_topics |= topics
            if previous_topics is not None and topics.isdisjoint(previous_topics):
                topic_switches += 1
            previous_topics = topics

        token_efficiency = 0.0
        if options.max_tokens > 0:
            token_efficiency = min(1.0, max(0.0, 1.0 - total_tokens / options.max_tokens))

        reasons = []
        pruning = 0.0
        if total_tokens > options.max_tokens:
            reasons.append(f"{total_tokens} tokens exceed the {options.max_tokens}-token ceiling")
            pruning = max(pruning, (total_tokens - options.max_tokens) / total_tokens * 100.0)
        if len(turns) > options.max_messages:
            reasons.append(f"{len(turns)} turns exceed the {options.max_messages}-turn ceiling")
            pruning = max(pruning, (len(turns) - options.max_messages) / len(turns) * 100.0)

        if topic_switches >= 3:
            recommended = PruningStrategy.TOPIC_BASED
        elif len(turns) > options.summarization_threshold:
            recommended = PruningStrategy.SUMMARIZATION
        elif total_tokens and assistant_tokens / total_tokens > 0.6:
            recommended = PruningStrategy.COMPRESS_ASSISTANT_RESPONSES
        else:
            recommended = PruningStrategy.RECENT_MESSAGES

        return ConversationHealthMetrics(
            total_turns=len(turns),
            total_tokens=total_tokens,
            average_tokens_per_turn=total_tokens / len(turns),
            user_turns=sum(1 for turn in turns if turn.role == MessageRole.USER),
            assistant_turns=sum(1 for turn in turns if turn.role == MessageRole.ASSISTANT),
            summarized_turns=sum(1 for turn in turns if turn.was_summarized),
            conversation_age_seconds=max(0.0, (turns[-1].timestamp - turns[0].timestamp).total_seconds()),
            topic_switches=topic_switches,
            distinct_topics=len(distinct_topics),
            token_efficiency=token_efficiency,
            needs_optimization=bool(reasons),
            optimization_reason="; ".join(reasons) or None,
            recommended_pruning_percentage=pruning,
            recommended_strategy=recommended,
        )

    def _apply_strategy(
        self,
        strategy: PruningStrategy,
        state: _PruneState,
        protected: int,
        options: HistoryOptimizationOptions,
    ) -> None:
        if strategy == PruningStrategy.RECENT_MESSAGES:
            self._apply_recent_messages(state, protected, options)
        elif strategy == PruningStrategy.RELEVANCE_SCORING:
            self._apply_relevance_scoring(state, protected, options)
        elif strategy == PruningStrategy.SUMMARIZATION:
            self._apply_summarization(state, protected, options)
        elif strategy == PruningStrategy.TOPIC_BASED:
            self._apply_topic_based(state, protected, options)
        elif strategy == PruningStrategy.COMPRESS_ASSISTANT_RESPONSES:
            self._apply_compression(state, protected, options)

    @staticmethod
    def _over_limits(state: _PruneState, options: HistoryOptimizationOptions) -> bool:
        return state.tokens > options.max_tokens or len(state.entries) > options.max_messages

    def _apply_recent_messages(
        self,
        state: _PruneState,
        protected: int,
        options: HistoryOptimizationOptions,
    ) -> None:
        """Keep the longest suffix within both ceilings, never shorter than the protected window."""
        keep = 0
        running = 0
        for entry in reversed(state.entries):
            within = keep < options.max_messages and running + entry.tokens <= options.max_tokens
            if keep >= protected and not within:
                break
            keep += 1
            running += entry.tokens

        while len(state.entries) > keep:
            state.drop(0)

    def _apply_relevance_scoring(
        self,
        state: _PruneState,
        protected: int,
        options: HistoryOptimizationOptions,
    ) -> None:
        """Drop lowest-scored turns outside the protected window until within the ceilings."""
        candidates = state.entries[: len(state.entries) - protected]
        # Lowest score first, older first among equal scores
        order = sorted(candidates, key=lambda entry: entry.turn.relevance_score)
        for entry in order:
            if not self._over_limits(state, options):
                break
            state.drop(self._index_of(state, entry))

    def _apply_topic_based(
        self,
        state: _PruneState,
        protected: int,
        options: HistoryOptimizationOptions,
    ) -> None:
        """Drop turns tagged only with stale topics, oldest first, until within the ceilings."""
        current = {topic.lower() for topic in options.current_topics}
        candidates = [
            entry
            for entry in state.entries[: len(state.entries) - protected]
            if entry.turn.topics and current.isdisjoint(topic.lower() for topic in entry.turn.topics)
        ]
        for entry in candidates:
            if not self._over_limits(state, options):
                break
            state.drop(self._index_of(state, entry))

    def _apply_summarization(
        self,
        state: _PruneState,
        protected: int,
        options: HistoryOptimizationOptions,
    ) -> None:
        """Collapse everything older than the kept-recent window into one summary turn."""
        if len(state.entries) <= options.summarization_threshold:
            return

        keep = max(options.summarization_keep_recent, protected)
        collapse_count = len(state.entries) - keep
        if collapse_count < 2:
            return

        collapsed = state.entries[:collapse_count]
        collapsed_tokens = sum(entry.tokens for entry in collapsed)
        model = options.model_name

        content = self._build_summary([entry.turn for entry in collapsed], options.summary_max_length)
        # A summary must never cost more than the turns it replaces
        if self.estimator.count_text(content, model) > collapsed_tokens:
            content = truncate_to_token_limit(content, collapsed_tokens, self.counter, model)
        summary_tokens = self.estimator.count_text(content, model)

        topics: list[str] = []
        for entry in collapsed:
            topics.extend(topic for topic in entry.turn.topics if topic not in topics)

        summary_turn = ConversationTurn(
            role=MessageRole.SYSTEM,
            content=content,
            timestamp=collapsed[-1].turn.timestamp,
            token_count=summary_tokens,
            relevance_score=max(entry.turn.relevance_score for entry in collapsed),
            topics=tuple(topics),
            was_summarized=True,
            original_content="\n".join(
                f"{entry.turn.role.value}: {entry.turn.original_content or entry.turn.content}"
                for entry in collapsed
            ),
        )

        represents = sum(entry.represents for entry in collapsed)
        state.entries[:collapse_count] = [_Entry(summary_turn, summary_tokens, represents)]
        state.summarized += represents
        state.summary = content

    def _apply_compression(
        self,
        state: _PruneState,
        protected: int,
        options: HistoryOptimizationOptions,
    ) -> None:
        """
        Truncate long assistant turns to compressed_response_max_length characters.

        Turns in the protected window stay verbatim, not only present.
        """
        limit = options.compressed_response_max_length
        model = options.model_name
        for index in range(len(state.entries) - protected):
            entry = state.entries[index]
            turn = entry.turn
            if turn.role != MessageRole.ASSISTANT or len(turn.content) <= limit:
                continue

            content = turn.content[: max(0, limit - len(COMPRESSION_MARKER))].rstrip() + COMPRESSION_MARKER
            tokens = self.estimator.count_text(content, model)
            if tokens >= entry.tokens:
                continue

            compressed = turn.model_copy(
                update={
                    "content": content,
                    "token_count": tokens,
                    "was_compressed": True,
                    "original_content": turn.original_content or turn.content,
                }
            )
            state.entries[index] = _Entry(compressed, tokens, entry.represents)
            state.compressed += 1

    @staticmethod
    def _build_summary(turns: list[ConversationTurn], max_length: int) -> str:
        header = f"[Summary of {len(turns)} earlier messages]"
        per_turn = max(40, (max_length - len(header)) // max(1, len(turns)))
        lines = [header]
        for turn in turns:
            text = " ".join(turn.content.split())
            if len(text) > per_turn:
                text = text[: per_turn - len(COMPRESSION_MARKER)].rstrip() + COMPRESSION_MARKER
            lines.append(f"- {turn.role.value}: {text}")
        summary = "\n".join(lines)
        if len(summary) > max_length:
            summary = summary[: max_length - len(COMPRESSION_MARKER)].rstrip() + COMPRESSION_MARKER
        return summary

    @staticmethod
    def _index_of(state: _PruneState, target: _Entry) -> int:
        for index, entry in enumerate(state.entries):
            if entry is target:
                return index
        raise ValueError("entry is no longer part of the history")
