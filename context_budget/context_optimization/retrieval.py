"""
Retrieval Context Optimizer

Selects the subset of ranked retrieval passages that fits a token ceiling.

Selection is a bounded greedy pass over the candidates in relevance order,
O(n log n) and deterministic for identical inputs:

- items are admitted while the running total stays within the ceiling and
  fewer than max_results are admitted;
- the first min_results items are always admitted, even below the relevance
  floor or past the ceiling (reported via exceeded_ceiling and a warning);
- items over the per-item ceiling are truncated when trimming is enabled,
  otherwise skipped;
- output keeps ranking order.
"""

import logging
from collections.abc import Sequence

from ..models import RankedItem
from ..token_management.counter import TokenCounter, truncate_to_token_limit
from ..token_management.estimator import TokenEstimator
from .config import TRUNCATION_NOTICE, RetrievalOptimizationOptions
from .models import OptimizedRetrievalContext

logger = logging.getLogger(__name__)


class RetrievalContextOptimizer:
    """Relevance-ranked trimming of retrieval context. Stateless."""

    def __init__(self, counter: TokenCounter | None = None, estimator: TokenEstimator | None = None) -> None:
        self.estimator = estimator or TokenEstimator(counter)
        self.counter = self.estimator.counter

    def optimize(
        self,
        items: Sequence[RankedItem],
        options: RetrievalOptimizationOptions | None = None,
    ) -> OptimizedRetrievalContext:
        """
        Select retrieval items within the configured ceilings.

        Args:
            items: Candidates, ideally already relevance-ordered by the retriever
            options: Selection options

        Returns:
            OptimizedRetrievalContext with the admitted items in ranking order

        Raises:
            ConfigurationError: If the options are inconsistent
        """
        options = options or RetrievalOptimizationOptions()
        options.check()

        if not items:
            return OptimizedRetrievalContext(optimization_strategy="No results to optimize")

        model = options.model_name
        token_counts = [self.estimator.count_item(item, model) for item in items]
        original_tokens = sum(token_counts)

        # Stable sort: ties keep the retriever's order
        ranked = sorted(zip(items, token_counts, strict=True), key=lambda pair: pair[0].relevance_score, reverse=True)
        if options.prefer_diverse_sources:
            consider_order = self._diverse_order(ranked)
        else:
            consider_order = list(range(len(ranked)))

        admitted: dict[int, RankedItem] = {}
        total_tokens = 0
        trimmed = 0
        exceeded_ceiling = False

        for position in consider_order:
            if len(admitted) >= options.max_results:
                break

            item, tokens = ranked[position]
            forced = len(admitted) < options.min_results

            if not forced and item.relevance_score < options.min_relevance_score:
                continue

            was_cut = False
            if tokens > options.max_tokens_per_result:
                if options.trim_large_results:
                    item = self.trim_item(item, options.max_tokens_per_result, model, options.truncation_notice)
                    tokens = self.estimator.count_item(item, model)
                    was_cut = True
                elif not forced:
                    continue

            if forced:
                if total_tokens + tokens > options.max_tokens:
                    exceeded_ceiling = True
            elif total_tokens + tokens > options.max_tokens:
                continue

            admitted[position] = item
            total_tokens += tokens
            trimmed += was_cut

        selected = [admitted[position] for position in sorted(admitted)]
        removed = len(items) - len(selected)

        result = OptimizedRetrievalContext(
            items=selected,
            original_item_count=len(items),
            items_removed=removed,
            items_trimmed=trimmed,
            original_tokens=original_tokens,
            total_tokens=total_tokens,
            exceeded_ceiling=exceeded_ceiling,
            was_optimized=removed > 0 or trimmed > 0,
        )
        if selected:
            scores = [item.relevance_score for item in selected]
            result.average_relevance_score = sum(scores) / len(scores)
            result.lowest_relevance_score = min(scores)

        strategies = []
        if removed:
            strategies.append(f"Removed {removed} low-ranked results")
        if trimmed:
            strategies.append(f"Trimmed {trimmed} large results")
        result.optimization_strategy = ", ".join(strategies) or "No optimization needed"

        if exceeded_ceiling:
            result.warnings.append(
                f"Minimum of {options.min_results} results exceeds the {options.max_tokens}-token ceiling "
                f"({total_tokens} tokens admitted)"
            )
            logger.warning(result.warnings[-1])

        logger.debug(result.get_summary())
        return result

    def rank_and_filter(
        self,
        items: Sequence[RankedItem],
        min_relevance_score: float = 0.3,
        max_results: int = 10,
    ) -> list[RankedItem]:
        """Drop items below the floor, then keep the top max_results by score."""
        ranked = sorted(items, key=lambda item: item.relevance_score, reverse=True)
        kept = [item for item in ranked if item.relevance_score >= min_relevance_score]
        return kept[:max_results]

    def trim_item(
        self,
        item: RankedItem,
        max_tokens: int,
        model: str = "gpt-4o",
        notice: str = TRUNCATION_NOTICE,
    ) -> RankedItem:
        """
        Truncate an item's content to max_tokens, appending a notice.

        Returns:
            The same item if it already fits, otherwise a trimmed copy with a
            recomputed token count
        """
        tokens = self.estimator.count_item(item, model)
        if tokens <= max_tokens:
            return item

        content = truncate_to_token_limit(item.content, max_tokens, self.counter, model, suffix=notice)
        return item.model_copy(
            update={
                "content": content,
                "token_count": self.estimator.count_text(content, model),
                "was_trimmed": True,
            }
        )

    def create_ranked_items(
        self,
        contents: Sequence[str],
        default_score: float = 0.5,
        model: str | None = None,
    ) -> list[RankedItem]:
        """
        Wrap plain passages as RankedItems labelled "Result 1", "Result 2", ...

        Token counts are filled in when a model is given.
        """
        return [
            RankedItem(
                content=content,
                relevance_score=default_score,
                source=f"Result {index + 1}",
                token_count=self.estimator.count_text(content, model) if model else None,
            )
            for index, content in enumerate(contents)
        ]

    @staticmethod
    def _diverse_order(ranked: list[tuple[RankedItem, int]]) -> list[int]:
        """Positions with the best item of each source first, then the rest."""
        seen: set[str | None] = set()
        first, rest = [], []
        for position, (item, _) in enumerate(ranked):
            if item.source is None or item.source not in seen:
                seen.add(item.source)
                first.append(position)
            else:
                rest.append(position)
        return first + rest
