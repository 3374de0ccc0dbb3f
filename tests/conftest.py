"""
Context Budget — Test Configuration and Shared Fixtures

Provides a deterministic word-based token counter and factories for prompt
parts, and resets every module-level singleton between tests.
"""

import os
from collections.abc import Callable, Generator
from datetime import UTC, datetime, timedelta

import pytest

# Set test environment before any config is loaded
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"

from context_budget.config import loader as config_loader  # noqa: E402
from context_budget.context_optimization import (  # noqa: E402
    ConversationHistoryOptimizer,
    PromptBudgetAllocator,
    RetrievalContextOptimizer,
)
from context_budget.models import ConversationTurn, MessageRole, RankedItem  # noqa: E402
from context_budget.observability import monitoring  # noqa: E402
from context_budget.token_management import TokenEstimator  # noqa: E402
from context_budget.token_management.catalog import get_model_catalog  # noqa: E402


class WordCounter:
    """One token per whitespace-separated word; accepts any known model."""

    def __init__(self) -> None:
        self.calls = 0

    def count_tokens(self, text: str, model: str) -> int:
        self.calls += 1
        get_model_catalog().resolve(model)
        return len(text.split())


def words(count: int, prefix: str = "w") -> str:
    """Text with exactly `count` words."""
    return " ".join(f"{prefix}{index}" for index in range(count))


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Isolate tests from each other's config, counters, accountants and metrics."""
    from context_budget import manager
    from context_budget.token_management import counter
    from context_budget.usage_accounting import tracker

    monkeypatch.setattr(config_loader, "_config_instance", None)
    monkeypatch.setattr(counter, "_counter_instance", None)
    monkeypatch.setattr(tracker, "_accountant_instance", None)
    monkeypatch.setattr(manager, "_manager_instance", None)
    monkeypatch.setattr(monitoring, "_observability_adapter", None)
    yield


@pytest.fixture
def word_counter() -> WordCounter:
    return WordCounter()


@pytest.fixture
def estimator(word_counter: WordCounter) -> TokenEstimator:
    return TokenEstimator(counter=word_counter)


@pytest.fixture
def retrieval_optimizer(estimator: TokenEstimator) -> RetrievalContextOptimizer:
    return RetrievalContextOptimizer(estimator=estimator)


@pytest.fixture
def history_optimizer(estimator: TokenEstimator) -> ConversationHistoryOptimizer:
    return ConversationHistoryOptimizer(estimator=estimator)


@pytest.fixture
def allocator(estimator: TokenEstimator) -> PromptBudgetAllocator:
    return PromptBudgetAllocator(estimator=estimator)


@pytest.fixture
def make_item() -> Callable[..., RankedItem]:
    """Factory for retrieval items with a given word count."""

    def factory(
        tokens: int,
        score: float = 0.5,
        source: str | None = None,
        prefix: str = "r",
    ) -> RankedItem:
        return RankedItem(content=words(tokens, prefix), relevance_score=score, source=source)

    return factory


@pytest.fixture
def make_turns() -> Callable[..., list[ConversationTurn]]:
    """Factory for alternating user/assistant turns, one minute apart, oldest first."""

    def factory(
        count: int,
        tokens: int = 10,
        start: datetime | None = None,
        **overrides: object,
    ) -> list[ConversationTurn]:
        start = start or datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
        return [
            ConversationTurn(
                role=MessageRole.USER if index % 2 == 0 else MessageRole.ASSISTANT,
                content=words(tokens, prefix=f"t{index}_"),
                timestamp=start + timedelta(minutes=index),
                **overrides,
            )
            for index in range(count)
        ]

    return factory
