"""
Unit Tests for Tool Input Schemas
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from context_budget.context_optimization import PruningStrategy
from context_budget.models import MessageRole
from context_budget.usage_accounting import GroupBy, MetadataKey
from context_budget.validation import (
    AggregateUsageInput,
    ConversationTurnInput,
    CountTokensInput,
    EstimateTokensInput,
    GetUsageSummaryInput,
    OptimizeConversationHistoryInput,
    OptimizePromptInput,
    RetrievalItemInput,
)


class TestCountTokensInput:
    def test_valid(self):
        schema = CountTokensInput(content="hello")
        assert schema.model is None
        assert schema.include_breakdown is False

    def test_empty_content(self):
        with pytest.raises(ValidationError):
            CountTokensInput(content="")

    def test_blank_model(self):
        with pytest.raises(ValidationError):
            CountTokensInput(content="hello", model="")


class TestPromptInputs:
    """Tests for estimate/optimize prompt schemas."""

    def test_estimate_defaults(self):
        schema = EstimateTokensInput()

        assert schema.system_prompt == ""
        assert schema.retrieval_items == []

    def test_nested_parts(self):
        schema = EstimateTokensInput(
            retrieval_items=[{"content": "passage", "relevance_score": 0.4}],
            history_turns=[{"role": "assistant", "content": "earlier answer"}],
        )

        assert isinstance(schema.retrieval_items[0], RetrievalItemInput)
        assert schema.history_turns[0].role == MessageRole.ASSISTANT

    def test_score_range(self):
        with pytest.raises(ValidationError):
            RetrievalItemInput(content="x", relevance_score=1.5)

    def test_unknown_role(self):
        with pytest.raises(ValidationError):
            ConversationTurnInput(role="narrator", content="x")

    def test_conversation_requires_agent(self):
        with pytest.raises(ValidationError, match="conversation_id requires agent_id"):
            OptimizePromptInput(conversation_id="conv-1")

    def test_metadata_keys(self):
        schema = OptimizePromptInput(agent_id="a", metadata={"task_type": "cost_analysis"})
        assert schema.metadata == {MetadataKey.TASK_TYPE: "cost_analysis"}

        with pytest.raises(ValidationError):
            OptimizePromptInput(agent_id="a", metadata={"favorite_color": "blue"})

    def test_negative_completion_tokens(self):
        with pytest.raises(ValidationError):
            OptimizePromptInput(completion_tokens=-1)


class TestHistoryInput:
    def test_strategy_parsed(self):
        schema = OptimizeConversationHistoryInput(turns=[], strategy="topic_based")
        assert schema.strategy == PruningStrategy.TOPIC_BASED

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            OptimizeConversationHistoryInput(turns=[], strategy="random")


class TestTimeWindowInputs:
    """Tests for usage query schemas."""

    def test_start_after_end(self):
        with pytest.raises(ValidationError, match="start must not be after end"):
            GetUsageSummaryInput(start=datetime(2025, 2, 1, tzinfo=UTC), end=datetime(2025, 1, 1, tzinfo=UTC))

    def test_mixed_naive_and_aware(self):
        schema = GetUsageSummaryInput(start="2025-01-01T00:00:00", end="2025-01-02T00:00:00Z")
        assert schema.start.tzinfo is UTC

    def test_group_by(self):
        assert AggregateUsageInput().group_by == GroupBy.AGENT
        assert AggregateUsageInput(group_by="day").group_by == GroupBy.DAY

        with pytest.raises(ValidationError):
            AggregateUsageInput(group_by="model")
