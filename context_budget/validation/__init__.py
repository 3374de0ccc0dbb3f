"""
Context Budget - Input Validation Module

Pydantic-based validation for all tool inputs.
"""

from .decorators import validate_input
from .tool_schemas import (
    AggregateUsageInput,
    CheckStatusInput,
    ConversationTurnInput,
    CountTokensInput,
    EstimateTokensInput,
    GetMetricsInput,
    GetUsageSummaryInput,
    OptimizeConversationHistoryInput,
    OptimizePromptInput,
    OptimizeRetrievalContextInput,
    RetrievalItemInput,
)

__all__ = [
    # Decorator
    "validate_input",
    # Tool input schemas
    "AggregateUsageInput",
    "CheckStatusInput",
    "ConversationTurnInput",
    "CountTokensInput",
    "EstimateTokensInput",
    "GetMetricsInput",
    "GetUsageSummaryInput",
    "OptimizeConversationHistoryInput",
    "OptimizePromptInput",
    "OptimizeRetrievalContextInput",
    "RetrievalItemInput",
]
