"""
Context Optimization

Retrieval context selection, conversation history pruning and the prompt
budget allocator that coordinates them.
"""

from .allocator import PromptBudgetAllocator
from .config import (
    HistoryOptimizationOptions,
    PromptCategory,
    PromptOptimizationOptions,
    PruningStrategy,
    RetrievalOptimizationOptions,
    TokenManagementConfig,
)
from .history import ConversationHistoryOptimizer
from .models import (
    ConversationHealthMetrics,
    OptimizedConversationHistory,
    OptimizedPrompt,
    OptimizedRetrievalContext,
)
from .retrieval import RetrievalContextOptimizer

__all__ = [
    "PromptBudgetAllocator",
    "HistoryOptimizationOptions",
    "PromptCategory",
    "PromptOptimizationOptions",
    "PruningStrategy",
    "RetrievalOptimizationOptions",
    "TokenManagementConfig",
    "ConversationHistoryOptimizer",
    "ConversationHealthMetrics",
    "OptimizedConversationHistory",
    "OptimizedPrompt",
    "OptimizedRetrievalContext",
    "RetrievalContextOptimizer",
]
