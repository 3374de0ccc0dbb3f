"""
Context Budget — Prompt Token Budgeting

Decides which system instructions, user input, retrieved passages and prior
conversation turns fit a model's context window, and accounts for the tokens
and cost that optimization saves.
"""

__version__ = "1.0.0"

from .context_optimization import (
    OptimizedPrompt,
    PromptBudgetAllocator,
    PromptOptimizationOptions,
    PruningStrategy,
)
from .manager import TokenBudgetManager, get_token_budget_manager
from .models import ConversationTurn, MessageRole, RankedItem

__all__ = [
    "ConversationTurn",
    "MessageRole",
    "OptimizedPrompt",
    "PromptBudgetAllocator",
    "PromptOptimizationOptions",
    "PruningStrategy",
    "RankedItem",
    "TokenBudgetManager",
    "get_token_budget_manager",
]
