"""
Context Budget — Context Optimization Unit Tests Package

Unit tests for prompt budgeting components including:
- Retrieval context optimizer (ranking, ceilings, trimming)
- Conversation history optimizer (pruning strategies, health analysis)
- Prompt budget allocator (priority-aware trimming)
- Optimization options (effective window, cross-field checks)
"""
