"""
Context Budget — Observability Module

Single observability adapter for the runtime. Metrics, traces and events go
through get_observability(); no other module keeps its own metrics.

Usage:
    from context_budget.observability import get_observability

    obs = get_observability()
    obs.increment("tools.calls", tags={"tool": "count_tokens"})
    obs.gauge("prompt.utilization", 72.5)

    with obs.trace("optimize_prompt"):
        # traced code here
        pass
"""

from .monitoring import (
    JSONFormatter,
    ObservabilityAdapter,
    get_observability,
    initialize_observability,
    setup_logging,
)

__all__ = [
    "JSONFormatter",
    "ObservabilityAdapter",
    "get_observability",
    "initialize_observability",
    "setup_logging",
]
