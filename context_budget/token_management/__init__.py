"""
Token Management

Model catalog, pluggable token counters and the composite prompt estimator.
"""

from .catalog import DEFAULT_MODELS, ModelCatalog, ModelSpec, get_model_catalog
from .counter import (
    CharacterEstimateCounter,
    TiktokenCounter,
    TokenCounter,
    count_tokens,
    get_token_counter,
    reset_token_counter,
    truncate_to_token_limit,
)
from .estimator import TokenEstimate, TokenEstimator

__all__ = [
    "DEFAULT_MODELS",
    "ModelCatalog",
    "ModelSpec",
    "get_model_catalog",
    "CharacterEstimateCounter",
    "TiktokenCounter",
    "TokenCounter",
    "count_tokens",
    "get_token_counter",
    "reset_token_counter",
    "truncate_to_token_limit",
    "TokenEstimate",
    "TokenEstimator",
]
