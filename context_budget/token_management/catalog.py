"""
Model Catalog Module

Per-model context window, completion reservation and tokenizer encoding.
Deployment aliases (e.g. "prod-gpt-4o-eastus") are normalized to the
canonical model they contain. Unknown models are a configuration error.
"""

import logging
from dataclasses import dataclass

from ..errors import ConfigurationError, UnknownModelError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """Static limits for a single model."""

    name: str
    encoding: str
    context_window: int
    max_completion_tokens: int
    provider: str = "openai"

    def to_dict(self) -> dict[str, str | int]:
        return {
            "name": self.name,
            "encoding": self.encoding,
            "context_window": self.context_window,
            "max_completion_tokens": self.max_completion_tokens,
            "provider": self.provider,
        }


DEFAULT_MODELS: tuple[ModelSpec, ...] = (
    # OpenAI
    ModelSpec("gpt-4o", "o200k_base", 128000, 16384),
    ModelSpec("gpt-4o-mini", "o200k_base", 128000, 16384),
    ModelSpec("gpt-4-turbo", "cl100k_base", 128000, 4096),
    ModelSpec("gpt-4-turbo-preview", "cl100k_base", 128000, 4096),
    ModelSpec("gpt-4", "cl100k_base", 8192, 4096),
    ModelSpec("gpt-4-32k", "cl100k_base", 32768, 4096),
    ModelSpec("gpt-3.5-turbo", "cl100k_base", 16385, 4096),
    ModelSpec("gpt-3.5-turbo-16k", "cl100k_base", 16385, 4096),
    # Anthropic and Google have no local tokenizer; cl100k_base is a close approximation
    ModelSpec("claude-3-opus", "cl100k_base", 200000, 4096, provider="anthropic"),
    ModelSpec("claude-3-sonnet", "cl100k_base", 200000, 4096, provider="anthropic"),
    ModelSpec("claude-3-haiku", "cl100k_base", 200000, 4096, provider="anthropic"),
    ModelSpec("claude-3-5-sonnet", "cl100k_base", 200000, 8192, provider="anthropic"),
    ModelSpec("claude-3-5-haiku", "cl100k_base", 200000, 8192, provider="anthropic"),
    ModelSpec("gemini-1.5-pro", "cl100k_base", 2097152, 8192, provider="google"),
    ModelSpec("gemini-1.5-flash", "cl100k_base", 1048576, 8192, provider="google"),
)

# Azure deployment names drop the dot from "3.5"
MODEL_ALIASES: dict[str, str] = {
    "gpt-35-turbo-16k": "gpt-3.5-turbo-16k",
    "gpt-35-turbo": "gpt-3.5-turbo",
}


class ModelCatalog:
    """
    Registry of known models and their limits.

    Lookup order: exact name, alias, then the longest known name contained in
    the requested identifier. A name that matches nothing raises
    UnknownModelError rather than falling back to a default model.
    """

    def __init__(self, models: list[ModelSpec] | tuple[ModelSpec, ...] | None = None) -> None:
        self._models: dict[str, ModelSpec] = {}
        for spec in DEFAULT_MODELS if models is None else models:
            self.register(spec)

    def register(self, spec: ModelSpec) -> None:
        """
        Add or replace a model.

        Raises:
            ConfigurationError: If the limits are not usable
        """
        if spec.context_window <= 0:
            raise ConfigurationError(
                f"Context window must be positive for {spec.name}",
                {"model": spec.name, "context_window": spec.context_window},
            )
        if not 0 <= spec.max_completion_tokens < spec.context_window:
            raise ConfigurationError(
                f"Completion reservation must be smaller than the context window for {spec.name}",
                {
                    "model": spec.name,
                    "max_completion_tokens": spec.max_completion_tokens,
                    "context_window": spec.context_window,
                },
            )
        self._models[spec.name.lower()] = spec

    def normalize(self, model: str) -> str | None:
        """Map a model or deployment name to a canonical catalog name."""
        name = model.strip().lower()
        if not name:
            return None
        if name in self._models:
            return name

        # Longest candidates first so "gpt-4o-mini" wins over "gpt-4o" and "gpt-4"
        candidates = sorted([*self._models, *MODEL_ALIASES], key=len, reverse=True)
        for candidate in candidates:
            if candidate in name:
                return MODEL_ALIASES.get(candidate, candidate)
        return None

    def resolve(self, model: str) -> ModelSpec:
        """
        Get the spec for a model.

        Args:
            model: Model or deployment name

        Returns:
            Matching ModelSpec

        Raises:
            UnknownModelError: If the model is not in the catalog
        """
        canonical = self.normalize(model)
        if canonical is None or canonical not in self._models:
            raise UnknownModelError(model, {"known_models": self.list_models()})
        if canonical != model:
            logger.debug(f"Resolved model '{model}' to '{canonical}'")
        return self._models[canonical]

    def is_known(self, model: str) -> bool:
        canonical = self.normalize(model)
        return canonical is not None and canonical in self._models

    def get_context_window(self, model: str) -> int:
        return self.resolve(model).context_window

    def get_max_completion_tokens(self, model: str) -> int:
        return self.resolve(model).max_completion_tokens

    def list_models(self) -> list[str]:
        return sorted(self._models)


# Singleton instance
_catalog_instance: ModelCatalog | None = None


def get_model_catalog() -> ModelCatalog:
    """
    Get singleton ModelCatalog instance.

    Returns:
        Shared ModelCatalog instance
    """
    global _catalog_instance
    if _catalog_instance is None:
        _catalog_instance = ModelCatalog()
    return _catalog_instance
