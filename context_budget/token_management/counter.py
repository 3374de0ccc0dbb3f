"""
Token Counter Module

Pluggable token counting for prompt fragments.

TokenCounter is the protocol every counter implements. TiktokenCounter is the
default and counts exactly with the tokenizer encoding registered for the
model in the ModelCatalog. CharacterEstimateCounter is a cheap heuristic for
model families without a local tokenizer.

Counter failures are never masked: an unknown model raises UnknownModelError
instead of degrading to an estimate.
"""

import logging
import threading
from typing import Any, Protocol, runtime_checkable

import tiktoken
from cachetools import LRUCache

from .catalog import ModelCatalog, get_model_catalog

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenCounter(Protocol):
    """Maps a text fragment and a model identifier to a token count."""

    def count_tokens(self, text: str, model: str) -> int: ...


class TiktokenCounter:
    """
    Exact token counter backed by tiktoken.

    Encodings are loaded once per encoding name. Counts are memoized in a
    bounded LRU cache keyed by (encoding, text); the cache is shared across
    threads and guarded by a lock.
    """

    def __init__(self, catalog: ModelCatalog | None = None, cache_size: int = 4096) -> None:
        """
        Initialize token counter.

        Args:
            catalog: Model catalog used to resolve encodings (default: shared catalog)
            cache_size: Maximum number of memoized counts (0 disables memoization)
        """
        self.catalog = catalog or get_model_catalog()
        self._encoding_cache: dict[str, Any] = {}
        self._memo: LRUCache | None = LRUCache(maxsize=cache_size) if cache_size > 0 else None
        self._lock = threading.Lock()
        self.cache_hits = 0
        self.cache_misses = 0

    def count_tokens(self, text: str, model: str) -> int:
        """
        Count tokens in text for the specified model.

        Args:
            text: Text content to count tokens for
            model: Model or deployment name (e.g., "gpt-4o", "prod-gpt-4")

        Returns:
            Exact token count

        Raises:
            UnknownModelError: If the model is not in the catalog
        """
        spec = self.catalog.resolve(model)
        if not text:
            return 0

        key = (spec.encoding, text)
        if self._memo is not None:
            with self._lock:
                cached = self._memo.get(key)
                if cached is not None:
                    self.cache_hits += 1
                    return cached
                self.cache_misses += 1

        count = len(self._get_encoding(spec.encoding).encode(text, disallowed_special=()))

        if self._memo is not None:
            with self._lock:
                self._memo[key] = count
        return count

    def _get_encoding(self, encoding_name: str) -> Any:
        encoding = self._encoding_cache.get(encoding_name)
        if encoding is None:
            encoding = tiktoken.get_encoding(encoding_name)
            self._encoding_cache[encoding_name] = encoding
            logger.debug(f"Loaded tiktoken encoding {encoding_name}")
        return encoding

    def get_cache_stats(self) -> dict[str, int]:
        with self._lock:
            size = len(self._memo) if self._memo is not None else 0
            maxsize = int(self._memo.maxsize) if self._memo is not None else 0
            return {
                "hits": self.cache_hits,
                "misses": self.cache_misses,
                "size": size,
                "max_size": maxsize,
            }

    def clear_cache(self) -> None:
        with self._lock:
            if self._memo is not None:
                self._memo.clear()
            self.cache_hits = 0
            self.cache_misses = 0


class CharacterEstimateCounter:
    """
    Heuristic counter: roughly four characters per token for English text.

    Accepts any model identifier; use it only where no tokenizer is available.
    """

    def __init__(self, chars_per_token: int = 4) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def count_tokens(self, text: str, model: str) -> int:
        if not text:
            return 0
        return max(1, len(text) // self.chars_per_token)


def truncate_to_token_limit(
    text: str,
    max_tokens: int,
    counter: TokenCounter,
    model: str,
    suffix: str = "",
) -> str:
    """
    Cut text so that it (plus suffix) fits in max_tokens.

    Works with any counter by binary searching the longest character prefix
    that fits. If the suffix alone does not fit, the text is cut without it.

    Args:
        text: Text to truncate
        max_tokens: Token ceiling for the returned text
        counter: Counter used for measuring
        model: Model name passed to the counter
        suffix: Notice appended when the text is cut

    Returns:
        The original text if it already fits, otherwise a shorter string
        whose token count is at most max_tokens
    """
    if max_tokens <= 0:
        return ""
    if counter.count_tokens(text, model) <= max_tokens:
        return text

    if suffix and counter.count_tokens(suffix, model) >= max_tokens:
        suffix = ""

    def fits(length: int) -> bool:
        return counter.count_tokens(text[:length] + suffix, model) <= max_tokens

    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if fits(mid):
            low = mid
        else:
            high = mid - 1

    # Tokenizers are not strictly monotonic over prefixes; step back until it fits
    candidate = text[:low].rstrip() + suffix
    while low > 0 and counter.count_tokens(candidate, model) > max_tokens:
        low -= 1
        candidate = text[:low].rstrip() + suffix
    if counter.count_tokens(candidate, model) > max_tokens:
        return ""
    return candidate


# Singleton instance
_counter_instance: TiktokenCounter | None = None


def get_token_counter() -> TiktokenCounter:
    """
    Get singleton TiktokenCounter instance.

    Returns:
        Shared TiktokenCounter instance
    """
    global _counter_instance
    if _counter_instance is None:
        from ..config import get_config

        _counter_instance = TiktokenCounter(cache_size=get_config().token_cache_size)
    return _counter_instance


def reset_token_counter() -> None:
    """Drop the shared counter (tests, config reload)."""
    global _counter_instance
    _counter_instance = None


def count_tokens(text: str, model: str = "gpt-4o") -> int:
    """
    Convenience function to count tokens with the shared counter.

    Args:
        text: Text content
        model: Model name

    Returns:
        Token count
    """
    return get_token_counter().count_tokens(text, model)
