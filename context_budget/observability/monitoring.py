"""
Context Budget — Observability Monitoring

In-process metrics (counters, gauges, histograms), span tracing and
structured JSON logging. Metrics live in memory only and are read back
through get_metrics().
"""

import contextvars
import json
import logging
import threading
import time
from collections import deque
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

# Trace ID context variable for distributed tracing
_trace_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)

# Request ID context variable
_request_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)

LOGGER_NAME = "context_budget"
METRIC_PREFIX = "context_budget"


def _metric_key(metric: str, tags: dict[str, str] | None) -> str:
    name = f"{METRIC_PREFIX}.{metric}"
    if not tags:
        return name
    labels = ",".join(f"{key}={value}" for key, value in sorted(tags.items()))
    return f"{name}{{{labels}}}"


class ObservabilityAdapter:
    """
    In-memory observability adapter.

    Provides:
    - Metrics (counters, gauges, histograms) kept in process memory
    - Span tracing with trace IDs
    - Structured event logging
    """

    def __init__(
        self,
        enable_metrics: bool = True,
        enable_tracing: bool = True,
        histogram_max_samples: int = 1000,
    ):
        """
        Initialize observability adapter.

        Args:
            enable_metrics: Enable metrics collection
            enable_tracing: Enable span tracing
            histogram_max_samples: Samples kept per histogram (oldest dropped first)
        """
        self.enable_metrics = enable_metrics
        self.enable_tracing = enable_tracing
        self.histogram_max_samples = histogram_max_samples

        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

        self.logger = logging.getLogger(LOGGER_NAME)

    def increment(
        self,
        metric: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        """
        Increment a counter metric.

        Args:
            metric: Metric name (e.g., "tools.calls")
            value: Value to increment by
            tags: Optional metric tags/labels
        """
        if not self.enable_metrics:
            return

        key = _metric_key(metric, tags)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + value

    def gauge(
        self,
        metric: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """
        Set a gauge metric.

        Args:
            metric: Metric name
            value: Current value
            tags: Optional metric tags
        """
        if not self.enable_metrics:
            return

        key = _metric_key(metric, tags)
        with self._lock:
            self._gauges[key] = value

    def histogram(
        self,
        metric: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """
        Record a histogram metric (for latencies, sizes, etc.).

        Args:
            metric: Metric name
            value: Value to record
            tags: Optional metric tags
        """
        if not self.enable_metrics:
            return

        key = _metric_key(metric, tags)
        with self._lock:
            samples = self._histograms.get(key)
            if samples is None:
                samples = deque(maxlen=self.histogram_max_samples)
                self._histograms[key] = samples
            samples.append(value)

    def event(self, name: str, payload: dict[str, Any]) -> None:
        """
        Record an event.

        Args:
            name: Event name
            payload: Event data
        """
        self.logger.info(
            f"Event: {name}",
            extra={
                "event_name": name,
                "event_payload": payload,
                "trace_id": self.get_trace_id(),
            },
        )

    @contextmanager
    def trace(self, span_name: str, tags: dict[str, str] | None = None) -> Generator[None, None, None]:
        """
        Context manager for tracing a span.

        Args:
            span_name: Name of the span
            tags: Optional span tags

        Example:
            with observability.trace("optimize_prompt"):
                result = manager.optimize_prompt(...)
        """
        if not self.enable_tracing:
            yield
            return

        start_time = time.perf_counter()
        trace_id = self.get_trace_id() or self.generate_trace_id()
        tags = tags or {}

        self.logger.debug(
            f"Span started: {span_name}",
            extra={"span_name": span_name, "trace_id": trace_id, "tags": tags},
        )

        try:
            yield
        except Exception as e:
            self.logger.error(
                f"Span error: {span_name}",
                extra={"span_name": span_name, "trace_id": trace_id, "error": str(e), "tags": tags},
                exc_info=True,
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.histogram("span.duration", duration_ms, tags={"span_name": span_name, **tags})

            self.logger.debug(
                f"Span completed: {span_name}",
                extra={
                    "span_name": span_name,
                    "trace_id": trace_id,
                    "duration_ms": round(duration_ms, 2),
                    "tags": tags,
                },
            )

    def get_trace_id(self) -> str | None:
        """Get current trace ID from context."""
        return _trace_id_ctx.get()

    def set_trace_id(self, trace_id: str) -> None:
        """Set trace ID in context."""
        _trace_id_ctx.set(trace_id)

    def generate_trace_id(self) -> str:
        """Generate a new trace ID and set it in context."""
        trace_id = str(uuid4())
        self.set_trace_id(trace_id)
        return trace_id

    def get_request_id(self) -> str | None:
        """Get current request ID from context."""
        return _request_id_ctx.get()

    def set_request_id(self, request_id: str) -> None:
        """Set request ID in context."""
        _request_id_ctx.set(request_id)

    def get_metrics(self) -> dict[str, Any]:
        """
        Snapshot of all collected metrics.

        Returns:
            Dictionary with counters, gauges and histogram summaries
            (count, min, max, mean over the retained samples)
        """
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            histograms = {key: list(samples) for key, samples in self._histograms.items()}

        return {
            "counters": counters,
            "gauges": gauges,
            "histograms": {
                key: {
                    "count": len(samples),
                    "min": min(samples),
                    "max": max(samples),
                    "mean": sum(samples) / len(samples),
                }
                for key, samples in histograms.items()
                if samples
            },
        }

    def clear_metrics(self) -> None:
        """Clear all metrics (testing/reset)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


_RESERVED_RECORD_KEYS = frozenset(
    (
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "name",
        "message",
    )
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        trace_id = _trace_id_ctx.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        request_id = _request_id_ctx.get()
        if request_id:
            log_data["request_id"] = request_id

        # Fields passed through logger.*(extra=...)
        for key, value in record.__dict__.items():
            if key not in log_data and not key.startswith("_") and key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_logs: bool = True) -> logging.Logger:
    """
    Attach a single stderr handler to the package logger.

    Args:
        level: Log level name
        json_logs: JSON lines when True, plain text otherwise

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()

    handler = logging.StreamHandler()
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


# Global observability adapter instance (singleton)
_observability_adapter: ObservabilityAdapter | None = None


def get_observability() -> ObservabilityAdapter:
    """
    Get the global observability adapter instance.

    All modules use this function rather than creating their own adapters.

    Returns:
        Global ObservabilityAdapter instance
    """
    global _observability_adapter

    if _observability_adapter is None:
        # Auto-initialize with defaults from config
        from ..config import get_config

        config = get_config().observability
        _observability_adapter = ObservabilityAdapter(
            enable_metrics=config.enable_metrics,
            enable_tracing=config.enable_tracing,
            histogram_max_samples=config.histogram_max_samples,
        )

    return _observability_adapter


def initialize_observability(
    enable_metrics: bool = True,
    enable_tracing: bool = True,
    histogram_max_samples: int = 1000,
) -> ObservabilityAdapter:
    """
    Initialize the global observability adapter.

    Args:
        enable_metrics: Enable metrics collection
        enable_tracing: Enable span tracing
        histogram_max_samples: Samples kept per histogram

    Returns:
        Initialized ObservabilityAdapter instance
    """
    global _observability_adapter

    _observability_adapter = ObservabilityAdapter(
        enable_metrics=enable_metrics,
        enable_tracing=enable_tracing,
        histogram_max_samples=histogram_max_samples,
    )

    return _observability_adapter
