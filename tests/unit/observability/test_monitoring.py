"""
Unit Tests for Observability Monitoring

Tests in-memory metrics, span tracing, structured JSON logging and the
adapter singleton.
"""

import json
import logging
import sys

import pytest

from context_budget.observability import (
    JSONFormatter,
    ObservabilityAdapter,
    get_observability,
    initialize_observability,
    setup_logging,
)
from context_budget.observability import monitoring


@pytest.fixture(autouse=True)
def clean_context():
    """Keep trace and request ids from leaking between tests."""
    trace_token = monitoring._trace_id_ctx.set(None)
    request_token = monitoring._request_id_ctx.set(None)
    yield
    monitoring._trace_id_ctx.reset(trace_token)
    monitoring._request_id_ctx.reset(request_token)


@pytest.fixture
def adapter():
    return ObservabilityAdapter(enable_metrics=True, enable_tracing=True, histogram_max_samples=10)


class TestMetrics:
    """Tests for counters, gauges and histograms."""

    def test_counter(self, adapter):
        adapter.increment("tools.calls", tags={"tool": "count_tokens"})
        adapter.increment("tools.calls", tags={"tool": "count_tokens"})
        adapter.increment("tools.calls", 3, tags={"tool": "estimate_tokens"})

        counters = adapter.get_metrics()["counters"]

        assert counters["context_budget.tools.calls{tool=count_tokens}"] == 2
        assert counters["context_budget.tools.calls{tool=estimate_tokens}"] == 3

    def test_tags_sorted_in_key(self, adapter):
        adapter.increment("validation.failed", tags={"function": "f", "error_count": "1"})

        assert "context_budget.validation.failed{error_count=1,function=f}" in adapter.get_metrics()["counters"]

    def test_gauge_overwrites(self, adapter):
        adapter.gauge("prompt.utilization", 50.0)
        adapter.gauge("prompt.utilization", 75.0)

        assert adapter.get_metrics()["gauges"]["context_budget.prompt.utilization"] == 75.0

    def test_histogram_summary(self, adapter):
        for value in (1.0, 2.0, 3.0):
            adapter.histogram("prompt.tokens_saved", value)

        summary = adapter.get_metrics()["histograms"]["context_budget.prompt.tokens_saved"]

        assert summary == {"count": 3, "min": 1.0, "max": 3.0, "mean": 2.0}

    def test_histogram_bounded(self, adapter):
        for value in range(25):
            adapter.histogram("sizes", float(value))

        summary = adapter.get_metrics()["histograms"]["context_budget.sizes"]
        assert summary["count"] == 10
        assert summary["min"] == 15.0

    def test_disabled_metrics(self):
        adapter = ObservabilityAdapter(enable_metrics=False)
        adapter.increment("tools.calls")
        adapter.gauge("g", 1.0)
        adapter.histogram("h", 1.0)

        assert adapter.get_metrics() == {"counters": {}, "gauges": {}, "histograms": {}}

    def test_clear(self, adapter):
        adapter.increment("tools.calls")
        adapter.clear_metrics()

        assert adapter.get_metrics()["counters"] == {}


class TestTracing:
    """Tests for span tracing and context ids."""

    def test_span_duration_recorded(self, adapter):
        with adapter.trace("optimize_prompt", tags={"tool": "optimize_prompt"}):
            pass

        histograms = adapter.get_metrics()["histograms"]
        assert "context_budget.span.duration{span_name=optimize_prompt,tool=optimize_prompt}" in histograms
        assert adapter.get_trace_id() is not None

    def test_existing_trace_id_kept(self, adapter):
        adapter.set_trace_id("trace-123")

        with adapter.trace("span"):
            assert adapter.get_trace_id() == "trace-123"

    def test_span_error_propagates(self, adapter, caplog):
        with caplog.at_level(logging.ERROR, logger="context_budget"):
            with pytest.raises(RuntimeError, match="boom"):
                with adapter.trace("failing"):
                    raise RuntimeError("boom")

        assert "Span error: failing" in caplog.text
        assert adapter.get_metrics()["histograms"]

    def test_tracing_disabled(self):
        adapter = ObservabilityAdapter(enable_tracing=False)

        with adapter.trace("span"):
            pass

        assert adapter.get_metrics()["histograms"] == {}
        assert adapter.get_trace_id() is None

    def test_request_id(self, adapter):
        adapter.set_request_id("req-1")
        assert adapter.get_request_id() == "req-1"


class TestJSONFormatter:
    """Tests for structured log lines."""

    def _record(self, **extra):
        record = logging.LogRecord("context_budget.tools", logging.INFO, __file__, 10, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_fields(self):
        data = json.loads(JSONFormatter().format(self._record(tool="count_tokens")))

        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "context_budget.tools"
        assert data["tool"] == "count_tokens"
        assert data["timestamp"].endswith("Z")

    def test_context_ids(self):
        monitoring._trace_id_ctx.set("trace-1")
        monitoring._request_id_ctx.set("req-1")

        data = json.loads(JSONFormatter().format(self._record()))

        assert data["trace_id"] == "trace-1"
        assert data["request_id"] == "req-1"

    def test_unserializable_extra(self):
        data = json.loads(JSONFormatter().format(self._record(payload={1, 2})))
        assert isinstance(data["payload"], str)

    def test_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in data["exception"]


class TestSetup:
    """Tests for logging setup and the adapter singleton."""

    def test_setup_logging_json(self):
        logger = setup_logging("WARNING", json_logs=True)
        try:
            assert len(logger.handlers) == 1
            assert isinstance(logger.handlers[0].formatter, JSONFormatter)
            assert logger.level == logging.WARNING
            assert logger.propagate is False
        finally:
            logger.handlers.clear()
            logger.propagate = True
            logger.setLevel(logging.NOTSET)

    def test_setup_logging_idempotent(self):
        setup_logging("INFO", json_logs=False)
        logger = setup_logging("INFO", json_logs=False)
        try:
            assert len(logger.handlers) == 1
            assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
        finally:
            logger.handlers.clear()
            logger.propagate = True
            logger.setLevel(logging.NOTSET)

    def test_get_observability_from_config(self, monkeypatch):
        monkeypatch.setenv("ENABLE_TRACING", "true")
        monkeypatch.setenv("HISTOGRAM_MAX_SAMPLES", "50")

        adapter = get_observability()

        assert adapter is get_observability()
        assert adapter.enable_tracing is True
        assert adapter.histogram_max_samples == 50

    def test_initialize_replaces_adapter(self):
        first = get_observability()
        second = initialize_observability(enable_metrics=False)

        assert second is not first
        assert get_observability() is second
