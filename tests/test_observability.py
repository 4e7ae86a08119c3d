import logging

import structlog

from rabbitmq_admin.observability import configure_logging
from rabbitmq_admin.observability import tracing
from rabbitmq_admin.observability.tracing import (
    _parse_headers,
    _should_enable_otel,
    get_tracer,
    init_tracing,
    is_otel_enabled,
    shutdown_tracing,
    truncate,
)


def test_tracing_disabled_without_endpoint(monkeypatch):
    """Tracing stays off when no exporter endpoint is configured."""
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    assert init_tracing() is False
    assert is_otel_enabled() is False

    tracer = get_tracer("fetcher")
    assert tracer is not None


def test_truncate():
    """Verify truncation logic."""
    assert truncate("hello", 10) == "hello"
    assert truncate("hello world", 5) == "he..."
    assert truncate(123, 10) == "123"


def test_should_enable_otel_logic(monkeypatch):
    """Test the enablement logic with different env vars."""
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4318")
    monkeypatch.setenv("OTEL_TRACING_ENABLED", "false")
    assert _should_enable_otel() is False

    monkeypatch.setenv("OTEL_TRACING_ENABLED", "true")
    assert _should_enable_otel() is True


def test_parse_headers():
    assert _parse_headers("api-key=abc, x-tenant = t1") == {"api-key": "abc", "x-tenant": "t1"}
    assert _parse_headers(None) == {}


def test_init_tracing_full(monkeypatch):
    """Test full initialization path."""
    monkeypatch.setenv("OTEL_TRACING_ENABLED", "true")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")

    # Force re-init by clearing internal state
    tracing._tracer_provider = None

    try:
        assert init_tracing() is True
        assert is_otel_enabled() is True
    finally:
        shutdown_tracing()

    assert is_otel_enabled() is False


def test_configure_logging_routes_structlog_through_stdlib():
    configure_logging(level="DEBUG", json_logs=True)

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging(level="INFO", json_logs=False)
