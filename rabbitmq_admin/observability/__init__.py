"""Observability module for the RabbitMQ admin console.

Provides structured logging and OpenTelemetry tracing.

Quick Start:
    from rabbitmq_admin.observability import init_observability, get_tracer

    # Initialize on startup
    init_observability()

    # Get tracer for creating spans
    tracer = get_tracer("fetcher")
"""

from rabbitmq_admin.observability.logging import configure_logging
from rabbitmq_admin.observability.tracing import (
    get_tracer,
    init_tracing,
    is_otel_enabled,
    shutdown_tracing,
    truncate,
)


def init_observability(level: str | None = None, json_logs: bool | None = None) -> None:
    """Initialize logging first, then tracing."""
    configure_logging(level=level, json_logs=json_logs)
    init_tracing()


def shutdown_observability() -> None:
    """Flush pending spans."""
    shutdown_tracing()


__all__ = [
    "init_observability",
    "shutdown_observability",
    "configure_logging",
    "init_tracing",
    "get_tracer",
    "is_otel_enabled",
    "shutdown_tracing",
    "truncate",
]
