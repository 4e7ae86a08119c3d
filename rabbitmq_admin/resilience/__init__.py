"""Resilience helpers for gateway calls."""

from rabbitmq_admin.resilience.retry import (
    RetryConfig,
    calculate_backoff_delay,
    is_retryable,
    retry_with_backoff,
    with_timeout,
)

__all__ = [
    "RetryConfig",
    "calculate_backoff_delay",
    "is_retryable",
    "retry_with_backoff",
    "with_timeout",
]
