"""
Retry with exponential backoff for gateway calls.

Used by callers that wrap fetcher operations; the cache and controllers
never retry on their own.

Usage:
    from rabbitmq_admin.resilience.retry import RetryConfig, retry_with_backoff

    page = await retry_with_backoff(
        lambda: fetcher.fetch_page("prod", "queues", params),
        RetryConfig(max_attempts=3),
    )
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from rabbitmq_admin.resources.errors import (
    CODE_TIMEOUT,
    ResourceError,
    ResourceErrorType,
    ResourceFetchError,
    classify_error,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry settings."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    jitter: float = 0.1  # fraction of the delay, 0 disables
    retryable_types: frozenset[ResourceErrorType] = field(
        default_factory=lambda: frozenset(
            {
                ResourceErrorType.NETWORK,
                ResourceErrorType.CLUSTER_UNAVAILABLE,
                ResourceErrorType.API_ERROR,
            }
        )
    )


def calculate_backoff_delay(attempt: int, config: RetryConfig | None = None) -> float:
    """Delay before retry number ``attempt`` (0-indexed), capped at max_delay."""
    config = config or RetryConfig()
    delay = min(config.base_delay * (config.backoff_factor**attempt), config.max_delay)
    if config.jitter > 0:
        delay += delay * random.uniform(-config.jitter, config.jitter)
    return max(0.0, min(delay, config.max_delay))


def is_retryable(error: ResourceError, config: RetryConfig | None = None) -> bool:
    """Authentication errors are never retried."""
    config = config or RetryConfig()
    if error.type == ResourceErrorType.AUTHENTICATION:
        return False
    return error.retryable and error.type in config.retryable_types


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, ResourceError, float], Any] | None = None,
    *,
    cluster_id: str | None = None,
    resource_type: str | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run an async operation, retrying classified-retryable failures.

    Args:
        operation: Zero-argument async callable
        config: Retry settings
        on_retry: Called with (attempt, error, delay) before each retry
        cluster_id: Cluster for error classification
        resource_type: Resource type for error classification
        sleep: Awaitable sleep (tests pass a fake)

    Returns:
        The operation's result

    Raises:
        The last exception when retries are exhausted or the error is
        not retryable
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            error = classify_error(
                e, cluster_id=cluster_id, resource_type=resource_type, operation="retry"
            )
            if attempt + 1 >= attempts or not is_retryable(error, config):
                raise

            delay = calculate_backoff_delay(attempt, config)
            logger.info(
                "Retrying after failure",
                attempt=attempt + 1,
                max_attempts=attempts,
                error_type=error.type.value,
                delay_seconds=round(delay, 3),
            )
            if on_retry is not None:
                on_retry(attempt + 1, error, delay)
            await sleep(delay)

    raise RuntimeError("unreachable")


async def with_timeout(awaitable: Awaitable[T], seconds: float) -> T:
    """Await with a deadline; a timeout raises a network-classified error."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise ResourceFetchError(
            f"Operation timed out after {seconds}s", code=CODE_TIMEOUT
        ) from e
