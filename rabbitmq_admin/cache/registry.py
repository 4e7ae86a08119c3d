"""
Cache Registry.

Owns the named resource caches for a console process. Each resource type
gets its own cache with a TTL tuned to how quickly the data changes.

Usage:
    from rabbitmq_admin.cache.registry import CacheRegistry

    registry = CacheRegistry.from_policies()
    queues = registry.get("queues")

    registry.start_cleanup()          # periodic expired-entry sweep
    registry.invalidate_cluster("prod")
    await registry.stop_cleanup()
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import structlog

from rabbitmq_admin.cache.resource_cache import ResourceCache
from rabbitmq_admin.core.scheduling import PeriodicTask

logger = structlog.get_logger(__name__)

RESOURCE_CONNECTIONS = "connections"
RESOURCE_CHANNELS = "channels"
RESOURCE_EXCHANGES = "exchanges"
RESOURCE_QUEUES = "queues"
RESOURCE_BINDINGS = "bindings"
RESOURCE_AUDIT = "audit"


@dataclass(frozen=True)
class CachePolicy:
    """TTL and size limit for one named cache."""

    ttl: timedelta
    max_size: int = 50


# Default policies, tuned to data volatility
DEFAULT_CACHE_POLICIES: dict[str, CachePolicy] = {
    RESOURCE_CONNECTIONS: CachePolicy(ttl=timedelta(seconds=30)),   # highly dynamic
    RESOURCE_CHANNELS: CachePolicy(ttl=timedelta(seconds=30)),      # highly dynamic
    RESOURCE_QUEUES: CachePolicy(ttl=timedelta(seconds=60)),        # moderately dynamic
    RESOURCE_EXCHANGES: CachePolicy(ttl=timedelta(minutes=5)),      # mostly static config
    RESOURCE_BINDINGS: CachePolicy(ttl=timedelta(minutes=10), max_size=100),
    RESOURCE_AUDIT: CachePolicy(ttl=timedelta(seconds=60)),
}

DEFAULT_CLEANUP_INTERVAL = timedelta(seconds=60)


class CacheRegistry:
    """
    Fixed set of named ResourceCache instances.

    The registry is built once by the composition root and shared by
    every controller, coordinator and the statistics aggregator.
    """

    def __init__(
        self,
        caches: Mapping[str, ResourceCache[Any]],
        cleanup_interval: timedelta | float = DEFAULT_CLEANUP_INTERVAL,
    ):
        """
        Initialize registry.

        Args:
            caches: Named caches
            cleanup_interval: Period of the expired-entry sweep
        """
        self._caches: dict[str, ResourceCache[Any]] = dict(caches)
        self._cleanup_task = PeriodicTask(
            cleanup_interval, self.cleanup_all, name="cache-registry-cleanup"
        )
        self._logger = logger.bind(component="CacheRegistry")

    @classmethod
    def from_policies(
        cls,
        policies: Mapping[str, CachePolicy] | None = None,
        cleanup_interval: timedelta | float = DEFAULT_CLEANUP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> CacheRegistry:
        """Build a registry with one cache per policy."""
        policies = policies or DEFAULT_CACHE_POLICIES
        caches = {
            name: ResourceCache(
                name=name,
                ttl=policy.ttl,
                max_size=policy.max_size,
                clock=clock,
            )
            for name, policy in policies.items()
        }
        return cls(caches, cleanup_interval=cleanup_interval)

    def get(self, name: str) -> ResourceCache[Any]:
        """Get a named cache. Raises KeyError for unknown names."""
        try:
            return self._caches[name]
        except KeyError:
            raise KeyError(f"Unknown cache '{name}'. Known: {sorted(self._caches)}") from None

    def __getitem__(self, name: str) -> ResourceCache[Any]:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._caches

    def __iter__(self) -> Iterator[str]:
        return iter(self._caches)

    def items(self) -> list[tuple[str, ResourceCache[Any]]]:
        return list(self._caches.items())

    @property
    def names(self) -> list[str]:
        return list(self._caches)

    # ─────────────────────────────────────────────────────────────────────────
    # Fan-out Operations
    # ─────────────────────────────────────────────────────────────────────────

    def clear_all(self) -> int:
        """Clear every cache. Returns total entries removed."""
        removed = sum(cache.clear() for cache in self._caches.values())
        self._logger.info("All caches cleared", removed=removed)
        return removed

    def invalidate_cluster(self, cluster_id: str) -> int:
        """Invalidate every entry of a cluster across all caches."""
        removed = sum(cache.invalidate(cluster_id) for cache in self._caches.values())
        self._logger.info("Cluster caches invalidated", cluster_id=cluster_id, removed=removed)
        return removed

    def cleanup_all(self) -> int:
        """Reap expired entries in every cache."""
        removed = sum(cache.cleanup() for cache in self._caches.values())
        if removed:
            self._logger.debug("Cache sweep complete", removed=removed)
        return removed

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def cleanup_running(self) -> bool:
        return self._cleanup_task.is_running

    def start_cleanup(self) -> None:
        """Start the periodic expired-entry sweep."""
        self._cleanup_task.start()
        self._logger.info(
            "Cache cleanup started",
            interval_seconds=self._cleanup_task.interval,
            caches=self.names,
        )

    async def stop_cleanup(self) -> None:
        """Stop the periodic sweep."""
        await self._cleanup_task.stop()
