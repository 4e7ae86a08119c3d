"""
Cache Statistics Aggregator.

Polls every cache in a registry and produces consolidated size,
validity and hit-rate figures for operational visibility. Also fans
clear/invalidate commands out to every registered cache.

Usage:
    from rabbitmq_admin.cache.stats import CacheStatsAggregator

    aggregator = CacheStatsAggregator(registry, interval=5.0)
    aggregator.on_update(lambda stats: print(stats.total.to_dict()))
    aggregator.start()

    snapshot = aggregator.snapshot()
    aggregator.invalidate_cluster_caches("prod")
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from rabbitmq_admin.cache.registry import CacheRegistry
from rabbitmq_admin.cache.resource_cache import CacheStats
from rabbitmq_admin.core.scheduling import PeriodicTask

logger = structlog.get_logger(__name__)

DEFAULT_STATS_INTERVAL = timedelta(seconds=5)


@dataclass(frozen=True)
class AggregatedCacheStats:
    """Statistics of every named cache plus summed totals."""

    caches: dict[str, CacheStats]
    total: CacheStats
    collected_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary."""
        return {
            "caches": {name: stats.to_dict() for name, stats in self.caches.items()},
            "total": self.total.to_dict(),
            "collected_at": self.collected_at.isoformat(),
        }


def sum_stats(stats: list[CacheStats]) -> CacheStats:
    """Sum a list of cache statistics into one total."""
    return CacheStats(
        size=sum(s.size for s in stats),
        max_size=sum(s.max_size for s in stats),
        valid_entries=sum(s.valid_entries for s in stats),
        expired_entries=sum(s.expired_entries for s in stats),
        hits=sum(s.hits for s in stats),
        misses=sum(s.misses for s in stats),
    )


class CacheStatsAggregator:
    """
    Read/aggregate and fan-out component over a CacheRegistry.

    Holds no state of its own beyond the poll timer and the latest
    snapshot.
    """

    def __init__(
        self,
        registry: CacheRegistry,
        interval: timedelta | float = DEFAULT_STATS_INTERVAL,
    ):
        self._registry = registry
        self._callbacks: list[Callable[[AggregatedCacheStats], None]] = []
        self._latest: AggregatedCacheStats | None = None
        self._task = PeriodicTask(interval, self._poll, name="cache-stats")
        self._logger = logger.bind(component="CacheStatsAggregator")

    @property
    def latest(self) -> AggregatedCacheStats | None:
        """Most recent snapshot taken by the poller (or snapshot())."""
        return self._latest

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def on_update(self, callback: Callable[[AggregatedCacheStats], None]) -> None:
        """Register a callback invoked with every new snapshot."""
        self._callbacks.append(callback)

    def snapshot(self) -> AggregatedCacheStats:
        """Collect statistics from every cache right now."""
        per_cache = {name: cache.get_stats() for name, cache in self._registry.items()}
        stats = AggregatedCacheStats(
            caches=per_cache,
            total=sum_stats(list(per_cache.values())),
        )
        self._latest = stats
        return stats

    def _poll(self) -> None:
        stats = self.snapshot()
        self._logger.debug(
            "Cache stats collected",
            size=stats.total.size,
            valid=stats.total.valid_entries,
            expired=stats.total.expired_entries,
            hit_rate=round(stats.total.hit_rate, 4),
        )
        for callback in self._callbacks:
            try:
                callback(stats)
            except Exception as e:
                self._logger.warning("Stats callback error", error=str(e))

    def start(self) -> None:
        """Take an immediate snapshot, then poll on the interval."""
        self._poll()
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    def clear_all_caches(self) -> int:
        """Clear every registered cache."""
        return self._registry.clear_all()

    def invalidate_cluster_caches(self, cluster_id: str) -> int:
        """Invalidate a cluster's entries in every registered cache."""
        return self._registry.invalidate_cluster(cluster_id)
