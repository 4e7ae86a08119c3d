"""
RabbitMQ Resource Cache.

In-process cache for paged RabbitMQ resource listings (connections,
channels, exchanges, queues, bindings) and audit records.

Features:
- Parameter-aware keys: (cluster, resource type, canonical params)
- Per-entry TTL with hard expiry (expired entries are never returned)
- LRU eviction by last access once max_size is exceeded
- Cluster / resource-type scoped invalidation
- Periodic cleanup of expired-but-unaccessed entries
- Hit/miss statistics and event callbacks

Usage:
    from rabbitmq_admin.cache.resource_cache import ResourceCache

    cache = ResourceCache(name="queues", ttl=timedelta(seconds=60), max_size=50)
    cache.set("prod", "queues", page, {"page": 0, "pageSize": 50})
    page = cache.get("prod", "queues", {"pageSize": 50, "page": 0})

    # Drop every queue page for a cluster
    cache.invalidate("prod", "queues")
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel

from rabbitmq_admin.core.scheduling import to_seconds

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Event types for cache notifications
CACHE_EVENT_SET = "cache:set"
CACHE_EVENT_EVICT = "cache:evict"
CACHE_EVENT_INVALIDATE = "cache:invalidate"
CACHE_EVENT_EXPIRE = "cache:expire"

DEFAULT_TTL = timedelta(minutes=5)
DEFAULT_MAX_SIZE = 100

CacheParams = Mapping[str, Any] | BaseModel | None


def canonical_params(params: CacheParams = None) -> str:
    """Serialize request parameters into a canonical, order-independent form.

    None values are dropped so that an omitted filter and an explicit
    ``None`` address the same entry.
    """
    if params is None:
        return "{}"
    if isinstance(params, BaseModel):
        data = params.model_dump(by_alias=True, exclude_none=True)
    else:
        data = {key: value for key, value in params.items() if value is not None}
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class CacheKey:
    """Composite cache key."""

    cluster_id: str
    resource_type: str
    params: str

    def matches(self, cluster_id: str, resource_type: str | None = None) -> bool:
        """Check whether the key belongs to a cluster (and resource type)."""
        if self.cluster_id != cluster_id:
            return False
        return resource_type is None or self.resource_type == resource_type

    def __str__(self) -> str:
        return f"{self.cluster_id}:{self.resource_type}:{self.params}"


def make_cache_key(
    cluster_id: str,
    resource_type: str,
    params: CacheParams = None,
) -> CacheKey:
    """Create a cache key for a resource request."""
    return CacheKey(cluster_id, resource_type, canonical_params(params))


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its TTL bookkeeping (monotonic seconds)."""

    value: T
    timestamp: float
    ttl: float
    last_accessed: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl

    def age(self, now: float) -> float:
        return now - self.timestamp


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time statistics for a single cache."""

    size: int
    max_size: int
    valid_entries: int
    expired_entries: int
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        """Ratio of hits to lookups."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        """Export statistics as dictionary."""
        return {
            "size": self.size,
            "max_size": self.max_size,
            "valid_entries": self.valid_entries,
            "expired_entries": self.expired_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 4),
        }


class ResourceCache(Generic[T]):
    """
    TTL + LRU cache for RabbitMQ resource pages.

    Entries are kept in an ordered map whose order is the access order:
    the first entry is always the least recently accessed one. Lookups
    never raise; a failed or expired lookup is a plain miss.
    """

    def __init__(
        self,
        name: str = "resources",
        ttl: timedelta | float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize a resource cache.

        Args:
            name: Cache name (used in logs and statistics)
            ttl: Default time to live for entries
            max_size: Maximum number of entries
            clock: Monotonic time source in seconds
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self.name = name
        self.default_ttl = to_seconds(ttl)
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CacheEntry[T]] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._event_callbacks: list[Callable[[str, CacheKey, dict], None]] = []
        self._logger = logger.bind(component="ResourceCache", cache=name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def now(self) -> float:
        """Current reading of the cache clock."""
        return self._clock()

    # ─────────────────────────────────────────────────────────────────────────
    # Event System
    # ─────────────────────────────────────────────────────────────────────────

    def on_event(self, callback: Callable[[str, CacheKey, dict], None]) -> None:
        """
        Register a callback for cache events.

        Callback receives: (event_type, key, data)

        Events:
        - cache:set - Entry was stored
        - cache:evict - Entry was evicted to respect max_size
        - cache:invalidate - Entry was removed by invalidate()
        - cache:expire - Entry was reaped by cleanup()
        """
        self._event_callbacks.append(callback)

    def _emit_events(self, events: list[tuple[str, CacheKey, dict]]) -> None:
        for event, key, data in events:
            for callback in self._event_callbacks:
                try:
                    callback(event, key, data)
                except Exception as e:
                    self._logger.warning("Event callback error", event=event, error=str(e))

    # ─────────────────────────────────────────────────────────────────────────
    # Cache Operations
    # ─────────────────────────────────────────────────────────────────────────

    def get_entry(
        self,
        cluster_id: str,
        resource_type: str,
        params: CacheParams = None,
    ) -> CacheEntry[T] | None:
        """Look up a valid entry, bumping its LRU position on a hit."""
        key = make_cache_key(cluster_id, resource_type, params)
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or not entry.is_valid(now):
                # Expired entries stay until the next cleanup sweep
                self._misses += 1
                return None

            entry.last_accessed = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry

    def get(
        self,
        cluster_id: str,
        resource_type: str,
        params: CacheParams = None,
    ) -> T | None:
        """Get cached data if present and not expired."""
        entry = self.get_entry(cluster_id, resource_type, params)
        return entry.value if entry is not None else None

    def set(
        self,
        cluster_id: str,
        resource_type: str,
        data: T,
        params: CacheParams = None,
        custom_ttl: timedelta | float | None = None,
    ) -> None:
        """
        Store data, overwriting any existing entry for the same key.

        Args:
            cluster_id: Cluster identifier
            resource_type: Resource type tag
            data: Value to cache
            params: Request parameters
            custom_ttl: Entry TTL overriding the cache default; zero or
                negative values make the entry immediately expired
        """
        key = make_cache_key(cluster_id, resource_type, params)
        ttl = self.default_ttl if custom_ttl is None else to_seconds(custom_ttl)
        events: list[tuple[str, CacheKey, dict]] = []

        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(
                value=data,
                timestamp=now,
                ttl=ttl,
                last_accessed=now,
            )
            events.append((CACHE_EVENT_SET, key, {"ttl": ttl}))

            while len(self._entries) > self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                events.append((CACHE_EVENT_EVICT, evicted_key, {}))

            assert len(self._entries) <= self.max_size, "eviction left cache above max_size"

        if len(events) > 1:
            self._logger.debug("Entries evicted", count=len(events) - 1, size=self.max_size)
        self._emit_events(events)

    def invalidate(self, cluster_id: str, resource_type: str | None = None) -> int:
        """
        Remove entries for a cluster, optionally narrowed to one resource type.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = [key for key in self._entries if key.matches(cluster_id, resource_type)]
            for key in keys:
                del self._entries[key]

        if keys:
            self._logger.debug(
                "Cache invalidated",
                cluster_id=cluster_id,
                resource_type=resource_type,
                removed=len(keys),
            )
        self._emit_events(
            [(CACHE_EVENT_INVALIDATE, key, {"cluster_id": cluster_id}) for key in keys]
        )
        return len(keys)

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        if count:
            self._logger.debug("Cache cleared", removed=count)
        return count

    def cleanup(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
            for key in expired:
                del self._entries[key]

        if expired:
            self._logger.debug("Expired entries removed", removed=len(expired))
        self._emit_events([(CACHE_EVENT_EXPIRE, key, {}) for key in expired])
        return len(expired)

    def keys(self) -> list[CacheKey]:
        """Current keys in LRU order (least recently accessed first)."""
        with self._lock:
            return list(self._entries)

    def get_stats(self) -> CacheStats:
        """Classify every entry as valid or expired without mutating state."""
        with self._lock:
            now = self._clock()
            valid = sum(1 for entry in self._entries.values() if entry.is_valid(now))
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                valid_entries=valid,
                expired_entries=len(self._entries) - valid,
                hits=self._hits,
                misses=self._misses,
            )
