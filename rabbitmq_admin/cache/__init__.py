"""
Resource Cache Module.

Provides the in-process caching layer for RabbitMQ resource listings.

Features:
- TTL expiry with LRU eviction by last access
- Parameter-aware keys with canonical serialization
- Named per-resource caches with periodic cleanup
- Aggregated statistics and cluster-wide invalidation
"""

from rabbitmq_admin.cache.registry import (
    DEFAULT_CACHE_POLICIES,
    RESOURCE_AUDIT,
    RESOURCE_BINDINGS,
    RESOURCE_CHANNELS,
    RESOURCE_CONNECTIONS,
    RESOURCE_EXCHANGES,
    RESOURCE_QUEUES,
    CachePolicy,
    CacheRegistry,
)
from rabbitmq_admin.cache.resource_cache import (
    CACHE_EVENT_EVICT,
    CACHE_EVENT_EXPIRE,
    CACHE_EVENT_INVALIDATE,
    CACHE_EVENT_SET,
    CacheEntry,
    CacheKey,
    CacheStats,
    ResourceCache,
    canonical_params,
    make_cache_key,
)
from rabbitmq_admin.cache.stats import AggregatedCacheStats, CacheStatsAggregator

__all__ = [
    "CACHE_EVENT_EVICT",
    "CACHE_EVENT_EXPIRE",
    "CACHE_EVENT_INVALIDATE",
    "CACHE_EVENT_SET",
    "DEFAULT_CACHE_POLICIES",
    "RESOURCE_AUDIT",
    "RESOURCE_BINDINGS",
    "RESOURCE_CHANNELS",
    "RESOURCE_CONNECTIONS",
    "RESOURCE_EXCHANGES",
    "RESOURCE_QUEUES",
    "AggregatedCacheStats",
    "CacheEntry",
    "CacheKey",
    "CachePolicy",
    "CacheRegistry",
    "CacheStats",
    "CacheStatsAggregator",
    "ResourceCache",
    "canonical_params",
    "make_cache_key",
]
