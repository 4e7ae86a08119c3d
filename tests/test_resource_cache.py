"""Tests for the TTL + LRU resource cache."""

from datetime import timedelta

import pytest

from rabbitmq_admin.cache.resource_cache import (
    CACHE_EVENT_EVICT,
    CACHE_EVENT_EXPIRE,
    CACHE_EVENT_INVALIDATE,
    CACHE_EVENT_SET,
    CacheKey,
    ResourceCache,
    canonical_params,
    make_cache_key,
)
from rabbitmq_admin.resources.models import PaginationRequest


@pytest.fixture
def cache(clock):
    return ResourceCache(name="queues", ttl=timedelta(seconds=60), max_size=3, clock=clock)


class TestKeys:
    """Cache key derivation."""

    def test_key_is_order_independent(self):
        a = make_cache_key("prod", "queues", {"page": 0, "pageSize": 50, "name": "orders"})
        b = make_cache_key("prod", "queues", {"name": "orders", "pageSize": 50, "page": 0})
        assert a == b
        assert hash(a) == hash(b)

    def test_none_values_are_dropped(self):
        assert canonical_params({"page": 0, "name": None}) == canonical_params({"page": 0})
        assert canonical_params(None) == "{}"

    def test_model_and_mapping_produce_same_key(self):
        model = PaginationRequest(page=1, page_size=25)
        assert make_cache_key("prod", "queues", model) == make_cache_key(
            "prod", "queues", {"pageSize": 25, "page": 1}
        )

    def test_different_params_produce_different_keys(self):
        assert make_cache_key("prod", "queues", {"page": 0}) != make_cache_key(
            "prod", "queues", {"page": 1}
        )

    def test_string_form(self):
        key = make_cache_key("prod", "queues", {"page": 0})
        assert str(key) == 'prod:queues:{"page":0}'

    def test_matches_uses_exact_components(self):
        key = CacheKey("prod-eu", "queues", "{}")
        assert key.matches("prod-eu")
        assert key.matches("prod-eu", "queues")
        assert not key.matches("prod")
        assert not key.matches("prod-eu", "exchanges")


class TestGetSet:
    """TTL semantics."""

    def test_miss_on_empty_cache(self, cache):
        assert cache.get("prod", "queues") is None
        assert cache.get_stats().misses == 1

    def test_hit_within_ttl(self, cache, clock):
        cache.set("prod", "queues", ["q1"], {"page": 0})
        clock.advance(59.9)
        assert cache.get("prod", "queues", {"page": 0}) == ["q1"]

    def test_expired_at_ttl(self, cache, clock):
        cache.set("prod", "queues", ["q1"])
        clock.advance(60)
        assert cache.get("prod", "queues") is None
        # expired entry stays until cleanup
        assert len(cache) == 1

    def test_custom_ttl_overrides_default(self, cache, clock):
        cache.set("prod", "queues", ["q1"], custom_ttl=timedelta(seconds=5))
        clock.advance(5)
        assert cache.get("prod", "queues") is None

    def test_zero_ttl_is_immediately_expired(self, cache):
        cache.set("prod", "queues", ["q1"], custom_ttl=0)
        assert cache.get("prod", "queues") is None

    def test_overwrite_resets_ttl(self, cache, clock):
        cache.set("prod", "queues", ["old"])
        clock.advance(50)
        cache.set("prod", "queues", ["new"])
        clock.advance(50)
        assert cache.get("prod", "queues") == ["new"]
        assert len(cache) == 1

    def test_get_entry_reports_age(self, cache, clock):
        cache.set("prod", "queues", ["q1"])
        clock.advance(12)
        entry = cache.get_entry("prod", "queues")
        assert entry is not None
        assert entry.age(clock()) == pytest.approx(12)

    def test_invalid_max_size(self, clock):
        with pytest.raises(ValueError):
            ResourceCache(max_size=0, clock=clock)


class TestEviction:
    """LRU eviction by last access."""

    def test_size_never_exceeds_max(self, cache):
        for page in range(10):
            cache.set("prod", "queues", page, {"page": page})
            assert len(cache) <= 3

    def test_evicts_least_recently_accessed(self, cache, clock):
        cache.set("prod", "queues", "a", {"page": 0})
        clock.advance(1)
        cache.set("prod", "queues", "b", {"page": 1})
        clock.advance(1)
        cache.set("prod", "queues", "c", {"page": 2})
        clock.advance(1)

        # Touch the oldest entry so "b" becomes least recently used
        assert cache.get("prod", "queues", {"page": 0}) == "a"
        cache.set("prod", "queues", "d", {"page": 3})

        assert cache.get("prod", "queues", {"page": 1}) is None
        assert cache.get("prod", "queues", {"page": 0}) == "a"
        assert cache.get("prod", "queues", {"page": 2}) == "c"
        assert cache.get("prod", "queues", {"page": 3}) == "d"

    def test_evict_event_emitted(self, cache):
        events = []
        cache.on_event(lambda event, key, data: events.append((event, key)))
        for page in range(4):
            cache.set("prod", "queues", page, {"page": page})

        evicted = [key for event, key in events if event == CACHE_EVENT_EVICT]
        assert evicted == [make_cache_key("prod", "queues", {"page": 0})]
        assert sum(1 for event, _ in events if event == CACHE_EVENT_SET) == 4


class TestInvalidation:
    """Cluster and resource scoped invalidation."""

    def test_invalidate_cluster_and_type(self, clock):
        cache = ResourceCache(max_size=10, clock=clock)
        cache.set("prod", "queues", 1, {"page": 0})
        cache.set("prod", "queues", 2, {"page": 1})
        cache.set("prod", "exchanges", 3)
        cache.set("staging", "queues", 4)

        assert cache.invalidate("prod", "queues") == 2
        assert cache.get("prod", "exchanges") == 3
        assert cache.get("staging", "queues") == 4

    def test_invalidate_whole_cluster(self, clock):
        cache = ResourceCache(max_size=10, clock=clock)
        cache.set("prod", "queues", 1)
        cache.set("prod", "exchanges", 2)
        cache.set("prod-eu", "queues", 3)

        assert cache.invalidate("prod") == 2
        assert cache.get("prod-eu", "queues") == 3

    def test_invalidate_emits_events(self, cache):
        events = []
        cache.on_event(lambda event, key, data: events.append(event))
        cache.set("prod", "queues", 1)
        cache.invalidate("prod")
        assert events == [CACHE_EVENT_SET, CACHE_EVENT_INVALIDATE]

    def test_clear(self, cache):
        cache.set("prod", "queues", 1)
        cache.set("staging", "queues", 2)
        assert cache.clear() == 2
        assert len(cache) == 0


class TestCleanupAndStats:
    """Expired entry reaping and statistics."""

    def test_cleanup_removes_only_expired(self, cache, clock):
        cache.set("prod", "queues", 1, {"page": 0}, custom_ttl=10)
        cache.set("prod", "queues", 2, {"page": 1})
        clock.advance(30)

        assert cache.cleanup() == 1
        assert cache.get("prod", "queues", {"page": 1}) == 2

    def test_cleanup_is_idempotent(self, cache, clock):
        cache.set("prod", "queues", 1, custom_ttl=10)
        clock.advance(30)
        assert cache.cleanup() == 1
        assert cache.cleanup() == 0

    def test_cleanup_emits_expire_events(self, cache, clock):
        events = []
        cache.on_event(lambda event, key, data: events.append(event))
        cache.set("prod", "queues", 1, custom_ttl=1)
        clock.advance(2)
        cache.cleanup()
        assert events[-1] == CACHE_EVENT_EXPIRE

    def test_stats_are_a_pure_read(self, cache, clock):
        cache.set("prod", "queues", 1, {"page": 0}, custom_ttl=10)
        cache.set("prod", "queues", 2, {"page": 1})
        clock.advance(30)

        stats = cache.get_stats()
        assert stats.size == 2
        assert stats.valid_entries == 1
        assert stats.expired_entries == 1
        assert stats.max_size == 3
        # nothing removed or counted
        assert len(cache) == 2
        assert cache.get_stats().hits == 0

    def test_hit_rate(self, cache):
        cache.set("prod", "queues", 1)
        cache.get("prod", "queues")
        cache.get("prod", "queues")
        cache.get("prod", "exchanges")

        stats = cache.get_stats()
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(2 / 3)
        assert stats.to_dict()["hit_rate"] == round(2 / 3, 4)

    def test_failing_event_callback_does_not_break_cache(self, cache):
        def boom(event, key, data):
            raise RuntimeError("observer failed")

        cache.on_event(boom)
        cache.set("prod", "queues", 1)
        assert cache.get("prod", "queues") == 1
