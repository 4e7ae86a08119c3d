"""Tests for the cache registry and statistics aggregator."""

import asyncio
from datetime import timedelta

import pytest

from rabbitmq_admin.cache.registry import (
    DEFAULT_CACHE_POLICIES,
    CachePolicy,
    CacheRegistry,
)
from rabbitmq_admin.cache.stats import CacheStatsAggregator


class TestCacheRegistry:
    """Named caches built from policies."""

    def test_default_policies(self, registry):
        assert set(registry.names) == {
            "connections",
            "channels",
            "queues",
            "exchanges",
            "bindings",
            "audit",
        }
        assert registry["connections"].default_ttl == 30
        assert registry["queues"].default_ttl == 60
        assert registry["exchanges"].default_ttl == 300
        assert registry["bindings"].default_ttl == 600
        assert registry["bindings"].max_size == 100
        assert registry["queues"].max_size == 50

    def test_unknown_cache_raises(self, registry):
        with pytest.raises(KeyError, match="Unknown cache"):
            registry.get("vhosts")
        assert "vhosts" not in registry

    def test_custom_policies(self, clock):
        registry = CacheRegistry.from_policies(
            {"queues": CachePolicy(ttl=timedelta(seconds=5), max_size=2)}, clock=clock
        )
        assert registry.names == ["queues"]
        assert registry["queues"].max_size == 2

    def test_invalidate_cluster_spans_all_caches(self, registry):
        registry["queues"].set("prod", "queues", 1)
        registry["exchanges"].set("prod", "exchanges", 2)
        registry["queues"].set("staging", "queues", 3)

        assert registry.invalidate_cluster("prod") == 2
        assert registry["queues"].get("staging", "queues") == 3

    def test_clear_all(self, registry):
        registry["queues"].set("prod", "queues", 1)
        registry["channels"].set("prod", "channels", 2)
        assert registry.clear_all() == 2

    def test_cleanup_all(self, registry, clock):
        registry["connections"].set("prod", "connections", 1)
        registry["exchanges"].set("prod", "exchanges", 2)
        clock.advance(31)
        assert registry.cleanup_all() == 1
        assert registry["exchanges"].get("prod", "exchanges") == 2

    @pytest.mark.asyncio
    async def test_periodic_cleanup(self, clock):
        registry = CacheRegistry.from_policies(cleanup_interval=0.01, clock=clock)
        registry["connections"].set("prod", "connections", 1)
        clock.advance(31)

        registry.start_cleanup()
        assert registry.cleanup_running
        await asyncio.sleep(0.05)
        await registry.stop_cleanup()

        assert len(registry["connections"]) == 0
        assert not registry.cleanup_running

    def test_defaults_match_registry(self):
        assert DEFAULT_CACHE_POLICIES["audit"].ttl == timedelta(seconds=60)


class TestCacheStatsAggregator:
    """Aggregated statistics."""

    def test_snapshot_totals(self, registry, clock):
        registry["queues"].set("prod", "queues", 1)
        registry["connections"].set("prod", "connections", 2)
        clock.advance(31)
        registry["queues"].get("prod", "queues")

        aggregator = CacheStatsAggregator(registry)
        snapshot = aggregator.snapshot()

        assert snapshot.caches["queues"].valid_entries == 1
        assert snapshot.caches["connections"].expired_entries == 1
        assert snapshot.total.size == 2
        assert snapshot.total.valid_entries == 1
        assert snapshot.total.expired_entries == 1
        assert snapshot.total.hits == 1
        assert aggregator.latest is snapshot

    def test_to_dict(self, registry):
        data = CacheStatsAggregator(registry).snapshot().to_dict()
        assert set(data) == {"caches", "total", "collected_at"}
        assert set(data["caches"]) == set(registry.names)
        assert data["total"]["max_size"] == sum(p.max_size for p in DEFAULT_CACHE_POLICIES.values())

    def test_fan_out_commands(self, registry):
        aggregator = CacheStatsAggregator(registry)
        registry["queues"].set("prod", "queues", 1)
        registry["bindings"].set("prod", "bindings", 2)
        registry["queues"].set("staging", "queues", 3)

        assert aggregator.invalidate_cluster_caches("prod") == 2
        assert aggregator.clear_all_caches() == 1
        assert aggregator.snapshot().total.size == 0

    @pytest.mark.asyncio
    async def test_polling_notifies_observers(self, registry):
        updates = []
        aggregator = CacheStatsAggregator(registry, interval=0.01)
        aggregator.on_update(updates.append)

        aggregator.start()
        # first snapshot is taken immediately
        assert len(updates) == 1
        await asyncio.sleep(0.05)
        await aggregator.stop()

        assert len(updates) >= 2
        assert not aggregator.is_running
