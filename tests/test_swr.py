"""Tests for the stale-while-revalidate coordinator."""

import asyncio
from datetime import timedelta

import pytest

from rabbitmq_admin.cache.resource_cache import ResourceCache
from rabbitmq_admin.resources.errors import ResourceErrorType, ResourceFetchError
from rabbitmq_admin.resources.swr import StaleWhileRevalidate


class CountingFetcher:
    def __init__(self):
        self.calls = 0
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def __call__(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return {"items": [f"v{self.calls}"]}


@pytest.fixture
def cache(clock):
    return ResourceCache(name="queues", ttl=timedelta(seconds=60), clock=clock)


@pytest.fixture
def fetcher():
    return CountingFetcher()


@pytest.fixture
def swr(cache, fetcher):
    return StaleWhileRevalidate(
        cache=cache,
        cluster_id="c1",
        resource_type="queues",
        fetcher=fetcher,
        params={"page": 0},
        stale_time=15,
    )


@pytest.mark.asyncio
async def test_cold_fetch_goes_to_network(swr, fetcher, cache):
    await swr.fetch()
    assert fetcher.calls == 1
    assert swr.state.data == {"items": ["v1"]}
    assert swr.state.loading is False
    assert swr.state.is_stale is False
    assert cache.get("c1", "queues", {"page": 0}) == {"items": ["v1"]}


@pytest.mark.asyncio
async def test_fresh_cache_is_served_without_fetch(swr, fetcher, cache, clock):
    cache.set("c1", "queues", {"items": ["cached"]}, {"page": 0})
    clock.advance(5)

    await swr.fetch()

    assert fetcher.calls == 0
    assert swr.state.data == {"items": ["cached"]}
    assert swr.state.is_stale is False
    assert swr.background_task is None


@pytest.mark.asyncio
async def test_stale_cache_is_served_then_revalidated(swr, fetcher, cache, clock):
    cache.set("c1", "queues", {"items": ["cached"]}, {"page": 0})
    clock.advance(20)

    await swr.fetch()
    assert swr.state.data == {"items": ["cached"]}
    assert swr.state.is_stale is True

    task = swr.background_task
    assert task is not None
    await task

    assert fetcher.calls == 1
    assert swr.state.data == {"items": ["v1"]}
    assert swr.state.is_stale is False


@pytest.mark.asyncio
async def test_background_fetches_are_deduplicated(swr, fetcher):
    fetcher.gate = asyncio.Event()

    first = swr.trigger_background_refresh()
    second = swr.trigger_background_refresh()
    assert first is second

    fetcher.gate.set()
    await first
    assert fetcher.calls == 1

    third = swr.trigger_background_refresh()
    assert third is not first
    await third
    assert fetcher.calls == 2


@pytest.mark.asyncio
async def test_background_does_not_touch_loading(swr):
    states = []
    swr.on_change(lambda state: states.append(state.loading))
    await swr.fetch(is_background=True)
    assert states == [False]


@pytest.mark.asyncio
async def test_background_failure_keeps_state(swr, fetcher):
    await swr.fetch()
    fetcher.error = ResourceFetchError("down", code="connect_error")

    await swr.fetch(is_background=True)

    assert swr.state.data == {"items": ["v1"]}
    assert swr.state.error is None


@pytest.mark.asyncio
async def test_foreground_failure_sets_error_keeps_data(swr, fetcher):
    await swr.fetch()
    fetcher.error = ResourceFetchError("HTTP 503", status_code=503)

    await swr.refresh()

    assert swr.state.data == {"items": ["v1"]}
    assert swr.state.error.type == ResourceErrorType.CLUSTER_UNAVAILABLE
    assert swr.state.loading is False


@pytest.mark.asyncio
async def test_refresh_always_fetches(swr, fetcher):
    await swr.fetch()
    await swr.refresh()
    assert fetcher.calls == 2
    assert swr.state.data == {"items": ["v2"]}


@pytest.mark.asyncio
async def test_check_stale_uses_load_time(swr, clock):
    await swr.fetch()
    assert swr.check_stale() is False
    clock.advance(16)
    assert swr.check_stale() is True
    assert swr.state.is_stale is True


@pytest.mark.asyncio
async def test_auto_refresh_triggers_background_fetches(cache, fetcher):
    swr = StaleWhileRevalidate(
        cache=cache,
        cluster_id="c1",
        resource_type="queues",
        fetcher=fetcher,
        auto_refresh=True,
        refresh_interval=0.01,
        stale_check_interval=0.01,
    )
    await swr.start()
    await asyncio.sleep(0.06)
    await swr.close()

    assert fetcher.calls >= 2


@pytest.mark.asyncio
async def test_close_cancels_in_flight_fetch(swr, fetcher):
    fetcher.gate = asyncio.Event()
    task = swr.trigger_background_refresh()
    await asyncio.sleep(0)

    await swr.close()

    assert task.cancelled()
    assert swr.trigger_background_refresh() is None
    assert swr.state.data is None


@pytest.mark.asyncio
async def test_concurrent_stale_fetches_share_one_revalidation(swr, fetcher, cache, clock):
    cache.set("c1", "queues", {"items": ["cached"]}, {"page": 0})
    clock.advance(20)
    fetcher.gate = asyncio.Event()

    await asyncio.gather(swr.fetch(), swr.fetch())
    task = swr.background_task
    assert task is not None
    await asyncio.sleep(0)
    assert fetcher.calls == 1
    assert swr.state.data == {"items": ["cached"]}

    fetcher.gate.set()
    await task

    assert fetcher.calls == 1
    assert swr.state.data == {"items": ["v1"]}
    assert swr.state.is_stale is False


@pytest.mark.asyncio
async def test_entry_exactly_stale_time_old_is_fresh(swr, fetcher, cache, clock):
    cache.set("c1", "queues", {"items": ["cached"]}, {"page": 0})
    clock.advance(15)

    await swr.fetch()

    assert swr.state.is_stale is False
    assert swr.background_task is None
    assert fetcher.calls == 0


@pytest.mark.asyncio
async def test_check_stale_requires_age_beyond_threshold(swr, clock):
    await swr.fetch()
    clock.advance(15)
    assert swr.check_stale() is False
    clock.advance(0.5)
    assert swr.check_stale() is True


@pytest.mark.asyncio
async def test_close_runs_close_callbacks_once(swr):
    closed = []
    swr.on_close(closed.append)

    await swr.close()
    await swr.close()

    assert closed == [swr]
    assert swr.closed
