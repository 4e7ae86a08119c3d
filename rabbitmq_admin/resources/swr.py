"""
Stale-While-Revalidate Coordinator.

Serves cached data immediately, flags it stale once it is older than
``stale_time`` and revalidates it with a single background fetch.

Usage:
    from rabbitmq_admin.resources.swr import StaleWhileRevalidate

    swr = StaleWhileRevalidate(
        cache=registry["queues"],
        cluster_id="prod",
        resource_type="queues",
        fetcher=lambda: fetcher.fetch_page("prod", "queues", params),
        params=params,
        auto_refresh=True,
    )
    await swr.start()
    print(swr.state.data, swr.state.is_stale)
    await swr.close()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

import structlog

from rabbitmq_admin.cache.resource_cache import CacheParams, ResourceCache
from rabbitmq_admin.core.scheduling import PeriodicTask, to_seconds
from rabbitmq_admin.resources.errors import ResourceError, classify_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_REFRESH_INTERVAL = timedelta(seconds=30)
DEFAULT_STALE_TIME = timedelta(seconds=15)
DEFAULT_STALE_CHECK_INTERVAL = timedelta(seconds=5)


@dataclass
class SWRState(Generic[T]):
    """Observable state of a stale-while-revalidate coordinator."""

    data: T | None = None
    loading: bool = False
    error: ResourceError | None = None
    is_stale: bool = False
    last_updated: datetime | None = None


class StaleWhileRevalidate(Generic[T]):
    """
    Coordinator for one (cluster, resource type, params) view.

    At most one background fetch is in flight at a time. Background
    failures are logged and never replace the displayed data or error.
    """

    def __init__(
        self,
        cache: ResourceCache[T],
        cluster_id: str,
        resource_type: str,
        fetcher: Callable[[], Awaitable[T]],
        params: CacheParams = None,
        auto_refresh: bool = False,
        refresh_interval: timedelta | float = DEFAULT_REFRESH_INTERVAL,
        stale_time: timedelta | float = DEFAULT_STALE_TIME,
        stale_check_interval: timedelta | float = DEFAULT_STALE_CHECK_INTERVAL,
    ):
        self.cluster_id = cluster_id
        self.resource_type = resource_type
        self.params = params
        self.auto_refresh = auto_refresh
        self.stale_time = to_seconds(stale_time)
        self._cache = cache
        self._fetcher = fetcher
        self._state: SWRState[T] = SWRState()
        # Cache-clock time of the data currently shown
        self._loaded_at: float | None = None
        self._background: asyncio.Task | None = None
        self._disposed = False
        self._observers: list[Callable[[SWRState], None]] = []
        self._close_callbacks: list[Callable[[StaleWhileRevalidate], None]] = []
        self._stale_check = PeriodicTask(
            stale_check_interval, self.check_stale, name=f"stale-check-{resource_type}"
        )
        self._refresh_timer = PeriodicTask(
            refresh_interval, self._auto_refresh_tick, name=f"swr-refresh-{resource_type}"
        )
        self._logger = logger.bind(
            component="StaleWhileRevalidate",
            cluster_id=cluster_id,
            resource_type=resource_type,
        )

    @property
    def state(self) -> SWRState[T]:
        return self._state

    @property
    def closed(self) -> bool:
        return self._disposed

    @property
    def background_task(self) -> asyncio.Task | None:
        """The in-flight background fetch, if any."""
        if self._background is not None and not self._background.done():
            return self._background
        return None

    def on_change(self, callback: Callable[[SWRState], None]) -> Callable[[], None]:
        """Subscribe to state changes. Returns an unsubscribe callable."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def on_close(self, callback: Callable[[StaleWhileRevalidate], None]) -> None:
        """Register a callback run once when the coordinator closes."""
        self._close_callbacks.append(callback)

    def _publish(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self._state)
            except Exception as e:
                self._logger.warning("State observer error", error=str(e))

    # ─────────────────────────────────────────────────────────────────────────
    # Fetching
    # ─────────────────────────────────────────────────────────────────────────

    async def fetch(self, is_background: bool = False) -> None:
        """
        Serve from cache or fetch.

        A foreground call with a cached entry publishes it right away and,
        when the entry is stale, triggers one background revalidation. A
        background call always goes to the network.
        """
        if self._disposed:
            return

        if not is_background:
            self._state.loading = True
            self._state.error = None
            self._publish()

            entry = self._cache.get_entry(self.cluster_id, self.resource_type, self.params)
            if entry is not None:
                age = entry.age(self._cache.now())
                self._loaded_at = entry.timestamp
                self._state.data = entry.value
                self._state.last_updated = datetime.now(UTC) - timedelta(seconds=age)
                self._state.is_stale = age > self.stale_time
                self._state.loading = False
                self._publish()
                if self._state.is_stale:
                    self.trigger_background_refresh()
                return

        try:
            data = await self._fetcher()
        except Exception as e:
            if self._disposed:
                return
            if is_background:
                self._logger.warning("Background revalidation failed", error=str(e))
                return
            self._state.error = classify_error(
                e,
                cluster_id=self.cluster_id,
                resource_type=self.resource_type,
                operation="fetch",
            )
            self._state.loading = False
            self._logger.warning(
                "Fetch failed",
                error_type=self._state.error.type.value,
                message=self._state.error.message,
            )
            self._publish()
            return

        if self._disposed:
            return

        self._cache.set(self.cluster_id, self.resource_type, data, self.params)
        self._loaded_at = self._cache.now()
        self._state.data = data
        self._state.error = None
        self._state.is_stale = False
        self._state.last_updated = datetime.now(UTC)
        if not is_background:
            self._state.loading = False
        self._publish()

    def trigger_background_refresh(self) -> asyncio.Task | None:
        """Start a background fetch unless one is already in flight."""
        if self._disposed:
            return None
        if self.background_task is not None:
            return self._background
        self._background = asyncio.create_task(
            self.fetch(is_background=True), name=f"swr-background-{self.resource_type}"
        )
        return self._background

    async def refresh(self) -> None:
        """Drop the cached entry and fetch in the foreground."""
        await self._cancel_background()
        self._cache.invalidate(self.cluster_id, self.resource_type)
        await self.fetch()

    def check_stale(self) -> bool:
        """Re-evaluate staleness of the data currently shown."""
        if self._loaded_at is None:
            return False
        is_stale = self._cache.now() - self._loaded_at > self.stale_time
        if is_stale != self._state.is_stale:
            self._state.is_stale = is_stale
            self._publish()
        return is_stale

    def _auto_refresh_tick(self) -> None:
        self.trigger_background_refresh()

    async def _cancel_background(self) -> None:
        task, self._background = self._background, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Initial foreground fetch, then start the staleness and refresh timers."""
        await self.fetch()
        if self._disposed:
            return
        self._stale_check.start()
        if self.auto_refresh:
            self._refresh_timer.start()

    async def close(self) -> None:
        """Cancel timers and the in-flight fetch. Closing twice is a no-op."""
        if self._disposed:
            return
        self._disposed = True
        await self._stale_check.stop()
        await self._refresh_timer.stop()
        await self._cancel_background()
        self._observers.clear()

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception as e:
                self._logger.warning("Close callback error", error=str(e))

    def snapshot(self) -> dict[str, Any]:
        """Export the current state as a dictionary."""
        return {
            "cluster_id": self.cluster_id,
            "resource_type": self.resource_type,
            "loading": self._state.loading,
            "is_stale": self._state.is_stale,
            "has_data": self._state.data is not None,
            "error": self._state.error.to_dict() if self._state.error else None,
            "last_updated": self._state.last_updated.isoformat() if self._state.last_updated else None,
        }
