"""
Resource Controller.

One parameterized controller per resource type. Checks the cache, fetches
on a miss, stores the result and publishes a state snapshot to observers.

Features:
- Cache-first load with parameter-aware keys
- Refresh that always goes to the network
- Optional auto-refresh timer
- Non-destructive errors (previous data stays visible)
- Authentication failures routed to a session-expiry callback

Usage:
    from rabbitmq_admin.resources.controller import ResourceController

    controller = ResourceController("queues", registry["queues"], loader)
    controller.on_change(lambda state: render(state.to_dict()))

    await controller.load("prod", PaginationRequest(page=0, page_size=50))
    controller.start_auto_refresh(30)
    await controller.refresh()
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel

from rabbitmq_admin.cache.resource_cache import CacheParams, ResourceCache
from rabbitmq_admin.core.scheduling import PeriodicTask
from rabbitmq_admin.resources.errors import ResourceError, ResourceErrorType, classify_error

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Loader = Callable[[str, Any], Awaitable[T]]
AuthErrorHandler = Callable[[ResourceError], Any]


@dataclass
class RefreshState(Generic[T]):
    """Observable state of a controller."""

    data: T | None = None
    loading: bool = False
    error: ResourceError | None = None
    last_updated: datetime | None = None
    last_params: tuple[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary."""
        data = self.data
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        return {
            "data": data,
            "loading": self.loading,
            "error": self.error.to_dict() if self.error else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class ResourceController(Generic[T]):
    """
    Load / refresh orchestrator for one resource type.

    States move Idle -> Loading -> Success or Error, and back to Loading on
    the next load or refresh. After ``close()`` the controller ignores any
    response that is still in flight.
    """

    def __init__(
        self,
        resource_type: str,
        cache: ResourceCache[T],
        loader: Loader,
        on_auth_error: AuthErrorHandler | None = None,
    ):
        """
        Initialize controller.

        Args:
            resource_type: Resource type tag used in cache keys
            cache: Cache for this resource type
            loader: Async callable (cluster_id, params) -> data
            on_auth_error: Invoked with the classified error on a 401
        """
        self.resource_type = resource_type
        self._cache = cache
        self._loader = loader
        self._on_auth_error = on_auth_error
        self._state: RefreshState[T] = RefreshState()
        self._observers: list[Callable[[RefreshState], None]] = []
        self._auto_refresh: PeriodicTask | None = None
        self._generation = 0
        self._disposed = False
        self._logger = logger.bind(component="ResourceController", resource_type=resource_type)

    @property
    def state(self) -> RefreshState[T]:
        return self._state

    @property
    def data(self) -> T | None:
        return self._state.data

    @property
    def error(self) -> ResourceError | None:
        return self._state.error

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def auto_refresh_running(self) -> bool:
        return self._auto_refresh is not None and self._auto_refresh.is_running

    @property
    def closed(self) -> bool:
        return self._disposed

    # ─────────────────────────────────────────────────────────────────────────
    # Observers
    # ─────────────────────────────────────────────────────────────────────────

    def on_change(self, callback: Callable[[RefreshState], None]) -> Callable[[], None]:
        """Subscribe to state changes. Returns an unsubscribe callable."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        for callback in list(self._observers):
            try:
                callback(self._state)
            except Exception as e:
                self._logger.warning("State observer error", error=str(e))

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    async def load(self, cluster_id: str, params: CacheParams = None) -> T | None:
        """
        Load data for a cluster, from cache when possible.

        Returns:
            The loaded data, or None when the load failed or the
            controller was closed meanwhile
        """
        if self._disposed:
            return None

        self._state.loading = True
        self._state.error = None
        self._state.last_params = (cluster_id, params)
        self._publish()

        cached = self._cache.get(cluster_id, self.resource_type, params)
        if cached is not None:
            self._logger.debug("Cache hit", cluster_id=cluster_id)
            self._apply_success(cached)
            return cached

        return await self._fetch(cluster_id, params, operation="load")

    async def refresh(self) -> T | None:
        """Invalidate and reload with the last parameters. No-op before the first load."""
        if self._disposed or self._state.last_params is None:
            return None
        cluster_id, params = self._state.last_params
        self._cache.invalidate(cluster_id, self.resource_type)
        return await self.load(cluster_id, params)

    def invalidate_cache(self, cluster_id: str) -> int:
        """Drop this resource type's cached entries for a cluster."""
        return self._cache.invalidate(cluster_id, self.resource_type)

    def clear_error(self) -> None:
        if self._state.error is None:
            return
        self._state.error = None
        self._publish()

    def start_auto_refresh(self, interval: timedelta | float) -> None:
        """Refresh on a fixed interval until stopped. Restarts a running timer."""
        if self._disposed:
            return
        self.stop_auto_refresh()
        self._auto_refresh = PeriodicTask(
            interval, self._auto_refresh_tick, name=f"auto-refresh-{self.resource_type}"
        )
        self._auto_refresh.start()
        self._logger.info("Auto-refresh started", interval_seconds=self._auto_refresh.interval)

    def stop_auto_refresh(self) -> None:
        if self._auto_refresh is not None:
            self._auto_refresh.cancel()
            self._auto_refresh = None

    def reset(self) -> None:
        """
        Forget the current cluster and parameters.

        Stops auto-refresh, drops the displayed data and discards any
        response still in flight. Used on cluster switch and logout so a
        later tick or late response cannot repopulate the cache with data
        from the previous cluster or session. The last error is kept.
        """
        self.stop_auto_refresh()
        self._generation += 1
        self._state.data = None
        self._state.loading = False
        self._state.last_updated = None
        self._state.last_params = None
        self._publish()

    async def close(self) -> None:
        """Stop timers and ignore any response that lands afterwards."""
        self._disposed = True
        task, self._auto_refresh = self._auto_refresh, None
        if task is not None:
            await task.stop()
        self._observers.clear()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _auto_refresh_tick(self) -> None:
        if self._disposed or self._state.last_params is None:
            return
        cluster_id, params = self._state.last_params
        self._cache.invalidate(cluster_id, self.resource_type)
        await self._fetch(cluster_id, params, operation="auto_refresh")

    async def _fetch(
        self,
        cluster_id: str,
        params: CacheParams,
        operation: str,
    ) -> T | None:
        generation = self._generation
        try:
            data = await self._loader(cluster_id, params)
        except Exception as e:
            if self._disposed or generation != self._generation:
                return None
            await self._apply_error(e, cluster_id, operation)
            return None

        if self._disposed:
            self._logger.debug("Discarding response after close", cluster_id=cluster_id)
            return None
        if generation != self._generation:
            self._logger.debug("Discarding response after reset", cluster_id=cluster_id)
            return None

        self._cache.set(cluster_id, self.resource_type, data, params)
        self._apply_success(data)
        return data

    def _apply_success(self, data: T) -> None:
        self._state.data = data
        self._state.error = None
        self._state.loading = False
        self._state.last_updated = datetime.now(UTC)
        self._publish()

    async def _apply_error(self, exc: Exception, cluster_id: str, operation: str) -> None:
        error = classify_error(
            exc,
            cluster_id=cluster_id,
            resource_type=self.resource_type,
            operation=operation,
        )
        # data is kept
        self._state.error = error
        self._state.loading = False
        self._logger.warning(
            "Resource load failed",
            cluster_id=cluster_id,
            operation=operation,
            error_type=error.type.value,
            status_code=error.status_code,
            message=error.message,
        )
        self._publish()

        if error.type != ResourceErrorType.AUTHENTICATION:
            return

        # Authentication is never retried, auto-refresh included.
        # The timer is detached first and cancelled after the handler,
        # since this may be running inside the timer's own task.
        timer, self._auto_refresh = self._auto_refresh, None
        try:
            if self._on_auth_error is not None:
                result = self._on_auth_error(error)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            self._logger.warning("Auth error handler failed", error=str(e))
        finally:
            if timer is not None:
                timer.cancel()
                self._logger.info("Auto-refresh stopped after authentication failure")
