"""
Resource Console.

Composition root for a console session: builds the cache registry, the
gateway fetcher, one controller per resource type and the statistics
aggregator, and owns their lifecycle.

Usage:
    from rabbitmq_admin.console import ResourceConsole

    async with ResourceConsole(settings, token_provider=session.token) as console:
        queues = console.controller("queues")
        await queues.load("prod", PaginationRequest(page=0))

        await console.switch_cluster("staging")
        await console.logout()
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog

from rabbitmq_admin.cache.registry import (
    RESOURCE_AUDIT,
    RESOURCE_BINDINGS,
    CacheRegistry,
)
from rabbitmq_admin.cache.resource_cache import CacheParams
from rabbitmq_admin.cache.stats import CacheStatsAggregator
from rabbitmq_admin.config import ConsoleSettings, load_settings
from rabbitmq_admin.resources.controller import ResourceController
from rabbitmq_admin.resources.errors import ResourceError
from rabbitmq_admin.resources.fetcher import PAGED_RESOURCE_TYPES, ResourceFetcher
from rabbitmq_admin.resources.models import AuditFilterRequest, BindingsRequest, PaginationRequest
from rabbitmq_admin.resources.swr import StaleWhileRevalidate

logger = structlog.get_logger(__name__)

# Audit records are not cluster scoped; they are cached under this id
AUDIT_SCOPE = "*"


class ResourceConsole:
    """
    Owns every cache, controller and timer of one console process.

    Authentication failures from any controller clear the caches and
    invoke ``on_session_expired``.
    """

    def __init__(
        self,
        settings: ConsoleSettings | None = None,
        token_provider: Callable[[], str | None] | None = None,
        on_session_expired: Callable[[ResourceError], Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize console.

        Args:
            settings: Console settings (default: load_settings())
            token_provider: Returns the current bearer token
            on_session_expired: Called after logout on an authentication error
            transport: Optional httpx transport for the fetcher
            clock: Monotonic time source for every cache
        """
        self.settings = settings or load_settings()
        self.registry = CacheRegistry.from_policies(
            self.settings.cache_policies,
            cleanup_interval=self.settings.cleanup_interval,
            clock=clock,
        )
        self.fetcher = ResourceFetcher(
            self.settings.api_url,
            token_provider=token_provider,
            timeout=self.settings.request_timeout,
            transport=transport,
        )
        self.stats = CacheStatsAggregator(self.registry, interval=self.settings.stats_interval)
        self._on_session_expired = on_session_expired
        self._current_cluster: str | None = None
        self._coordinators: list[StaleWhileRevalidate] = []
        self._started = False
        self._logger = logger.bind(component="ResourceConsole")

        self._controllers: dict[str, ResourceController] = {}
        for resource_type in PAGED_RESOURCE_TYPES:
            self._controllers[resource_type] = self._build_controller(resource_type)
        self._controllers[RESOURCE_BINDINGS] = self._build_controller(RESOURCE_BINDINGS)
        self._controllers[RESOURCE_AUDIT] = self._build_controller(RESOURCE_AUDIT)

    async def __aenter__(self) -> ResourceConsole:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def current_cluster(self) -> str | None:
        return self._current_cluster

    @property
    def started(self) -> bool:
        return self._started

    @property
    def coordinators(self) -> list[StaleWhileRevalidate]:
        """Coordinators built by this console that are still open."""
        return list(self._coordinators)

    # ─────────────────────────────────────────────────────────────────────────
    # Wiring
    # ─────────────────────────────────────────────────────────────────────────

    def _loader_for(self, resource_type: str):
        if resource_type == RESOURCE_BINDINGS:

            async def load_bindings(cluster_id: str, params: BindingsRequest):
                return await self.fetcher.fetch_bindings(cluster_id, params)

            return load_bindings

        if resource_type == RESOURCE_AUDIT:

            async def load_audit(cluster_id: str, params: AuditFilterRequest | None):
                return await self.fetcher.fetch_audit_records(params)

            return load_audit

        async def load_page(cluster_id: str, params: PaginationRequest | None):
            return await self.fetcher.fetch_page(cluster_id, resource_type, params)

        return load_page

    def _build_controller(self, resource_type: str) -> ResourceController:
        return ResourceController(
            resource_type,
            self.registry.get(resource_type),
            self._loader_for(resource_type),
            on_auth_error=self._handle_auth_error,
        )

    def controller(self, resource_type: str) -> ResourceController:
        """Get the controller for a resource type."""
        try:
            return self._controllers[resource_type]
        except KeyError:
            raise KeyError(
                f"No controller for '{resource_type}'. Known: {sorted(self._controllers)}"
            ) from None

    async def load_audit(self, filters: AuditFilterRequest | None = None):
        """Load a page of audit records through the audit controller."""
        return await self._controllers[RESOURCE_AUDIT].load(AUDIT_SCOPE, filters)

    def stale_while_revalidate(
        self,
        resource_type: str,
        cluster_id: str,
        params: CacheParams = None,
        **options: Any,
    ) -> StaleWhileRevalidate:
        """
        Build a stale-while-revalidate coordinator backed by the console caches.

        Options override the configured refresh_interval, stale_time,
        stale_check_interval and auto_refresh.
        """
        loader = self._loader_for(resource_type)
        options.setdefault("refresh_interval", self.settings.auto_refresh_interval)
        options.setdefault("stale_time", self.settings.stale_time)
        options.setdefault("stale_check_interval", self.settings.stale_check_interval)

        coordinator = StaleWhileRevalidate(
            cache=self.registry.get(resource_type),
            cluster_id=cluster_id,
            resource_type=resource_type,
            fetcher=lambda: loader(cluster_id, params),
            params=params,
            **options,
        )
        self._coordinators.append(coordinator)
        coordinator.on_close(self._forget_coordinator)
        return coordinator

    def _forget_coordinator(self, coordinator: StaleWhileRevalidate) -> None:
        if coordinator in self._coordinators:
            self._coordinators.remove(coordinator)

    # ─────────────────────────────────────────────────────────────────────────
    # Session
    # ─────────────────────────────────────────────────────────────────────────

    def switch_cluster(self, cluster_id: str) -> int:
        """
        Make a cluster current, dropping the previous cluster's cache entries.

        Returns:
            Number of entries invalidated
        """
        previous = self._current_cluster
        self._current_cluster = cluster_id
        if previous is None or previous == cluster_id:
            return 0
        for controller in self._controllers.values():
            last_params = controller.state.last_params
            if last_params is not None and last_params[0] == previous:
                controller.reset()
                controller.clear_error()
        removed = self.registry.invalidate_cluster(previous)
        self._logger.info("Cluster switched", previous=previous, current=cluster_id, removed=removed)
        return removed

    def logout(self) -> int:
        """
        Clear every cache and reset every controller.

        Auto-refresh stops, so nothing from the ended session is fetched
        back into the cache. Returns the number of entries removed.
        """
        for controller in self._controllers.values():
            controller.reset()
        removed = self.registry.clear_all()
        self._current_cluster = None
        self._logger.info("Session cleared", removed=removed)
        return removed

    async def _handle_auth_error(self, error: ResourceError) -> None:
        self._logger.warning("Session expired", message=error.message)
        self.logout()
        if self._on_session_expired is not None:
            result = self._on_session_expired(error)
            if inspect.isawaitable(result):
                await result

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the cache cleanup sweep and statistics polling."""
        if self._started:
            return
        self.registry.start_cleanup()
        self.stats.start()
        self._started = True
        self._logger.info("Console started", api_url=self.settings.api_url, caches=self.registry.names)

    async def close(self) -> None:
        """Stop every timer and close the HTTP client."""
        for controller in self._controllers.values():
            await controller.close()
        for coordinator in list(self._coordinators):
            await coordinator.close()
        self._coordinators.clear()
        await self.stats.stop()
        await self.registry.stop_cleanup()
        await self.fetcher.close()
        self._started = False
        self._logger.info("Console closed")
