"""
Resource Fetcher.

Thin async adapter over the console gateway's paginated REST API.
Every response is shape-validated; every failure is raised as a
ResourceFetchError carrying the HTTP status or a network error code.

Usage:
    from rabbitmq_admin.resources.fetcher import ResourceFetcher

    async with ResourceFetcher("http://localhost:8080/api", token_provider=get_token) as fetcher:
        page = await fetcher.fetch_page("prod", "queues", PaginationRequest(page=0, page_size=50))
        bindings = await fetcher.fetch_bindings("prod", BindingsRequest(vhost="/", name="orders"))
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from rabbitmq_admin.observability.tracing import get_tracer, truncate
from rabbitmq_admin.resources.errors import (
    CODE_CONNECT,
    CODE_MALFORMED,
    CODE_NETWORK,
    CODE_TIMEOUT,
    ResourceFetchError,
)
from rabbitmq_admin.resources.models import (
    AuditFilterRequest,
    BindingsRequest,
    PaginationRequest,
    ResourcePage,
)

logger = structlog.get_logger(__name__)

PAGED_RESOURCE_TYPES = ("connections", "channels", "exchanges", "queues")
DEFAULT_TIMEOUT_SECONDS = 30.0

_bindings_adapter = TypeAdapter(list[dict[str, Any]])


def encode_vhost(vhost: str) -> str:
    """Base64-encode a vhost so "/" survives as a path segment."""
    return base64.b64encode(vhost.encode("utf-8")).decode("ascii")


class ResourceFetcher:
    """
    Async client for the gateway's resource and audit endpoints.

    The request timeout is bounded by ``timeout``; a timeout surfaces as a
    ResourceFetchError with code "timeout" and is never retried here.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None] | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize fetcher.

        Args:
            base_url: Gateway base URL (e.g. http://localhost:8080/api)
            token_provider: Returns the current bearer token, or None
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._tracer = get_tracer("fetcher")
        self._logger = logger.bind(component="ResourceFetcher")

    async def __aenter__(self) -> ResourceFetcher:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ─────────────────────────────────────────────────────────────────────────
    # Endpoints
    # ─────────────────────────────────────────────────────────────────────────

    async def fetch_page(
        self,
        cluster_id: str,
        resource_type: str,
        params: PaginationRequest | None = None,
    ) -> ResourcePage:
        """Fetch one page of connections, channels, exchanges or queues."""
        if resource_type not in PAGED_RESOURCE_TYPES:
            raise ValueError(
                f"Unsupported resource type '{resource_type}'. Expected one of {PAGED_RESOURCE_TYPES}"
            )
        params = params or PaginationRequest()
        path = f"/rabbitmq/{quote(cluster_id, safe='')}/resources/{resource_type}"
        data = await self._get_json(
            path,
            params.to_query(),
            cluster_id=cluster_id,
            resource_type=resource_type,
        )
        return self._validate_page(data, path)

    async def fetch_bindings(
        self,
        cluster_id: str,
        request: BindingsRequest,
    ) -> list[dict[str, Any]]:
        """Fetch bindings of one exchange or queue."""
        path = (
            f"/rabbitmq/{quote(cluster_id, safe='')}/resources/{request.source}/"
            f"{encode_vhost(request.vhost)}/{quote(request.name, safe='')}/bindings"
        )
        data = await self._get_json(path, None, cluster_id=cluster_id, resource_type="bindings")
        try:
            return _bindings_adapter.validate_python(data)
        except ValidationError as e:
            raise ResourceFetchError(
                f"Malformed bindings response: {e.error_count()} validation errors",
                code=CODE_MALFORMED,
                url=path,
            ) from e

    async def fetch_audit_records(
        self,
        filters: AuditFilterRequest | None = None,
    ) -> ResourcePage:
        """Fetch one page of audit records."""
        filters = filters or AuditFilterRequest()
        path = "/audit/records"
        data = await self._get_json(path, filters.to_query(), cluster_id=None, resource_type="audit")
        return self._validate_page(data, path)

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    @staticmethod
    def _validate_page(data: Any, path: str) -> ResourcePage:
        try:
            return ResourcePage.model_validate(data)
        except ValidationError as e:
            raise ResourceFetchError(
                f"Malformed paged response: {e.error_count()} validation errors",
                code=CODE_MALFORMED,
                url=path,
            ) from e

    async def _get_json(
        self,
        path: str,
        query: dict[str, str] | None,
        *,
        cluster_id: str | None,
        resource_type: str,
    ) -> Any:
        with self._tracer.start_as_current_span("resource.fetch") as span:
            span.set_attribute("rabbitmq.resource_type", resource_type)
            span.set_attribute("http.route", truncate(path, 256))
            if cluster_id:
                span.set_attribute("rabbitmq.cluster_id", cluster_id)

            try:
                response = await self._client.get(path, params=query, headers=self._headers())
            except httpx.TimeoutException as e:
                self._logger.warning("Gateway request timed out", path=path, timeout=self.timeout)
                raise ResourceFetchError(
                    f"Request timed out after {self.timeout}s", code=CODE_TIMEOUT, url=path
                ) from e
            except httpx.ConnectError as e:
                self._logger.warning("Gateway connection failed", path=path, error=str(e))
                raise ResourceFetchError(
                    f"Connection failed: {e}", code=CODE_CONNECT, url=path
                ) from e
            except httpx.TransportError as e:
                self._logger.warning("Gateway transport error", path=path, error=str(e))
                raise ResourceFetchError(
                    f"Network error: {e}", code=CODE_NETWORK, url=path
                ) from e

            span.set_attribute("http.status_code", response.status_code)

            if response.is_error:
                body = self._safe_json(response)
                self._logger.warning(
                    "Gateway request failed",
                    path=path,
                    status_code=response.status_code,
                )
                raise ResourceFetchError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    status_code=response.status_code,
                    url=path,
                    response_data=body,
                )

            try:
                return response.json()
            except ValueError as e:
                raise ResourceFetchError(
                    "Response body is not valid JSON", code=CODE_MALFORMED, url=path
                ) from e

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None
