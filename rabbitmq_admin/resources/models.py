"""
Request and response models for the resource gateway API.

Request models are closed parameter sets; their serialized form (by alias,
None fields dropped) is what the cache uses to build keys.
"""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class _GatewayModel(BaseModel):
    """Base model using the gateway's camelCase field names on the wire."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def cache_params(self) -> dict[str, Any]:
        """Parameters used for cache key derivation."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PaginationRequest(_GatewayModel):
    """Paging and name filter for resource listings (0-based page)."""

    page: int = Field(0, ge=0, description="Zero-based page index")
    page_size: int = Field(50, ge=1, le=500, alias="pageSize", description="Items per page")
    name: str | None = Field(None, description="Name filter")
    use_regex: bool | None = Field(None, alias="useRegex", description="Treat name as a regex")

    def to_query(self) -> dict[str, str]:
        """Query string for the gateway, which pages from 1."""
        query = {
            "page": str(self.page + 1),
            "pageSize": str(self.page_size),
        }
        if self.name:
            query["name"] = self.name
        if self.use_regex is not None:
            query["useRegex"] = str(self.use_regex).lower()
        return query


class BindingsRequest(_GatewayModel):
    """Bindings of a single exchange or queue."""

    vhost: str = Field(..., description="Virtual host")
    name: str = Field(..., min_length=1, description="Exchange or queue name")
    source: Literal["exchanges", "queues"] = Field(
        "exchanges", description="Whether name refers to an exchange or a queue"
    )


class AuditFilterRequest(_GatewayModel):
    """Filters, paging and sorting for audit record listings."""

    username: str | None = None
    cluster_name: str | None = Field(None, alias="clusterName")
    operation_type: str | None = Field(None, alias="operationType")
    status: str | None = None
    resource_name: str | None = Field(None, alias="resourceName")
    resource_type: str | None = Field(None, alias="resourceType")
    start_time: str | None = Field(None, alias="startTime", description="ISO 8601")
    end_time: str | None = Field(None, alias="endTime", description="ISO 8601")
    page: int = Field(0, ge=0)
    page_size: int = Field(50, ge=1, le=500, alias="pageSize")
    sort_by: str = Field("timestamp", alias="sortBy")
    sort_direction: Literal["asc", "desc"] = Field("desc", alias="sortDirection")

    def to_query(self) -> dict[str, str]:
        """Query string for the audit endpoint (0-based page)."""
        return {key: str(value) for key, value in self.cache_params().items()}


class PagedResponse(BaseModel, Generic[T]):
    """One page of a resource listing."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[T]
    page: int
    page_size: int = Field(..., alias="pageSize")
    total_items: int = Field(..., alias="totalItems")
    total_pages: int = Field(..., alias="totalPages")
    has_next: bool = Field(..., alias="hasNext")
    has_previous: bool = Field(..., alias="hasPrevious")


ResourcePage = PagedResponse[dict[str, Any]]
