"""
Resource access layer.

Gateway fetcher, request/response models, error classification, the
per-resource controller and the stale-while-revalidate coordinator.
"""

from rabbitmq_admin.resources.controller import RefreshState, ResourceController
from rabbitmq_admin.resources.errors import (
    ResourceError,
    ResourceErrorType,
    ResourceFetchError,
    classify_error,
    get_error_suggestions,
    sanitize_error_message,
)
from rabbitmq_admin.resources.fetcher import PAGED_RESOURCE_TYPES, ResourceFetcher
from rabbitmq_admin.resources.models import (
    AuditFilterRequest,
    BindingsRequest,
    PagedResponse,
    PaginationRequest,
    ResourcePage,
)
from rabbitmq_admin.resources.swr import StaleWhileRevalidate, SWRState

__all__ = [
    "PAGED_RESOURCE_TYPES",
    "AuditFilterRequest",
    "BindingsRequest",
    "PagedResponse",
    "PaginationRequest",
    "RefreshState",
    "ResourceController",
    "ResourceError",
    "ResourceErrorType",
    "ResourceFetchError",
    "ResourceFetcher",
    "ResourcePage",
    "StaleWhileRevalidate",
    "SWRState",
    "classify_error",
    "get_error_suggestions",
    "sanitize_error_message",
]
