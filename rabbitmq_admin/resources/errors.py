"""
Resource Error Classification.

Maps failures from the gateway fetch path onto a small, uniform taxonomy
so controllers and callers can decide how to react:

- network: timeout, connection failure, DNS
- authentication: 401, the session must be re-established
- authorization: 403, not retryable
- cluster_unavailable: 502/503/504, the RabbitMQ backend is down
- api_error: any other HTTP failure or a malformed response

Usage:
    from rabbitmq_admin.resources.errors import classify_error

    try:
        page = await fetcher.fetch_page("prod", "queues", params)
    except Exception as e:
        error = classify_error(e, cluster_id="prod", resource_type="queues")
        if error.type == ResourceErrorType.AUTHENTICATION:
            ...
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError


class ResourceErrorType(str, Enum):
    """Classified error categories."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    CLUSTER_UNAVAILABLE = "cluster_unavailable"
    API_ERROR = "api_error"


CLUSTER_UNAVAILABLE_STATUSES = {502, 503, 504}
NON_RETRYABLE_STATUSES = {401, 403, 404}

# Error codes raised by the fetcher for failures without an HTTP response
CODE_TIMEOUT = "timeout"
CODE_CONNECT = "connect_error"
CODE_NETWORK = "network_error"
CODE_MALFORMED = "malformed_response"
NETWORK_CODES = {CODE_TIMEOUT, CODE_CONNECT, CODE_NETWORK}

# Patterns that might expose credentials in messages and details
SENSITIVE_PATTERNS = [
    (re.compile(r"(bearer\s+)[A-Za-z0-9\-_\.=]+", re.IGNORECASE), r"\1[REDACTED]"),
    (
        re.compile(r"((?:password|token|secret|authorization)[\"']?\s*[:=]\s*[\"']?)[^\s,;\"'}]+", re.IGNORECASE),
        r"\1[REDACTED]",
    ),
    (re.compile(r"(://[^:/\s]+:)[^@/\s]+(@)"), r"\1[REDACTED]\2"),
]


def sanitize_error_message(message: str) -> str:
    """Redact bearer tokens, passwords and URL credentials."""
    sanitized = message
    for pattern, replacement in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


class ResourceFetchError(Exception):
    """Raised by the fetcher when a gateway request fails.

    Carries the HTTP status when a response was received, or an error
    code for failures that never produced one.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        url: str | None = None,
        response_data: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.url = url
        self.response_data = response_data

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None and self.code in NETWORK_CODES


@dataclass
class ResourceError:
    """A classified, user-presentable error."""

    type: ResourceErrorType
    message: str
    details: str | None = None
    retryable: bool = True
    status_code: int | None = None
    suggestions: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def requires_reauthentication(self) -> bool:
        return self.type == ResourceErrorType.AUTHENTICATION

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary."""
        return {
            "type": self.type.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "status_code": self.status_code,
            "suggestions": list(self.suggestions),
            "timestamp": self.timestamp.isoformat(),
        }


def _status_of(error: BaseException) -> int | None:
    if isinstance(error, ResourceFetchError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _code_of(error: BaseException) -> str | None:
    if isinstance(error, ResourceFetchError):
        return error.code
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return CODE_TIMEOUT
    if isinstance(error, httpx.ConnectError):
        return CODE_CONNECT
    if isinstance(error, httpx.TransportError):
        return CODE_NETWORK
    if isinstance(error, ValidationError):
        return CODE_MALFORMED
    return None


def _server_message(error: BaseException) -> str | None:
    data = getattr(error, "response_data", None)
    if isinstance(data, dict):
        message = data.get("message")
        if message:
            return str(message)
    return None


def _build_details(
    error: BaseException,
    status: int | None,
    code: str | None,
    cluster_id: str | None,
    resource_type: str | None,
    operation: str | None,
) -> str:
    details = []
    if cluster_id:
        details.append(f"Cluster: {cluster_id}")
    if resource_type:
        details.append(f"Resource: {resource_type}")
    if operation:
        details.append(f"Operation: {operation}")
    if status is not None:
        details.append(f"HTTP Status: {status}")
    if code:
        details.append(f"Error Code: {code}")
    url = getattr(error, "url", None)
    if url:
        details.append(f"Path: {url}")
    return sanitize_error_message("\n".join(details))


def classify_error(
    error: BaseException,
    cluster_id: str | None = None,
    resource_type: str | None = None,
    operation: str | None = None,
) -> ResourceError:
    """
    Classify an exception raised on the fetch path.

    Args:
        error: The exception
        cluster_id: Cluster the request targeted
        resource_type: Resource type requested
        operation: Operation name (e.g. "load", "refresh")

    Returns:
        ResourceError with type, message, retryability and suggestions
    """
    status = _status_of(error)
    code = _code_of(error)
    retryable = status not in NON_RETRYABLE_STATUSES

    if status is None and code in NETWORK_CODES:
        error_type = ResourceErrorType.NETWORK
        if code == CODE_TIMEOUT:
            message = "Request timed out. The server may be overloaded."
        else:
            message = "Network connection failed. Please check your connection."
    elif status == 401:
        error_type = ResourceErrorType.AUTHENTICATION
        message = "Authentication failed. Please log in again."
    elif status == 403:
        error_type = ResourceErrorType.AUTHORIZATION
        message = "You do not have permission to access this resource."
    elif status in CLUSTER_UNAVAILABLE_STATUSES:
        error_type = ResourceErrorType.CLUSTER_UNAVAILABLE
        message = (
            f'RabbitMQ cluster "{cluster_id}" is currently unavailable.'
            if cluster_id
            else "RabbitMQ cluster is currently unavailable."
        )
    elif status == 429:
        error_type = ResourceErrorType.API_ERROR
        message = "Too many requests. Please wait a moment before trying again."
    elif status is None and code == CODE_MALFORMED:
        error_type = ResourceErrorType.API_ERROR
        message = "Received a malformed response from the server."
    else:
        error_type = ResourceErrorType.API_ERROR
        message = _server_message(error) or str(error) or (
            f"Failed to load {resource_type} data" if resource_type else "An unexpected error occurred"
        )

    resource_error = ResourceError(
        type=error_type,
        message=sanitize_error_message(message),
        details=_build_details(error, status, code, cluster_id, resource_type, operation),
        retryable=retryable,
        status_code=status,
    )
    resource_error.suggestions = get_error_suggestions(resource_error, cluster_id)
    return resource_error


def get_error_suggestions(error: ResourceError, cluster_id: str | None = None) -> list[str]:
    """Suggested user actions for a classified error."""
    suggestions: list[str] = []

    if error.type == ResourceErrorType.NETWORK:
        suggestions.append("Check your network connection")
        suggestions.append("Verify the server is accessible")
        if cluster_id:
            suggestions.append(f'Ensure RabbitMQ cluster "{cluster_id}" is running')
    elif error.type == ResourceErrorType.AUTHENTICATION:
        suggestions.append("Your session has expired")
        suggestions.append("Please log out and log back in")
    elif error.type == ResourceErrorType.AUTHORIZATION:
        suggestions.append("You may not have permission to access this resource")
        suggestions.append("Contact your administrator for access")
        if cluster_id:
            suggestions.append(f'Verify you have access to cluster "{cluster_id}"')
    elif error.type == ResourceErrorType.CLUSTER_UNAVAILABLE:
        suggestions.append("The RabbitMQ cluster may be temporarily unavailable")
        suggestions.append("Try again in a few minutes")
    else:
        suggestions.append("This may be a temporary server issue")
        suggestions.append("If the problem persists, contact support")

    if error.retryable and error.type != ResourceErrorType.AUTHENTICATION:
        suggestions.append("Try the operation again")

    return suggestions
