"""FastAPI observability server for the RabbitMQ admin console.

Provides REST API endpoints for:
- Health checks
- Cache statistics
- Cache clear and cluster invalidation commands

Usage:
    python -m rabbitmq_admin.main --port 3001
"""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from rabbitmq_admin.console import ResourceConsole
from rabbitmq_admin.observability import is_otel_enabled

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Response Models
# ═══════════════════════════════════════════════════════════════════════════════


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str = "1.0.0"
    components: dict[str, Any] = Field(default_factory=dict)


class CacheCommandResponse(BaseModel):
    """Result of a cache fan-out command."""

    removed: int = Field(..., description="Entries removed across all caches")
    cluster_id: str | None = Field(None, description="Cluster the command targeted")


# ═══════════════════════════════════════════════════════════════════════════════
# Application State
# ═══════════════════════════════════════════════════════════════════════════════


class AppState:
    """Application state container."""

    def __init__(self):
        self.start_time = datetime.now(UTC)
        self.request_count = 0
        self.console: ResourceConsole | None = None

    def require_console(self) -> ResourceConsole:
        if self.console is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Console not initialized",
            )
        return self.console


app_state = AppState()


# ═══════════════════════════════════════════════════════════════════════════════
# Lifespan Management
# ═══════════════════════════════════════════════════════════════════════════════


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build (unless already provided) and start the console; close it on shutdown."""
    logger.info("API server starting up")

    owned = app_state.console is None
    if owned:
        app_state.console = ResourceConsole()
    app_state.console.start()

    yield

    logger.info("API server shutting down")
    console = app_state.console
    if owned:
        app_state.console = None
    if console is not None:
        await console.close()


# ═══════════════════════════════════════════════════════════════════════════════
# FastAPI Application
# ═══════════════════════════════════════════════════════════════════════════════


app = FastAPI(
    title="RabbitMQ Admin Console Cache API",
    description="Observability endpoints for the console resource cache",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests."""
    request_id = str(uuid.uuid4())[:8]
    request.state.request_id = request_id

    start_time = time.time()
    response: Response = await call_next(request)
    duration_ms = int((time.time() - start_time) * 1000)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms}ms"

    app_state.request_count += 1

    logger.info(
        "Request completed",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=duration_ms,
    )

    return response


# ═══════════════════════════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════════════════════════


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    components: dict[str, Any] = {}

    console = app_state.console
    if console is None:
        components["cache"] = {"status": "unhealthy", "error": "console not initialized"}
    else:
        total = console.stats.snapshot().total
        components["cache"] = {
            "status": "healthy" if console.registry.cleanup_running else "degraded",
            "caches": len(console.registry.names),
            "entries": total.size,
        }
    components["tracing"] = {"status": "healthy", "enabled": is_otel_enabled()}

    overall_status = (
        "healthy"
        if all(c.get("status") == "healthy" for c in components.values())
        else "degraded"
    )

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(UTC).isoformat(),
        components=components,
    )


@app.get("/cache/stats", tags=["Cache"])
async def get_cache_stats() -> dict[str, Any]:
    """Per-cache and total statistics."""
    console = app_state.require_console()
    return console.stats.snapshot().to_dict()


@app.post("/cache/clear", response_model=CacheCommandResponse, tags=["Cache"])
async def clear_caches() -> CacheCommandResponse:
    """Clear every cache."""
    console = app_state.require_console()
    removed = console.stats.clear_all_caches()
    return CacheCommandResponse(removed=removed)


@app.post(
    "/cache/clusters/{cluster_id}/invalidate",
    response_model=CacheCommandResponse,
    tags=["Cache"],
)
async def invalidate_cluster(cluster_id: str) -> CacheCommandResponse:
    """Invalidate one cluster's entries in every cache."""
    console = app_state.require_console()
    removed = console.stats.invalidate_cluster_caches(cluster_id)
    return CacheCommandResponse(removed=removed, cluster_id=cluster_id)
