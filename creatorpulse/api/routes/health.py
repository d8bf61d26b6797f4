"""Health check endpoints for the CreatorPulse API.

Provides system health status including the queue backend, Supabase and
scheduler status.
"""

import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from creatorpulse import __version__
from creatorpulse.api.dependencies import get_container, get_scheduler
from creatorpulse.api.models import HealthCheckResponse, HealthStatus
from creatorpulse.core.container import DependencyContainer

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time: Optional[float] = None


def set_server_start_time() -> None:
    """Set the server start time. Called on application startup."""
    global _server_start_time
    _server_start_time = time.time()


def get_uptime_seconds() -> Optional[float]:
    """Get server uptime in seconds."""
    if _server_start_time is None:
        return None
    return time.time() - _server_start_time


async def check_queue_health(container: DependencyContainer) -> HealthStatus:
    """Ping the queue backend (Redis when configured)."""
    if not container.settings.redis_url:
        return HealthStatus(status="unconfigured", message="Using in-memory queue backend")

    start_time = time.time()
    try:
        await container.orchestrator.backend.ping()
        latency = (time.time() - start_time) * 1000
        return HealthStatus(
            status="healthy",
            latency_ms=round(latency, 2),
            message="Connected to Redis",
        )
    except Exception as e:
        latency = (time.time() - start_time) * 1000
        logger.error("redis_health_check_failed", error=str(e))
        return HealthStatus(
            status="unhealthy",
            latency_ms=round(latency, 2),
            message=f"Redis connection failed: {str(e)[:100]}",
        )


async def check_supabase_health(container: DependencyContainer) -> HealthStatus:
    """Report whether content is persisted to Supabase."""
    if not container.has_supabase:
        return HealthStatus(status="unconfigured", message="Using in-memory tables")
    return HealthStatus(status="healthy", message="Supabase configured")


async def check_scheduler_health() -> HealthStatus:
    """Check scheduler status."""
    scheduler = get_scheduler()
    if scheduler is None:
        return HealthStatus(status="unconfigured", message="Scheduler disabled")
    if scheduler.is_running:
        return HealthStatus(status="healthy", message="Scheduler is running")
    return HealthStatus(status="degraded", message="Scheduler is not running")


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Check the health status of the API and its dependencies.",
)
async def health_check(
    container: DependencyContainer = Depends(get_container),
) -> JSONResponse:
    """
    Perform a health check of all system components.

    Returns 503 when any configured service is unhealthy.
    """
    services = {
        "queue": await check_queue_health(container),
        "supabase": await check_supabase_health(container),
        "scheduler": await check_scheduler_health(),
    }

    statuses = [s.status for s in services.values()]
    if any(s == "unhealthy" for s in statuses):
        overall_status = "unhealthy"
    elif any(s == "degraded" for s in statuses):
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    response = HealthCheckResponse(
        status=overall_status,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        services=services,
        uptime_seconds=get_uptime_seconds(),
    )
    return JSONResponse(
        status_code=503 if overall_status == "unhealthy" else 200,
        content=response.model_dump(mode="json"),
    )


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Simple liveness check for container orchestration.",
)
async def liveness() -> dict:
    """
    Simple liveness probe.

    Returns 200 if the service is alive.
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Check if the service is ready to accept traffic.",
)
async def readiness(
    container: DependencyContainer = Depends(get_container),
) -> dict:
    """
    Readiness probe.

    Returns 200 only if the queue backend is reachable.
    """
    if not container.is_initialized:
        raise HTTPException(status_code=503, detail="Service not ready: container not initialized")

    queue_status = await check_queue_health(container)
    if queue_status.status == "unhealthy":
        raise HTTPException(
            status_code=503,
            detail="Service not ready: queue backend unavailable",
        )

    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}
