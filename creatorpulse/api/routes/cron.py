"""Cron trigger endpoints.

Each endpoint runs one pipeline trigger and returns its summary. When
CRON_SECRET is configured, callers must send it as a Bearer token.
"""

from typing import Any, Awaitable, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status

from creatorpulse.api.dependencies import get_container, require_cron_secret
from creatorpulse.api.models import CronResponse, HaltRequest
from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.exceptions import ConfigurationError
from creatorpulse.scheduler import triggers

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/cron",
    tags=["Cron"],
    dependencies=[Depends(require_cron_secret)],
)


async def _run(name: str, call: Awaitable[Any], message: str) -> CronResponse:
    logger.info("cron_trigger_started", trigger=name)
    try:
        result = await call
    except ConfigurationError as e:
        logger.warning("cron_trigger_unconfigured", trigger=name, reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=e.message,
        ) from e

    if hasattr(result, "model_dump"):
        result = result.model_dump()
    logger.info("cron_trigger_completed", trigger=name)
    return CronResponse(message=message, result=result)


@router.post("/queue-creators", response_model=CronResponse, summary="Queue Creators")
async def queue_creators(
    container: DependencyContainer = Depends(get_container),
) -> CronResponse:
    """Enqueue a refresh job for every active creator."""
    return await _run(
        "queue_creators",
        triggers.queue_creators(container),
        "Creators queued for processing",
    )


@router.post("/process-snapshots", response_model=CronResponse, summary="Process Snapshots")
async def process_snapshots(
    container: DependencyContainer = Depends(get_container),
) -> CronResponse:
    """Enqueue poll jobs for pending and ready snapshots."""
    return await _run(
        "process_snapshots",
        triggers.process_snapshots(container),
        "Pending snapshots queued",
    )


@router.post("/score-relevancy", response_model=CronResponse, summary="Score Relevancy")
async def score_relevancy(
    container: DependencyContainer = Depends(get_container),
) -> CronResponse:
    """Score one bounded batch of unscored content."""
    return await _run(
        "score_relevancy",
        triggers.score_relevancy(container),
        "Relevancy batch completed",
    )


@router.post("/dedupe-content", response_model=CronResponse, summary="Dedupe Content")
async def dedupe_content(
    container: DependencyContainer = Depends(get_container),
) -> CronResponse:
    """Fingerprint new content and group cross-platform duplicates."""
    return await _run(
        "deduplicate_content",
        triggers.deduplicate_content(container),
        "Duplicate grouping completed",
    )


@router.post("/cleanup-queues", response_model=CronResponse, summary="Cleanup Queues")
async def cleanup_queues(
    container: DependencyContainer = Depends(get_container),
) -> CronResponse:
    """Remove failed, waiting and delayed jobs, and old completed jobs."""
    return await _run(
        "cleanup_queues",
        triggers.cleanup_queues(container),
        "Queue cleanup completed",
    )


@router.post("/halt-snapshots", response_model=CronResponse, summary="Halt Snapshots")
async def halt_snapshots(
    request: Optional[HaltRequest] = Body(default=None),
    container: DependencyContainer = Depends(get_container),
) -> CronResponse:
    """Emergency stop: drop all snapshot jobs and fail outstanding snapshots."""
    reason = request.reason if request else HaltRequest().reason
    return await _run(
        "halt_snapshots",
        triggers.halt_snapshots(container, reason),
        "Snapshot processing halted",
    )
