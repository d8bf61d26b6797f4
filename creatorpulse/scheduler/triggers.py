"""Periodic pipeline triggers.

Each trigger is a plain coroutine over the dependency container so the
APScheduler jobs and the cron HTTP endpoints share one implementation.
Triggers return structured summaries and raise only when a required
integration is not configured.
"""

from typing import Any, Optional

import structlog

from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.exceptions import ConfigurationError
from creatorpulse.queue import JobState, QueueJob, QueueName
from creatorpulse.services.deduplication import DeduplicationRunSummary
from creatorpulse.services.relevancy import RelevancyRunSummary

logger = structlog.get_logger(__name__)

RELEVANCY_JOB_KEY = "relevancy-batch"

# Removed unconditionally by cleanup; completed jobs get a grace period
CLEANUP_IMMEDIATE_STATES = (JobState.FAILED, JobState.WAITING, JobState.DELAYED)


async def queue_creators(
    container: DependencyContainer, limit: Optional[int] = None
) -> dict[str, int]:
    """Enqueue a creator-processing job for every active creator."""
    return await container.creator_refresh.queue_due_creators(limit)


async def process_snapshots(container: DependencyContainer) -> dict[str, int]:
    """Sweep outstanding snapshots that have no job in flight."""
    if not container.has_brightdata:
        raise ConfigurationError("BrightData API key not configured", "brightdata_api_key")
    return await container.snapshot_poller.enqueue_pending()


async def deduplicate_content(
    container: DependencyContainer, limit: Optional[int] = None
) -> DeduplicationRunSummary:
    """Fingerprint new or edited content and group cross-platform duplicates."""
    return await container.content_deduplicator.process_pending(
        limit or container.settings.dedup_batch_size
    )


async def score_relevancy(
    container: DependencyContainer, batch_size: Optional[int] = None
) -> RelevancyRunSummary:
    """Run one bounded relevancy batch inline."""
    if not container.has_judge:
        raise ConfigurationError("OpenAI API key not configured", "openai_api_key")
    return await container.relevancy_processor.process_relevancy_checks(
        batch_size or container.settings.relevancy_batch_size
    )


async def queue_relevancy(container: DependencyContainer) -> bool:
    """Enqueue a relevancy batch job unless one is already in flight."""
    if not container.has_judge:
        raise ConfigurationError("OpenAI API key not configured", "openai_api_key")
    handle = await container.orchestrator.enqueue(
        QueueName.RELEVANCY_SCORING.value,
        RELEVANCY_JOB_KEY,
        {"batch_size": container.settings.relevancy_batch_size},
    )
    return not handle.duplicate


async def run_relevancy_job(container: DependencyContainer, job: QueueJob) -> dict[str, Any]:
    """relevancy-scoring handler."""
    summary = await score_relevancy(container, job.payload.get("batch_size"))
    return summary.model_dump()


async def cleanup_queues(container: DependencyContainer) -> dict[str, Any]:
    """
    Clear out every named queue.

    Failed, waiting and delayed jobs are removed outright. Completed jobs are
    removed once older than cleanup_completed_older_than_seconds. A queue that
    errors is reported and does not stop the others.

    Returns:
        Per-queue removed counts and the counts left behind
    """
    orchestrator = container.orchestrator
    completed_grace = container.settings.cleanup_completed_older_than_seconds
    results: dict[str, Any] = {}

    for queue in QueueName:
        name = queue.value
        try:
            cleaned = {state.value: 0 for state in CLEANUP_IMMEDIATE_STATES}
            for state in CLEANUP_IMMEDIATE_STATES:
                removed = await orchestrator.cleanup(name, 0, states=(state,))
                cleaned[state.value] = len(removed)
            completed = await orchestrator.cleanup(
                name, completed_grace, states=(JobState.COMPLETED,)
            )
            cleaned[JobState.COMPLETED.value] = len(completed)

            results[name] = {"cleaned": cleaned, "after": await orchestrator.counts(name)}
        except Exception as e:
            logger.error("queue_cleanup_failed", queue=name, error=str(e))
            results[name] = {"error": str(e)}

    logger.info("queue_cleanup_completed", queues=len(results))
    return results


async def halt_snapshots(
    container: DependencyContainer, reason: str = "halted by operator"
) -> dict[str, int]:
    """Emergency stop for snapshot processing."""
    if not container.has_brightdata:
        raise ConfigurationError("BrightData API key not configured", "brightdata_api_key")
    return await container.snapshot_poller.halt_all(reason)
