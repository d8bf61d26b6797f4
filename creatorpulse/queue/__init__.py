"""Named job queues with dedup, retry and worker pools."""

from typing import Optional

import structlog

from creatorpulse.config.settings import Settings
from creatorpulse.queue.backends import InMemoryQueueBackend, QueueBackend, RedisQueueBackend
from creatorpulse.queue.job import (
    DEFAULT_POLICIES,
    BackoffType,
    JobHandle,
    JobPolicy,
    JobState,
    QueueJob,
    QueueName,
    RetentionPolicy,
    default_policy,
)
from creatorpulse.queue.orchestrator import QueueOrchestrator
from creatorpulse.queue.worker import JobTimeoutError, Worker

logger = structlog.get_logger(__name__)


async def create_orchestrator(settings: Settings) -> QueueOrchestrator:
    """
    Build the orchestrator for the configured backend.

    Redis is used when REDIS_URL is set. A connection failure propagates;
    job dedup is only correct with one shared store.
    """
    backend: QueueBackend
    if settings.redis_url:
        redis_backend = RedisQueueBackend(settings.redis_url, settings.queue_key_prefix)
        await redis_backend.connect()
        backend = redis_backend
    else:
        logger.warning("queue_using_in_memory_backend")
        backend = InMemoryQueueBackend()

    return QueueOrchestrator(
        backend,
        job_timeout=settings.job_timeout_seconds,
        retention=RetentionPolicy(
            completed_count=settings.completed_job_retention_count,
            completed_max_age_seconds=settings.completed_job_retention_seconds,
            failed_count=settings.failed_job_retention_count,
        ),
    )


def queue_concurrency(settings: Settings, queue: QueueName) -> int:
    return {
        QueueName.CONTENT_FETCH: settings.content_fetch_concurrency,
        QueueName.CREATOR_PROCESSING: settings.creator_processing_concurrency,
        QueueName.RELEVANCY_SCORING: settings.relevancy_scoring_concurrency,
        QueueName.BRIGHTDATA_PROCESSING: settings.brightdata_concurrency,
    }[queue]


__all__ = [
    "DEFAULT_POLICIES",
    "BackoffType",
    "InMemoryQueueBackend",
    "JobHandle",
    "JobPolicy",
    "JobState",
    "JobTimeoutError",
    "QueueBackend",
    "QueueJob",
    "QueueName",
    "QueueOrchestrator",
    "RedisQueueBackend",
    "RetentionPolicy",
    "Worker",
    "create_orchestrator",
    "default_policy",
    "queue_concurrency",
]
