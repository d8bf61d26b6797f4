"""Queue orchestrator.

Named queues with job-key dedup, retry with backoff, retention and
cleanup. Delivery is at-least-once: an active job whose lease expires is
handed out again, so handlers must be idempotent.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import structlog

from creatorpulse.core.exceptions import JobStalledError, PermanentError
from creatorpulse.monitoring.metrics import record_enqueue, record_job_outcome
from creatorpulse.queue.backends import QueueBackend
from creatorpulse.queue.job import (
    IN_FLIGHT_STATES,
    JobHandle,
    JobPolicy,
    JobState,
    QueueJob,
    RetentionPolicy,
    default_policy,
)

logger = structlog.get_logger(__name__)

# Extra time granted past the job timeout before an active job counts as stalled
LEASE_GRACE_SECONDS = 30.0

STALLED_REASON = "job stalled more than allowable limit"


def _as_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class QueueOrchestrator:
    """
    Front door for every queue operation.

    Args:
        backend: Redis or in-memory storage
        job_timeout: Seconds a handler may run; sets the active lease
        retention: How many finished jobs to keep
        clock: Time source in epoch seconds
    """

    def __init__(
        self,
        backend: QueueBackend,
        job_timeout: float = 300.0,
        retention: Optional[RetentionPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.job_timeout = job_timeout
        self.retention = retention or RetentionPolicy()
        self._clock = clock
        self._stalled_failures: dict[str, list[QueueJob]] = {}

    # -------------------------------------------------------------------------
    # Producing
    # -------------------------------------------------------------------------

    async def enqueue(
        self,
        queue: str,
        job_key: str,
        payload: dict[str, Any],
        policy: Optional[JobPolicy] = None,
        delay: float = 0.0,
    ) -> JobHandle:
        """
        Add a job unless one with the same key is waiting, active or delayed.

        Args:
            queue: Queue name
            job_key: Dedup key
            payload: Job payload
            policy: Retry policy, defaults to the queue's policy
            delay: Seconds before the job becomes available

        Returns:
            JobHandle; duplicate=True carries the existing job's id
        """
        now = self._clock()
        job = QueueJob(
            queue=queue,
            key=job_key,
            payload=payload,
            policy=policy or default_policy(queue),
            state=JobState.DELAYED if delay > 0 else JobState.WAITING,
            created_at=_as_datetime(now),
            available_at=_as_datetime(now + delay) if delay > 0 else None,
        )
        job_id, duplicate = await self.backend.add(job, now + delay if delay > 0 else now)
        record_enqueue(queue, duplicate)

        if duplicate:
            logger.debug("job_enqueue_deduplicated", queue=queue, key=job_key, job_id=job_id)
        else:
            logger.info("job_enqueued", queue=queue, key=job_key, job_id=job_id, delay=delay)
        return JobHandle(job_id=job_id, queue=queue, key=job_key, duplicate=duplicate)

    async def is_queued(self, queue: str, job_key: str) -> bool:
        """Whether a job with this key is waiting, active or delayed."""
        owner = await self.backend.key_owner(queue, job_key)
        if owner is None:
            return False
        job = await self.backend.get(queue, owner)
        return job is not None and job.state in IN_FLIGHT_STATES

    # -------------------------------------------------------------------------
    # Consuming
    # -------------------------------------------------------------------------

    async def dequeue(self, queue: str) -> Optional[QueueJob]:
        """Claim the next available job, or None when the queue is idle."""
        now = self._clock()
        await self.recover_stalled(queue)
        return await self.backend.claim(
            queue, now, now + self.job_timeout + LEASE_GRACE_SECONDS
        )

    async def complete(self, job: QueueJob, result: Optional[dict[str, Any]] = None) -> None:
        now = self._clock()
        job.result = result
        job.failed_reason = None
        job.finished_at = _as_datetime(now)
        moved = await self.backend.move(job, JobState.ACTIVE, JobState.COMPLETED, now)
        if not moved:
            logger.warning("job_completion_lost_lease", queue=job.queue, job_id=job.id)
            return

        record_job_outcome(job.queue, "completed")
        logger.info(
            "job_completed",
            queue=job.queue,
            job_id=job.id,
            key=job.key,
            attempts=job.attempts_made,
        )
        await self._apply_retention(job.queue)

    async def fail(self, job: QueueJob, error: BaseException) -> bool:
        """
        Record a failed attempt.

        PermanentError fails the job immediately. Anything else is retried
        with backoff while attempts remain.

        Returns:
            True if the job reached the terminal failed state
        """
        now = self._clock()
        job.failed_reason = f"{type(error).__name__}: {error}"
        permanent = isinstance(error, PermanentError)

        if not permanent and job.can_retry:
            delay = job.policy.delay_for(job.attempts_made)
            job.available_at = _as_datetime(now + delay)
            moved = await self.backend.move(job, JobState.ACTIVE, JobState.DELAYED, now + delay)
            if moved:
                record_job_outcome(job.queue, "retried")
                logger.warning(
                    "job_retry_scheduled",
                    queue=job.queue,
                    job_id=job.id,
                    attempt=job.attempts_made,
                    max_attempts=job.policy.max_attempts,
                    delay=delay,
                    error=job.failed_reason,
                )
            return False

        job.finished_at = _as_datetime(now)
        moved = await self.backend.move(job, JobState.ACTIVE, JobState.FAILED, now)
        if not moved:
            logger.warning("job_failure_lost_lease", queue=job.queue, job_id=job.id)
            return False

        record_job_outcome(job.queue, "failed")
        logger.error(
            "job_failed",
            queue=job.queue,
            job_id=job.id,
            key=job.key,
            attempts=job.attempts_made,
            permanent=permanent,
            error=job.failed_reason,
        )
        await self._apply_retention(job.queue)
        return True

    async def recover_stalled(self, queue: str) -> list[QueueJob]:
        """
        Put active jobs with an expired lease back on the waiting list.

        A stalled job with no attempts left is failed instead and held for
        the queue's worker, which runs its failed callback.

        Returns:
            Jobs failed by this pass
        """
        now = self._clock()
        exhausted: list[QueueJob] = []
        for job in await self.backend.list_jobs(queue, JobState.ACTIVE, max_score=now):
            if job.can_retry:
                moved = await self.backend.move(job, JobState.ACTIVE, JobState.WAITING, now)
            else:
                job.failed_reason = f"{JobStalledError.__name__}: {STALLED_REASON}"
                job.finished_at = _as_datetime(now)
                moved = await self.backend.move(job, JobState.ACTIVE, JobState.FAILED, now)
            if not moved:
                continue
            logger.warning(
                "job_stalled",
                queue=queue,
                job_id=job.id,
                key=job.key,
                attempts=job.attempts_made,
                failed=job.state == JobState.FAILED,
            )
            if job.state == JobState.FAILED:
                record_job_outcome(queue, "failed")
                exhausted.append(job)
        if exhausted:
            self._stalled_failures.setdefault(queue, []).extend(exhausted)
        return exhausted

    def take_stalled_failures(self, queue: str) -> list[QueueJob]:
        """Hand over jobs that stalled out of attempts since the last call."""
        return self._stalled_failures.pop(queue, [])

    # -------------------------------------------------------------------------
    # Inspection & maintenance
    # -------------------------------------------------------------------------

    async def get_job(self, queue: str, job_id: str) -> Optional[QueueJob]:
        return await self.backend.get(queue, job_id)

    async def counts(self, queue: str) -> dict[str, int]:
        return await self.backend.counts(queue)

    async def cleanup(
        self,
        queue: str,
        older_than: float = 0.0,
        states: Iterable[JobState] = (JobState.COMPLETED, JobState.FAILED),
    ) -> list[QueueJob]:
        """
        Remove jobs in the given states older than older_than seconds.

        Age is measured from finished_at for completed and failed jobs,
        and from created_at otherwise. Removing an in-flight job releases
        its key.

        Returns:
            Removed jobs
        """
        cutoff = self._clock() - older_than
        removed: list[QueueJob] = []
        for state in states:
            stale = [
                job for job in await self.backend.list_jobs(queue, state)
                if (job.finished_at or job.created_at).timestamp() <= cutoff
            ]
            if not stale:
                continue
            await self.backend.remove(queue, state, [job.id for job in stale])
            removed.extend(stale)
        if removed:
            logger.info("queue_cleaned", queue=queue, removed=len(removed))
        return removed

    async def obliterate(self, queue: str) -> int:
        """Delete every job and key of a queue. Returns the number of jobs removed."""
        removed = await self.backend.obliterate(queue)
        logger.warning("queue_obliterated", queue=queue, jobs_removed=removed)
        return removed

    async def _apply_retention(self, queue: str) -> None:
        now = self._clock()

        completed = await self.backend.list_jobs(queue, JobState.COMPLETED)
        expired = [
            job.id for job in completed
            if job.finished_at
            and now - job.finished_at.timestamp() > self.retention.completed_max_age_seconds
        ]
        kept = [job.id for job in completed if job.id not in expired]
        overflow = kept[: max(len(kept) - self.retention.completed_count, 0)]
        if expired or overflow:
            await self.backend.remove(queue, JobState.COMPLETED, expired + overflow)

        failed = await self.backend.list_jobs(queue, JobState.FAILED)
        overflow = [job.id for job in failed[: max(len(failed) - self.retention.failed_count, 0)]]
        if overflow:
            await self.backend.remove(queue, JobState.FAILED, overflow)

    async def close(self) -> None:
        await self.backend.close()
