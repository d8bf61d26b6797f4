"""Scheduler for periodic CreatorPulse pipeline runs.

This module wires the pipeline triggers onto APScheduler cron schedules:
- queue creators every 30 minutes
- sweep outstanding snapshots every 5 minutes
- enqueue a relevancy batch every 15 minutes
- group duplicate content every 10 minutes
- clean up the queues daily at 03:00
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.exceptions import ConfigurationError
from creatorpulse.monitoring.metrics import track_job_execution
from creatorpulse.scheduler import triggers

logger = structlog.get_logger(__name__)

TriggerFunc = Callable[[DependencyContainer], Awaitable[Any]]


@dataclass(frozen=True)
class PeriodicJob:
    """A trigger and the cron schedule it runs on."""

    name: str
    func: TriggerFunc
    cron: dict[str, Any]

    def get_cron_trigger(self) -> CronTrigger:
        """Get APScheduler CronTrigger for this job's schedule."""
        return CronTrigger(**self.cron)


PERIODIC_JOBS: tuple[PeriodicJob, ...] = (
    PeriodicJob("queue_creators", triggers.queue_creators, {"minute": "*/30"}),
    PeriodicJob("process_snapshots", triggers.process_snapshots, {"minute": "*/5"}),
    PeriodicJob("score_relevancy", triggers.queue_relevancy, {"minute": "*/15"}),
    PeriodicJob("deduplicate_content", triggers.deduplicate_content, {"minute": "*/10"}),
    PeriodicJob("cleanup_queues", triggers.cleanup_queues, {"hour": 3, "minute": 0}),
)


class Scheduler:
    """Scheduler for periodic pipeline triggers.

    Example:
        scheduler = Scheduler(container)
        await scheduler.start()

        # Trigger immediate run
        await scheduler.run_now("cleanup_queues")

        # Stop scheduler
        await scheduler.stop()
    """

    def __init__(
        self,
        container: DependencyContainer,
        jobs: tuple[PeriodicJob, ...] = PERIODIC_JOBS,
    ):
        self._container = container
        self._jobs = {job.name: job for job in jobs}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False

        logger.info("scheduler_initialized", jobs=list(self._jobs))

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is currently running."""
        return self._is_running

    async def start(self) -> None:
        """Start APScheduler and register every periodic job."""
        if self._is_running:
            logger.warning("scheduler_already_running")
            return

        logger.info("scheduler_starting")

        self._scheduler = AsyncIOScheduler()
        for job in self._jobs.values():
            self._scheduler.add_job(
                self._execute_job,
                trigger=job.get_cron_trigger(),
                id=f"job_{job.name}",
                args=[job.name],
                name=f"CreatorPulse: {job.name}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            logger.info("job_added_to_scheduler", job=job.name, cron=job.cron)
        self._scheduler.start()

        self._is_running = True
        logger.info("scheduler_started")

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._is_running:
            logger.warning("scheduler_not_running")
            return

        logger.info("scheduler_stopping")

        if self._scheduler:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None

        self._is_running = False
        logger.info("scheduler_stopped")

    async def _execute_job(self, name: str) -> None:
        """Run a job on its schedule. Failures are logged, never raised into APScheduler."""
        try:
            await self.run_now(name)
        except ConfigurationError as e:
            logger.warning("scheduled_job_skipped", job=name, reason=e.message)
        except Exception as e:
            logger.error(
                "scheduled_job_failed",
                job=name,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def run_now(self, name: str) -> Any:
        """Run a periodic job immediately.

        Raises:
            KeyError: If no job has that name.
        """
        job = self._jobs[name]
        logger.info("scheduled_job_started", job=name)
        with track_job_execution(f"cron_{name}"):
            result = await job.func(self._container)
        logger.info("scheduled_job_completed", job=name)
        return result
