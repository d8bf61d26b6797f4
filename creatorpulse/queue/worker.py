"""Worker pool for a named queue."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from creatorpulse.core.exceptions import JobStalledError, TransientUpstreamError
from creatorpulse.monitoring.metrics import track_job_execution
from creatorpulse.queue.job import QueueJob
from creatorpulse.queue.orchestrator import STALLED_REASON, QueueOrchestrator

logger = structlog.get_logger(__name__)

JobHandler = Callable[[QueueJob], Awaitable[Optional[dict[str, Any]]]]
FailedCallback = Callable[[QueueJob, BaseException], Awaitable[None]]


class JobTimeoutError(TransientUpstreamError):
    """Raised when a handler exceeds the job timeout."""

    pass


class Worker:
    """
    Runs a handler over jobs of one queue with bounded concurrency.

    Args:
        orchestrator: Queue orchestrator
        queue: Queue name
        handler: Coroutine called once per job attempt
        concurrency: Number of concurrent tasks
        on_failed: Called once when a job reaches the failed state
        poll_interval: Idle sleep between polls in seconds
    """

    def __init__(
        self,
        orchestrator: QueueOrchestrator,
        queue: str,
        handler: JobHandler,
        concurrency: int = 1,
        on_failed: Optional[FailedCallback] = None,
        poll_interval: float = 1.0,
    ):
        self.orchestrator = orchestrator
        self.queue = queue
        self.handler = handler
        self.concurrency = max(1, concurrency)
        self.on_failed = on_failed
        self.poll_interval = poll_interval
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._run(index), name=f"{self.queue}-worker-{index}")
            for index in range(self.concurrency)
        ]
        logger.info("worker_started", queue=self.queue, concurrency=self.concurrency)

    async def stop(self) -> None:
        """Stop polling and wait for in-flight jobs to finish."""
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("worker_stopped", queue=self.queue)

    async def _run(self, index: int) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.run_once()
            except Exception as e:
                # Backend trouble; back off and keep the worker alive
                logger.error("worker_poll_failed", queue=self.queue, worker=index, error=str(e))
                processed = False

            if not processed:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

    async def run_once(self) -> bool:
        """Claim and process a single job. Returns False when the queue was idle."""
        job = await self.orchestrator.dequeue(self.queue)
        for stalled in self.orchestrator.take_stalled_failures(self.queue):
            error = JobStalledError(STALLED_REASON, {"job_id": stalled.id})
            await self._notify_failed(stalled, error)
        if job is None:
            return False
        await self.process(job)
        return True

    async def process(self, job: QueueJob) -> None:
        logger.debug(
            "job_started",
            queue=self.queue,
            job_id=job.id,
            key=job.key,
            attempt=job.attempts_made,
        )
        try:
            with track_job_execution(self.queue):
                result = await asyncio.wait_for(
                    self.handler(job), timeout=self.orchestrator.job_timeout
                )
        except asyncio.TimeoutError:
            error: BaseException = JobTimeoutError(
                f"Job exceeded {self.orchestrator.job_timeout}s",
                {"job_id": job.id, "queue": self.queue},
            )
        except Exception as e:
            error = e
        else:
            await self.orchestrator.complete(job, result)
            return

        if await self.orchestrator.fail(job, error):
            await self._notify_failed(job, error)

    async def _notify_failed(self, job: QueueJob, error: BaseException) -> None:
        if self.on_failed is None:
            return
        try:
            await self.on_failed(job, error)
        except Exception as e:
            logger.error(
                "job_failed_callback_error",
                queue=self.queue,
                job_id=job.id,
                error=str(e),
            )

    async def drain(self, max_jobs: int = 1000) -> int:
        """Process available jobs until the queue is idle. Returns the count processed."""
        processed = 0
        while processed < max_jobs and await self.run_once():
            processed += 1
        return processed
