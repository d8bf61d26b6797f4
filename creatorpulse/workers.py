"""Queue worker process.

Starts one worker pool per named queue and runs until SIGINT/SIGTERM.

Usage:
    python -m creatorpulse.workers
"""

import asyncio
import signal
from functools import partial

import structlog

from creatorpulse.config.settings import get_settings
from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.logging import configure_logging
from creatorpulse.queue import QueueName, Worker, queue_concurrency
from creatorpulse.scheduler.triggers import run_relevancy_job

logger = structlog.get_logger(__name__)


def build_workers(container: DependencyContainer) -> list[Worker]:
    """
    Create a worker pool for every queue whose integration is configured.

    Requires an initialized container.
    """
    settings = container.settings
    orchestrator = container.orchestrator
    refresh = container.creator_refresh

    workers = [
        Worker(
            orchestrator,
            QueueName.CREATOR_PROCESSING.value,
            refresh.process_creator,
            concurrency=queue_concurrency(settings, QueueName.CREATOR_PROCESSING),
        ),
        Worker(
            orchestrator,
            QueueName.CONTENT_FETCH.value,
            refresh.fetch_content,
            concurrency=queue_concurrency(settings, QueueName.CONTENT_FETCH),
        ),
    ]

    if container.has_judge:
        workers.append(
            Worker(
                orchestrator,
                QueueName.RELEVANCY_SCORING.value,
                partial(run_relevancy_job, container),
                concurrency=queue_concurrency(settings, QueueName.RELEVANCY_SCORING),
            )
        )
    else:
        logger.warning("worker_skipped_unconfigured", queue=QueueName.RELEVANCY_SCORING.value)

    if container.has_brightdata:
        poller = container.snapshot_poller
        workers.append(
            Worker(
                orchestrator,
                QueueName.BRIGHTDATA_PROCESSING.value,
                poller.process_snapshot,
                concurrency=queue_concurrency(settings, QueueName.BRIGHTDATA_PROCESSING),
                on_failed=poller.handle_exhausted,
            )
        )
    else:
        logger.warning("worker_skipped_unconfigured", queue=QueueName.BRIGHTDATA_PROCESSING.value)

    return workers


async def run_workers() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    container = DependencyContainer(settings)
    await container.initialize()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    workers = build_workers(container)
    for worker in workers:
        worker.start()
    logger.info("workers_running", queues=[worker.queue for worker in workers])

    try:
        await stop.wait()
    finally:
        logger.info("workers_stopping")
        await asyncio.gather(*(worker.stop() for worker in workers))
        await container.shutdown()


def main() -> None:
    asyncio.run(run_workers())


if __name__ == "__main__":
    main()
