"""Unit tests for the periodic triggers and the scheduler."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.exceptions import ConfigurationError, PermanentError
from creatorpulse.core.rate_limiter import InMemoryRateLimiter
from creatorpulse.models.content import ContentInput, Platform
from creatorpulse.queue import JobState, QueueName
from creatorpulse.scheduler import PERIODIC_JOBS, Scheduler
from creatorpulse.scheduler import triggers
from creatorpulse.services.relevancy import RelevancyJudgment

CREATOR_QUEUE = QueueName.CREATOR_PROCESSING.value
FETCH_QUEUE = QueueName.CONTENT_FETCH.value
RELEVANCY_QUEUE = QueueName.RELEVANCY_SCORING.value


@pytest.fixture
def judged_container(settings, content_table, creator_table, snapshot_table, orchestrator):
    """Container with a fake relevancy judge."""
    judge = MagicMock()
    judge.judge = AsyncMock(return_value=RelevancyJudgment(score=75))
    return DependencyContainer(
        settings,
        content_table=content_table,
        creator_table=creator_table,
        snapshot_table=snapshot_table,
        orchestrator=orchestrator,
        rate_limiter=InMemoryRateLimiter(),
        judge=judge,
    )


class TestCleanupQueues:
    """Test queue cleanup."""

    @pytest.mark.asyncio
    async def test_removes_pending_and_failed_keeps_recent_completed(self, container, orchestrator):
        await orchestrator.enqueue(CREATOR_QUEUE, "a", {})
        await orchestrator.enqueue(CREATOR_QUEUE, "b", {})
        await orchestrator.enqueue(FETCH_QUEUE, "done", {})
        await orchestrator.enqueue(FETCH_QUEUE, "broken", {})
        await orchestrator.complete(await orchestrator.dequeue(FETCH_QUEUE), {"ok": True})
        await orchestrator.fail(await orchestrator.dequeue(FETCH_QUEUE), PermanentError("bad"))

        result = await triggers.cleanup_queues(container)

        assert result[CREATOR_QUEUE]["cleaned"][JobState.WAITING.value] == 2
        assert result[FETCH_QUEUE]["cleaned"][JobState.FAILED.value] == 1
        assert result[FETCH_QUEUE]["cleaned"][JobState.COMPLETED.value] == 0
        assert result[FETCH_QUEUE]["after"]["completed"] == 1
        assert set(result) == {queue.value for queue in QueueName}

    @pytest.mark.asyncio
    async def test_cleanup_releases_keys(self, container, orchestrator):
        await orchestrator.enqueue(CREATOR_QUEUE, "a", {})

        await triggers.cleanup_queues(container)

        handle = await orchestrator.enqueue(CREATOR_QUEUE, "a", {})
        assert handle.duplicate is False


class TestRelevancyTriggers:
    @pytest.mark.asyncio
    async def test_score_requires_openai(self, container):
        with pytest.raises(ConfigurationError):
            await triggers.score_relevancy(container)

    @pytest.mark.asyncio
    async def test_queue_requires_openai(self, container):
        with pytest.raises(ConfigurationError):
            await triggers.queue_relevancy(container)

    @pytest.mark.asyncio
    async def test_queue_is_deduplicated(self, judged_container, orchestrator):
        """Only one relevancy batch job is in flight at a time."""
        assert await triggers.queue_relevancy(judged_container) is True
        assert await triggers.queue_relevancy(judged_container) is False
        assert (await orchestrator.counts(RELEVANCY_QUEUE))["waiting"] == 1

    @pytest.mark.asyncio
    async def test_relevancy_job_runs_batch(self, judged_container, orchestrator):
        await triggers.queue_relevancy(judged_container)
        job = await orchestrator.dequeue(RELEVANCY_QUEUE)

        result = await triggers.run_relevancy_job(judged_container, job)

        assert result["processed"] == 0
        assert result["errors"] == 0


class TestSnapshotTriggers:
    @pytest.mark.asyncio
    async def test_sweep_requires_brightdata(self, container):
        with pytest.raises(ConfigurationError):
            await triggers.process_snapshots(container)

    @pytest.mark.asyncio
    async def test_halt_requires_brightdata(self, container):
        with pytest.raises(ConfigurationError):
            await triggers.halt_snapshots(container)


class TestDeduplicationTrigger:
    @pytest.mark.asyncio
    async def test_groups_pending_content(self, container, content_store, content_table, creator_id):
        for platform in (Platform.TWITTER, Platform.LINKEDIN):
            await content_store.upsert(
                ContentInput(
                    creator_id=creator_id,
                    platform=platform,
                    platform_content_id=f"{platform.value}-1",
                    url=f"https://{platform.value}.example.com/1",
                    content_body="Shipping the new release notes for the desktop app",
                )
            )

        summary = await triggers.deduplicate_content(container)

        assert summary.processed == 2
        assert summary.grouped == 1
        assert len({row["duplicate_group_id"] for row in content_table.rows}) == 1


class TestQueueCreators:
    @pytest.mark.asyncio
    async def test_queues_active_creators(self, container, orchestrator, creator_id):
        result = await triggers.queue_creators(container)

        assert result == {"found": 1, "queued": 1, "skipped": 0}
        assert await orchestrator.is_queued(CREATOR_QUEUE, creator_id)


class TestScheduler:
    """Test the APScheduler wiring."""

    def test_periodic_jobs(self):
        assert [job.name for job in PERIODIC_JOBS] == [
            "queue_creators",
            "process_snapshots",
            "score_relevancy",
            "deduplicate_content",
            "cleanup_queues",
        ]

    @pytest.mark.asyncio
    async def test_run_now(self, container):
        result = await Scheduler(container).run_now("queue_creators")

        assert result["queued"] == 1

    @pytest.mark.asyncio
    async def test_run_now_unknown_job(self, container):
        with pytest.raises(KeyError):
            await Scheduler(container).run_now("nope")

    @pytest.mark.asyncio
    async def test_unconfigured_job_is_skipped(self, container):
        """Scheduled runs swallow configuration errors instead of crashing APScheduler."""
        await Scheduler(container)._execute_job("process_snapshots")

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, container):
        scheduler = Scheduler(container)

        await scheduler.start()
        try:
            assert scheduler.is_running
            job_ids = {job.id for job in scheduler._scheduler.get_jobs()}
            assert job_ids == {f"job_{job.name}" for job in PERIODIC_JOBS}
        finally:
            await scheduler.stop()

        assert not scheduler.is_running
