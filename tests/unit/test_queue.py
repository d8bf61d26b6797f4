"""Unit tests for the queue orchestrator and worker pool."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from creatorpulse.core.exceptions import JobStalledError, PermanentError, TransientUpstreamError
from creatorpulse.queue import (
    BackoffType,
    InMemoryQueueBackend,
    JobPolicy,
    JobState,
    QueueOrchestrator,
    RetentionPolicy,
    Worker,
    default_policy,
)

QUEUE = "content-fetch"
NO_DELAY = JobPolicy(max_attempts=3, backoff_delay=0)


class TestJobPolicy:
    def test_exponential_backoff(self):
        policy = JobPolicy(backoff_delay=2)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2, 4, 8]

    def test_fixed_backoff(self):
        policy = JobPolicy(backoff_delay=5, backoff_type=BackoffType.FIXED)

        assert policy.delay_for(1) == policy.delay_for(4) == 5

    def test_backoff_is_capped(self):
        assert JobPolicy(backoff_delay=30).delay_for(20) == 3600

    def test_queue_defaults(self):
        """Snapshot polling gets more attempts than the other queues."""
        assert default_policy("brightdata-processing").max_attempts == 10
        assert default_policy("content-fetch").max_attempts == 3
        assert default_policy("unknown-queue").max_attempts == 3


class TestEnqueue:
    """Test dedup by job key."""

    @pytest.mark.asyncio
    async def test_duplicate_key_while_waiting(self, orchestrator):
        first = await orchestrator.enqueue(QUEUE, "creator-1", {"n": 1})
        second = await orchestrator.enqueue(QUEUE, "creator-1", {"n": 2})

        assert second.duplicate is True
        assert second.job_id == first.job_id
        assert (await orchestrator.counts(QUEUE))["waiting"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_key_while_active(self, orchestrator):
        await orchestrator.enqueue(QUEUE, "creator-1", {})
        await orchestrator.dequeue(QUEUE)

        handle = await orchestrator.enqueue(QUEUE, "creator-1", {})

        assert handle.duplicate is True

    @pytest.mark.asyncio
    async def test_key_reusable_after_completion(self, orchestrator):
        """A finished job releases its key."""
        await orchestrator.enqueue(QUEUE, "creator-1", {})
        job = await orchestrator.dequeue(QUEUE)
        await orchestrator.complete(job, {"ok": True})

        handle = await orchestrator.enqueue(QUEUE, "creator-1", {})

        assert handle.duplicate is False
        assert await orchestrator.is_queued(QUEUE, "creator-1") is True

    @pytest.mark.asyncio
    async def test_delayed_job_not_available_early(self, clock):
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), clock=clock)
        await orchestrator.enqueue(QUEUE, "k", {}, delay=10)

        assert await orchestrator.dequeue(QUEUE) is None
        clock.advance(11)
        assert await orchestrator.dequeue(QUEUE) is not None


class TestRetries:
    """Test failure handling and retention."""

    @pytest.mark.asyncio
    async def test_attempts_counted_at_claim(self, orchestrator):
        await orchestrator.enqueue(QUEUE, "k", {})

        job = await orchestrator.dequeue(QUEUE)

        assert job.attempts_made == 1
        assert job.state == JobState.ACTIVE

    @pytest.mark.asyncio
    async def test_retryable_error_schedules_backoff(self, clock):
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), clock=clock)
        await orchestrator.enqueue(QUEUE, "k", {}, policy=JobPolicy(max_attempts=3, backoff_delay=2))
        job = await orchestrator.dequeue(QUEUE)

        terminal = await orchestrator.fail(job, TransientUpstreamError("timeout"))

        assert terminal is False
        assert (await orchestrator.counts(QUEUE))["delayed"] == 1
        clock.advance(1)
        assert await orchestrator.dequeue(QUEUE) is None
        clock.advance(1)
        retried = await orchestrator.dequeue(QUEUE)
        assert retried.attempts_made == 2

    @pytest.mark.asyncio
    async def test_permanent_error_fails_immediately(self, orchestrator):
        await orchestrator.enqueue(QUEUE, "k", {}, policy=NO_DELAY)
        job = await orchestrator.dequeue(QUEUE)

        terminal = await orchestrator.fail(job, PermanentError("bad payload"))

        stored = await orchestrator.get_job(QUEUE, job.id)
        assert terminal is True
        assert stored.state == JobState.FAILED
        assert stored.failed_reason == "PermanentError: bad payload"

    @pytest.mark.asyncio
    async def test_exhausted_attempts_fail(self, orchestrator):
        await orchestrator.enqueue(QUEUE, "k", {}, policy=JobPolicy(max_attempts=1))
        job = await orchestrator.dequeue(QUEUE)

        assert await orchestrator.fail(job, RuntimeError("boom")) is True

    @pytest.mark.asyncio
    async def test_retention_trims_completed(self):
        orchestrator = QueueOrchestrator(
            InMemoryQueueBackend(), retention=RetentionPolicy(completed_count=2)
        )
        for i in range(4):
            await orchestrator.enqueue(QUEUE, f"k{i}", {})
            await orchestrator.complete(await orchestrator.dequeue(QUEUE))

        assert (await orchestrator.counts(QUEUE))["completed"] == 2

    @pytest.mark.asyncio
    async def test_stalled_job_recovered(self, clock):
        """An active job whose lease expired goes back to waiting."""
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), job_timeout=10, clock=clock)
        await orchestrator.enqueue(QUEUE, "k", {})
        await orchestrator.dequeue(QUEUE)

        clock.advance(60)
        recovered = await orchestrator.dequeue(QUEUE)

        assert recovered is not None
        assert recovered.attempts_made == 2

    @pytest.mark.asyncio
    async def test_stalled_job_out_of_attempts_fails(self, clock):
        """A stalled job on its last attempt is failed and held for the worker."""
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), job_timeout=10, clock=clock)
        await orchestrator.enqueue(QUEUE, "k", {}, policy=JobPolicy(max_attempts=1))
        claimed = await orchestrator.dequeue(QUEUE)

        clock.advance(60)
        assert await orchestrator.dequeue(QUEUE) is None

        stored = await orchestrator.get_job(QUEUE, claimed.id)
        assert stored.state == JobState.FAILED
        assert "JobStalledError" in stored.failed_reason
        assert [job.id for job in orchestrator.take_stalled_failures(QUEUE)] == [claimed.id]
        assert orchestrator.take_stalled_failures(QUEUE) == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_cleanup_by_state_and_age(self, clock):
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), clock=clock)
        await orchestrator.enqueue(QUEUE, "done", {})
        await orchestrator.complete(await orchestrator.dequeue(QUEUE))
        await orchestrator.enqueue(QUEUE, "waiting", {})

        clock.advance(30)
        assert await orchestrator.cleanup(QUEUE, older_than=60) == []

        removed = await orchestrator.cleanup(QUEUE, older_than=10, states=(JobState.COMPLETED,))
        assert [job.key for job in removed] == ["done"]

        removed = await orchestrator.cleanup(QUEUE, states=(JobState.WAITING,))
        assert [job.key for job in removed] == ["waiting"]
        assert await orchestrator.is_queued(QUEUE, "waiting") is False

    @pytest.mark.asyncio
    async def test_obliterate(self, orchestrator):
        for i in range(3):
            await orchestrator.enqueue(QUEUE, f"k{i}", {})

        assert await orchestrator.obliterate(QUEUE) == 3
        assert sum((await orchestrator.counts(QUEUE)).values()) == 0


class TestWorker:
    """Test handler execution through the worker."""

    @pytest.mark.asyncio
    async def test_completes_with_result(self, orchestrator):
        handler = AsyncMock(return_value={"stored": 2})
        await orchestrator.enqueue(QUEUE, "k", {"x": 1})

        processed = await Worker(orchestrator, QUEUE, handler).drain()

        assert processed == 1
        job = handler.call_args.args[0]
        stored = await orchestrator.get_job(QUEUE, job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.result == {"stored": 2}

    @pytest.mark.asyncio
    async def test_retries_until_exhausted_then_calls_on_failed_once(self, orchestrator):
        """A always-failing handler runs max_attempts times; on_failed fires once."""
        handler = AsyncMock(side_effect=TransientUpstreamError("not yet"))
        on_failed = AsyncMock()
        await orchestrator.enqueue(QUEUE, "k", {}, policy=NO_DELAY)

        await Worker(orchestrator, QUEUE, handler, on_failed=on_failed).drain()

        assert handler.await_count == 3
        on_failed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stalled_job_out_of_attempts_calls_on_failed(self, clock):
        """A job abandoned by a crashed worker still reaches the failed callback."""
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), job_timeout=10, clock=clock)
        on_failed = AsyncMock()
        await orchestrator.enqueue(QUEUE, "k", {}, policy=JobPolicy(max_attempts=1))
        await orchestrator.dequeue(QUEUE)

        clock.advance(60)
        handler = AsyncMock()
        processed = await Worker(orchestrator, QUEUE, handler, on_failed=on_failed).drain()

        assert processed == 0
        handler.assert_not_awaited()
        on_failed.assert_awaited_once()
        job, error = on_failed.call_args.args
        assert job.key == "k"
        assert isinstance(error, JobStalledError)

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), job_timeout=0.05)

        async def slow(job):
            await asyncio.sleep(1)

        await orchestrator.enqueue(QUEUE, "k", {}, policy=JobPolicy(max_attempts=2, backoff_delay=60))
        await Worker(orchestrator, QUEUE, slow).drain()

        counts = await orchestrator.counts(QUEUE)
        assert counts["delayed"] == 1

    @pytest.mark.asyncio
    async def test_on_failed_error_is_contained(self, orchestrator):
        """A failing callback does not break the worker."""
        handler = AsyncMock(side_effect=PermanentError("bad"))
        on_failed = AsyncMock(side_effect=RuntimeError("callback broke"))
        await orchestrator.enqueue(QUEUE, "k", {})

        assert await Worker(orchestrator, QUEUE, handler, on_failed=on_failed).drain() == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, orchestrator):
        handler = AsyncMock(return_value=None)
        worker = Worker(orchestrator, QUEUE, handler, concurrency=2, poll_interval=0.01)
        await orchestrator.enqueue(QUEUE, "k", {})

        worker.start()
        for _ in range(100):
            if handler.await_count:
                break
            await asyncio.sleep(0.01)
        await worker.stop()

        assert handler.await_count == 1
        assert worker.is_running is False
