"""Unit tests for snapshot submission, polling and sweeps."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from creatorpulse.collectors.normalization import get_normalizer
from creatorpulse.core.exceptions import ConstraintViolationError, CollectorAuthError
from creatorpulse.models.snapshot import ProviderStatus, SnapshotProgress, SnapshotStatus
from creatorpulse.queue import InMemoryQueueBackend, JobPolicy, JobState, QueueOrchestrator, Worker
from creatorpulse.services.snapshot_poller import SNAPSHOT_QUEUE, SnapshotPoller

PROFILE = "https://www.linkedin.com/in/test-creator"


def progress(status: ProviderStatus, count: int = 0, error: str = None) -> SnapshotProgress:
    return SnapshotProgress(id="s_1", status=status, result_count=count, error=error)


def linkedin_post(post_id: str) -> dict:
    return {
        "id": post_id,
        "url": f"https://www.linkedin.com/posts/test-creator_{post_id}",
        "post_text": f"Post {post_id}",
        "date_posted": "2024-01-10T08:30:00Z",
        "num_likes": 3,
    }


@pytest.fixture
def client():
    bd = MagicMock()
    bd.trigger_collection = AsyncMock(return_value="s_1")
    bd.get_snapshot_progress = AsyncMock(return_value=progress(ProviderStatus.PENDING))
    bd.download_snapshot = AsyncMock(return_value=[])
    return bd


@pytest.fixture
def poller(snapshot_store, content_store, orchestrator, client) -> SnapshotPoller:
    return SnapshotPoller(
        snapshots=snapshot_store,
        contents=content_store,
        orchestrator=orchestrator,
        client=client,
        normalizer=get_normalizer(),
        policy=JobPolicy(max_attempts=3, backoff_delay=0),
    )


def worker_for(poller: SnapshotPoller) -> Worker:
    return Worker(
        poller.orchestrator,
        SNAPSHOT_QUEUE,
        poller.process_snapshot,
        on_failed=poller.handle_exhausted,
    )


class TestSubmit:
    @pytest.mark.asyncio
    async def test_records_pending_and_enqueues(self, poller, orchestrator, snapshot_store, creator_id):
        snapshot = await poller.submit(creator_id, [PROFILE])

        assert snapshot.status == SnapshotStatus.PENDING
        assert (await snapshot_store.get("s_1")).metadata["creator_id"] == creator_id
        assert await orchestrator.is_queued(SNAPSHOT_QUEUE, "s_1") is True

    @pytest.mark.asyncio
    async def test_requires_urls(self, poller, creator_id):
        with pytest.raises(ConstraintViolationError):
            await poller.submit(creator_id, [])


class TestProcessSnapshot:
    """Test the snapshot job lifecycle end to end through a worker."""

    @pytest.mark.asyncio
    async def test_ready_snapshot_is_stored(self, poller, client, snapshot_store, content_table, creator_id):
        client.get_snapshot_progress.return_value = progress(ProviderStatus.READY, count=2)
        client.download_snapshot.return_value = [linkedin_post("1"), linkedin_post("2")]
        await poller.submit(creator_id, [PROFILE])

        await worker_for(poller).drain()

        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.PROCESSED
        assert snapshot.posts_retrieved == 2
        assert len(content_table.rows) == 2

    @pytest.mark.asyncio
    async def test_bad_items_do_not_fail_snapshot(self, poller, client, snapshot_store, content_table, creator_id):
        """Loosely typed and unusable items are recorded while the rest are stored."""
        odd_media = {**linkedin_post("2"), "images": [123, {"url": None}], "videos": "none"}
        no_url = {"id": "3", "post_text": "lost"}
        items = [linkedin_post("1"), odd_media, no_url, "not-a-post"]
        client.get_snapshot_progress.return_value = progress(ProviderStatus.READY, count=4)
        client.download_snapshot.return_value = items
        await poller.submit(creator_id, [PROFILE])

        await worker_for(poller).drain()

        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.PROCESSED
        assert snapshot.posts_retrieved == 2
        assert len(content_table.rows) == 2
        assert client.get_snapshot_progress.await_count == 1
        storage = snapshot.metadata["storage"]
        assert storage["items"] == 4
        assert storage["created"] == 2
        assert [error["index"] for error in storage["errors"]] == [2, 3]
        assert "no URL" in storage["errors"][0]["error"]

    @pytest.mark.asyncio
    async def test_empty_snapshot_is_processed(self, poller, client, snapshot_store, creator_id):
        """A ready snapshot with zero results is processed, not failed."""
        client.get_snapshot_progress.return_value = progress(ProviderStatus.READY, count=0)
        await poller.submit(creator_id, [PROFILE])

        await worker_for(poller).drain()

        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.PROCESSED
        assert snapshot.skipped_reason == "empty_snapshot"
        client.download_snapshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_ready_retries_then_fails(self, poller, client, orchestrator, snapshot_store, creator_id):
        """A snapshot that never becomes ready is polled max_attempts times, then failed."""
        await poller.submit(creator_id, [PROFILE])

        await worker_for(poller).drain()

        assert client.get_snapshot_progress.await_count == 3
        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.FAILED
        assert "Gave up after 3 attempts" in snapshot.error
        assert (await orchestrator.counts(SNAPSHOT_QUEUE))["failed"] == 1

    @pytest.mark.asyncio
    async def test_provider_failure_is_permanent(self, poller, client, snapshot_store, creator_id):
        client.get_snapshot_progress.return_value = progress(ProviderStatus.FAILED, error="blocked")
        await poller.submit(creator_id, [PROFILE])

        await worker_for(poller).drain()

        assert client.get_snapshot_progress.await_count == 1
        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.FAILED
        assert "blocked" in snapshot.error

    @pytest.mark.asyncio
    async def test_revoked_key_is_permanent(self, poller, client, snapshot_store, creator_id):
        client.get_snapshot_progress.side_effect = CollectorAuthError("brightdata", "API key rejected")
        await poller.submit(creator_id, [PROFILE])

        await worker_for(poller).drain()

        assert client.get_snapshot_progress.await_count == 1
        assert (await snapshot_store.get("s_1")).status == SnapshotStatus.FAILED

    @pytest.mark.asyncio
    async def test_max_results_limits_items(self, poller, client, orchestrator, snapshot_store, content_table, creator_id):
        client.get_snapshot_progress.return_value = progress(ProviderStatus.READY, count=3)
        client.download_snapshot.return_value = [linkedin_post(str(i)) for i in range(3)]
        await snapshot_store.create("s_1", creator_id, [PROFILE])
        await orchestrator.enqueue(
            SNAPSHOT_QUEUE,
            "s_1",
            {"snapshot_id": "s_1", "creator_urls": [PROFILE], "max_results": 1},
            JobPolicy(max_attempts=1),
        )

        await worker_for(poller).drain()

        assert len(content_table.rows) == 1

    @pytest.mark.asyncio
    async def test_terminal_snapshot_skipped(self, poller, snapshot_store, orchestrator, client):
        await snapshot_store.create("s_1")
        await snapshot_store.transition("s_1", SnapshotStatus.FAILED)
        await orchestrator.enqueue(SNAPSHOT_QUEUE, "s_1", {"snapshot_id": "s_1"})

        job = await orchestrator.dequeue(SNAPSHOT_QUEUE)
        result = await poller.process_snapshot(job)

        assert result["skipped"] is True
        client.get_snapshot_progress.assert_not_awaited()


    @pytest.mark.asyncio
    async def test_stalled_last_attempt_fails_snapshot(
        self, snapshot_store, content_store, client, clock, creator_id
    ):
        """A worker dying mid-run on the last attempt still leaves the snapshot failed."""
        orchestrator = QueueOrchestrator(InMemoryQueueBackend(), job_timeout=5.0, clock=clock)
        poller = SnapshotPoller(
            snapshots=snapshot_store,
            contents=content_store,
            orchestrator=orchestrator,
            client=client,
            normalizer=get_normalizer(),
            policy=JobPolicy(max_attempts=1),
        )
        await poller.submit(creator_id, [PROFILE])
        await orchestrator.dequeue(SNAPSHOT_QUEUE)
        await snapshot_store.transition("s_1", SnapshotStatus.PROCESSING)

        clock.advance(60)
        await worker_for(poller).drain()

        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.FAILED
        assert "Gave up after 1 attempts" in snapshot.error
        assert (await orchestrator.counts(SNAPSHOT_QUEUE))["failed"] == 1


class TestSweeps:
    @pytest.mark.asyncio
    async def test_enqueue_pending_skips_in_flight(self, poller, snapshot_store, orchestrator, creator_id):
        """Only snapshots without a queued job are re-enqueued."""
        await poller.submit(creator_id, [PROFILE])
        await snapshot_store.create("orphan", creator_id, [PROFILE])

        result = await poller.enqueue_pending()

        assert result == {"found": 2, "queued": 1, "skipped": 1, "failed": 0}
        assert await orchestrator.is_queued(SNAPSHOT_QUEUE, "orphan") is True

    @pytest.mark.asyncio
    async def test_enqueue_pending_fails_orphaned_processing(self, poller, snapshot_store, orchestrator, creator_id):
        """A processing snapshot whose job is gone is failed, never left processing."""
        await snapshot_store.create("orphan", creator_id, [PROFILE])
        await snapshot_store.transition("orphan", SnapshotStatus.PROCESSING)

        result = await poller.enqueue_pending()

        assert result == {"found": 1, "queued": 0, "skipped": 0, "failed": 1}
        assert (await snapshot_store.get("orphan")).status == SnapshotStatus.FAILED
        assert await orchestrator.is_queued(SNAPSHOT_QUEUE, "orphan") is False

    @pytest.mark.asyncio
    async def test_enqueue_pending_leaves_in_flight_processing(self, poller, snapshot_store, creator_id):
        await poller.submit(creator_id, [PROFILE])
        await snapshot_store.transition("s_1", SnapshotStatus.PROCESSING)

        result = await poller.enqueue_pending()

        assert result["skipped"] == 1
        assert (await snapshot_store.get("s_1")).status == SnapshotStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_halt_all(self, poller, snapshot_store, orchestrator, creator_id):
        await poller.submit(creator_id, [PROFILE])

        result = await poller.halt_all("maintenance")

        assert result == {"jobs_removed": 1, "snapshots_failed": 1}
        snapshot = await snapshot_store.get("s_1")
        assert snapshot.status == SnapshotStatus.FAILED
        assert snapshot.error == "maintenance"
        assert (await orchestrator.counts(SNAPSHOT_QUEUE))["waiting"] == 0
