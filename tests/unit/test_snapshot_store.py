"""Unit tests for the snapshot state machine and store."""

import asyncio

import pytest

from creatorpulse.core.exceptions import InvalidTransitionError, UniqueViolation
from creatorpulse.models.snapshot import SnapshotStatus, can_transition


class TestTransitions:
    """Test the allowed transition table."""

    def test_forward_path(self):
        assert can_transition(SnapshotStatus.PENDING, SnapshotStatus.READY)
        assert can_transition(SnapshotStatus.READY, SnapshotStatus.PROCESSING)
        assert can_transition(SnapshotStatus.PROCESSING, SnapshotStatus.PROCESSED)

    def test_terminal_states_are_final(self):
        for terminal in (SnapshotStatus.PROCESSED, SnapshotStatus.FAILED):
            for target in SnapshotStatus:
                assert not can_transition(terminal, target)

    def test_no_backwards_moves(self):
        assert not can_transition(SnapshotStatus.READY, SnapshotStatus.PENDING)
        assert not can_transition(SnapshotStatus.PROCESSED, SnapshotStatus.PROCESSING)

    def test_processing_can_fall_back_to_pending(self):
        """A processing snapshot whose provider reverts to running waits again."""
        assert can_transition(SnapshotStatus.PROCESSING, SnapshotStatus.PENDING)

    def test_any_live_state_can_fail(self):
        for status in (SnapshotStatus.PENDING, SnapshotStatus.READY, SnapshotStatus.PROCESSING):
            assert can_transition(status, SnapshotStatus.FAILED)


class TestSnapshotStore:
    """Test snapshot persistence."""

    @pytest.mark.asyncio
    async def test_create_starts_pending(self, snapshot_store, creator_id):
        snapshot = await snapshot_store.create("s_1", creator_id, ["https://www.linkedin.com/in/a"])

        assert snapshot.status == SnapshotStatus.PENDING
        assert snapshot.creator_urls == ["https://www.linkedin.com/in/a"]

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, snapshot_store):
        await snapshot_store.create("s_1")

        with pytest.raises(UniqueViolation):
            await snapshot_store.create("s_1")

    @pytest.mark.asyncio
    async def test_transition_writes_fields(self, snapshot_store):
        await snapshot_store.create("s_1")
        await snapshot_store.transition("s_1", SnapshotStatus.READY)
        await snapshot_store.transition("s_1", SnapshotStatus.PROCESSING)

        snapshot = await snapshot_store.transition(
            "s_1", SnapshotStatus.PROCESSED, posts_retrieved=4
        )

        assert snapshot.status == SnapshotStatus.PROCESSED
        assert snapshot.posts_retrieved == 4

    @pytest.mark.asyncio
    async def test_terminal_snapshot_cannot_revive(self, snapshot_store):
        await snapshot_store.create("s_1")
        await snapshot_store.transition("s_1", SnapshotStatus.FAILED, error="boom")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await snapshot_store.transition("s_1", SnapshotStatus.PROCESSING)
        assert exc_info.value.current == "failed"

    @pytest.mark.asyncio
    async def test_missing_snapshot_transition(self, snapshot_store):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await snapshot_store.transition("nope", SnapshotStatus.READY)
        assert exc_info.value.current == "missing"

    @pytest.mark.asyncio
    async def test_only_one_writer_wins(self, snapshot_store):
        """Two concurrent moves to processed: exactly one succeeds."""
        await snapshot_store.create("s_1")
        await snapshot_store.transition("s_1", SnapshotStatus.PROCESSING)

        results = await asyncio.gather(
            snapshot_store.transition("s_1", SnapshotStatus.PROCESSED),
            snapshot_store.transition("s_1", SnapshotStatus.PROCESSED),
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, InvalidTransitionError)) == 1

    @pytest.mark.asyncio
    async def test_update_fields_skips_terminal(self, snapshot_store):
        await snapshot_store.create("s_1")
        await snapshot_store.transition("s_1", SnapshotStatus.FAILED)

        assert await snapshot_store.update_fields("s_1", result_count=3) is None

    @pytest.mark.asyncio
    async def test_fail_outstanding(self, snapshot_store):
        """Bulk fail touches live snapshots only."""
        await snapshot_store.create("pending")
        await snapshot_store.create("processing")
        await snapshot_store.transition("processing", SnapshotStatus.PROCESSING)
        await snapshot_store.create("done")
        await snapshot_store.transition("done", SnapshotStatus.PROCESSING)
        await snapshot_store.transition("done", SnapshotStatus.PROCESSED)

        count = await snapshot_store.fail_outstanding("halted")

        assert count == 2
        assert (await snapshot_store.get("pending")).error == "halted"
        assert (await snapshot_store.get("done")).status == SnapshotStatus.PROCESSED

    @pytest.mark.asyncio
    async def test_list_by_status(self, snapshot_store):
        await snapshot_store.create("a")
        await snapshot_store.create("b")
        await snapshot_store.transition("b", SnapshotStatus.READY)

        ready = await snapshot_store.list_by_status([SnapshotStatus.READY])

        assert [s.id for s in ready] == ["b"]
