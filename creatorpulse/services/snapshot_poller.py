"""Scrape-job submission and snapshot polling.

A snapshot goes pending -> ready -> processing -> processed, or failed from
any non-terminal state. One job per snapshot (keyed by snapshot id) polls
the provider; "not ready yet" is a retryable error, so the queue's backoff
paces the polling and max_attempts bounds it.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from creatorpulse.collectors.brightdata.client import BrightDataClient
from creatorpulse.collectors.normalization.pipeline import ContentNormalizer
from creatorpulse.core.exceptions import (
    ConstraintViolationError,
    InvalidTransitionError,
    PermanentError,
    PermanentUpstreamError,
    SnapshotNotReadyError,
)
from creatorpulse.models.content import ContentInput, ItemError, Platform
from creatorpulse.models.snapshot import (
    ProviderStatus,
    Snapshot,
    SnapshotJobPayload,
    SnapshotStatus,
)
from creatorpulse.queue import JobPolicy, QueueJob, QueueName, QueueOrchestrator, default_policy
from creatorpulse.store.content_store import MAX_BATCH_SIZE, ContentStore
from creatorpulse.store.snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)

SNAPSHOT_QUEUE = QueueName.BRIGHTDATA_PROCESSING.value
SWEEP_LIMIT = 20
ORPHANED_REASON = "Processing interrupted with no job in flight"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotPoller:
    """
    Drives snapshots through their lifecycle.

    Args:
        snapshots: Snapshot store
        contents: Content store
        orchestrator: Queue orchestrator
        client: BrightData client
        normalizer: Content normalizer with the linkedin transformer
        policy: Retry policy for snapshot jobs
    """

    def __init__(
        self,
        snapshots: SnapshotStore,
        contents: ContentStore,
        orchestrator: QueueOrchestrator,
        client: BrightDataClient,
        normalizer: ContentNormalizer,
        policy: Optional[JobPolicy] = None,
    ):
        self.snapshots = snapshots
        self.contents = contents
        self.orchestrator = orchestrator
        self.client = client
        self.normalizer = normalizer
        self.policy = policy or default_policy(SNAPSHOT_QUEUE)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit(
        self,
        creator_id: Optional[str],
        creator_urls: list[str],
        max_results: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Snapshot:
        """Trigger a collection, record it as pending and enqueue its poll job."""
        if not creator_urls:
            raise ConstraintViolationError("At least one creator URL is required")

        snapshot_id = await self.client.trigger_collection(creator_urls)
        metadata = {**(metadata or {})}
        if creator_id:
            metadata.setdefault("creator_id", creator_id)

        snapshot = await self.snapshots.create(
            snapshot_id,
            creator_id=creator_id,
            creator_urls=creator_urls,
            metadata=metadata,
        )
        await self._enqueue(
            SnapshotJobPayload(
                snapshot_id=snapshot_id,
                creator_urls=creator_urls,
                max_results=max_results,
                metadata=metadata,
            )
        )
        logger.info(
            "snapshot_submitted",
            snapshot_id=snapshot_id,
            creator_id=creator_id,
            urls=len(creator_urls),
        )
        return snapshot

    async def _enqueue(self, payload: SnapshotJobPayload) -> bool:
        handle = await self.orchestrator.enqueue(
            SNAPSHOT_QUEUE,
            payload.snapshot_id,
            payload.model_dump(exclude_none=True),
            self.policy,
        )
        return not handle.duplicate

    # -------------------------------------------------------------------------
    # Job handler
    # -------------------------------------------------------------------------

    async def process_snapshot(self, job: QueueJob) -> dict[str, Any]:
        """
        Handle one attempt of a snapshot job.

        Returns:
            Summary dict for the job result

        Raises:
            SnapshotNotReadyError: Provider still building; retried with backoff
            PermanentUpstreamError: Provider failed or rejected us; not retried
        """
        payload = SnapshotJobPayload.model_validate(job.payload)
        snapshot_id = payload.snapshot_id
        log = logger.bind(snapshot_id=snapshot_id, attempt=job.attempts_made)

        snapshot = await self.snapshots.get(snapshot_id)
        if snapshot is None:
            log.warning("snapshot_job_without_record")
            return {"snapshot_id": snapshot_id, "skipped": True, "reason": "not_found"}
        if snapshot.status.is_terminal:
            log.info("snapshot_already_terminal", status=snapshot.status.value)
            return {
                "snapshot_id": snapshot_id,
                "skipped": True,
                "reason": f"already_{snapshot.status.value}",
            }

        try:
            return await self._advance(snapshot, payload, log)
        except PermanentError as e:
            await self._mark_failed(snapshot_id, str(e))
            raise

    async def _advance(
        self,
        snapshot: Snapshot,
        payload: SnapshotJobPayload,
        log: Any,
    ) -> dict[str, Any]:
        snapshot_id = snapshot.id
        progress = await self.client.get_snapshot_progress(snapshot_id)
        await self.snapshots.update_fields(
            snapshot_id,
            last_checked_at=_now(),
            result_count=progress.result_count,
            dataset_size_bytes=progress.dataset_size_bytes,
            cost=progress.cost,
        )

        if progress.status == ProviderStatus.FAILED:
            log.error("snapshot_failed_at_provider", error=progress.error)
            raise PermanentUpstreamError(
                f"Snapshot failed at provider: {progress.error or 'unknown error'}",
                {"snapshot_id": snapshot_id},
            )

        if progress.status == ProviderStatus.PENDING:
            if snapshot.status == SnapshotStatus.PROCESSING:
                await self.snapshots.transition(snapshot_id, SnapshotStatus.PENDING)
            log.debug("snapshot_not_ready")
            raise SnapshotNotReadyError(snapshot_id, progress.raw.get("status", "pending"))

        if snapshot.status == SnapshotStatus.PENDING:
            await self.snapshots.transition(snapshot_id, SnapshotStatus.READY)
        await self.snapshots.transition(snapshot_id, SnapshotStatus.PROCESSING)

        if progress.result_count == 0:
            return await self._finish_empty(snapshot_id, "empty_snapshot", log)

        items = await self.client.download_snapshot(snapshot_id)
        if not items:
            return await self._finish_empty(snapshot_id, "no_items_in_download", log)
        if payload.max_results:
            items = items[: payload.max_results]

        creator_id = payload.metadata.get("creator_id") or snapshot.creator_id
        if not creator_id:
            raise ConstraintViolationError(
                "Snapshot has no creator to attach content to",
                {"snapshot_id": snapshot_id},
            )

        source_url = payload.creator_urls[0] if payload.creator_urls else None
        normalized, failures = self.normalizer.normalize_many(
            creator_id, Platform.LINKEDIN, items, source_url
        )
        storage = await self._store(normalized)
        errors = [
            ItemError(index=index, error=str(error)).model_dump() for index, error in failures
        ] + storage["errors"]

        summary = {
            "items": len(items),
            "created": storage["created"],
            "updated": storage["updated"],
            "errors": errors,
        }
        await self.snapshots.transition(
            snapshot_id,
            SnapshotStatus.PROCESSED,
            posts_retrieved=storage["created"] + storage["updated"],
            processed_at=_now(),
            metadata={**snapshot.metadata, **payload.metadata, "storage": summary},
        )
        log.info(
            "snapshot_processed",
            items=len(items),
            created=storage["created"],
            updated=storage["updated"],
            errors=len(errors),
        )
        return {"snapshot_id": snapshot_id, "status": SnapshotStatus.PROCESSED.value, **summary}

    async def _store(self, items: list[ContentInput]) -> dict[str, Any]:
        created = updated = 0
        errors: list[dict[str, Any]] = []
        for offset in range(0, len(items), MAX_BATCH_SIZE):
            result = await self.contents.store_many(items[offset : offset + MAX_BATCH_SIZE])
            created += result.created_count
            updated += result.updated_count
            errors.extend(
                {**e.model_dump(), "index": e.index + offset} for e in result.errors
            )
        return {"created": created, "updated": updated, "errors": errors}

    async def _finish_empty(self, snapshot_id: str, reason: str, log: Any) -> dict[str, Any]:
        await self.snapshots.transition(
            snapshot_id,
            SnapshotStatus.PROCESSED,
            posts_retrieved=0,
            skipped_reason=reason,
            processed_at=_now(),
        )
        log.info("snapshot_processed_empty", reason=reason)
        return {
            "snapshot_id": snapshot_id,
            "status": SnapshotStatus.PROCESSED.value,
            "posts_retrieved": 0,
            "skipped_reason": reason,
        }

    async def _mark_failed(self, snapshot_id: str, reason: str) -> None:
        try:
            await self.snapshots.transition(
                snapshot_id,
                SnapshotStatus.FAILED,
                error=reason,
                processed_at=_now(),
            )
        except InvalidTransitionError:
            # Already terminal
            return
        logger.warning("snapshot_marked_failed", snapshot_id=snapshot_id, error=reason)

    async def handle_exhausted(self, job: QueueJob, error: BaseException) -> None:
        """Failed-job hook: the snapshot follows its job into the failed state."""
        snapshot_id = job.payload.get("snapshot_id")
        if not snapshot_id:
            return
        await self._mark_failed(
            snapshot_id,
            f"Gave up after {job.attempts_made} attempts: {error}",
        )

    # -------------------------------------------------------------------------
    # Sweeps
    # -------------------------------------------------------------------------

    async def enqueue_pending(self, limit: int = SWEEP_LIMIT) -> dict[str, int]:
        """
        Enqueue jobs for outstanding snapshots that have none in flight.

        A processing snapshot with no job in flight lost its worker mid-run
        and is failed rather than re-polled.
        """
        outstanding = await self.snapshots.list_by_status(
            [SnapshotStatus.PENDING, SnapshotStatus.READY, SnapshotStatus.PROCESSING], limit
        )
        queued = skipped = failed = 0
        for snapshot in outstanding:
            if await self.orchestrator.is_queued(SNAPSHOT_QUEUE, snapshot.id):
                skipped += 1
                continue
            if snapshot.status == SnapshotStatus.PROCESSING:
                await self._mark_failed(snapshot.id, ORPHANED_REASON)
                failed += 1
                continue
            added = await self._enqueue(
                SnapshotJobPayload(
                    snapshot_id=snapshot.id,
                    creator_urls=snapshot.creator_urls,
                    metadata=snapshot.metadata,
                )
            )
            if added:
                queued += 1
            else:
                skipped += 1

        logger.info(
            "snapshot_sweep_completed",
            found=len(outstanding),
            queued=queued,
            skipped=skipped,
            failed=failed,
        )
        return {"found": len(outstanding), "queued": queued, "skipped": skipped, "failed": failed}

    async def halt_all(self, reason: str = "halted by operator") -> dict[str, int]:
        """Emergency stop: drop every snapshot job and fail every outstanding snapshot."""
        jobs_removed = await self.orchestrator.obliterate(SNAPSHOT_QUEUE)
        snapshots_failed = await self.snapshots.fail_outstanding(reason)
        logger.warning(
            "snapshot_processing_halted",
            jobs_removed=jobs_removed,
            snapshots_failed=snapshots_failed,
            reason=reason,
        )
        return {"jobs_removed": jobs_removed, "snapshots_failed": snapshots_failed}
