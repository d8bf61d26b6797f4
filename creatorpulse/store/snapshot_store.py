"""Snapshot store.

Every status change is a conditional update restricted to the statuses the
target may be reached from, so two workers can never both win the same
transition and a terminal snapshot can never be revived.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from creatorpulse.core.exceptions import InvalidTransitionError
from creatorpulse.models.snapshot import (
    Snapshot,
    SnapshotStatus,
    TERMINAL_STATUSES,
    allowed_sources,
)
from creatorpulse.monitoring.metrics import record_snapshot_transition
from creatorpulse.store.tables import SnapshotTable

logger = structlog.get_logger(__name__)

OUTSTANDING_STATUSES = [
    SnapshotStatus.PENDING,
    SnapshotStatus.READY,
    SnapshotStatus.PROCESSING,
]


class SnapshotStore:
    def __init__(self, table: SnapshotTable):
        self._table = table

    async def create(
        self,
        snapshot_id: str,
        creator_id: Optional[str] = None,
        creator_urls: Optional[list[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Snapshot:
        snapshot = Snapshot(
            id=snapshot_id,
            creator_id=creator_id,
            creator_urls=creator_urls or [],
            metadata=metadata or {},
        )
        row = await self._table.insert(snapshot.to_db_row())
        record_snapshot_transition(SnapshotStatus.PENDING.value)
        logger.info("snapshot_created", snapshot_id=snapshot_id, creator_id=creator_id)
        return Snapshot.from_db_row(row)

    async def get(self, snapshot_id: str) -> Optional[Snapshot]:
        row = await self._table.get(snapshot_id)
        return Snapshot.from_db_row(row) if row else None

    async def transition(
        self,
        snapshot_id: str,
        target: SnapshotStatus,
        **fields: Any,
    ) -> Snapshot:
        """Move a snapshot to target, writing any extra fields alongside.

        Raises:
            InvalidTransitionError: If the snapshot is missing or its current
                status cannot reach target.
        """
        values = {key: _serialize(value) for key, value in fields.items()}
        values["status"] = target.value
        sources = [status.value for status in allowed_sources(target)]

        row = await self._table.update_if_status(snapshot_id, sources, values)
        if row is None:
            current = await self._table.get(snapshot_id)
            raise InvalidTransitionError(
                snapshot_id,
                current["status"] if current else "missing",
                target.value,
            )

        record_snapshot_transition(target.value)
        logger.debug("snapshot_transitioned", snapshot_id=snapshot_id, status=target.value)
        return Snapshot.from_db_row(row)

    async def update_fields(self, snapshot_id: str, **fields: Any) -> Optional[Snapshot]:
        """Write bookkeeping fields without changing status.

        Terminal snapshots are left alone.
        """
        values = {key: _serialize(value) for key, value in fields.items()}
        non_terminal = [
            status.value for status in SnapshotStatus if status not in TERMINAL_STATUSES
        ]
        row = await self._table.update_if_status(snapshot_id, non_terminal, values)
        return Snapshot.from_db_row(row) if row else None

    async def list_by_status(
        self, statuses: list[SnapshotStatus], limit: int = 20
    ) -> list[Snapshot]:
        rows = await self._table.list_by_status([s.value for s in statuses], limit)
        return [Snapshot.from_db_row(row) for row in rows]

    async def fail_outstanding(self, reason: str) -> int:
        """Mark every pending, ready or processing snapshot as failed."""
        now = datetime.now(timezone.utc).isoformat()
        rows = await self._table.bulk_update_status(
            [s.value for s in OUTSTANDING_STATUSES],
            {"status": SnapshotStatus.FAILED.value, "error": reason, "processed_at": now},
        )
        for _ in rows:
            record_snapshot_transition(SnapshotStatus.FAILED.value)
        logger.warning("snapshots_failed_in_bulk", count=len(rows), reason=reason)
        return len(rows)


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, SnapshotStatus):
        return value.value
    return value
