"""Snapshot state machine models.

A snapshot is one outstanding asynchronous scrape request at the provider.
Status only moves forward; processed and failed are terminal.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SnapshotStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SnapshotStatus.PROCESSED, SnapshotStatus.FAILED})

ALLOWED_TRANSITIONS: dict[SnapshotStatus, frozenset[SnapshotStatus]] = {
    SnapshotStatus.PENDING: frozenset(
        {SnapshotStatus.READY, SnapshotStatus.PROCESSING, SnapshotStatus.FAILED}
    ),
    SnapshotStatus.READY: frozenset({SnapshotStatus.PROCESSING, SnapshotStatus.FAILED}),
    SnapshotStatus.PROCESSING: frozenset(
        {SnapshotStatus.PROCESSED, SnapshotStatus.PENDING, SnapshotStatus.FAILED}
    ),
    SnapshotStatus.PROCESSED: frozenset(),
    SnapshotStatus.FAILED: frozenset(),
}


def can_transition(current: SnapshotStatus, target: SnapshotStatus) -> bool:
    """Whether a snapshot may move from current to target.

    Rewriting the same non-terminal status is allowed so repeated job
    attempts stay idempotent.
    """
    if current == target:
        return not current.is_terminal
    return target in ALLOWED_TRANSITIONS[current]


def allowed_sources(target: SnapshotStatus) -> list[SnapshotStatus]:
    """Statuses a snapshot may currently hold to move into target."""
    return [status for status in SnapshotStatus if can_transition(status, target)]


class ProviderStatus(str, Enum):
    """Snapshot status as reported by the provider."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class SnapshotProgress(BaseModel):
    """Snapshot fetch result from the provider."""

    id: str
    status: ProviderStatus
    result_count: int = 0
    dataset_size_bytes: int = 0
    cost: Optional[float] = None
    error: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class SnapshotJobPayload(BaseModel):
    """Payload carried by snapshot-processing jobs."""

    snapshot_id: str
    creator_urls: list[str] = Field(default_factory=list)
    max_results: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Snapshot(BaseModel):
    """Stored snapshot record. Never deleted; serves as an audit trail."""

    id: str
    creator_id: Optional[str] = None
    creator_urls: list[str] = Field(default_factory=list)
    status: SnapshotStatus = SnapshotStatus.PENDING
    result_count: Optional[int] = None
    dataset_size_bytes: Optional[int] = None
    cost: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    posts_retrieved: Optional[int] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_checked_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}

    def to_db_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Snapshot":
        data = dict(row)
        data["metadata"] = data.get("metadata") or {}
        data["creator_urls"] = data.get("creator_urls") or []
        return cls.model_validate(data)
