"""Persistence: content, snapshots and creators."""

from creatorpulse.store.content_store import MAX_BATCH_SIZE, ContentStore
from creatorpulse.store.creator_store import CreatorStore
from creatorpulse.store.snapshot_store import SnapshotStore
from creatorpulse.store.tables import (
    ContentTable,
    CreatorTable,
    InMemoryContentTable,
    InMemoryCreatorTable,
    InMemorySnapshotTable,
    SnapshotTable,
)

__all__ = [
    "MAX_BATCH_SIZE",
    "ContentStore",
    "ContentTable",
    "CreatorStore",
    "CreatorTable",
    "InMemoryContentTable",
    "InMemoryCreatorTable",
    "InMemorySnapshotTable",
    "SnapshotStore",
    "SnapshotTable",
]
