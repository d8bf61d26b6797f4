"""
Data Models.

- content: Canonical Content record, media, metrics and reference metadata
- creator: Creators and their per-platform URLs
- snapshot: Scrape snapshots and their forward-only status machine

Example:
    from creatorpulse.models import ContentInput, Platform

    item = ContentInput(
        creator_id="0b7c7d9e-6c1b-4a4e-9d59-3f0f4c1d2e11",
        platform=Platform.RSS,
        platform_content_id="https://example.com/post-1",
        url="https://example.com/post-1",
    )
"""

from creatorpulse.models.content import (
    BatchStoreResult,
    Content,
    ContentInput,
    EngagementMetrics,
    ItemError,
    MediaItem,
    MediaType,
    Platform,
    ReferenceAuthor,
    ReferencedContent,
    ReferenceType,
    UpsertOutcome,
)
from creatorpulse.models.creator import (
    Creator,
    CreatorStatus,
    CreatorURL,
    ValidationStatus,
)
from creatorpulse.models.snapshot import (
    ProviderStatus,
    Snapshot,
    SnapshotJobPayload,
    SnapshotProgress,
    SnapshotStatus,
    can_transition,
)

__all__ = [
    # Enums
    "Platform",
    "MediaType",
    "ReferenceType",
    "UpsertOutcome",
    "CreatorStatus",
    "ValidationStatus",
    "SnapshotStatus",
    "ProviderStatus",
    # Content
    "Content",
    "ContentInput",
    "EngagementMetrics",
    "MediaItem",
    "ReferenceAuthor",
    "ReferencedContent",
    "BatchStoreResult",
    "ItemError",
    # Creators
    "Creator",
    "CreatorURL",
    # Snapshots
    "Snapshot",
    "SnapshotJobPayload",
    "SnapshotProgress",
    "can_transition",
]
