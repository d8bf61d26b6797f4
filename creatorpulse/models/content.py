"""Canonical content model shared by every platform.

All normalizers converge on ContentInput; the content store persists it as
a Content row keyed by (creator_id, platform, platform_content_id).
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class Platform(str, Enum):
    """Content source platforms."""

    YOUTUBE = "youtube"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    THREADS = "threads"
    RSS = "rss"
    WEBSITE = "website"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class ReferenceType(str, Enum):
    """How a piece of content points at another one."""

    QUOTE = "quote"
    RETWEET = "retweet"
    REPLY = "reply"


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


# Fields re-ingestion may refresh. Identity, relevancy, duplicate-group and
# deletion fields are never written by an upsert update.
MUTABLE_FIELDS = (
    "url",
    "title",
    "description",
    "thumbnail_url",
    "published_at",
    "content_body",
    "word_count",
    "reading_time_minutes",
    "media_urls",
    "engagement_metrics",
    "reference_type",
    "referenced_content",
)

WORDS_PER_MINUTE = 200


# =============================================================================
# Nested Structures
# =============================================================================


class MediaItem(BaseModel):
    """One media attachment."""

    url: str = Field(..., min_length=1)
    type: MediaType
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = Field(None, description="Duration in seconds")
    size: Optional[int] = Field(None, description="Size in bytes")
    thumbnail_url: Optional[str] = None


class EngagementMetrics(BaseModel):
    """Platform-agnostic engagement counters.

    Absent metrics stay None and are omitted on serialization, so a
    platform that never reports shares is not recorded as zero shares.
    """

    views: Optional[int] = None
    likes: Optional[int] = None
    comments: Optional[int] = None
    shares: Optional[int] = None
    retweets: Optional[int] = None
    bookmarks: Optional[int] = None
    reactions: Optional[dict[str, int]] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class ReferenceAuthor(BaseModel):
    id: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_verified: Optional[bool] = None


class ReferencedContent(BaseModel):
    """Excerpt of the content a quote/repost/reply points at."""

    id: Optional[str] = None
    platform_content_id: Optional[str] = None
    url: Optional[str] = None
    text: Optional[str] = None
    author: Optional[ReferenceAuthor] = None
    created_at: Optional[datetime] = None
    media_urls: list[MediaItem] = Field(default_factory=list)
    engagement_metrics: Optional[EngagementMetrics] = None


# =============================================================================
# Content
# =============================================================================


class ContentInput(BaseModel):
    """Upsert input produced by the normalizers and the batch API."""

    creator_id: str = Field(..., description="Owning creator UUID")
    platform: Platform
    platform_content_id: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    published_at: Optional[datetime] = None
    content_body: Optional[str] = None
    word_count: Optional[int] = None
    reading_time_minutes: Optional[int] = None
    media_urls: list[MediaItem] = Field(default_factory=list)
    engagement_metrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    reference_type: Optional[ReferenceType] = None
    referenced_content: Optional[ReferencedContent] = None

    model_config = {"extra": "forbid"}

    @field_validator("creator_id")
    @classmethod
    def _creator_id_is_uuid(cls, value: str) -> str:
        return str(UUID(str(value)))

    @field_validator("platform_content_id")
    @classmethod
    def _strip_platform_content_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("platform_content_id must not be blank")
        return value

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.creator_id, self.platform.value, self.platform_content_id)

    def mutable_fields(self) -> dict[str, Any]:
        """Serialized mutable columns, as written on an upsert update.

        Absent values (None, empty metrics or media) are left out so a
        sparser re-ingest never blanks what is already stored.
        """
        row = self.to_db_row()
        return {
            name: row[name]
            for name in MUTABLE_FIELDS
            if row[name] not in (None, {}, [])
        }

    def to_db_row(self) -> dict[str, Any]:
        """Convert to a Supabase/PostgreSQL row."""
        row = self.model_dump(mode="json", exclude={"engagement_metrics"})
        row["engagement_metrics"] = self.engagement_metrics.model_dump(
            mode="json", exclude_none=True
        )
        if self.referenced_content is not None:
            row["referenced_content"] = self.referenced_content.model_dump(
                mode="json", exclude_none=True
            )
        return row


class Content(ContentInput):
    """A stored content row."""

    id: str
    relevancy_score: Optional[float] = Field(None, ge=0, le=100)
    relevancy_reason: Optional[str] = None
    relevancy_checked_at: Optional[datetime] = None
    content_hash: Optional[str] = None
    duplicate_group_id: Optional[str] = None
    is_primary: bool = True
    deleted_at: Optional[datetime] = None
    deletion_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Content":
        return cls.model_validate(row)


# =============================================================================
# Batch Results
# =============================================================================


class ItemError(BaseModel):
    index: int
    platform_content_id: Optional[str] = None
    error: str


class BatchStoreResult(BaseModel):
    """Outcome of store_many.

    success is False as soon as one item failed; the successful items are
    still stored and counted.
    """

    created_count: int = 0
    updated_count: int = 0
    errors: list[ItemError] = Field(default_factory=list)
    total: int = 0

    @property
    def stored_count(self) -> int:
        return self.created_count + self.updated_count

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def status_code(self) -> int:
        if not self.errors:
            return 200
        if self.stored_count:
            return 207
        return 400

    def summary(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "total": self.total,
            "created": self.created_count,
            "updated": self.updated_count,
            "errors": [e.model_dump() for e in self.errors],
        }


def text_stats(text: Optional[str]) -> tuple[int, int]:
    """Return (word_count, reading_time_minutes) for a text body."""
    if not text:
        return 0, 0
    words = len(text.split())
    if not words:
        return 0, 0
    return words, max(1, math.ceil(words / WORDS_PER_MINUTE))
