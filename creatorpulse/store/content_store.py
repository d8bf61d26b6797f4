"""Content store and dedup service.

The unique index on (creator_id, platform, platform_content_id) is the only
source of truth for "already ingested". Upserts try to find the row, insert
when absent, and treat a rejected duplicate insert as an update.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog
from pydantic import ValidationError

from creatorpulse.core.exceptions import (
    ConstraintViolationError,
    CreatorPulseError,
    DuplicateContentError,
    UniqueViolation,
)
from creatorpulse.models.content import (
    BatchStoreResult,
    Content,
    ContentInput,
    ItemError,
    Platform,
    UpsertOutcome,
)
from creatorpulse.monitoring.metrics import record_content_upsert
from creatorpulse.store.fingerprint import content_hash
from creatorpulse.store.tables import ContentTable

logger = structlog.get_logger(__name__)

MAX_BATCH_SIZE = 100

# Returns True when the creator exists
CreatorLookup = Callable[[str], Awaitable[bool]]


class ContentStore:
    """Idempotent read/write access over canonical content.

    Args:
        table: Content table gateway (Supabase or in-memory)
        creator_exists: Optional ownership check used by create and store_many
    """

    def __init__(self, table: ContentTable, creator_exists: Optional[CreatorLookup] = None):
        self._table = table
        self._creator_exists = creator_exists

    async def exists(
        self,
        creator_id: str,
        platform_content_id: str,
        platform: Platform | str,
    ) -> bool:
        row = await self._table.find_by_key(
            (creator_id, Platform(platform).value, platform_content_id)
        )
        return row is not None

    async def get(
        self,
        creator_id: str,
        platform_content_id: str,
        platform: Platform | str,
    ) -> Optional[Content]:
        row = await self._table.find_by_key(
            (creator_id, Platform(platform).value, platform_content_id)
        )
        return Content.from_db_row(row) if row else None

    async def upsert(self, content: ContentInput) -> UpsertOutcome:
        """Insert content or refresh its mutable fields.

        Identity fields and relevancy fields are never touched by the
        update branch.

        Args:
            content: Normalized content

        Returns:
            UpsertOutcome.CREATED or UpsertOutcome.UPDATED
        """
        key = content.dedup_key
        existing = await self._table.find_by_key(key)

        if existing is None:
            try:
                await self._table.insert(content.to_db_row())
                record_content_upsert(key[1], UpsertOutcome.CREATED.value)
                return UpsertOutcome.CREATED
            except UniqueViolation:
                # Lost an insert race; the winner's row exists now
                logger.debug(
                    "content_insert_race_resolved_as_update",
                    creator_id=key[0],
                    platform=key[1],
                    platform_content_id=key[2],
                )

        fields = content.mutable_fields()
        if existing is None or existing.get("content_hash") != content_hash(content):
            # Text changed; the duplicate pass regroups the row
            fields["content_hash"] = None
        updated = await self._table.update_by_key(key, fields)
        if updated is None:
            raise CreatorPulseError(
                "Content row vanished during upsert",
                {"creator_id": key[0], "platform": key[1], "platform_content_id": key[2]},
            )
        record_content_upsert(key[1], UpsertOutcome.UPDATED.value)
        return UpsertOutcome.UPDATED

    async def create(self, content: ContentInput) -> Content:
        """Single-item create path.

        Raises:
            ConstraintViolationError: If the creator does not exist.
            DuplicateContentError: If the dedup key already exists.
        """
        creator_id, platform, platform_content_id = content.dedup_key
        if self._creator_exists is not None and not await self._creator_exists(creator_id):
            raise ConstraintViolationError(
                f"Unknown creator {creator_id}", {"creator_id": creator_id}
            )
        try:
            row = await self._table.insert(content.to_db_row())
        except UniqueViolation as e:
            raise DuplicateContentError(creator_id, platform, platform_content_id) from e
        record_content_upsert(platform, UpsertOutcome.CREATED.value)
        return Content.from_db_row(row)

    async def store_many(self, items: list[ContentInput | dict[str, Any]]) -> BatchStoreResult:
        """Upsert a batch of 1-100 items.

        A failing item is recorded in the result and never aborts the rest
        of the batch. Dict items are validated here, so malformed input
        surfaces as a per-item error.

        Raises:
            ConstraintViolationError: If the batch size is out of range.
        """
        if not 1 <= len(items) <= MAX_BATCH_SIZE:
            raise ConstraintViolationError(
                f"Batch must contain between 1 and {MAX_BATCH_SIZE} items",
                {"size": len(items)},
            )

        result = BatchStoreResult(total=len(items))
        known_creators: dict[str, bool] = {}

        for index, item in enumerate(items):
            raw = item.model_dump(mode="json") if isinstance(item, ContentInput) else item
            platform_content_id = raw.get("platform_content_id") if isinstance(raw, dict) else None
            platform = str(raw.get("platform", "unknown")) if isinstance(raw, dict) else "unknown"
            try:
                content = item if isinstance(item, ContentInput) else ContentInput.model_validate(item)

                if self._creator_exists is not None:
                    if content.creator_id not in known_creators:
                        known_creators[content.creator_id] = await self._creator_exists(
                            content.creator_id
                        )
                    if not known_creators[content.creator_id]:
                        raise ConstraintViolationError(
                            f"Unknown creator {content.creator_id}",
                            {"creator_id": content.creator_id},
                        )

                outcome = await self.upsert(content)
            except (ValidationError, CreatorPulseError) as e:
                record_content_upsert(platform, "error")
                logger.warning(
                    "content_batch_item_failed",
                    index=index,
                    platform_content_id=platform_content_id,
                    error=str(e),
                )
                result.errors.append(
                    ItemError(index=index, platform_content_id=platform_content_id, error=str(e))
                )
                continue

            if outcome == UpsertOutcome.CREATED:
                result.created_count += 1
            else:
                result.updated_count += 1

        logger.info(
            "content_batch_stored",
            total=result.total,
            created=result.created_count,
            updated=result.updated_count,
            errors=len(result.errors),
        )
        return result

    # -------------------------------------------------------------------------
    # Relevancy
    # -------------------------------------------------------------------------

    async def list_unscored(self, since: datetime, limit: int) -> list[Content]:
        rows = await self._table.list_unscored(since, limit)
        return [Content.from_db_row(row) for row in rows]

    async def count_unscored(self, since: datetime) -> int:
        return await self._table.count_unscored(since)

    async def record_relevancy(
        self,
        content_id: str,
        score: float,
        reason: Optional[str],
        checked_at: Optional[datetime] = None,
    ) -> None:
        """Write a relevancy judgment back onto a content row."""
        checked_at = checked_at or datetime.now(timezone.utc)
        updated = await self._table.update_by_id(
            content_id,
            {
                "relevancy_score": score,
                "relevancy_reason": reason,
                "relevancy_checked_at": checked_at.isoformat(),
            },
        )
        if updated is None:
            raise CreatorPulseError("Content not found", {"content_id": content_id})

    async def mark_deleted(
        self,
        content_id: str,
        reason: str,
        deleted_at: Optional[datetime] = None,
    ) -> None:
        """Soft-delete a row. Re-ingestion never clears the deletion."""
        deleted_at = deleted_at or datetime.now(timezone.utc)
        updated = await self._table.update_by_id(
            content_id,
            {"deleted_at": deleted_at.isoformat(), "deletion_reason": reason},
        )
        if updated is None:
            raise CreatorPulseError("Content not found", {"content_id": content_id})

    # -------------------------------------------------------------------------
    # Duplicate groups
    # -------------------------------------------------------------------------

    async def list_unhashed(self, limit: int) -> list[Content]:
        return [Content.from_db_row(row) for row in await self._table.list_unhashed(limit)]

    async def find_by_hash(self, digest: str) -> list[Content]:
        return [Content.from_db_row(row) for row in await self._table.list_by_hash(digest)]

    async def list_group(self, group_id: str) -> list[Content]:
        return [Content.from_db_row(row) for row in await self._table.list_by_group(group_id)]

    async def list_recent_hashed(
        self, creator_id: str, platforms: list[Platform], since: datetime
    ) -> list[Content]:
        rows = await self._table.list_recent_hashed(
            creator_id, [Platform(p).value for p in platforms], since
        )
        return [Content.from_db_row(row) for row in rows]

    async def set_duplicate_state(self, content_id: str, **fields: Any) -> None:
        """Write content_hash, duplicate_group_id and is_primary for one row."""
        updated = await self._table.update_by_id(content_id, fields)
        if updated is None:
            raise CreatorPulseError("Content not found", {"content_id": content_id})
