"""
Cross-platform duplicate grouping.

Stored content is fingerprinted after ingestion. Rows sharing a fingerprint,
or recent social posts whose wording is nearly identical, are put in one
duplicate group with a single primary item. Duplicates are kept, never
dropped; the group only decides which item represents the others.

A row whose text changes on re-ingestion loses its fingerprint and is
regrouped on the next pass.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from pydantic import BaseModel

from creatorpulse.core.exceptions import ConstraintViolationError
from creatorpulse.models.content import Content
from creatorpulse.store.content_store import ContentStore
from creatorpulse.store.fingerprint import (
    SOCIAL_PLATFORMS,
    content_hash,
    content_text,
    select_primary,
    text_similarity,
)

logger = structlog.get_logger(__name__)


class DeduplicationRunSummary(BaseModel):
    processed: int = 0
    grouped: int = 0
    errors: int = 0


class ContentDeduplicator:
    """
    Assigns fingerprints and duplicate groups.

    Args:
        contents: Content store
        similarity_threshold: Word overlap (0-1) at which two social posts match
        similarity_window_days: How far back social posts are compared
    """

    def __init__(
        self,
        contents: ContentStore,
        similarity_threshold: float = 0.85,
        similarity_window_days: int = 30,
    ):
        self.contents = contents
        self.similarity_threshold = similarity_threshold
        self.similarity_window_days = similarity_window_days

    async def process_pending(self, limit: int = 100) -> DeduplicationRunSummary:
        """Fingerprint and group up to limit rows that have no fingerprint yet."""
        summary = DeduplicationRunSummary()
        for content in await self.contents.list_unhashed(limit):
            try:
                group_id = await self.assign(content)
            except Exception as e:
                summary.errors += 1
                logger.warning("content_dedup_failed", content_id=content.id, error=str(e))
                continue
            summary.processed += 1
            if group_id is not None:
                summary.grouped += 1

        logger.info("content_dedup_completed", **summary.model_dump())
        return summary

    async def assign(self, content: Content) -> Optional[str]:
        """
        Fingerprint one row and join it to its duplicate group.

        Returns:
            The group id, or None when the row has no duplicates
        """
        digest = content_hash(content)
        matches = [c for c in await self.contents.find_by_hash(digest) if c.id != content.id]
        if not matches and content.platform in SOCIAL_PLATFORMS:
            matches = await self._similar(content)

        if not matches:
            await self.contents.set_duplicate_state(
                content.id, content_hash=digest, duplicate_group_id=None, is_primary=True
            )
            return None

        group_id = next(
            (c.duplicate_group_id for c in matches if c.duplicate_group_id), None
        ) or str(uuid.uuid4())
        members = {c.id: c for c in await self.contents.list_group(group_id)}
        members.update({c.id: c for c in matches})
        members[content.id] = content
        primary = select_primary(members.values())

        for member in members.values():
            fields = {"duplicate_group_id": group_id, "is_primary": member.id == primary.id}
            if member.id == content.id:
                fields["content_hash"] = digest
            await self.contents.set_duplicate_state(member.id, **fields)

        logger.info(
            "content_duplicate_grouped",
            content_id=content.id,
            group_id=group_id,
            members=len(members),
            primary_id=primary.id,
        )
        return group_id

    async def _similar(self, content: Content) -> list[Content]:
        text = content_text(content)
        if not text:
            return []
        since = datetime.now(timezone.utc) - timedelta(days=self.similarity_window_days)
        candidates = await self.contents.list_recent_hashed(
            content.creator_id, sorted(SOCIAL_PLATFORMS), since
        )
        for candidate in candidates:
            if candidate.id == content.id:
                continue
            if text_similarity(text, content_text(candidate)) >= self.similarity_threshold:
                return [candidate]
        return []

    async def set_primary(self, group_id: str, content_id: str) -> None:
        """
        Manually choose the primary item of a group.

        Raises:
            ConstraintViolationError: If the content is not in the group.
        """
        members = await self.contents.list_group(group_id)
        if content_id not in {m.id for m in members}:
            raise ConstraintViolationError(
                "Content is not in this duplicate group",
                {"group_id": group_id, "content_id": content_id},
            )
        for member in members:
            await self.contents.set_duplicate_state(
                member.id, is_primary=member.id == content_id
            )
        logger.info("content_primary_set", group_id=group_id, content_id=content_id)
