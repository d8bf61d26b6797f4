"""Creator store."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from pydantic import ValidationError

from creatorpulse.models.creator import Creator
from creatorpulse.store.tables import CreatorTable

logger = structlog.get_logger(__name__)


class CreatorStore:
    def __init__(self, table: CreatorTable):
        self._table = table

    async def get(self, creator_id: str) -> Optional[Creator]:
        row = await self._table.get(creator_id)
        return Creator.from_db_row(row) if row else None

    async def exists(self, creator_id: str) -> bool:
        return await self._table.get(creator_id) is not None

    async def list_active(self, limit: Optional[int] = None) -> list[Creator]:
        """Active creators, least recently refreshed first.

        Rows that fail validation are logged and skipped so one bad record
        cannot stall the refresh sweep.
        """
        creators = []
        for row in await self._table.list_active(limit):
            try:
                creators.append(Creator.from_db_row(row))
            except ValidationError as e:
                logger.warning("creator_row_invalid", creator_id=row.get("id"), error=str(e))
        return creators

    async def mark_fetched(self, creator_id: str, at: Optional[datetime] = None) -> None:
        at = at or datetime.now(timezone.utc)
        await self._table.touch(
            creator_id,
            {"last_fetched_at": at.isoformat(), "updated_at": at.isoformat()},
        )
