"""Table gateway protocols and in-memory implementations.

The stores talk to storage only through these gateways. Production uses
the Supabase gateways in supabase_tables.py; the in-memory versions back
development runs and tests. Both enforce the content dedup key at the
gateway, so a duplicate insert raises UniqueViolation either way.

WARNING: In-memory tables do not persist and are not shared between
processes.
"""

import asyncio
import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from creatorpulse.core.exceptions import UniqueViolation

ContentKey = tuple[str, str, str]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# =============================================================================
# Protocols
# =============================================================================


class ContentTable(Protocol):
    async def find_by_key(self, key: ContentKey) -> Optional[dict[str, Any]]: ...

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]: ...

    async def update_by_key(
        self, key: ContentKey, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]: ...

    async def update_by_id(
        self, content_id: str, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]: ...

    async def list_unscored(self, since: datetime, limit: int) -> list[dict[str, Any]]: ...

    async def count_unscored(self, since: datetime) -> int: ...

    async def list_unhashed(self, limit: int) -> list[dict[str, Any]]: ...

    async def list_by_hash(self, content_hash: str) -> list[dict[str, Any]]: ...

    async def list_by_group(self, group_id: str) -> list[dict[str, Any]]: ...

    async def list_recent_hashed(
        self, creator_id: str, platforms: list[str], since: datetime
    ) -> list[dict[str, Any]]: ...


class SnapshotTable(Protocol):
    async def insert(self, row: dict[str, Any]) -> dict[str, Any]: ...

    async def get(self, snapshot_id: str) -> Optional[dict[str, Any]]: ...

    async def update_if_status(
        self, snapshot_id: str, statuses: list[str], fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]: ...

    async def list_by_status(self, statuses: list[str], limit: int) -> list[dict[str, Any]]: ...

    async def bulk_update_status(
        self, statuses: list[str], fields: dict[str, Any]
    ) -> list[dict[str, Any]]: ...


class CreatorTable(Protocol):
    async def get(self, creator_id: str) -> Optional[dict[str, Any]]: ...

    async def list_active(self, limit: Optional[int] = None) -> list[dict[str, Any]]: ...

    async def touch(self, creator_id: str, fields: dict[str, Any]) -> None: ...


# =============================================================================
# In-Memory Implementations
# =============================================================================


class InMemoryContentTable:
    """Content rows in a dict with a unique index on the dedup key."""

    def __init__(self):
        self._rows: dict[str, dict[str, Any]] = {}
        self._index: dict[ContentKey, str] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(row: dict[str, Any]) -> ContentKey:
        return (row["creator_id"], row["platform"], row["platform_content_id"])

    @property
    def rows(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._rows.values()]

    async def find_by_key(self, key: ContentKey) -> Optional[dict[str, Any]]:
        # Yield like a network round trip so concurrent callers interleave
        await asyncio.sleep(0)
        content_id = self._index.get(key)
        return copy.deepcopy(self._rows[content_id]) if content_id else None

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            key = self._key(row)
            if key in self._index:
                raise UniqueViolation(
                    "duplicate key value violates unique constraint content_dedup_key",
                    {"key": key},
                )
            now = _now_iso()
            stored = {
                "relevancy_score": None,
                "relevancy_reason": None,
                "relevancy_checked_at": None,
                "content_hash": None,
                "duplicate_group_id": None,
                "is_primary": True,
                "deleted_at": None,
                "deletion_reason": None,
                **copy.deepcopy(row),
                "id": row.get("id") or str(uuid.uuid4()),
                "created_at": row.get("created_at") or now,
                "updated_at": now,
            }
            self._rows[stored["id"]] = stored
            self._index[key] = stored["id"]
            return copy.deepcopy(stored)

    async def update_by_key(
        self, key: ContentKey, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            content_id = self._index.get(key)
            if content_id is None:
                return None
            return self._update(content_id, fields)

    async def update_by_id(
        self, content_id: str, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            if content_id not in self._rows:
                return None
            return self._update(content_id, fields)

    def _update(self, content_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        row = self._rows[content_id]
        row.update(copy.deepcopy(fields))
        row["updated_at"] = _now_iso()
        return copy.deepcopy(row)

    def _unscored(self, since: datetime) -> list[dict[str, Any]]:
        return [
            row for row in self._rows.values()
            if row.get("relevancy_checked_at") is None
            and _as_datetime(row["created_at"]) >= since
        ]

    async def list_unscored(self, since: datetime, limit: int) -> list[dict[str, Any]]:
        rows = sorted(
            self._unscored(since),
            key=lambda r: _as_datetime(r["created_at"]),
            reverse=True,
        )
        return [copy.deepcopy(r) for r in rows[:limit]]

    async def count_unscored(self, since: datetime) -> int:
        return len(self._unscored(since))

    def _select(self, predicate) -> list[dict[str, Any]]:
        rows = sorted(
            (r for r in self._rows.values() if predicate(r)),
            key=lambda r: _as_datetime(r["created_at"]),
        )
        return [copy.deepcopy(r) for r in rows]

    async def list_unhashed(self, limit: int) -> list[dict[str, Any]]:
        rows = self._select(
            lambda r: r.get("content_hash") is None and r.get("deleted_at") is None
        )
        return rows[:limit]

    async def list_by_hash(self, content_hash: str) -> list[dict[str, Any]]:
        return self._select(lambda r: r.get("content_hash") == content_hash)

    async def list_by_group(self, group_id: str) -> list[dict[str, Any]]:
        return self._select(lambda r: r.get("duplicate_group_id") == group_id)

    async def list_recent_hashed(
        self, creator_id: str, platforms: list[str], since: datetime
    ) -> list[dict[str, Any]]:
        return self._select(
            lambda r: r["creator_id"] == creator_id
            and r["platform"] in platforms
            and r.get("content_hash") is not None
            and r.get("published_at") is not None
            and _as_datetime(r["published_at"]) >= since
        )


class InMemorySnapshotTable:
    def __init__(self):
        self._rows: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            if row["id"] in self._rows:
                raise UniqueViolation("duplicate snapshot id", {"id": row["id"]})
            self._rows[row["id"]] = copy.deepcopy(row)
            return copy.deepcopy(row)

    async def get(self, snapshot_id: str) -> Optional[dict[str, Any]]:
        row = self._rows.get(snapshot_id)
        return copy.deepcopy(row) if row else None

    async def update_if_status(
        self, snapshot_id: str, statuses: list[str], fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        async with self._lock:
            row = self._rows.get(snapshot_id)
            if row is None or row["status"] not in statuses:
                return None
            row.update(copy.deepcopy(fields))
            return copy.deepcopy(row)

    async def list_by_status(self, statuses: list[str], limit: int) -> list[dict[str, Any]]:
        rows = sorted(
            (r for r in self._rows.values() if r["status"] in statuses),
            key=lambda r: _as_datetime(r["created_at"]),
        )
        return [copy.deepcopy(r) for r in rows[:limit]]

    async def bulk_update_status(
        self, statuses: list[str], fields: dict[str, Any]
    ) -> list[dict[str, Any]]:
        async with self._lock:
            updated = []
            for row in self._rows.values():
                if row["status"] in statuses:
                    row.update(copy.deepcopy(fields))
                    updated.append(copy.deepcopy(row))
            return updated


class InMemoryCreatorTable:
    def __init__(self, creators: Optional[list[dict[str, Any]]] = None):
        self._rows: dict[str, dict[str, Any]] = {}
        for creator in creators or []:
            self.add(creator)

    def add(self, creator: dict[str, Any]) -> None:
        row = copy.deepcopy(creator)
        row.setdefault("status", "active")
        row.setdefault("updated_at", _now_iso())
        self._rows[row["id"]] = row

    async def get(self, creator_id: str) -> Optional[dict[str, Any]]:
        row = self._rows.get(creator_id)
        return copy.deepcopy(row) if row else None

    async def list_active(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        rows = sorted(
            (r for r in self._rows.values() if r.get("status") == "active"),
            key=lambda r: _as_datetime(r["updated_at"]),
        )
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    async def touch(self, creator_id: str, fields: dict[str, Any]) -> None:
        row = self._rows.get(creator_id)
        if row is not None:
            row.update(copy.deepcopy(fields))
