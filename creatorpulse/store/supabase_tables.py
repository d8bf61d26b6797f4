"""Supabase table gateways.

The supabase client is synchronous; every call runs in the default
executor so it never blocks the event loop.

Supabase Tables:
    - content: canonical content rows, unique on the dedup key
    - creators / creator_urls: creators and their platform URLs
    - brightdata_snapshots: snapshot audit trail
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

import structlog
from postgrest.exceptions import APIError
from supabase import Client

from creatorpulse.core.exceptions import UniqueViolation
from creatorpulse.store.tables import ContentKey

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UNIQUE_VIOLATION_CODE = "23505"

CONTENT_TABLE = "content"
CREATORS_TABLE = "creators"
SNAPSHOTS_TABLE = "brightdata_snapshots"


# =============================================================================
# Supabase Table Initialization
# =============================================================================

SCHEMA_SQL = """
-- ============================================================================
-- CreatorPulse Database Schema
-- Run this SQL in Supabase SQL Editor to create the required tables
-- ============================================================================

CREATE TABLE IF NOT EXISTS creators (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    display_name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'inactive')),
    last_fetched_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS creator_urls (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    creator_id UUID NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
    platform TEXT NOT NULL,
    url TEXT NOT NULL,
    normalized_url TEXT NOT NULL,
    validation_status TEXT NOT NULL DEFAULT 'pending',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (creator_id, platform)
);

CREATE TABLE IF NOT EXISTS content (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    creator_id UUID NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
    platform TEXT NOT NULL,
    platform_content_id TEXT NOT NULL CHECK (platform_content_id <> ''),
    url TEXT NOT NULL,
    title TEXT,
    description TEXT,
    thumbnail_url TEXT,
    published_at TIMESTAMPTZ,
    content_body TEXT,
    word_count INTEGER,
    reading_time_minutes INTEGER,
    media_urls JSONB DEFAULT '[]',
    engagement_metrics JSONB DEFAULT '{}',
    reference_type TEXT CHECK (reference_type IN ('quote', 'retweet', 'reply')),
    referenced_content JSONB,
    relevancy_score NUMERIC CHECK (relevancy_score >= 0 AND relevancy_score <= 100),
    relevancy_reason TEXT,
    relevancy_checked_at TIMESTAMPTZ,
    content_hash TEXT,
    duplicate_group_id TEXT,
    is_primary BOOLEAN NOT NULL DEFAULT TRUE,
    deleted_at TIMESTAMPTZ,
    deletion_reason TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    CONSTRAINT content_dedup_key UNIQUE (creator_id, platform, platform_content_id)
);

CREATE INDEX IF NOT EXISTS idx_content_unscored
    ON content(created_at DESC) WHERE relevancy_checked_at IS NULL;

CREATE INDEX IF NOT EXISTS idx_content_hash ON content(content_hash);
CREATE INDEX IF NOT EXISTS idx_content_unhashed
    ON content(created_at) WHERE content_hash IS NULL AND deleted_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_content_duplicate_group ON content(duplicate_group_id);

CREATE TABLE IF NOT EXISTS brightdata_snapshots (
    id TEXT PRIMARY KEY,
    creator_id UUID REFERENCES creators(id) ON DELETE SET NULL,
    creator_urls JSONB DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'ready', 'processing', 'processed', 'failed')),
    result_count INTEGER,
    dataset_size_bytes BIGINT,
    cost NUMERIC,
    metadata JSONB DEFAULT '{}',
    posts_retrieved INTEGER,
    skipped_reason TEXT,
    error TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    last_checked_at TIMESTAMPTZ,
    processed_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_snapshots_status ON brightdata_snapshots(status, created_at);
"""


class _SupabaseGateway:
    def __init__(self, client: Client):
        self._client = client

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)


class SupabaseContentTable(_SupabaseGateway):
    """Content gateway. Relies on the content_dedup_key unique constraint."""

    def _table(self):
        return self._client.table(CONTENT_TABLE)

    def _by_key(self, query, key: ContentKey):
        creator_id, platform, platform_content_id = key
        return (
            query.eq("creator_id", creator_id)
            .eq("platform", platform)
            .eq("platform_content_id", platform_content_id)
        )

    async def find_by_key(self, key: ContentKey) -> Optional[dict[str, Any]]:
        query = self._by_key(self._table().select("*"), key).limit(1)
        response = await self._run(query.execute)
        return response.data[0] if response.data else None

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._run(self._table().insert(row).execute)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION_CODE:
                logger.debug("content_unique_violation", code=e.code)
                raise UniqueViolation(e.message or "unique violation", {"code": e.code}) from e
            raise
        return response.data[0]

    async def update_by_key(
        self, key: ContentKey, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        query = self._by_key(self._table().update(fields), key)
        response = await self._run(query.execute)
        return response.data[0] if response.data else None

    async def update_by_id(
        self, content_id: str, fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        query = self._table().update(fields).eq("id", content_id)
        response = await self._run(query.execute)
        return response.data[0] if response.data else None

    async def list_unscored(self, since: datetime, limit: int) -> list[dict[str, Any]]:
        query = (
            self._table()
            .select("*")
            .is_("relevancy_checked_at", "null")
            .gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .limit(limit)
        )
        response = await self._run(query.execute)
        return response.data or []

    async def count_unscored(self, since: datetime) -> int:
        query = (
            self._table()
            .select("id", count="exact")
            .is_("relevancy_checked_at", "null")
            .gte("created_at", since.isoformat())
            .limit(1)
        )
        response = await self._run(query.execute)
        return response.count or 0

    async def list_unhashed(self, limit: int) -> list[dict[str, Any]]:
        query = (
            self._table()
            .select("*")
            .is_("content_hash", "null")
            .is_("deleted_at", "null")
            .order("created_at")
            .limit(limit)
        )
        response = await self._run(query.execute)
        return response.data or []

    async def list_by_hash(self, content_hash: str) -> list[dict[str, Any]]:
        query = self._table().select("*").eq("content_hash", content_hash).order("created_at")
        response = await self._run(query.execute)
        return response.data or []

    async def list_by_group(self, group_id: str) -> list[dict[str, Any]]:
        query = self._table().select("*").eq("duplicate_group_id", group_id).order("created_at")
        response = await self._run(query.execute)
        return response.data or []

    async def list_recent_hashed(
        self, creator_id: str, platforms: list[str], since: datetime
    ) -> list[dict[str, Any]]:
        query = (
            self._table()
            .select("*")
            .eq("creator_id", creator_id)
            .in_("platform", platforms)
            .gte("published_at", since.isoformat())
            .not_.is_("content_hash", "null")
            .order("created_at")
        )
        response = await self._run(query.execute)
        return response.data or []


class SupabaseSnapshotTable(_SupabaseGateway):
    def _table(self):
        return self._client.table(SNAPSHOTS_TABLE)

    async def insert(self, row: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._run(self._table().insert(row).execute)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION_CODE:
                raise UniqueViolation(e.message or "duplicate snapshot", {"id": row["id"]}) from e
            raise
        return response.data[0]

    async def get(self, snapshot_id: str) -> Optional[dict[str, Any]]:
        query = self._table().select("*").eq("id", snapshot_id).limit(1)
        response = await self._run(query.execute)
        return response.data[0] if response.data else None

    async def update_if_status(
        self, snapshot_id: str, statuses: list[str], fields: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        # Conditional update: only one writer can win a transition
        query = self._table().update(fields).eq("id", snapshot_id).in_("status", statuses)
        response = await self._run(query.execute)
        return response.data[0] if response.data else None

    async def list_by_status(self, statuses: list[str], limit: int) -> list[dict[str, Any]]:
        query = (
            self._table()
            .select("*")
            .in_("status", statuses)
            .order("created_at")
            .limit(limit)
        )
        response = await self._run(query.execute)
        return response.data or []

    async def bulk_update_status(
        self, statuses: list[str], fields: dict[str, Any]
    ) -> list[dict[str, Any]]:
        query = self._table().update(fields).in_("status", statuses)
        response = await self._run(query.execute)
        return response.data or []


class SupabaseCreatorTable(_SupabaseGateway):
    _SELECT = "*, creator_urls(*)"

    def _table(self):
        return self._client.table(CREATORS_TABLE)

    async def get(self, creator_id: str) -> Optional[dict[str, Any]]:
        query = self._table().select(self._SELECT).eq("id", creator_id).limit(1)
        response = await self._run(query.execute)
        return response.data[0] if response.data else None

    async def list_active(self, limit: Optional[int] = None) -> list[dict[str, Any]]:
        query = self._table().select(self._SELECT).eq("status", "active").order("updated_at")
        if limit is not None:
            query = query.limit(limit)
        response = await self._run(query.execute)
        return response.data or []

    async def touch(self, creator_id: str, fields: dict[str, Any]) -> None:
        query = self._table().update(fields).eq("id", creator_id)
        await self._run(query.execute)


def create_supabase_client(url: str, key: str) -> Client:
    """Create a Supabase client."""
    from supabase import create_client

    return create_client(url, key)
