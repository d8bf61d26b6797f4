"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- settings: Settings with every provider unconfigured
- creator_id / creator_row: A known creator
- content_table, content_store: In-memory content storage
- snapshot_store, creator_store: In-memory snapshot and creator storage
- orchestrator: Queue orchestrator over the in-memory backend
- clock: Controllable epoch clock for lease and backoff timing
- container: Dependency container wired to all of the above
- sample_content: A valid content payload
"""

import uuid

import pytest

from creatorpulse.config.settings import Settings
from creatorpulse.core.circuit_breaker import reset_all_circuit_breakers
from creatorpulse.core.container import DependencyContainer
from creatorpulse.core.rate_limiter import InMemoryRateLimiter, reset_rate_limiter
from creatorpulse.queue import InMemoryQueueBackend, QueueOrchestrator
from creatorpulse.store import (
    ContentStore,
    CreatorStore,
    InMemoryContentTable,
    InMemoryCreatorTable,
    InMemorySnapshotTable,
    SnapshotStore,
)


@pytest.fixture(autouse=True)
async def reset_globals():
    """Reset process-wide breakers and the rate limiter around each test."""
    reset_all_circuit_breakers()
    await reset_rate_limiter()
    yield
    reset_all_circuit_breakers()
    await reset_rate_limiter()


@pytest.fixture
def settings() -> Settings:
    """Settings with no providers configured and no .env file."""
    return Settings(_env_file=None, app_env="development")


@pytest.fixture
def creator_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def creator_row(creator_id) -> dict:
    """Return a sample creator with an RSS feed and a LinkedIn profile."""
    return {
        "id": creator_id,
        "display_name": "Test Creator",
        "status": "active",
        "creator_urls": [
            {
                "creator_id": creator_id,
                "platform": "rss",
                "url": "https://blog.example.com/feed.xml",
                "normalized_url": "https://blog.example.com/feed.xml",
            },
            {
                "creator_id": creator_id,
                "platform": "linkedin",
                "url": "https://www.linkedin.com/in/test-creator",
                "normalized_url": "https://www.linkedin.com/in/test-creator",
            },
        ],
    }


@pytest.fixture
def creator_table(creator_row) -> InMemoryCreatorTable:
    return InMemoryCreatorTable([creator_row])


@pytest.fixture
def creator_store(creator_table) -> CreatorStore:
    return CreatorStore(creator_table)


@pytest.fixture
def content_table() -> InMemoryContentTable:
    return InMemoryContentTable()


@pytest.fixture
def content_store(content_table, creator_store) -> ContentStore:
    return ContentStore(content_table, creator_store.exists)


@pytest.fixture
def snapshot_table() -> InMemorySnapshotTable:
    return InMemorySnapshotTable()


@pytest.fixture
def snapshot_store(snapshot_table) -> SnapshotStore:
    return SnapshotStore(snapshot_table)


class FakeClock:
    """Controllable epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def orchestrator() -> QueueOrchestrator:
    return QueueOrchestrator(InMemoryQueueBackend(), job_timeout=5.0)


@pytest.fixture
def container(settings, content_table, creator_table, snapshot_table, orchestrator):
    """Container wired to in-memory storage and queue."""
    return DependencyContainer(
        settings,
        content_table=content_table,
        creator_table=creator_table,
        snapshot_table=snapshot_table,
        orchestrator=orchestrator,
        rate_limiter=InMemoryRateLimiter(),
    )


@pytest.fixture
def sample_content(creator_id) -> dict:
    """Return a sample content payload."""
    return {
        "creator_id": creator_id,
        "platform": "rss",
        "platform_content_id": "post-1",
        "url": "https://blog.example.com/posts/1",
        "title": "Shipping faster with small batches",
        "description": "Why small batches beat big releases.",
        "published_at": "2024-01-15T12:00:00Z",
        "content_body": "Why small batches beat big releases.",
        "word_count": 6,
        "reading_time_minutes": 1,
        "engagement_metrics": {"likes": 3},
    }
