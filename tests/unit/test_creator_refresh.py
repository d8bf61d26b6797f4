"""Unit tests for the creator refresh service."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from creatorpulse.collectors.normalization import get_normalizer
from creatorpulse.collectors.rss import FeedFetchResult
from creatorpulse.core.exceptions import ConfigurationError, TransientUpstreamError
from creatorpulse.models.snapshot import Snapshot
from creatorpulse.queue import QueueJob
from creatorpulse.services.creator_refresh import (
    CREATOR_QUEUE,
    FETCH_QUEUE,
    CreatorRefreshService,
    feed_item_as_page,
    youtube_feed_url,
)


@pytest.fixture
def fetcher():
    feed = MagicMock()
    feed.fetch = AsyncMock(
        return_value=FeedFetchResult(
            feed_url="https://blog.example.com/feed.xml",
            success=True,
            items=[
                {"guid": "a", "link": "https://blog.example.com/a", "title": "A"},
                {"guid": "b", "link": "https://blog.example.com/b", "title": "B"},
            ],
        )
    )
    return feed


@pytest.fixture
def refresh(creator_store, content_store, orchestrator, fetcher) -> CreatorRefreshService:
    return CreatorRefreshService(
        creators=creator_store,
        contents=content_store,
        orchestrator=orchestrator,
        fetcher=fetcher,
        normalizer=get_normalizer(),
    )


def job(queue: str, payload: dict) -> QueueJob:
    return QueueJob(queue=queue, key="test", payload=payload)


class TestUrlHelpers:
    def test_youtube_channel_url(self):
        assert youtube_feed_url("https://www.youtube.com/channel/UCabc-123") == (
            "https://www.youtube.com/feeds/videos.xml?channel_id=UCabc-123"
        )

    def test_youtube_handle_url_unsupported(self):
        assert youtube_feed_url("https://www.youtube.com/@someone") is None

    def test_feed_item_as_page(self):
        page = feed_item_as_page(
            {"link": "https://a.example.com/p", "title": "P", "content": [{"value": "<p>Body</p>"}]}
        )

        assert page["url"] == "https://a.example.com/p"
        assert page["content"] == "<p>Body</p>"


class TestQueueDueCreators:
    @pytest.mark.asyncio
    async def test_one_job_per_creator(self, refresh, orchestrator, creator_id):
        """Queueing twice does not duplicate a creator's job."""
        first = await refresh.queue_due_creators()
        second = await refresh.queue_due_creators()

        assert first == {"found": 1, "queued": 1, "skipped": 0}
        assert second == {"found": 1, "queued": 0, "skipped": 1}
        assert await orchestrator.is_queued(CREATOR_QUEUE, creator_id)


class TestProcessCreator:
    @pytest.mark.asyncio
    async def test_fans_out_by_platform(self, refresh, orchestrator, creator_id):
        """Feed URLs become fetch jobs; LinkedIn goes to the poller."""
        poller = MagicMock()
        poller.submit = AsyncMock(return_value=Snapshot(id="s_1", creator_id=creator_id))
        refresh.poller = poller

        result = await refresh.process_creator(job(CREATOR_QUEUE, {"creator_id": creator_id}))

        assert result["fetch_jobs"] == 1
        assert result["snapshots"] == ["s_1"]
        assert await orchestrator.is_queued(FETCH_QUEUE, f"{creator_id}:rss")
        poller.submit.assert_awaited_once_with(creator_id, ["https://www.linkedin.com/in/test-creator"])

    @pytest.mark.asyncio
    async def test_linkedin_skipped_without_poller(self, refresh, creator_id):
        result = await refresh.process_creator(job(CREATOR_QUEUE, {"creator_id": creator_id}))

        assert result["snapshots"] == []

    @pytest.mark.asyncio
    async def test_unknown_creator_skipped(self, refresh):
        result = await refresh.process_creator(
            job(CREATOR_QUEUE, {"creator_id": "00000000-0000-0000-0000-000000000000"})
        )

        assert result["skipped"] is True


class TestFetchContent:
    @pytest.mark.asyncio
    async def test_feed_items_stored(self, refresh, content_table, creator_id):
        payload = {"creator_id": creator_id, "platform": "rss", "url": "https://blog.example.com/feed.xml"}

        first = await refresh.fetch_content(job(FETCH_QUEUE, payload))
        second = await refresh.fetch_content(job(FETCH_QUEUE, payload))

        assert first["created"] == 2
        assert second["created"] == 0
        assert second["updated"] == 2
        assert len(content_table.rows) == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_is_retryable(self, refresh, fetcher, creator_id):
        fetcher.fetch.return_value = FeedFetchResult(
            feed_url="https://blog.example.com/feed.xml", success=False, error="HTTP 503"
        )
        payload = {"creator_id": creator_id, "platform": "rss", "url": "https://blog.example.com/feed.xml"}

        with pytest.raises(TransientUpstreamError):
            await refresh.fetch_content(job(FETCH_QUEUE, payload))

    @pytest.mark.asyncio
    async def test_youtube_handle_is_configuration_error(self, refresh, creator_id):
        payload = {"creator_id": creator_id, "platform": "youtube", "url": "https://www.youtube.com/@someone"}

        with pytest.raises(ConfigurationError):
            await refresh.fetch_content(job(FETCH_QUEUE, payload))

    @pytest.mark.asyncio
    async def test_twitter_without_apify(self, refresh, creator_id):
        payload = {"creator_id": creator_id, "platform": "twitter", "url": "https://x.com/someone"}

        with pytest.raises(ConfigurationError):
            await refresh.fetch_content(job(FETCH_QUEUE, payload))

    @pytest.mark.asyncio
    async def test_twitter_with_apify(self, refresh, content_table, creator_id):
        apify = MagicMock()
        apify.scrape_tweets = AsyncMock(return_value=[{"id": "1", "text": "hello", "author": {"userName": "someone"}}])
        refresh.apify = apify
        payload = {"creator_id": creator_id, "platform": "twitter", "url": "https://x.com/someone"}

        result = await refresh.fetch_content(job(FETCH_QUEUE, payload))

        assert result["created"] == 1
        assert content_table.rows[0]["platform"] == "twitter"
