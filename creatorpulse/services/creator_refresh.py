"""Creator refresh: fan out per-creator fetches to the right strategy.

Feed-reachable platforms (rss, youtube, website) and the Apify platforms
(twitter, threads) are fetched synchronously in content-fetch jobs.
LinkedIn goes through the BrightData snapshot poller.
"""

import re
from typing import Any, Optional

import structlog

from creatorpulse.collectors.apify.client import ApifyScraperClient
from creatorpulse.collectors.normalization.pipeline import ContentNormalizer
from creatorpulse.collectors.rss.fetcher import FeedFetcher
from creatorpulse.core.exceptions import (
    ConfigurationError,
    PermanentError,
    TransientUpstreamError,
)
from creatorpulse.models.content import ContentInput, Platform
from creatorpulse.models.creator import Creator
from creatorpulse.queue import QueueJob, QueueName, QueueOrchestrator
from creatorpulse.services.snapshot_poller import SnapshotPoller
from creatorpulse.store.content_store import MAX_BATCH_SIZE, ContentStore
from creatorpulse.store.creator_store import CreatorStore

logger = structlog.get_logger(__name__)

CREATOR_QUEUE = QueueName.CREATOR_PROCESSING.value
FETCH_QUEUE = QueueName.CONTENT_FETCH.value

FEED_PLATFORMS = (Platform.RSS, Platform.YOUTUBE, Platform.WEBSITE)
APIFY_PLATFORMS = (Platform.TWITTER, Platform.THREADS)

YOUTUBE_FEED_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={channel_id}"
_YOUTUBE_CHANNEL = re.compile(r"youtube\.com/channel/(UC[\w-]+)")


def youtube_feed_url(url: str) -> Optional[str]:
    """Channel feed URL for a channel or feed URL; None for handle URLs."""
    if "feeds/videos.xml" in url:
        return url
    match = _YOUTUBE_CHANNEL.search(url)
    return YOUTUBE_FEED_URL.format(channel_id=match.group(1)) if match else None


def feed_item_as_page(item: dict[str, Any]) -> dict[str, Any]:
    """Reshape a feed entry into the web page payload shape."""
    content = item.get("content")
    if isinstance(content, list):
        content = "\n".join(part.get("value", "") for part in content if isinstance(part, dict))
    return {
        "url": item.get("link"),
        "title": item.get("title"),
        "description": item.get("summary"),
        "content": content or item.get("summary"),
        "published": item.get("published_parsed") or item.get("published"),
    }


class CreatorRefreshService:
    """
    Queues creators for refresh and runs their fetch jobs.

    Args:
        creators: Creator store
        contents: Content store
        orchestrator: Queue orchestrator
        fetcher: Feed fetcher
        normalizer: Content normalizer
        apify: Apify client, None when not configured
        poller: Snapshot poller, None when BrightData is not configured
        max_items: Items kept per fetch
    """

    def __init__(
        self,
        creators: CreatorStore,
        contents: ContentStore,
        orchestrator: QueueOrchestrator,
        fetcher: FeedFetcher,
        normalizer: ContentNormalizer,
        apify: Optional[ApifyScraperClient] = None,
        poller: Optional[SnapshotPoller] = None,
        max_items: int = 20,
    ):
        self.creators = creators
        self.contents = contents
        self.orchestrator = orchestrator
        self.fetcher = fetcher
        self.normalizer = normalizer
        self.apify = apify
        self.poller = poller
        self.max_items = max_items

    async def queue_due_creators(self, limit: Optional[int] = None) -> dict[str, int]:
        """Enqueue one creator-processing job per active creator."""
        creators = await self.creators.list_active(limit)
        queued = skipped = 0
        for creator in creators:
            handle = await self.orchestrator.enqueue(
                CREATOR_QUEUE, creator.id, {"creator_id": creator.id}
            )
            if handle.duplicate:
                skipped += 1
            else:
                queued += 1

        logger.info("creators_queued", found=len(creators), queued=queued, skipped=skipped)
        return {"found": len(creators), "queued": queued, "skipped": skipped}

    async def process_creator(self, job: QueueJob) -> dict[str, Any]:
        """creator-processing handler: fan a creator out into per-platform work."""
        creator_id = job.payload["creator_id"]
        creator = await self.creators.get(creator_id)
        if creator is None or not creator.is_active:
            logger.info("creator_skipped", creator_id=creator_id, found=creator is not None)
            return {"creator_id": creator_id, "skipped": True}

        fetch_jobs = 0
        snapshots: list[str] = []
        for creator_url in creator.urls:
            platform = creator_url.platform
            url = creator_url.normalized_url or creator_url.url

            if platform == Platform.LINKEDIN:
                snapshot_id = await self._submit_snapshot(creator, url)
                if snapshot_id:
                    snapshots.append(snapshot_id)
                continue

            handle = await self.orchestrator.enqueue(
                FETCH_QUEUE,
                f"{creator.id}:{platform.value}",
                {"creator_id": creator.id, "platform": platform.value, "url": url},
            )
            if not handle.duplicate:
                fetch_jobs += 1

        await self.creators.mark_fetched(creator.id)
        logger.info(
            "creator_fanned_out",
            creator_id=creator.id,
            fetch_jobs=fetch_jobs,
            snapshots=len(snapshots),
        )
        return {"creator_id": creator.id, "fetch_jobs": fetch_jobs, "snapshots": snapshots}

    async def _submit_snapshot(self, creator: Creator, url: str) -> Optional[str]:
        if self.poller is None:
            logger.warning("linkedin_skipped_brightdata_unconfigured", creator_id=creator.id)
            return None
        snapshot = await self.poller.submit(creator.id, [url])
        return snapshot.id

    async def fetch_content(self, job: QueueJob) -> dict[str, Any]:
        """content-fetch handler: fetch, normalize and store one creator URL."""
        creator_id = job.payload["creator_id"]
        platform = Platform(job.payload["platform"])
        url = job.payload["url"]
        log = logger.bind(creator_id=creator_id, platform=platform.value, url=url)

        raw_items, source_platform = await self._fetch_raw(platform, url)
        normalized, failures = self.normalizer.normalize_many(
            creator_id, source_platform, raw_items, url
        )
        summary = await self._store(normalized)
        summary["normalization_errors"] = len(failures)
        summary["items"] = len(raw_items)

        log.info("content_fetched", **summary)
        return summary

    async def _fetch_raw(self, platform: Platform, url: str) -> tuple[list[dict[str, Any]], Platform]:
        if platform in FEED_PLATFORMS:
            feed_url = url
            if platform == Platform.YOUTUBE:
                feed_url = youtube_feed_url(url)
                if feed_url is None:
                    raise ConfigurationError(
                        f"Cannot derive a channel feed from {url}", "creator_urls"
                    )

            result = await self.fetcher.fetch(feed_url, max_items=self.max_items)
            if not result.success:
                raise TransientUpstreamError(
                    f"Feed fetch failed: {result.error}",
                    {"url": feed_url},
                )
            if platform == Platform.WEBSITE:
                return [feed_item_as_page(item) for item in result.items], platform
            return result.items, platform

        if platform in APIFY_PLATFORMS:
            if self.apify is None:
                raise ConfigurationError("Apify API token not configured", "apify_api_token")
            if platform == Platform.TWITTER:
                return await self.apify.scrape_tweets([url], max_items=self.max_items), platform
            return await self.apify.scrape_threads([url], limit=self.max_items), platform

        raise PermanentError(f"Platform {platform.value} is not fetched synchronously")

    async def _store(self, items: list[ContentInput]) -> dict[str, Any]:
        created = updated = errors = 0
        for offset in range(0, len(items), MAX_BATCH_SIZE):
            result = await self.contents.store_many(items[offset : offset + MAX_BATCH_SIZE])
            created += result.created_count
            updated += result.updated_count
            errors += len(result.errors)
        return {"created": created, "updated": updated, "storage_errors": errors}
