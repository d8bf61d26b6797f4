"""Feed fetcher for RSS and Atom sources.

One GET with a hard timeout, parsed with feedparser. Failures of the whole
feed come back as success=False with the error; retrying is the queue's
job, not the fetcher's.
"""

from typing import Any, Optional

import feedparser
import httpx
import structlog
from pydantic import BaseModel, Field

from creatorpulse.monitoring.metrics import track_collector_operation

logger = structlog.get_logger(__name__)

USER_AGENT = "CreatorPulse/0.1 (+feed fetcher)"

ENTRY_FIELDS = (
    "title",
    "link",
    "guid",
    "id",
    "published",
    "published_parsed",
    "updated",
    "updated_parsed",
    "summary",
    "content",
    "author",
    "enclosures",
    "media_thumbnail",
    "yt_videoid",
    "media_statistics",
)


class FeedFetchResult(BaseModel):
    """Outcome of one feed fetch."""

    feed_url: str
    success: bool
    items: list[dict[str, Any]] = Field(default_factory=list)
    error: Optional[str] = None
    feed_title: Optional[str] = None
    skipped_entries: int = 0


def _entry_to_item(entry: Any) -> dict[str, Any]:
    item = {field: entry.get(field) for field in ENTRY_FIELDS if entry.get(field) is not None}
    # feedparser exposes the raw guid as id
    if "guid" not in item and "id" in item:
        item["guid"] = item["id"]
    if "enclosures" in item:
        item["enclosures"] = [dict(enclosure) for enclosure in item["enclosures"]]
    if "content" in item:
        item["content"] = [dict(part) for part in item["content"]]
    return item


class FeedFetcher:
    """Fetches and parses syndicated feeds.

    Example:
        fetcher = FeedFetcher(timeout=30.0)
        result = await fetcher.fetch("https://example.com/feed.xml", max_items=20)
        if result.success:
            for item in result.items:
                ...
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_items: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._timeout = timeout
        self._max_items = max_items
        self._client = client

    async def _get(self, url: str, timeout: float) -> httpx.Response:
        headers = {
            "User-Agent": USER_AGENT,
            "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
        }
        if self._client is not None:
            return await self._client.get(url, headers=headers, timeout=timeout)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await client.get(url, headers=headers, timeout=timeout)

    async def fetch(
        self,
        url: str,
        max_items: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> FeedFetchResult:
        """
        Fetch a feed and return its entries as plain dicts.

        Args:
            url: Feed URL
            max_items: Keep at most this many entries
            timeout: Override the default timeout in seconds

        Returns:
            FeedFetchResult; never raises for network or parse failures
        """
        max_items = max_items or self._max_items
        timeout = timeout or self._timeout

        try:
            with track_collector_operation("rss", "fetch"):
                response = await self._get(url, timeout)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("feed_fetch_timeout", feed_url=url, timeout=timeout)
            return FeedFetchResult(feed_url=url, success=False, error=f"Timeout: {e}")
        except httpx.HTTPStatusError as e:
            logger.warning("feed_fetch_http_error", feed_url=url, status_code=e.response.status_code)
            return FeedFetchResult(
                feed_url=url,
                success=False,
                error=f"HTTP {e.response.status_code}",
            )
        except httpx.HTTPError as e:
            logger.warning("feed_fetch_failed", feed_url=url, error=str(e))
            return FeedFetchResult(feed_url=url, success=False, error=str(e))

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            error = str(parsed.get("bozo_exception") or "Not a valid feed")
            logger.warning("feed_parse_failed", feed_url=url, error=error)
            return FeedFetchResult(feed_url=url, success=False, error=error)

        items: list[dict[str, Any]] = []
        skipped = 0
        for entry in parsed.entries:
            if max_items and len(items) >= max_items:
                break
            try:
                items.append(_entry_to_item(entry))
            except (AttributeError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning("feed_entry_skipped", feed_url=url, error=str(e))

        feed_title = parsed.feed.get("title") if parsed.get("feed") else None
        logger.info(
            "feed_fetched",
            feed_url=url,
            items=len(items),
            skipped=skipped,
            bozo=bool(parsed.bozo),
        )
        return FeedFetchResult(
            feed_url=url,
            success=True,
            items=items,
            feed_title=feed_title,
            skipped_entries=skipped,
        )
