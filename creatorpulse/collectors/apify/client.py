"""Apify client wrapper for Twitter and Threads scrapers.

Apify actors run to completion on each call, so unlike BrightData these
platforms are fetched synchronously: one call returns the items.
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from apify_client import ApifyClient
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from creatorpulse.config.settings import Settings, get_settings
from creatorpulse.core.exceptions import CollectorUnavailableError, ConfigurationError
from creatorpulse.monitoring.metrics import track_collector_operation

logger = structlog.get_logger(__name__)

_TWITTER_HANDLE = re.compile(r"(?:x\.com|twitter\.com)/@?(\w+)", re.IGNORECASE)
_THREADS_HANDLE = re.compile(r"threads\.(?:net|com)/@?([\w.]+)", re.IGNORECASE)


def twitter_search_term(url_or_term: str, since: datetime) -> str:
    """Build a search term for one account, excluding replies and pure retweets.

    Quote tweets still come through.
    """
    if "from:" in url_or_term:
        term = url_or_term
    else:
        match = _TWITTER_HANDLE.search(url_or_term)
        if not match:
            return url_or_term
        term = f"from:{match.group(1)}"
    for flag in ("-filter:replies", "-filter:retweets"):
        if flag not in term:
            term = f"{term} {flag}"
    if "since:" not in term:
        term = f"{term} since:{since.strftime('%Y-%m-%d')}"
    return term


def threads_handle(url_or_username: str) -> str:
    match = _THREADS_HANDLE.search(url_or_username)
    username = match.group(1) if match else url_or_username
    return f"@{username.lstrip('@').strip('/')}"


class ApifyScraperClient:
    """Wrapper around Apify social scrapers with retry logic.

    Example:
        client = ApifyScraperClient()
        tweets = await client.scrape_tweets(["https://x.com/someone"], max_items=5)
        posts = await client.scrape_threads(["@someone"], limit=25)
    """

    TWEET_SCRAPER = "apidojo/tweet-scraper"
    THREADS_SCRAPER = "curious_coder/threads-scraper"

    def __init__(
        self,
        api_token: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[ApifyClient] = None,
    ):
        """Initialize the Apify client.

        Args:
            api_token: Apify API token. If None, reads from settings.
            settings: Application settings.
            client: Pre-built ApifyClient (tests pass a mock).

        Raises:
            ConfigurationError: If no API token is configured.
        """
        if client is None:
            settings = settings or get_settings()
            token = api_token or (
                settings.apify_api_token.get_secret_value() if settings.apify_api_token else None
            )
            if not token:
                raise ConfigurationError("Apify API token not configured", "apify_api_token")
            client = ApifyClient(token)
        self.client = client

    def _run_actor_sync(self, actor_id: str, run_input: dict) -> list[dict[str, Any]]:
        """Run an actor and return its dataset items.

        Note: Apify client is synchronous; callers wrap it for async use.
        """
        run = self.client.actor(actor_id).call(run_input=run_input, memory_mbytes=1024, timeout_secs=300)
        if not run or not run.get("defaultDatasetId"):
            raise CollectorUnavailableError(
                "apify",
                f"Actor {actor_id} returned no dataset",
                {"actor": actor_id},
            )
        return list(self.client.dataset(run["defaultDatasetId"]).iterate_items())

    async def _run_actor(self, actor_id: str, run_input: dict) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run_actor_sync, actor_id, run_input)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=2, max=60),
        retry=retry_if_exception_type(CollectorUnavailableError),
        reraise=True,
    )
    async def scrape_tweets(
        self,
        urls: list[str],
        max_items: int = 5,
        since: Optional[datetime] = None,
    ) -> list[dict[str, Any]]:
        """Scrape recent tweets for profile URLs or search terms.

        Args:
            urls: Profile URLs (x.com / twitter.com) or "from:" search terms
            max_items: Maximum tweets to return
            since: Oldest tweet date (default: 60 days ago)

        Returns:
            Raw tweet dictionaries
        """
        since = since or datetime.now(timezone.utc) - timedelta(days=60)
        run_input = {
            "searchTerms": [twitter_search_term(url, since) for url in urls],
            "maxItems": max_items,
            "sort": "Latest",
        }
        logger.info("apify_scraping_tweets", urls=len(urls), max_items=max_items)

        with track_collector_operation("apify", "scrape_tweets"):
            return await self._run_actor(self.TWEET_SCRAPER, run_input)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=2, max=60),
        retry=retry_if_exception_type(CollectorUnavailableError),
        reraise=True,
    )
    async def scrape_threads(self, usernames: list[str], limit: int = 25) -> list[dict[str, Any]]:
        """Scrape Threads posts for usernames or profile URLs.

        Args:
            usernames: Threads usernames or profile URLs
            limit: Posts per account

        Returns:
            Raw post dictionaries
        """
        run_input = {
            "urls": [threads_handle(username) for username in usernames],
            "postsPerSource": limit,
        }
        logger.info("apify_scraping_threads", accounts=len(usernames), limit=limit)

        with track_collector_operation("apify", "scrape_threads"):
            return await self._run_actor(self.THREADS_SCRAPER, run_input)
