"""Syndication feed fetching and RSS/Atom entry normalization."""

from creatorpulse.collectors.rss.fetcher import FeedFetcher, FeedFetchResult

__all__ = ["FeedFetcher", "FeedFetchResult"]
