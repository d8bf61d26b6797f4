"""Apify actor scraping for Twitter and Threads.

Provides ApifyScraperClient and the tweet/thread normalizers.
"""

from creatorpulse.collectors.apify.client import ApifyScraperClient

__all__ = ["ApifyScraperClient"]
