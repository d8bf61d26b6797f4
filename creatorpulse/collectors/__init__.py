"""
Content Source Integrations.

- rss: Synchronous syndication feed fetcher and RSS/Atom normalizer
- brightdata: Snapshot-based scrape provider client (LinkedIn)
- apify: Synchronous actor-based scraping (Twitter, Threads)
- youtube, website: Normalizers for video and web page payloads
- normalization: Platform-keyed normalization pipeline

Every collector produces raw payloads; only the normalization pipeline
turns them into ContentInput records.
"""
