"""
CreatorPulse - creator content ingestion, deduplication and relevancy scoring.

This package contains the core modules for the CreatorPulse pipeline:
- models: Canonical content, creator and snapshot models
- collectors: Feed fetcher, scrape provider clients and per-platform normalizers
- store: Idempotent content store and snapshot/creator repositories
- queue: Named job queues with dedup, retries and worker pools
- services: Snapshot poller, creator refresh and relevancy scoring
- scheduler: Periodic triggers and APScheduler wiring
- api: FastAPI application and endpoints
- config: Pydantic settings
"""

__version__ = "0.1.0"
