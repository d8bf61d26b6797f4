"""
Pipeline services.

- snapshot_poller: scrape-job submission and snapshot polling
- creator_refresh: per-creator fan-out and synchronous fetch jobs
- relevancy: relevancy scoring batch processor
"""
