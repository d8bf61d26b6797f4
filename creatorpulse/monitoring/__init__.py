"""
Monitoring and observability for CreatorPulse.

Provides Prometheus metrics for queue throughput, content upserts,
snapshot transitions and provider health.
"""

from creatorpulse.monitoring.metrics import (
    CIRCUIT_BREAKER_STATE,
    CONTENT_UPSERTS,
    JOB_ATTEMPTS,
    SNAPSHOT_TRANSITIONS,
    get_metrics_app,
    record_content_upsert,
    record_job_outcome,
    record_snapshot_transition,
    track_collector_operation,
    track_job_execution,
)

__all__ = [
    "CIRCUIT_BREAKER_STATE",
    "CONTENT_UPSERTS",
    "JOB_ATTEMPTS",
    "SNAPSHOT_TRANSITIONS",
    "get_metrics_app",
    "record_content_upsert",
    "record_job_outcome",
    "record_snapshot_transition",
    "track_collector_operation",
    "track_job_execution",
]
