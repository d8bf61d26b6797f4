"""
Prometheus metrics for CreatorPulse observability.

Usage:
    from creatorpulse.monitoring.metrics import track_job_execution

    with track_job_execution("brightdata-processing"):
        await handler(job)

    # Or manually
    CONTENT_UPSERTS.labels(platform="rss", outcome="created").inc()
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route


# =============================================================================
# Metric Definitions
# =============================================================================

# Queue metrics
JOB_DURATION = Histogram(
    "creatorpulse_job_duration_seconds",
    "Duration of a single job attempt in seconds",
    ["queue"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

JOB_ATTEMPTS = Counter(
    "creatorpulse_job_attempts_total",
    "Job attempts by outcome (completed, retried, failed)",
    ["queue", "outcome"],
)

JOBS_ENQUEUED = Counter(
    "creatorpulse_jobs_enqueued_total",
    "Enqueue calls by result (added, duplicate)",
    ["queue", "result"],
)

# Content metrics
CONTENT_UPSERTS = Counter(
    "creatorpulse_content_upserts_total",
    "Content upserts by outcome (created, updated, error)",
    ["platform", "outcome"],
)

NORMALIZATION_FAILURES = Counter(
    "creatorpulse_normalization_failures_total",
    "Raw items rejected by the normalizer",
    ["platform"],
)

# Snapshot metrics
SNAPSHOT_TRANSITIONS = Counter(
    "creatorpulse_snapshot_transitions_total",
    "Snapshot status transitions",
    ["status"],
)

# Relevancy metrics
RELEVANCY_SCORED = Counter(
    "creatorpulse_relevancy_scored_total",
    "Relevancy judgments by status (scored, error)",
    ["status"],
)

# Circuit breaker metrics
CIRCUIT_BREAKER_STATE = Gauge(
    "creatorpulse_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

CIRCUIT_BREAKER_FAILURES = Counter(
    "creatorpulse_circuit_breaker_failures_total",
    "Total failures recorded by circuit breakers",
    ["service"],
)

# Collector metrics
COLLECTOR_OPERATIONS = Counter(
    "creatorpulse_collector_operations_total",
    "Total collector operations",
    ["collector", "operation", "status"],
)

COLLECTOR_LATENCY = Histogram(
    "creatorpulse_collector_latency_seconds",
    "Latency of collector operations",
    ["collector", "operation"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

RATE_LIMIT_HITS = Counter(
    "creatorpulse_rate_limit_hits_total",
    "Outbound requests deferred by the rate limiter",
    ["identifier"],
)


# =============================================================================
# Tracking Context Managers
# =============================================================================


@contextmanager
def track_job_execution(queue: str) -> Generator[None, None, None]:
    """
    Context manager to track job attempt duration.

    Usage:
        with track_job_execution("content-fetch"):
            await handler(job)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        JOB_DURATION.labels(queue=queue).observe(time.perf_counter() - start_time)


@contextmanager
def track_collector_operation(
    collector: str,
    operation: str,
) -> Generator[None, None, None]:
    """
    Context manager to track collector operations.

    Usage:
        with track_collector_operation("brightdata", "download_snapshot"):
            items = await client.download_snapshot(snapshot_id)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        duration = time.perf_counter() - start_time
        COLLECTOR_OPERATIONS.labels(
            collector=collector,
            operation=operation,
            status=status,
        ).inc()
        COLLECTOR_LATENCY.labels(
            collector=collector,
            operation=operation,
        ).observe(duration)


def record_job_outcome(queue: str, outcome: str) -> None:
    """Record a job attempt outcome ("completed", "retried", "failed")."""
    JOB_ATTEMPTS.labels(queue=queue, outcome=outcome).inc()


def record_enqueue(queue: str, duplicate: bool) -> None:
    JOBS_ENQUEUED.labels(queue=queue, result="duplicate" if duplicate else "added").inc()


def record_content_upsert(platform: str, outcome: str) -> None:
    CONTENT_UPSERTS.labels(platform=platform, outcome=outcome).inc()


def record_normalization_failure(platform: str) -> None:
    NORMALIZATION_FAILURES.labels(platform=platform).inc()


def record_snapshot_transition(status: str) -> None:
    SNAPSHOT_TRANSITIONS.labels(status=status).inc()


def record_relevancy_result(status: str) -> None:
    RELEVANCY_SCORED.labels(status=status).inc()


def record_rate_limit_hit(identifier: str) -> None:
    RATE_LIMIT_HITS.labels(identifier=identifier).inc()


def update_circuit_breaker_state(service: str, state: str) -> None:
    """
    Update circuit breaker state gauge.

    Args:
        service: Service name
        state: Circuit state ("closed", "half_open", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    CIRCUIT_BREAKER_STATE.labels(service=service).set(state_map.get(state, 0))


def record_circuit_breaker_failure(service: str) -> None:
    """Record a circuit breaker failure."""
    CIRCUIT_BREAKER_FAILURES.labels(service=service).inc()


# =============================================================================
# Metrics Endpoint
# =============================================================================


async def metrics_endpoint(request) -> Response:
    """Prometheus metrics endpoint handler."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_metrics_app() -> Starlette:
    """
    Get a Starlette app for serving metrics.

    Mount this at /metrics in the main app:
        app.mount("/metrics", get_metrics_app())
    """
    return Starlette(
        routes=[
            Route("/", metrics_endpoint),
        ]
    )
