"""BrightData datasets v3 client.

Scrapes are asynchronous at the provider: trigger_collection returns a
snapshot id, get_snapshot_progress reports when it is ready, and
download_snapshot fetches the items.

API Reference: https://docs.brightdata.com/scraping-automation/web-scraper-api/overview
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from creatorpulse.config.settings import Settings, get_settings
from creatorpulse.core.circuit_breaker import CircuitBreaker, get_circuit_breaker
from creatorpulse.core.exceptions import (
    CollectorAuthError,
    CollectorError,
    CollectorRateLimitError,
    CollectorTimeoutError,
    CollectorUnavailableError,
    ConfigurationError,
    PermanentUpstreamError,
)
from creatorpulse.core.rate_limiter import InMemoryRateLimiter, RateLimiter
from creatorpulse.models.snapshot import ProviderStatus, SnapshotProgress
from creatorpulse.monitoring.metrics import record_rate_limit_hit, track_collector_operation

logger = structlog.get_logger(__name__)

COLLECTOR = "brightdata"

# Provider status -> our view of it
PROVIDER_STATUS_MAP = {
    "ready": ProviderStatus.READY,
    "running": ProviderStatus.PENDING,
    "building": ProviderStatus.PENDING,
    "collecting": ProviderStatus.PENDING,
    "digesting": ProviderStatus.PENDING,
    "starting": ProviderStatus.PENDING,
    "failed": ProviderStatus.FAILED,
}


class BrightDataClient:
    """Async client for the BrightData datasets API.

    Outbound calls go through the shared rate limiter and a circuit
    breaker. Transport failures are retried a few times with jittered
    backoff; everything else surfaces to the caller, which leaves
    longer-term retries to the job queue.

    Example:
        async with BrightDataClient() as client:
            snapshot_id = await client.trigger_collection(["https://www.linkedin.com/in/someone"])
            progress = await client.get_snapshot_progress(snapshot_id)
            if progress.status == ProviderStatus.READY:
                items = await client.download_snapshot(snapshot_id)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_initial_wait: float = 1.0,
    ):
        """Initialize the client.

        Args:
            api_key: BrightData API key. If not provided, loads from settings.
            settings: Application settings.
            rate_limiter: Shared limiter; defaults to an in-process one.
            circuit_breaker: Breaker guarding the provider.
            http_client: Pre-built httpx client (tests inject a MockTransport).
            timeout: Request timeout in seconds.
            retry_attempts: Transport-level attempts per request.
            retry_initial_wait: First backoff between transport retries.

        Raises:
            ConfigurationError: If no API key is configured.
        """
        self._settings = settings or get_settings()
        self._api_key = api_key or (
            self._settings.brightdata_api_key.get_secret_value()
            if self._settings.brightdata_api_key
            else None
        )
        if not self._api_key:
            raise ConfigurationError("BrightData API key not configured", "brightdata_api_key")

        self._base_url = self._settings.brightdata_base_url.rstrip("/")
        self._dataset_id = self._settings.brightdata_dataset_id
        self._rate_limiter = rate_limiter or InMemoryRateLimiter()
        self._breaker = circuit_breaker or get_circuit_breaker(
            COLLECTOR, failure_threshold=5, recovery_timeout=60
        )
        self._timeout = timeout
        self._retry_attempts = retry_attempts
        self._retry_initial_wait = retry_initial_wait
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "BrightDataClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def _acquire(self, endpoint: str) -> None:
        result = await self._rate_limiter.is_allowed(
            COLLECTOR,
            self._settings.brightdata_rate_limit,
            self._settings.brightdata_rate_window_seconds,
        )
        if not result.allowed:
            record_rate_limit_hit(COLLECTOR)
            logger.warning(
                "brightdata_rate_limit_deferred",
                endpoint=endpoint,
                retry_after=result.retry_after,
            )
            raise CollectorRateLimitError(
                COLLECTOR,
                "Outbound rate limit reached",
                {"endpoint": endpoint},
                retry_after=result.retry_after,
            )

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json_data: Any = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Make an API request with rate limiting, circuit breaker, and retries.

        Responses whose status is in allow_status are returned as-is so the
        caller can interpret them.

        Raises:
            CollectorUnavailableError: When the circuit is open, or on 5xx
                and transport errors.
            CollectorRateLimitError: When rate limited locally or by the API.
            CollectorAuthError: On 401/403 (revoked key, suspended account).
            CollectorTimeoutError: On request timeout.
            CollectorError: On other API errors.
        """
        if not self._breaker.can_execute():
            recovery_time = self._breaker.time_until_recovery()
            logger.warning(
                "brightdata_circuit_open",
                recovery_time=recovery_time,
                endpoint=endpoint,
            )
            raise CollectorUnavailableError(
                COLLECTOR,
                f"Circuit breaker open. Recovery in {recovery_time:.1f}s",
                {"endpoint": endpoint, "recovery_time": recovery_time},
            )

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type((CollectorTimeoutError, CollectorUnavailableError)),
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential_jitter(initial=self._retry_initial_wait, max=30),
            reraise=True,
        ):
            with attempt:
                await self._acquire(endpoint)
                return await self._send(method, endpoint, params, json_data, allow_status)

        raise CollectorError(COLLECTOR, "Retries exhausted", {"endpoint": endpoint})

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]],
        json_data: Any,
        allow_status: tuple[int, ...],
    ) -> httpx.Response:
        client = await self._ensure_client()
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = await client.request(
                method,
                f"{self._base_url}{endpoint}",
                params=params,
                json=json_data,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            await self._breaker.record_failure()
            logger.error("brightdata_timeout", endpoint=endpoint, error=str(e))
            raise CollectorTimeoutError(
                COLLECTOR,
                f"Request timeout: {e}",
                {"endpoint": endpoint},
            ) from e
        except httpx.RequestError as e:
            await self._breaker.record_failure()
            logger.error("brightdata_request_error", endpoint=endpoint, error=str(e))
            raise CollectorUnavailableError(
                COLLECTOR,
                f"Request failed: {e}",
                {"endpoint": endpoint},
            ) from e

        status = response.status_code
        if status in allow_status or status < 400:
            await self._breaker.record_success()
            return response

        if status in (401, 403):
            await self._breaker.record_failure()
            logger.error("brightdata_auth_rejected", endpoint=endpoint, status_code=status)
            raise CollectorAuthError(
                COLLECTOR,
                "API key rejected or account suspended",
                {"endpoint": endpoint, "status_code": status},
            )
        if status == 429:
            await self._breaker.record_failure()
            retry_after = response.headers.get("Retry-After")
            logger.warning("brightdata_rate_limited", endpoint=endpoint, retry_after=retry_after)
            raise CollectorRateLimitError(
                COLLECTOR,
                "Rate limited by BrightData",
                {"endpoint": endpoint},
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if status >= 500:
            await self._breaker.record_failure()
            logger.error("brightdata_server_error", endpoint=endpoint, status_code=status)
            raise CollectorUnavailableError(
                COLLECTOR,
                f"Server error {status}",
                {"endpoint": endpoint, "status_code": status},
            )

        logger.error(
            "brightdata_api_error",
            endpoint=endpoint,
            status_code=status,
            body=response.text[:500],
        )
        raise CollectorError(
            COLLECTOR,
            f"API error {status}",
            {"endpoint": endpoint, "status_code": status},
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def trigger_collection(
        self,
        urls: list[str],
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit_per_input: Optional[int] = None,
    ) -> str:
        """
        Trigger a discover-by-profile collection.

        Args:
            urls: Profile URLs to scrape
            start_date: Window start (default: lookback hours ago)
            end_date: Window end (default: now)
            limit_per_input: Max posts per profile

        Returns:
            Provider-assigned snapshot id
        """
        end_date = end_date or datetime.now(timezone.utc)
        start_date = start_date or end_date - timedelta(
            hours=self._settings.brightdata_lookback_hours
        )
        params = {
            "dataset_id": self._dataset_id,
            "include_errors": "true",
            "type": "discover_new",
            "discover_by": "profile_url",
            "limit_per_input": str(limit_per_input or self._settings.brightdata_limit_per_input),
        }
        body = [
            {"url": url, "start_date": start_date.isoformat(), "end_date": end_date.isoformat()}
            for url in urls
        ]

        with track_collector_operation(COLLECTOR, "trigger_collection"):
            response = await self._request(
                "POST", "/datasets/v3/trigger", params=params, json_data=body
            )

        snapshot_id = (response.json() or {}).get("snapshot_id")
        if not snapshot_id:
            raise PermanentUpstreamError(
                "BrightData trigger returned no snapshot id",
                {"urls": urls},
            )
        logger.info("brightdata_collection_triggered", snapshot_id=snapshot_id, urls=len(urls))
        return snapshot_id

    async def get_snapshot_progress(self, snapshot_id: str) -> SnapshotProgress:
        """
        Read snapshot progress from the log endpoint.

        A 404 means the provider has nothing for this snapshot, which it
        does for snapshots with zero records; that maps to ready with
        result_count=0.
        """
        with track_collector_operation(COLLECTOR, "get_snapshot_progress"):
            response = await self._request(
                "GET", f"/datasets/v3/log/{snapshot_id}", allow_status=(404,)
            )

        if response.status_code == 404:
            logger.info("brightdata_snapshot_not_found_as_empty", snapshot_id=snapshot_id)
            return SnapshotProgress(
                id=snapshot_id,
                status=ProviderStatus.READY,
                result_count=0,
                error="Snapshot not found - empty dataset (0 records)",
            )

        data = response.json() or {}
        raw_status = str(data.get("Status") or data.get("status") or "running").lower()
        status = PROVIDER_STATUS_MAP.get(raw_status, ProviderStatus.PENDING)

        return SnapshotProgress(
            id=data.get("id") or snapshot_id,
            status=status,
            result_count=int(data.get("Dataset_size") or data.get("dataset_size") or 0),
            dataset_size_bytes=int(data.get("file_size") or 0),
            cost=data.get("cost"),
            error=data.get("error"),
            raw=data,
        )

    async def download_snapshot(self, snapshot_id: str) -> list[dict[str, Any]]:
        """Download snapshot items. A 400 means an empty snapshot and yields []."""
        with track_collector_operation(COLLECTOR, "download_snapshot"):
            response = await self._request(
                "GET",
                f"/datasets/v3/snapshot/{snapshot_id}",
                params={"format": "json"},
                allow_status=(400,),
            )

        if response.status_code == 400:
            logger.info("brightdata_snapshot_empty", snapshot_id=snapshot_id)
            return []

        data = response.json() if response.content else []
        if isinstance(data, dict):
            # Still building: the API answers with a status object instead of items
            if data.get("status") in ("running", "building"):
                return []
            data = data.get("data") or []
        items = [item for item in data if isinstance(item, dict)]
        logger.info("brightdata_snapshot_downloaded", snapshot_id=snapshot_id, items=len(items))
        return items
