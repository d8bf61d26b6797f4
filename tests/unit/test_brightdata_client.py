"""Unit tests for the BrightData client."""

import json

import httpx
import pytest

from creatorpulse.collectors.brightdata import BrightDataClient
from creatorpulse.config.settings import Settings
from creatorpulse.core.circuit_breaker import CircuitBreaker
from creatorpulse.core.exceptions import (
    CollectorAuthError,
    CollectorRateLimitError,
    ConfigurationError,
    PermanentError,
    PermanentUpstreamError,
    RetryableError,
)
from creatorpulse.core.rate_limiter import InMemoryRateLimiter
from creatorpulse.models.snapshot import ProviderStatus

BASE_URL = "https://api.brightdata.test"


@pytest.fixture
def bd_settings() -> Settings:
    return Settings(
        _env_file=None,
        brightdata_api_key="test-key",
        brightdata_base_url=BASE_URL,
        brightdata_rate_limit=100,
    )


def make_client(settings: Settings, handler, **kwargs) -> BrightDataClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BrightDataClient(
        settings=settings,
        http_client=http_client,
        circuit_breaker=CircuitBreaker("brightdata-test"),
        retry_attempts=1,
        **kwargs,
    )


class TestConfiguration:
    def test_missing_key_raises(self):
        with pytest.raises(ConfigurationError):
            BrightDataClient(settings=Settings(_env_file=None))


class TestTrigger:
    """Test collection triggering."""

    @pytest.mark.asyncio
    async def test_returns_snapshot_id(self, bd_settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = request.url
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"snapshot_id": "s_abc"})

        client = make_client(bd_settings, handler)
        snapshot_id = await client.trigger_collection(["https://www.linkedin.com/in/a"])

        assert snapshot_id == "s_abc"
        assert captured["url"].path == "/datasets/v3/trigger"
        assert captured["url"].params["discover_by"] == "profile_url"
        assert captured["auth"] == "Bearer test-key"
        assert captured["body"][0]["url"] == "https://www.linkedin.com/in/a"

    @pytest.mark.asyncio
    async def test_missing_snapshot_id_is_permanent(self, bd_settings):
        client = make_client(bd_settings, lambda request: httpx.Response(200, json={}))

        with pytest.raises(PermanentUpstreamError):
            await client.trigger_collection(["https://www.linkedin.com/in/a"])


class TestProgress:
    """Test snapshot progress mapping."""

    @pytest.mark.asyncio
    async def test_running_is_pending(self, bd_settings):
        client = make_client(
            bd_settings, lambda request: httpx.Response(200, json={"Status": "running"})
        )

        progress = await client.get_snapshot_progress("s_1")

        assert progress.status == ProviderStatus.PENDING

    @pytest.mark.asyncio
    async def test_ready_with_size(self, bd_settings):
        client = make_client(
            bd_settings,
            lambda request: httpx.Response(200, json={"Status": "ready", "Dataset_size": 4}),
        )

        progress = await client.get_snapshot_progress("s_1")

        assert progress.status == ProviderStatus.READY
        assert progress.result_count == 4

    @pytest.mark.asyncio
    async def test_not_found_means_empty(self, bd_settings):
        """A 404 from the log endpoint is a ready snapshot with zero records."""
        client = make_client(bd_settings, lambda request: httpx.Response(404))

        progress = await client.get_snapshot_progress("s_1")

        assert progress.status == ProviderStatus.READY
        assert progress.result_count == 0

    @pytest.mark.asyncio
    async def test_failed_status(self, bd_settings):
        client = make_client(
            bd_settings,
            lambda request: httpx.Response(200, json={"Status": "failed", "error": "blocked"}),
        )

        progress = await client.get_snapshot_progress("s_1")

        assert progress.status == ProviderStatus.FAILED
        assert progress.error == "blocked"


class TestDownload:
    @pytest.mark.asyncio
    async def test_returns_items(self, bd_settings):
        client = make_client(
            bd_settings,
            lambda request: httpx.Response(200, json=[{"id": "1"}, {"id": "2"}, "junk"]),
        )

        items = await client.download_snapshot("s_1")

        assert items == [{"id": "1"}, {"id": "2"}]

    @pytest.mark.asyncio
    async def test_bad_request_means_empty(self, bd_settings):
        client = make_client(bd_settings, lambda request: httpx.Response(400))

        assert await client.download_snapshot("s_1") == []


class TestErrorMapping:
    """Test HTTP failures map to retryable or permanent errors."""

    @pytest.mark.asyncio
    async def test_unauthorized_is_permanent(self, bd_settings):
        client = make_client(bd_settings, lambda request: httpx.Response(401))

        with pytest.raises(CollectorAuthError) as exc_info:
            await client.get_snapshot_progress("s_1")
        assert isinstance(exc_info.value, PermanentError)

    @pytest.mark.asyncio
    async def test_rate_limited_is_retryable(self, bd_settings):
        client = make_client(
            bd_settings, lambda request: httpx.Response(429, headers={"Retry-After": "30"})
        )

        with pytest.raises(CollectorRateLimitError) as exc_info:
            await client.get_snapshot_progress("s_1")
        assert isinstance(exc_info.value, RetryableError)
        assert exc_info.value.retry_after == 30.0

    @pytest.mark.asyncio
    async def test_local_rate_limit(self):
        """The shared limiter defers calls past the configured budget."""
        settings = Settings(
            _env_file=None,
            brightdata_api_key="test-key",
            brightdata_base_url=BASE_URL,
            brightdata_rate_limit=1,
        )
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"Status": "running"})

        client = make_client(settings, handler, rate_limiter=InMemoryRateLimiter())
        await client.get_snapshot_progress("s_1")

        with pytest.raises(CollectorRateLimitError):
            await client.get_snapshot_progress("s_1")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_after_failures(self, bd_settings):
        breaker = CircuitBreaker("brightdata-breaker-test", failure_threshold=2)
        http_client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503))
        )
        client = BrightDataClient(
            settings=bd_settings,
            http_client=http_client,
            circuit_breaker=breaker,
            retry_attempts=1,
        )

        for _ in range(2):
            with pytest.raises(RetryableError):
                await client.get_snapshot_progress("s_1")

        assert breaker.is_open
        with pytest.raises(RetryableError, match="Circuit breaker open"):
            await client.get_snapshot_progress("s_1")
