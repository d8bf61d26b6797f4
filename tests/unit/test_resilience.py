"""Unit tests for the provider rate limiter and circuit breaker."""

import pytest

from creatorpulse.core.circuit_breaker import CircuitBreaker, CircuitState, get_circuit_breaker
from creatorpulse.core.exceptions import CircuitBreakerOpenError, PermanentError
from creatorpulse.core.rate_limiter import InMemoryRateLimiter, get_rate_limiter


class TestInMemoryRateLimiter:
    """Test the in-memory sliding window."""

    @pytest.mark.asyncio
    async def test_allows_requests_under_limit(self):
        limiter = InMemoryRateLimiter()

        for i in range(5):
            result = await limiter.is_allowed("brightdata", limit=10, window=60)
            assert result.allowed is True
            assert result.remaining == 10 - i - 1

    @pytest.mark.asyncio
    async def test_blocks_requests_over_limit(self):
        limiter = InMemoryRateLimiter()
        for _ in range(5):
            await limiter.is_allowed("brightdata", limit=5, window=60)

        result = await limiter.is_allowed("brightdata", limit=5, window=60)

        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after is not None
        assert result.retry_after > 0

    @pytest.mark.asyncio
    async def test_identifiers_are_independent(self):
        limiter = InMemoryRateLimiter()
        await limiter.is_allowed("brightdata", limit=1, window=60)

        assert (await limiter.is_allowed("apify", limit=1, window=60)).allowed is True

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = InMemoryRateLimiter()
        await limiter.is_allowed("brightdata", limit=1, window=60)

        await limiter.reset("brightdata")

        assert (await limiter.is_allowed("brightdata", limit=1, window=60)).allowed is True

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_without_redis(self, settings):
        limiter = await get_rate_limiter(settings)

        assert isinstance(limiter, InMemoryRateLimiter)
        assert await get_rate_limiter(settings) is limiter


class TestCircuitBreaker:
    """Test circuit state transitions."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker("test", failure_threshold=3)

        for _ in range(3):
            await breaker.record_failure()

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            breaker.ensure_closed()

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker("test", failure_threshold=2)
        await breaker.record_failure()
        await breaker.record_success()
        await breaker.record_failure()

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=0.0, success_threshold=1)
        await breaker.record_failure()

        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_decorator_ignores_permanent_errors(self):
        """Bad requests are the caller's fault and never trip the breaker."""
        breaker = CircuitBreaker("test", failure_threshold=1)

        @breaker
        async def call():
            raise PermanentError("bad request")

        with pytest.raises(PermanentError):
            await call()
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_decorator_counts_failures(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=60.0)

        @breaker
        async def call():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await call()
        with pytest.raises(CircuitBreakerOpenError):
            await call()

    def test_registry_returns_same_breaker(self):
        assert get_circuit_breaker("brightdata") is get_circuit_breaker("brightdata")
