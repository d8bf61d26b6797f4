"""Outbound request pacing with Redis and in-memory implementations.

The counter is best-effort pacing, not a correctness boundary: entries expire
on their own and losing them on restart only means a short burst.

Usage:
    limiter = await get_rate_limiter(settings)
    result = await limiter.is_allowed("brightdata", limit=5, window=60)
    if not result.allowed:
        raise CollectorRateLimitError("brightdata", "Rate limited", retry_after=result.retry_after)
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import structlog

from creatorpulse.config.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float
    retry_after: Optional[float] = None


class RateLimiter(Protocol):
    """Protocol for rate limiter implementations."""

    async def is_allowed(
        self, identifier: str, limit: int, window: int
    ) -> RateLimitResult: ...

    async def reset(self, identifier: str) -> None: ...


@dataclass
class InMemoryRateLimiter:
    """
    Sliding-window limiter kept in process memory.

    Used when Redis is not configured. State is not shared between
    worker processes.
    """

    _buckets: dict[str, list[float]] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def is_allowed(
        self,
        identifier: str,
        limit: int,
        window: int,
    ) -> RateLimitResult:
        """Record a request if the window has room for it."""
        async with self._lock:
            now = time.time()
            bucket = [
                t for t in self._buckets.get(identifier, []) if t > now - window
            ]
            self._buckets[identifier] = bucket

            reset_at = (bucket[0] + window) if bucket else now + window

            if len(bucket) >= limit:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=reset_at - now,
                )

            bucket.append(now)
            return RateLimitResult(
                allowed=True,
                remaining=limit - len(bucket),
                reset_at=reset_at,
            )

    async def reset(self, identifier: str) -> None:
        async with self._lock:
            self._buckets.pop(identifier, None)


_rate_limiter: Optional[RateLimiter] = None


async def get_rate_limiter(settings: Optional[Settings] = None) -> RateLimiter:
    """
    Get or create the process-wide rate limiter.

    Uses Redis when configured, falls back to in-memory otherwise or when
    Redis cannot be reached.

    Args:
        settings: Application settings (uses get_settings() if not provided)

    Returns:
        Rate limiter instance (Redis or in-memory)
    """
    global _rate_limiter

    if _rate_limiter is not None:
        return _rate_limiter

    if settings is None:
        from creatorpulse.config.settings import get_settings
        settings = get_settings()

    if settings.redis_url:
        try:
            from creatorpulse.core.redis_rate_limit import RedisRateLimiter

            redis_limiter = RedisRateLimiter(
                redis_url=settings.redis_url,
                key_prefix="creatorpulse:ratelimit",
            )
            await redis_limiter.connect()
            _rate_limiter = redis_limiter
            logger.info("rate_limiter_initialized", backend="redis")
            return _rate_limiter
        except Exception as e:
            logger.warning(
                "redis_rate_limiter_failed_fallback_to_memory",
                error=str(e),
            )

    _rate_limiter = InMemoryRateLimiter()
    logger.info("rate_limiter_initialized", backend="in_memory")
    return _rate_limiter


async def reset_rate_limiter() -> None:
    """Reset global rate limiter (for testing)."""
    global _rate_limiter
    _rate_limiter = None
