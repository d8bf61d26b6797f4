"""Redis-backed sliding window rate limiter.

Each identifier is a sorted set of request timestamps. Keys carry a TTL of
window + 60 seconds so idle counters disappear on their own.
"""

import time
import uuid
from typing import Optional

import redis.asyncio as redis
import structlog

from creatorpulse.core.rate_limiter import RateLimitResult
from creatorpulse.monitoring.metrics import record_rate_limit_hit

logger = structlog.get_logger(__name__)


class RedisRateLimiter:
    """
    Rate limiter shared by every worker process through Redis.

    Args:
        redis_url: Redis connection URL
        key_prefix: Prefix for Redis keys
    """

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "creatorpulse:ratelimit",
    ):
        self._redis_url = redis_url
        self._key_prefix = key_prefix
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self._client is not None:
            return

        client = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        await client.ping()
        self._client = client
        logger.info("redis_rate_limiter_connected")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _make_key(self, identifier: str) -> str:
        return f"{self._key_prefix}:{identifier}"

    async def is_allowed(
        self,
        identifier: str,
        limit: int,
        window: int,
    ) -> RateLimitResult:
        """
        Check and record a request under the sliding window.

        Args:
            identifier: Counter name (e.g., "brightdata")
            limit: Maximum requests allowed in window
            window: Window size in seconds

        Returns:
            RateLimitResult with allowed status and metadata
        """
        if self._client is None:
            raise RuntimeError("Rate limiter not connected. Call connect() first.")

        key = self._make_key(identifier)
        now = time.time()

        pipe = self._client.pipeline()
        pipe.zremrangebyscore(key, 0, now - window)
        pipe.zcard(key)
        pipe.zrange(key, 0, 0, withscores=True)
        _, current_count, oldest_entry = await pipe.execute()

        reset_at = (oldest_entry[0][1] + window) if oldest_entry else now + window

        if current_count >= limit:
            retry_after = reset_at - now
            record_rate_limit_hit(identifier)
            logger.warning(
                "rate_limit_exceeded",
                identifier=identifier,
                limit=limit,
                retry_after=retry_after,
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_at=reset_at,
                retry_after=retry_after,
            )

        pipe = self._client.pipeline()
        pipe.zadd(key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.expire(key, window + 60)
        await pipe.execute()

        return RateLimitResult(
            allowed=True,
            remaining=limit - current_count - 1,
            reset_at=reset_at,
        )

    async def reset(self, identifier: str) -> None:
        """Reset rate limit for an identifier."""
        if self._client is None:
            raise RuntimeError("Rate limiter not connected.")
        await self._client.delete(self._make_key(identifier))
