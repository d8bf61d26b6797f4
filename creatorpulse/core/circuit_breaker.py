"""
Circuit breaker for scrape providers.

Stops hammering a provider that keeps failing (suspended account, outage)
and lets it recover before traffic resumes.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing provider, requests blocked
- HALF_OPEN: Testing if provider recovered

Usage:
    breaker = get_circuit_breaker("brightdata", failure_threshold=5, recovery_timeout=60)

    if not breaker.can_execute():
        raise CircuitBreakerOpenError("brightdata", breaker.time_until_recovery())
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import structlog

from creatorpulse.core.exceptions import CircuitBreakerOpenError, PermanentError
from creatorpulse.monitoring.metrics import (
    record_circuit_breaker_failure,
    update_circuit_breaker_state,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for protecting provider calls.

    Args:
        name: Identifier for this circuit (e.g., "brightdata")
        failure_threshold: Number of failures before opening circuit
        recovery_timeout: Seconds to wait before testing recovery
        success_threshold: Successes needed in half-open to close circuit
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _last_failure_time: Optional[float] = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Get current circuit state, checking for recovery timeout."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.time() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                update_circuit_breaker_state(self.name, "half_open")
                logger.info("circuit_breaker_half_open", name=self.name)
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def can_execute(self) -> bool:
        """Check if a request can be executed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def time_until_recovery(self) -> float:
        """Get seconds until circuit may recover."""
        if self._state != CircuitState.OPEN or not self._last_failure_time:
            return 0.0
        elapsed = time.time() - self._last_failure_time
        return max(0.0, self.recovery_timeout - elapsed)

    def ensure_closed(self) -> None:
        """Raise CircuitBreakerOpenError if requests are currently blocked."""
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.name, self.time_until_recovery())

    async def record_success(self) -> None:
        """Record a successful call."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    self._success_count = 0
                    update_circuit_breaker_state(self.name, "closed")
                    logger.info("circuit_breaker_closed", name=self.name)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed call."""
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.time()
            record_circuit_breaker_failure(self.name)

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                update_circuit_breaker_state(self.name, "open")
                logger.warning("circuit_breaker_reopened", name=self.name)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                update_circuit_breaker_state(self.name, "open")
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failure_count=self._failure_count,
                    recovery_timeout=self.recovery_timeout,
                )

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        update_circuit_breaker_state(self.name, "closed")

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Use as decorator for async provider calls.

        Permanent errors (bad credentials, malformed requests) are not
        counted as provider failures.
        """

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            self.ensure_closed()
            try:
                result = await func(*args, **kwargs)
            except PermanentError:
                raise
            except Exception:
                await self.record_failure()
                raise
            await self.record_success()
            return result

        return wrapper


# =============================================================================
# Global Circuit Breaker Registry
# =============================================================================


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """
    Get or create a circuit breaker by name.

    Args:
        name: Unique identifier for the circuit
        failure_threshold: Failures before opening
        recovery_timeout: Seconds before recovery test

    Returns:
        Circuit breaker instance (reused if already exists)
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return _circuit_breakers[name]


def get_all_circuit_breakers() -> dict[str, CircuitBreaker]:
    """Get all registered circuit breakers."""
    return _circuit_breakers.copy()


def reset_all_circuit_breakers() -> None:
    """Reset all circuit breakers to closed state."""
    for breaker in _circuit_breakers.values():
        breaker.reset()
