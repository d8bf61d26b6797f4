"""
Core infrastructure modules for CreatorPulse.

Provides common utilities used across the application:
- exceptions: Standardized exception hierarchy
- circuit_breaker: Resilience pattern for external APIs
- rate_limiter: Sliding-window outbound rate limiting
- container: Dependency container
"""

from creatorpulse.core.exceptions import (
    CreatorPulseError,
    RetryableError,
    PermanentError,
    InitializationError,
    ConfigurationError,
    MalformedPayloadError,
    DuplicateContentError,
    ConstraintViolationError,
    InvalidTransitionError,
    TransientUpstreamError,
    PermanentUpstreamError,
    SnapshotNotReadyError,
    CollectorError,
    CollectorRateLimitError,
    CollectorTimeoutError,
    CollectorAuthError,
    CollectorUnavailableError,
    CircuitBreakerOpenError,
)

from creatorpulse.core.circuit_breaker import (
    CircuitBreaker,
    CircuitState,
    get_circuit_breaker,
    get_all_circuit_breakers,
    reset_all_circuit_breakers,
)

from creatorpulse.core.container import (
    DependencyContainer,
    get_container,
    initialize_container,
    shutdown_container,
)

__all__ = [
    # Exceptions
    "CreatorPulseError",
    "RetryableError",
    "PermanentError",
    "InitializationError",
    "ConfigurationError",
    "MalformedPayloadError",
    "DuplicateContentError",
    "ConstraintViolationError",
    "InvalidTransitionError",
    "TransientUpstreamError",
    "PermanentUpstreamError",
    "SnapshotNotReadyError",
    "CollectorError",
    "CollectorRateLimitError",
    "CollectorTimeoutError",
    "CollectorAuthError",
    "CollectorUnavailableError",
    "CircuitBreakerOpenError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitState",
    "get_circuit_breaker",
    "get_all_circuit_breakers",
    "reset_all_circuit_breakers",
    # Dependency Container
    "DependencyContainer",
    "get_container",
    "initialize_container",
    "shutdown_container",
]
