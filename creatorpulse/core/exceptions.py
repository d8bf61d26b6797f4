"""
Core exception hierarchy for CreatorPulse.

Provides standardized exception types with categorization for retry logic.
The queue workers decide between retry and terminal failure purely on
RetryableError vs PermanentError, so every component raises from here.
"""

from typing import Any, Optional


# =============================================================================
# Base Exceptions
# =============================================================================


class CreatorPulseError(Exception):
    """Base exception for all CreatorPulse errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class RetryableError(CreatorPulseError):
    """
    Transient errors that should be retried.

    Examples: Rate limits, timeouts, snapshots not ready yet.
    """

    pass


class PermanentError(CreatorPulseError):
    """
    Errors that won't be fixed by retrying.

    Examples: Malformed payloads, revoked credentials, constraint violations.
    """

    pass


# =============================================================================
# Initialization / Configuration Errors
# =============================================================================


class InitializationError(PermanentError):
    """Raised when a critical component fails to initialize."""

    def __init__(self, component: str, message: str, details: Optional[dict[str, Any]] = None):
        self.component = component
        super().__init__(f"[{component}] {message}", details)


class ConfigurationError(PermanentError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details)


# =============================================================================
# Payload / Storage Errors
# =============================================================================


class MalformedPayloadError(PermanentError):
    """Raised when a single raw item cannot be normalized.

    Callers skip the item and continue the batch.
    """

    def __init__(self, platform: str, message: str, details: Optional[dict[str, Any]] = None):
        self.platform = platform
        super().__init__(f"[{platform}] {message}", details)


class DuplicateContentError(PermanentError):
    """Raised on the single-item create path when the dedup key already exists."""

    def __init__(self, creator_id: str, platform: str, platform_content_id: str):
        self.creator_id = creator_id
        self.platform = platform
        self.platform_content_id = platform_content_id
        super().__init__(
            "Content already exists",
            {
                "creator_id": creator_id,
                "platform": platform,
                "platform_content_id": platform_content_id,
            },
        )


class ConstraintViolationError(PermanentError):
    """Raised when input is rejected before entering the pipeline."""

    pass


class UniqueViolation(CreatorPulseError):
    """Raised by table gateways when the storage layer rejects a duplicate key."""

    pass


class InvalidTransitionError(PermanentError):
    """Raised when a snapshot status change would move backwards."""

    def __init__(self, snapshot_id: str, current: str, target: str):
        self.snapshot_id = snapshot_id
        self.current = current
        self.target = target
        super().__init__(
            f"Snapshot {snapshot_id} cannot move from {current} to {target}",
            {"snapshot_id": snapshot_id, "current": current, "target": target},
        )


# =============================================================================
# Upstream Errors
# =============================================================================


class TransientUpstreamError(RetryableError):
    """Network timeout, rate limit or resource not ready yet."""

    pass


class PermanentUpstreamError(PermanentError):
    """Authorization revoked, account suspended or resource permanently gone."""

    pass


class SnapshotNotReadyError(TransientUpstreamError):
    """Raised while the provider is still building a snapshot."""

    def __init__(self, snapshot_id: str, status: str):
        self.snapshot_id = snapshot_id
        self.status = status
        super().__init__(
            f"Snapshot {snapshot_id} not ready yet",
            {"snapshot_id": snapshot_id, "status": status},
        )


class JobStalledError(RetryableError):
    """Recorded for an active job whose lease expired before it finished."""

    pass


# =============================================================================
# Collector Errors
# =============================================================================


class CollectorError(CreatorPulseError):
    """Base exception for collector errors."""

    def __init__(
        self,
        collector_type: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        self.collector_type = collector_type
        super().__init__(f"[{collector_type}] {message}", details)


class CollectorRateLimitError(CollectorError, TransientUpstreamError):
    """Raised when a collector hits rate limits."""

    def __init__(
        self,
        collector_type: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ):
        self.retry_after = retry_after
        super().__init__(collector_type, message, details)


class CollectorTimeoutError(CollectorError, TransientUpstreamError):
    """Raised when a collector operation times out."""

    pass


class CollectorAuthError(CollectorError, PermanentUpstreamError):
    """Raised when collector authentication fails or the account is suspended."""

    pass


class CollectorUnavailableError(CollectorError, TransientUpstreamError):
    """Raised when collector service is temporarily unavailable."""

    pass


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitBreakerOpenError(RetryableError):
    """Raised when circuit breaker is open and blocking requests."""

    def __init__(self, service: str, recovery_time: float):
        self.service = service
        self.recovery_time = recovery_time
        super().__init__(
            f"Circuit breaker open for {service}. Recovery in {recovery_time:.1f}s",
            {"service": service, "recovery_time": recovery_time},
        )
