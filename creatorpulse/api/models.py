"""Pydantic models for API requests and responses.

Content payloads reuse the canonical ContentInput model; the batch request
keeps its items as raw dicts so one malformed item becomes a per-item error
instead of rejecting the whole request.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from creatorpulse.models.content import Content, ItemError


# =============================================================================
# Content Models
# =============================================================================


class BatchContentRequest(BaseModel):
    """Request model for batch content upsert."""

    contents: list[dict[str, Any]] = Field(
        ...,
        description="Between 1 and 100 content items",
    )


class ContentCreatedResponse(BaseModel):
    """Response model for a single content create."""

    success: bool = True
    content: Content


class BatchContentResponse(BaseModel):
    """Response model for batch content upsert."""

    success: bool = Field(..., description="False as soon as one item failed")
    total: int
    created: int
    updated: int
    errors: list[ItemError] = Field(default_factory=list)


# =============================================================================
# Cron Models
# =============================================================================


class CronResponse(BaseModel):
    """Envelope returned by every cron trigger."""

    success: bool = True
    message: str
    result: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HaltRequest(BaseModel):
    """Optional body for the snapshot emergency stop."""

    reason: str = Field(default="halted by operator", max_length=500)


# =============================================================================
# Health Models
# =============================================================================


class HealthStatus(BaseModel):
    """Health status for a single service."""

    status: Literal["healthy", "unhealthy", "degraded", "unconfigured"] = Field(
        ..., description="Service health status"
    )
    latency_ms: Optional[float] = Field(None, description="Response latency in milliseconds")
    message: Optional[str] = Field(None, description="Additional status message")


class HealthCheckResponse(BaseModel):
    """Response model for health check endpoint."""

    status: Literal["healthy", "unhealthy", "degraded"] = Field(
        ..., description="Overall system health"
    )
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Check timestamp")
    services: dict[str, HealthStatus] = Field(
        default_factory=dict,
        description="Individual service health statuses",
    )
    uptime_seconds: Optional[float] = Field(None, description="Server uptime in seconds")


# =============================================================================
# Error Models
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Error timestamp",
    )


class ValidationErrorDetail(BaseModel):
    """Detail for a single validation error."""

    field: str = Field(..., description="Field that failed validation")
    message: str = Field(..., description="Validation error message")
    value: Optional[Any] = Field(None, description="Invalid value provided")


class ValidationErrorResponse(BaseModel):
    """Response model for validation errors."""

    error: str = Field(default="validation_error", description="Error type")
    message: str = Field(default="Request validation failed", description="Error message")
    errors: list[ValidationErrorDetail] = Field(..., description="List of validation errors")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Error timestamp",
    )
