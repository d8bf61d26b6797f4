"""Queue job models, policies and queue defaults."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

# Upper bound for a single retry delay
MAX_BACKOFF_SECONDS = 3600.0


class QueueName(str, Enum):
    CONTENT_FETCH = "content-fetch"
    CREATOR_PROCESSING = "creator-processing"
    RELEVANCY_SCORING = "relevancy-scoring"
    BRIGHTDATA_PROCESSING = "brightdata-processing"


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


# States that hold a job key and block a duplicate enqueue
IN_FLIGHT_STATES = (JobState.WAITING, JobState.ACTIVE, JobState.DELAYED)


class BackoffType(str, Enum):
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


class JobPolicy(BaseModel):
    """Retry policy attached to a job at enqueue time."""

    max_attempts: int = Field(3, ge=1)
    backoff_delay: float = Field(2.0, ge=0, description="Base delay in seconds")
    backoff_type: BackoffType = BackoffType.EXPONENTIAL

    def delay_for(self, attempts_made: int) -> float:
        """Delay before the next attempt, given the attempts already made."""
        if self.backoff_type == BackoffType.FIXED:
            delay = self.backoff_delay
        else:
            delay = self.backoff_delay * 2 ** max(attempts_made - 1, 0)
        return min(delay, MAX_BACKOFF_SECONDS)


DEFAULT_POLICIES: dict[QueueName, JobPolicy] = {
    QueueName.CONTENT_FETCH: JobPolicy(max_attempts=3, backoff_delay=2.0),
    QueueName.CREATOR_PROCESSING: JobPolicy(max_attempts=3, backoff_delay=2.0),
    QueueName.RELEVANCY_SCORING: JobPolicy(max_attempts=3, backoff_delay=2.0),
    QueueName.BRIGHTDATA_PROCESSING: JobPolicy(max_attempts=10, backoff_delay=30.0),
}


def default_policy(queue: str) -> JobPolicy:
    try:
        return DEFAULT_POLICIES[QueueName(queue)].model_copy()
    except ValueError:
        return JobPolicy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueJob(BaseModel):
    """A unit of work in a named queue."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    queue: str
    key: str
    payload: dict[str, Any] = Field(default_factory=dict)
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    policy: JobPolicy = Field(default_factory=JobPolicy)
    failed_reason: Optional[str] = None
    result: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=_utcnow)
    available_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def attempts_left(self) -> int:
        return max(self.policy.max_attempts - self.attempts_made, 0)

    @property
    def can_retry(self) -> bool:
        return self.attempts_made < self.policy.max_attempts


class JobHandle(BaseModel):
    """Returned by enqueue. duplicate is True when an in-flight job already held the key."""

    job_id: str
    queue: str
    key: str
    duplicate: bool = False


class RetentionPolicy(BaseModel):
    completed_count: int = 100
    completed_max_age_seconds: float = 86400.0
    failed_count: int = 500
