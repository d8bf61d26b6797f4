"""FastAPI dependency injection providers.

This module provides dependency functions for injecting services into route handlers.
"""

import secrets
from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status

from creatorpulse.core.container import DependencyContainer, get_container as get_global_container
from creatorpulse.scheduler.scheduler import Scheduler
from creatorpulse.store import ContentStore

logger = structlog.get_logger(__name__)

# Global instances for singleton pattern
_scheduler_instance: Optional[Scheduler] = None


def get_container(request: Request) -> DependencyContainer:
    """
    Get the dependency container for this application.

    The lifespan handler stores it on app.state; fall back to the global one.
    """
    container = getattr(request.app.state, "container", None)
    return container or get_global_container()


def get_content_store(
    container: DependencyContainer = Depends(get_container),
) -> ContentStore:
    return container.content_store


def require_cron_secret(
    container: DependencyContainer = Depends(get_container),
    authorization: Optional[str] = Header(default=None),
) -> None:
    """
    Check the cron bearer token.

    Raises:
        HTTPException: 401 if a cron secret is configured and the
            Authorization header does not carry it.
    """
    secret = container.settings.cron_secret
    if secret is None:
        return

    expected = f"Bearer {secret.get_secret_value()}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        logger.warning("cron_unauthorized", has_header=authorization is not None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


def get_scheduler() -> Optional[Scheduler]:
    """
    Get Scheduler instance.

    Returns the global scheduler instance, or None when the application
    runs without one.
    """
    return _scheduler_instance


def set_scheduler(scheduler: Optional[Scheduler]) -> None:
    """
    Set the global scheduler instance.

    Called during application startup to initialize the scheduler.
    """
    global _scheduler_instance
    _scheduler_instance = scheduler


def reset_dependencies() -> None:
    """
    Reset all global dependency instances.

    Useful for testing or application shutdown.
    """
    global _scheduler_instance
    _scheduler_instance = None
