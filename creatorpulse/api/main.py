"""CreatorPulse API - Main FastAPI Application.

This module provides the FastAPI application for the CreatorPulse pipeline.
It includes:
- CORS middleware configuration
- API versioning (/api/v1)
- Health check endpoints
- Content ingestion and cron trigger endpoints
- Prometheus metrics at /metrics
- Container and scheduler lifecycle on startup/shutdown

Usage:
    uvicorn creatorpulse.api.main:app --reload
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from creatorpulse import __version__
from creatorpulse.api.dependencies import reset_dependencies, set_scheduler
from creatorpulse.api.models import ErrorResponse, ValidationErrorDetail, ValidationErrorResponse
from creatorpulse.api.routes import content_router, cron_router, health_router
from creatorpulse.api.routes.health import set_server_start_time
from creatorpulse.config.settings import get_settings
from creatorpulse.core.container import DependencyContainer
from creatorpulse.monitoring.metrics import get_metrics_app
from creatorpulse.scheduler.scheduler import Scheduler

logger = structlog.get_logger(__name__)

API_TITLE = "CreatorPulse API"
API_DESCRIPTION = """
## Creator Content Ingestion

CreatorPulse collects what creators publish across feeds and social platforms,
stores each item exactly once, and scores it for relevancy.

- **Content**: store single items or idempotent batches of up to 100
- **Cron**: trigger creator refresh, snapshot sweeps, relevancy scoring,
  queue cleanup and the snapshot emergency stop
"""


def create_app(
    container: Optional[DependencyContainer] = None,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Dependency container. A fresh one is built when omitted.
        enable_scheduler: Run periodic triggers in-process. Defaults to settings.

    Returns:
        Configured FastAPI application instance
    """
    settings = container.settings if container else get_settings()
    run_scheduler = settings.scheduler_enabled if enable_scheduler is None else enable_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager.

        - Startup: Initialize the container, start scheduler
        - Shutdown: Stop scheduler, close connections
        """
        logger.info("application_starting", environment=settings.app_env)
        set_server_start_time()

        app_container = container or DependencyContainer(settings)
        await app_container.initialize()
        app.state.container = app_container

        scheduler: Optional[Scheduler] = None
        if run_scheduler:
            scheduler = Scheduler(app_container)
            try:
                await scheduler.start()
            except Exception as e:
                logger.error("scheduler_initialization_failed", error=str(e))
        set_scheduler(scheduler)

        logger.info("application_started")

        yield

        logger.info("application_stopping")

        if scheduler is not None and scheduler.is_running:
            try:
                await scheduler.stop()
            except Exception as e:
                logger.error("scheduler_shutdown_error", error=str(e))

        await app_container.shutdown()
        reset_dependencies()
        logger.info("application_stopped")

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "Health", "description": "System health and status endpoints"},
            {"name": "Content", "description": "Content create and batch upsert"},
            {"name": "Cron", "description": "Pipeline triggers for external schedulers"},
        ],
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )

    # =========================================================================
    # Exception Handlers
    # =========================================================================

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with detailed response."""
        errors = [
            ValidationErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
                value=error.get("input"),
            )
            for error in exc.errors()
        ]
        response = ValidationErrorResponse(errors=errors, timestamp=datetime.now(timezone.utc))
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=response.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        response = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            detail=str(exc) if settings.debug else None,
            path=request.url.path,
            timestamp=datetime.now(timezone.utc),
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response.model_dump(mode="json"),
        )

    # =========================================================================
    # Routers
    # =========================================================================

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        return {
            "name": API_TITLE,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "api": "/api/v1",
        }

    app.include_router(health_router)

    api_v1_router = APIRouter(prefix="/api/v1")
    api_v1_router.include_router(content_router)
    api_v1_router.include_router(cron_router)
    app.include_router(api_v1_router)

    app.mount("/metrics", get_metrics_app())

    return app


app = create_app()
