"""
CreatorPulse - Main Entry Point

Creator content ingestion, deduplication and relevancy scoring.
Runs the API (with the in-process scheduler). Queue workers run separately:

    python -m creatorpulse.workers
"""

import structlog
import uvicorn

from creatorpulse.config import get_settings
from creatorpulse.core.logging import configure_logging

logger = structlog.get_logger(__name__)


def main():
    """Main entry point for running the application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info(
        "starting_server",
        host=settings.api_host,
        port=settings.api_port,
        environment=settings.app_env,
    )

    uvicorn.run(
        "creatorpulse.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
