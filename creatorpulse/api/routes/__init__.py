"""API route modules.

- health: Health check and readiness probes
- content: Content create and batch upsert
- cron: Pipeline trigger endpoints
"""

from creatorpulse.api.routes.content import router as content_router
from creatorpulse.api.routes.cron import router as cron_router
from creatorpulse.api.routes.health import router as health_router

__all__ = ["content_router", "cron_router", "health_router"]
