"""
CreatorPulse FastAPI Application.

This module contains the REST API for CreatorPulse:

- main: FastAPI application factory and configuration
- routes/: API endpoint definitions organized by domain
- models: Pydantic request/response models
- dependencies: FastAPI dependency injection providers

API Structure:
- /health - Health check and readiness probes
- /api/v1/content - Content create and batch upsert
- /api/v1/cron - Pipeline triggers
- /metrics - Prometheus metrics

Example:
    from creatorpulse.api.main import create_app

    # Run with: uvicorn creatorpulse.api.main:app --reload
"""
