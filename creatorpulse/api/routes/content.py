"""Content ingestion endpoints.

Single create rejects duplicates; batch upsert is idempotent and reports
per-item errors with 207 on partial success.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from creatorpulse.api.dependencies import get_content_store
from creatorpulse.api.models import (
    BatchContentRequest,
    BatchContentResponse,
    ContentCreatedResponse,
    ErrorResponse,
)
from creatorpulse.core.exceptions import ConstraintViolationError, DuplicateContentError
from creatorpulse.models.content import ContentInput
from creatorpulse.store import ContentStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/content", tags=["Content"])


@router.post(
    "",
    response_model=ContentCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store Content",
    responses={
        404: {"model": ErrorResponse, "description": "Creator not found"},
        409: {"model": ErrorResponse, "description": "Content already exists"},
    },
)
async def create_content(
    content: ContentInput,
    store: ContentStore = Depends(get_content_store),
) -> ContentCreatedResponse:
    """Store one normalized content item."""
    try:
        created = await store.create(content)
    except DuplicateContentError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "duplicate_content", **e.details},
        ) from e
    except ConstraintViolationError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Creator not found",
        ) from e

    logger.info(
        "content_created",
        content_id=created.id,
        creator_id=created.creator_id,
        platform=created.platform.value,
    )
    return ContentCreatedResponse(content=created)


@router.post(
    "/batch",
    response_model=BatchContentResponse,
    summary="Batch Upsert Content",
    responses={
        207: {"model": BatchContentResponse, "description": "Some items failed"},
        400: {"model": BatchContentResponse, "description": "All items failed or bad batch size"},
    },
)
async def store_content_batch(
    request: BatchContentRequest,
    store: ContentStore = Depends(get_content_store),
) -> JSONResponse:
    """Upsert 1-100 content items; one failing item never blocks the rest."""
    try:
        result = await store.store_many(request.contents)
    except ConstraintViolationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        ) from e

    response = BatchContentResponse(
        success=result.success,
        total=result.total,
        created=result.created_count,
        updated=result.updated_count,
        errors=result.errors,
    )
    return JSONResponse(
        status_code=result.status_code,
        content=response.model_dump(mode="json"),
    )
