"""FastAPI app: batch enrichment endpoint, stored-content lookups and health.

The request body is validated before the pipeline runs; everything that goes
wrong inside a batch is reported in the response body, not as an HTTP error.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from ai.embeddings import get_model_info
from ai.llm import BackendNotConfiguredError, is_configured

from .config import settings
from .db import AsyncSessionMaker, engine
from .enrichment import AIEnrichmentBackend
from .logging_config import setup_logging
from .pipelines.enrichment import ContentProcessor
from .repository import ContentRepository, ContentStore
from .schemas import ProcessingRequest, ProcessingResponse, StoredContent, UpdateKeywordsRequest

logger = logging.getLogger(__name__)


# Pydantic response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    service: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    success: bool = False
    error: str
    message: str | None = None
    details: list | None = None
    timestamp: str | None = None


class DeleteResponse(BaseModel):
    """Delete response."""
    success: bool
    id: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(error=error, **extra), exclude_none=True),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info(f"{settings.app_name} v{settings.version} starting up")

    yield

    # Shutdown
    await engine.dispose()
    logger.info("Application shutting down")


app = FastAPI(
    title="Content Refinery",
    version=settings.version,
    description="Enriches scraped web pages with structure, keywords and embeddings",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies
def get_store() -> ContentStore:
    """Storage gateway bound to the application session factory."""
    return ContentRepository(AsyncSessionMaker)


def get_processor(store: ContentStore = Depends(get_store)) -> ContentProcessor:
    """Pipeline wired to the OpenAI backend. The client is created on first use."""
    return ContentProcessor(AIEnrichmentBackend(), store)


def require_api_token(request: Request) -> None:
    """Check ``Authorization: Bearer <token>`` or ``?token=`` when API_TOKEN is set."""
    expected = settings.api_token
    if not expected:
        return

    provided = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        provided = auth_header[len("Bearer "):]
    elif "token" in request.query_params:
        provided = request.query_params["token"]

    if provided != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API token",
        )


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request, exc: RequestValidationError):
    """Reject malformed request bodies before the pipeline runs."""
    logger.error(f"Request validation failed: {exc.errors()}")
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "Invalid request format",
        details=jsonable_encoder(exc.errors()),
    )


@app.exception_handler(BackendNotConfiguredError)
async def backend_not_configured_handler(request, exc: BackendNotConfiguredError):
    """Handle a missing AI backend configuration."""
    logger.error(f"AI service not configured: {exc}")
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "AI service not configured")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request, exc: StarletteHTTPException):
    """Render HTTP errors in the common error shape."""
    # Unmatched routes come from the router with the default reason phrase.
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        return _error(
            exc.status_code,
            "Not found",
            message="The requested endpoint does not exist",
            timestamp=_now_iso(),
        )
    return _error(exc.status_code, str(exc.detail), timestamp=_now_iso())


@app.exception_handler(Exception)
async def unhandled_error_handler(request, exc: Exception):
    """Last-resort handler for unexpected errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        message=str(exc),
        timestamp=_now_iso(),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=_now_iso(),
        service=settings.service_name,
        version=settings.version,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "model": settings.enrichment.model,
        "embeddings": get_model_info(),
        "endpoints": {
            "health": "/health",
            "process": "/process",
            "content_by_id": "/content/{id}",
            "content_by_domain": "/content?domain=",
            "content_by_url": "/content/by-url?url=",
            "update_keywords": "/content/{id}/keywords",
            "docs": "/docs",
        },
    }


@app.post(
    "/process",
    response_model=ProcessingResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_token)],
)
async def process(
    request: ProcessingRequest,
    processor: ContentProcessor = Depends(get_processor),
) -> ProcessingResponse:
    """Enrich and persist a batch of scraped pages.

    Items are processed sequentially. Per-item and storage failures are
    reported in ``errors`` and in each result's ``processingMetadata``.
    """
    if not is_configured():
        raise BackendNotConfiguredError("OPENAI_API_KEY environment variable not set")

    items = request.scraping_response.results
    logger.info(f"Processing request received with {len(items)} scraped results")

    response = await processor.process_request(request)

    logger.info(
        f"Processing completed. Success: {response.success}, "
        f"Results: {response.results_processed}"
    )
    return response


@app.get(
    "/content",
    response_model=list[StoredContent],
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_token)],
)
async def list_content_by_domain(
    domain: str = Query(min_length=1),
    limit: int | None = Query(default=None, ge=1, le=1000),
    store: ContentStore = Depends(get_store),
) -> list[StoredContent]:
    """Stored records for a domain, newest first."""
    return await store.get_by_domain(domain, limit=limit)


@app.get(
    "/content/by-url",
    response_model=list[StoredContent],
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_token)],
)
async def list_content_by_url(
    url: str = Query(min_length=1),
    store: ContentStore = Depends(get_store),
) -> list[StoredContent]:
    """Stored records for a URL, newest first."""
    return await store.get_by_url(url)


@app.get(
    "/content/{record_id}",
    response_model=StoredContent,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_token)],
)
async def get_content(
    record_id: str,
    store: ContentStore = Depends(get_store),
) -> StoredContent:
    """A single stored record."""
    record = await store.get_by_id(record_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Content {record_id} not found",
        )
    return record


@app.put(
    "/content/{record_id}/keywords",
    response_model=StoredContent,
    response_model_exclude_none=True,
    dependencies=[Depends(require_api_token)],
)
async def update_content_keywords(
    record_id: str,
    body: UpdateKeywordsRequest,
    store: ContentStore = Depends(get_store),
) -> StoredContent:
    """Replace the keywords of a stored record."""
    record = await store.update_keywords(record_id, body.keywords)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Content {record_id} not found",
        )
    return record


@app.delete(
    "/content/{record_id}",
    response_model=DeleteResponse,
    dependencies=[Depends(require_api_token)],
)
async def delete_content(
    record_id: str,
    store: ContentStore = Depends(get_store),
) -> DeleteResponse:
    """Delete a stored record."""
    deleted = await store.delete(record_id)
    return DeleteResponse(success=deleted, id=record_id)
