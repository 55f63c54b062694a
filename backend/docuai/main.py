"""
FastAPI Application — Entry Point

DocuAI document intake API

Architecture:
  - All resource routes live under /api/
  - Authentication is OIDC bearer JWT, verified per request (or a single
    configured dev principal when AUTH_MODE=disabled)
  - Stores, provider clients, the pipeline and the task supervisor are built
    once in the lifespan and injected through docuai.auth.dependencies
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. Request ID + logging — X-Request-ID on every response, latency logged
  2. CORS — open in development, restricted otherwise
  3. Gzip — compress responses > 1 KB

Shutdown drains in-flight pipeline runs for SHUTDOWN_GRACE_SECONDS before
cancelling them, then closes provider clients and the DB pool.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from docuai.api.v1.analytics import router as analytics_router
from docuai.api.v1.categories import router as categories_router
from docuai.api.v1.documents import router as documents_router
from docuai.api.v1.llm import router as llm_router
from docuai.api.v1.processing import router as processing_router
from docuai.api.v1.prompt_formats import router as prompt_formats_router
from docuai.auth.token import build_authenticator
from docuai.core.config import Settings, get_settings
from docuai.db.seed import seed_catalog
from docuai.db.session import (
    build_session_factory,
    check_db_health,
    create_engine_from_settings,
    create_tables,
)
from docuai.processing.client import DocumentAIClient
from docuai.processing.pipeline import DocumentPipeline
from docuai.schemas.documents import ErrorDetail, ErrorResponse, UploadErrors
from docuai.storage.s3 import ObjectStorageService
from docuai.store.base import ConflictError, NotFoundError
from docuai.store.sql import SqlCatalogStore, SqlDocumentStore
from docuai.workers.supervisor import TaskSupervisor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifespan — startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: connect the DB, optionally create tables and seed the catalog,
    then wire every collaborator onto app.state.
    Shutdown: drain pipeline runs, close clients, dispose the pool.
    """
    settings: Settings = app.state.settings
    logger.info("Starting DocuAI | env=%s auth_mode=%s", settings.app_env, settings.auth_mode)

    engine = create_engine_from_settings(settings)
    db_health = await check_db_health(engine)
    if db_health["status"] != "ok":
        logger.critical("Database health check failed at startup: %s", db_health)
        await engine.dispose()
        raise RuntimeError(f"DB unavailable: {db_health}")
    logger.info("Database: connected")

    if settings.db_create_tables:
        await create_tables(engine)

    sessions       = build_session_factory(engine)
    document_store = SqlDocumentStore(sessions)
    catalog_store  = SqlCatalogStore(sessions)

    if settings.seed_catalog:
        await seed_catalog(catalog_store)

    ai_client      = DocumentAIClient.from_settings(settings)
    object_storage = ObjectStorageService(settings)
    supervisor     = TaskSupervisor()
    pipeline = DocumentPipeline(
        store=document_store,
        ai=ai_client,
        storage=object_storage,
        catalog=catalog_store,
        chunk_size=settings.chunk_size,
    )

    app.state.engine         = engine
    app.state.document_store = document_store
    app.state.catalog_store  = catalog_store
    app.state.ai_client      = ai_client
    app.state.object_storage = object_storage
    app.state.pipeline       = pipeline
    app.state.supervisor     = supervisor

    logger.info("S3 bucket: %s", settings.s3_bucket)
    logger.info("Vector endpoint: %s", settings.vector_url or "disabled (local vectors only)")

    yield

    logger.info("Shutting down DocuAI | in_flight=%d", len(supervisor))
    await supervisor.shutdown(settings.shutdown_grace_seconds)
    await ai_client.close()
    await object_storage.close()
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="DocuAI",
        description=(
            "Document intake API: upload, OCR, image extraction, chunking, "
            "embedding and similarity search."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings      = settings
    app.state.authenticator = build_authenticator(settings)

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order: last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    allowed_origins = ["*"] if settings.app_env == "development" else []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # ----------------------------------------------------------------
    # Request ID + structured logging middleware
    # ----------------------------------------------------------------

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers — uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic/FastAPI validation errors to structured ErrorResponse."""
        details = [
            ErrorDetail(
                field=" → ".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        body = UploadErrors.not_found(exc.resource, exc.resource_id)
        body.request_id = request.headers.get("X-Request-ID")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        body = ErrorResponse(
            error_code="CONFLICT",
            message=str(exc),
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions; never expose stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=UploadErrors.internal_error(request_id).model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(documents_router,      prefix="/api")
    app.include_router(processing_router,     prefix="/api")
    app.include_router(analytics_router,      prefix="/api")
    app.include_router(categories_router,     prefix="/api")
    app.include_router(llm_router,            prefix="/api")
    app.include_router(prompt_formats_router, prefix="/api")

    # ----------------------------------------------------------------
    # Health & readiness endpoints (no auth, used by load balancer)
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness probe",
        description="Returns 200 if the process is alive. No external checks.",
    )
    async def health() -> dict:
        return {"status": "ok", "service": "docuai-api"}

    @app.get(
        "/ready",
        tags=["Operations"],
        summary="Readiness probe",
        description="Returns 200 only if the database is reachable; reports in-flight runs.",
    )
    async def readiness(request: Request) -> JSONResponse:
        db_status = await check_db_health(request.app.state.engine)
        in_flight = len(request.app.state.supervisor)
        if db_status["status"] != "ok":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "database": db_status, "in_flight": in_flight},
            )
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": db_status, "in_flight": in_flight},
        )

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docuai.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().app_env == "development",
        log_level="debug" if get_settings().debug else "info",
        access_log=True,
    )
