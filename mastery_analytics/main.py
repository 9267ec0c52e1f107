"""
Mastery Progress Analytics

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mastery_analytics.api.middleware.request_id import RequestIdMiddleware
from mastery_analytics.api.v1 import router as api_v1_router
from mastery_analytics.config import get_settings
from mastery_analytics.database import async_session_maker, close_db, init_db
from mastery_analytics.engines.progress.estimator_client import EstimatorClient
from mastery_analytics.engines.progress.recalculator import SnapshotRecalculator
from mastery_analytics.engines.progress.snapshot_store import SnapshotStore
from mastery_analytics.engines.progress.taxonomy import load_taxonomy
from mastery_analytics.kernel.events.event_bus import EventBus
from mastery_analytics.logging_config import configure_logging, get_logger
from mastery_analytics.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Builds the process-wide services (store, estimator client, recalculator,
    event bus) and tears them down on shutdown.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    taxonomy = load_taxonomy(settings.taxonomy_path)
    logger.info("Taxonomy loaded", extra={"taxonomy_version": taxonomy.version, "courses": len(taxonomy.courses)})

    http_client = httpx.AsyncClient()
    app.state.event_bus = EventBus()
    app.state.snapshot_store = SnapshotStore(async_session_maker)
    app.state.recalculator = SnapshotRecalculator(
        estimator=EstimatorClient(
            base_url=settings.estimator_url,
            api_key=settings.estimator_api_key,
            timeout_seconds=settings.estimator_timeout_seconds,
            client=http_client,
        ),
        store=app.state.snapshot_store,
        event_bus=app.state.event_bus,
        timeout_seconds=settings.estimator_timeout_seconds,
        max_retries=settings.estimator_max_retries,
        retry_delay_seconds=settings.estimator_retry_delay_seconds,
    )

    yield

    logger.info("Shutting down...")
    await app.state.recalculator.drain_events()
    await http_client.aclose()
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Mastery Progress Analytics

    Stores append-only snapshots of a learner's estimated mastery and serves
    the dashboard views built from them.

    ## Features

    - **Snapshots**: latest parsed snapshot and full history per course
    - **Modules**: topic progress aggregated into the course module hierarchy
    - **Trends**: windowed series, deltas and top movers for modules, tasks, topics
    - **Recalculation**: fetch fresh estimates and append a new snapshot
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Last added = outermost; CORS wraps everything
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _request_headers(request: Request) -> dict:
    req_id = getattr(request.state, "request_id", None)
    return {"X-Request-ID": req_id} if req_id else {}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Attach the request id; 5xx bodies also carry it."""
    headers = _request_headers(request)
    content = {"detail": exc.detail}
    if headers and exc.status_code >= 500:
        content["request_id"] = headers["X-Request-ID"]
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    headers = _request_headers(request)
    content = {"detail": "Validation error", "errors": errors}
    if headers:
        content["request_id"] = headers["X-Request-ID"]
    return JSONResponse(
        status_code=422,
        content=content,
        headers=headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    headers = _request_headers(request)
    req_id = headers.get("X-Request-ID")
    if settings.debug:
        content = {
            "detail": str(exc),
            "type": type(exc).__name__,
            "request_id": req_id,
        }
    else:
        content = {"detail": "Internal server error", "request_id": req_id}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=headers,
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
        taxonomy_version=load_taxonomy(settings.taxonomy_path).version,
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mastery_analytics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
