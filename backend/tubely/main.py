"""
Tubely FastAPI Application Entry Point

This module serves as the main entry point for the Tubely backend API, a
video hosting service that accepts thumbnail and video uploads. It provides:

- FastAPI application initialization from Settings
- CORS middleware for frontend-to-backend communication
- API router registration under /api/v1 prefix for versioned endpoints
- Startup/shutdown lifecycle for MongoDB, blob stores and media tools
- Health and readiness endpoints for monitoring
- Request ID and timing middleware for observability
- Conversion of TubelyError into ``{"error": message}`` responses
- Static serving of locally stored thumbnails under /assets

API Structure:
    /api/v1/videos                       - Video records (create, list, get)
    /api/v1/thumbnail_upload/{video_id}  - Thumbnail upload
    /api/v1/video_upload/{video_id}      - Video upload

Usage:
    # Run with uvicorn directly
    uvicorn tubely.main:app --host 0.0.0.0 --port 8091 --reload

    # Run as Python module
    python -m tubely.main
"""

import logging
import time
import uuid

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import uvicorn

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from tubely import __app_name__, __version__
from tubely.api.v1 import api_router
from tubely.config import get_settings
from tubely.core.database import close_db, get_db_client, init_db
from tubely.core.exceptions import TubelyError
from tubely.services.media_tools import FFmpegToolRunner
from tubely.services.storage_service import LocalBlobStore, S3BlobStore
from tubely.utils.logger import add_log_context, setup_logging


# Configure module logger
logger = logging.getLogger(__name__)

# HTTP status code constants
HTTP_ERROR_THRESHOLD = 400  # Status codes >= 400 indicate errors

REQUEST_ID_HEADER = "X-Request-ID"


# =============================================================================
# Application Lifespan Management
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events for startup and shutdown.

    Startup configures logging, connects MongoDB, creates the assets
    directory and builds the blob stores and media tool runner shared by all
    upload requests. Shutdown closes the MongoDB connection.
    """
    settings = get_settings()

    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    logger.info("Tubely API starting: env=%s, debug=%s", settings.app_env, settings.debug)
    logger.info("Host: %s:%d", settings.host, settings.port)

    try:
        await init_db(settings)
    except Exception as e:
        logger.exception("Failed to initialize MongoDB")
        raise RuntimeError(f"MongoDB initialization failed: {e}") from e

    Path(settings.assets_root).mkdir(parents=True, exist_ok=True)

    video_store = S3BlobStore.from_settings(settings)
    app.state.video_store = video_store
    if settings.thumbnail_storage == "s3":
        app.state.thumbnail_store = video_store
    else:
        app.state.thumbnail_store = LocalBlobStore.from_settings(settings)
    app.state.media_runner = FFmpegToolRunner.from_settings(settings)

    logger.info(
        "Media storage ready: videos=s3://%s, thumbnails=%s",
        settings.s3_bucket_name,
        settings.thumbnail_storage,
    )

    yield

    logger.info("Tubely API shutting down")
    try:
        await close_db()
    except Exception:
        logger.exception("Error closing MongoDB connection")
    logger.info("Tubely API shutdown complete")


# =============================================================================
# FastAPI Application Instance
# =============================================================================

# Get settings for initial configuration
_settings = get_settings()

app = FastAPI(
    title=f"{__app_name__} API",
    description=(
        "Video hosting backend. Uploaded thumbnails and videos are validated, "
        "videos are re-muxed for fast start and filed by aspect ratio, and the "
        "resulting URLs are recorded on the video."
    ),
    version=__version__,
    docs_url=None if _settings.is_production else "/docs",
    redoc_url=None if _settings.is_production else "/redoc",
    openapi_url=None if _settings.is_production else "/openapi.json",
    lifespan=lifespan,
    debug=_settings.debug,
)


# =============================================================================
# Middleware Configuration
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER, "X-Process-Time"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    """
    Assign a request id, time the request and log its completion.

    A caller-supplied X-Request-ID is kept; otherwise a uuid4 hex is used.
    The id is available to handlers as ``request.state.request_id``.
    """
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    request.state.request_id = request_id
    ctx_logger = add_log_context(logger, request_id=request_id)

    start_time = time.perf_counter()
    ctx_logger.debug("Request started: %s %s", request.method, request.url.path)

    try:
        response = await call_next(request)
    except Exception:
        ctx_logger.exception("Request failed: %s %s", request.method, request.url.path)
        raise

    process_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
    response.headers["X-Process-Time"] = f"{process_time_ms}ms"
    response.headers[REQUEST_ID_HEADER] = request_id

    log_level = logging.INFO if response.status_code < HTTP_ERROR_THRESHOLD else logging.WARNING
    ctx_logger.log(
        log_level,
        "Request completed: %s %s [Status: %d] [Time: %sms]",
        request.method,
        request.url.path,
        response.status_code,
        process_time_ms,
        extra={"status_code": response.status_code, "duration_ms": process_time_ms},
    )
    return response


# =============================================================================
# API Router Registration
# =============================================================================

app.include_router(api_router, prefix="/api/v1")

# Locally placed thumbnails; the directory is created at startup
app.mount(
    "/assets",
    StaticFiles(directory=_settings.assets_root, check_dir=False),
    name="assets",
)


# =============================================================================
# Core Endpoints
# =============================================================================


@app.get(
    "/health",
    response_class=JSONResponse,
    tags=["health"],
    summary="Health Check",
    description="Returns health status and current server timestamp for monitoring",
)
async def health_check() -> dict[str, Any]:
    """Liveness probe for load balancers and container orchestrators."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": __version__,
        "service": f"{__app_name__} API",
    }


@app.get(
    "/ready",
    response_class=JSONResponse,
    tags=["health"],
    summary="Readiness Check",
    description="Returns readiness status including the MongoDB connection",
)
async def readiness_check() -> JSONResponse:
    """
    Readiness probe.

    Unlike the health check, this verifies that MongoDB answers a ping.
    Returns 503 while it does not.
    """
    try:
        mongodb_ready = await get_db_client().ping()
    except RuntimeError:
        mongodb_ready = False

    return JSONResponse(
        status_code=200 if mongodb_ready else 503,
        content={
            "ready": mongodb_ready,
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": {"mongodb": mongodb_ready},
        },
    )


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(TubelyError)
async def tubely_error_handler(request: Request, exc: TubelyError) -> JSONResponse:
    """
    Render a TubelyError as ``{"error": message}`` with its status code.

    Operator-facing errors are logged with their chain and answered with the
    generic public message only.
    """
    if not exc.is_client_error:
        logger.error(
            "Internal error on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
            extra={"request_id": getattr(request.state, "request_id", None), **exc.context},
        )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.response_message()})


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500 handler that never exposes internal details."""
    logger.error(
        "Internal server error on %s %s: %s",
        request.method,
        request.url.path,
        str(exc),
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# =============================================================================
# Main Execution Block
# =============================================================================

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "tubely.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level,
        access_log=settings.debug,
    )
