"""Main FastAPI application."""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from mediastream.api import sessions, upload, watch
from mediastream.config import RANGE_UNIT, settings as default_settings
from mediastream.core.config import Settings
from mediastream.core.exceptions import (
    ErrorCategory,
    InvalidRangeException,
    MediaStreamException,
)
from mediastream.services import build_services
from mediastream.utils.file_utils import ensure_directory
from mediastream.utils.logger import get_logger

logger: logging.Logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifecycle management

    Creates the storage directory and starts the session reclamation loop on
    startup, then stops the loop on shutdown.
    """
    logger.info("Starting %s...", app.title)
    ensure_directory(app.state.settings.storage_path)
    daemon = app.state.services.reclamation
    daemon.start()

    yield  # Application runtime

    logger.info("Shutting down %s...", app.title)
    try:
        await daemon.stop()
        logger.info("Session reclamation stopped")
    except Exception as e:
        logger.error(f"Error stopping session reclamation: {e}")


def create_application(
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.monotonic
) -> FastAPI:
    """Create and configure FastAPI application instance

    Every call builds its own session registry and services, attached to
    ``app.state.services``.
    """
    settings = settings or default_settings

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Chunked media upload and byte-range streaming API",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    application.state.settings = settings
    application.state.services = build_services(settings, clock=clock)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
    )

    _register_exception_handlers(application)
    _register_routes(application)

    logger.info(
        f"Application '{settings.app_name}' v{settings.app_version} "
        "created successfully"
    )

    return application


def _error_body(request: Request, code: str, message: Any, **extra: Any) -> Dict[str, Any]:
    error = {
        "code": code,
        "message": message,
        **extra,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": str(request.url.path)
    }
    return {"error": error}


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for consistent error responses"""

    @app.exception_handler(MediaStreamException)
    async def media_exception_handler(request: Request, exc: MediaStreamException) -> JSONResponse:
        """Handle application exceptions"""
        status_code = _map_error_category_to_status_code(exc.category)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            f"{exc.error_code}: {exc.message}",
            extra={
                "error_code": exc.error_code,
                "category": exc.category.value,
                "severity": exc.severity.value,
                "details": exc.details,
                "request_path": request.url.path,
                "request_method": request.method
            }
        )

        headers = None
        if isinstance(exc, InvalidRangeException):
            headers = {"Content-Range": f"{RANGE_UNIT} */{exc.file_size}"}

        return JSONResponse(
            status_code=status_code,
            headers=headers,
            content=_error_body(
                request,
                exc.error_code,
                exc.message,
                category=exc.category.value,
                severity=exc.severity.value,
                details=exc.details
            )
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Handle FastAPI HTTP exceptions"""
        logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, f"HTTP_{exc.status_code}", exc.detail)
        )

    @app.exception_handler(StarletteHTTPException)
    async def starlette_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle Starlette base HTTP exceptions"""
        logger.warning(f"Starlette HTTP exception: {exc.status_code} - {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, f"HTTP_{exc.status_code}", exc.detail)
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle Pydantic model validation exceptions"""
        logger.warning(f"Validation error: {exc}")
        return JSONResponse(
            status_code=422,
            content=_error_body(
                request,
                "VALIDATION_ERROR",
                "Request validation failed",
                details=exc.errors(include_url=False)
            )
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for uncaught exceptions"""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
            extra={
                "request_path": request.url.path,
                "request_method": request.method,
                "exception_type": type(exc).__name__
            }
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                request,
                "INTERNAL_SERVER_ERROR",
                "Internal server error",
                type=type(exc).__name__
            )
        )


def _register_routes(app: FastAPI) -> None:
    """Register API routes with the FastAPI application"""

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(upload.router, prefix="/api", tags=["upload"])
    app.include_router(watch.router, prefix="/api", tags=["watch"])
    app.include_router(sessions.router, prefix="/api", tags=["sessions"])


def _map_error_category_to_status_code(category: ErrorCategory) -> int:
    """Map error categories to HTTP status codes

    Args:
        category: ErrorCategory enum value

    Returns:
        Corresponding HTTP status code
    """
    status_code_mapping: Dict[ErrorCategory, int] = {
        ErrorCategory.VALIDATION: 400,    # Bad Request
        ErrorCategory.NOT_FOUND: 404,     # Not Found
        ErrorCategory.RANGE: 416,         # Range Not Satisfiable
        ErrorCategory.TIMEOUT: 408,       # Request Timeout
        ErrorCategory.STORAGE: 500,       # Internal Server Error
        ErrorCategory.SYSTEM: 500         # Internal Server Error
    }
    return status_code_mapping.get(category, 500)


app: FastAPI = create_application()

if __name__ == "__main__":
    # Lazy import uvicorn to avoid dependency if not running directly
    import uvicorn

    logger.info(f"Starting {default_settings.app_name} v{default_settings.app_version}")
    logger.info(f"Environment: {default_settings.environment.value}")
    logger.info(f"Debug mode: {default_settings.debug}")

    uvicorn.run(
        "mediastream.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_level=default_settings.log_level.value.lower(),
        access_log=True
    )
