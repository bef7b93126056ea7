"""TaskTrack Core FastAPI application."""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from .. import __version__
from ..clock import Clock, utc_now
from ..config import Settings, get_settings
from ..database import build_engine, build_session_factory
from ..errors import (
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    TaskTrackError,
    UnauthorizedError,
    ValidationError,
)
from .routers import auth, dashboard, notifications, projects, tasks, users

logger = logging.getLogger("tasktrack-core")

RETRY_AFTER_SECONDS = "1"

STATUS_BY_ERROR: list[tuple[type, int]] = [
    (NotFoundError, 404),
    (ForbiddenError, 403),
    (ValidationError, 422),
    (ConflictError, 409),
    (UnauthorizedError, 401),
    (InfrastructureError, 503),
]


def _status_for(exc: TaskTrackError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def _task_track_error_handler(request: Request, exc: TaskTrackError) -> JSONResponse:
    status_code = _status_for(exc)
    body = {"detail": exc.message, "error": exc.kind}
    headers = None
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    if isinstance(exc, ConflictError):
        body["reason"] = exc.reason
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}
    if isinstance(exc, InfrastructureError):
        headers = {"Retry-After": RETRY_AFTER_SECONDS}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def _store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Store unavailable on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Database unavailable, retry later", "error": InfrastructureError.kind},
        headers={"Retry-After": RETRY_AFTER_SECONDS},
    )


def create_app(settings: Optional[Settings] = None, clock: Clock = utc_now) -> FastAPI:
    """
    Build the application with its own engine and session factory.

    Args:
        settings: Settings to use; read from the environment when omitted
        clock: Source of timestamps and "today" for every request

    Returns:
        Configured FastAPI app
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = FastAPI(
        title="TaskTrack Core API",
        description="Multi-tenant task tracker with audited, permission-checked transitions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    engine = build_engine(settings)
    app.state.settings = settings
    app.state.clock = clock
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TaskTrackError, _task_track_error_handler)
    app.add_exception_handler(OperationalError, _store_unavailable_handler)
    app.add_exception_handler(PoolTimeoutError, _store_unavailable_handler)

    app.include_router(auth.router, prefix="/api/v1/auth")
    app.include_router(users.router, prefix="/api/v1/users")
    app.include_router(projects.router, prefix="/api/v1/projects")
    app.include_router(tasks.router, prefix="/api/v1/tasks")
    app.include_router(notifications.router, prefix="/api/v1/notifications")
    app.include_router(dashboard.router, prefix="/api/v1/dashboard")

    @app.get("/")
    def root():
        """Root endpoint with server info."""
        return {
            "name": "TaskTrack Core API",
            "version": __version__,
            "docs": "/docs",
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    logger.info("TaskTrack Core API configured")
    return app
