"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_engine import __version__
from hrms_engine.api.routes import (
    attendance_router,
    health_router,
    messages_router,
    requests_router,
    toil_router,
)
from hrms_engine.clock import Clock, make_clock
from hrms_engine.config import Settings, get_settings
from hrms_engine.database import dispose_db, init_db
from hrms_engine.errors import HRMSError, InvalidTransitionError
from hrms_engine.jobs import build_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    owns_engine = app.state.session_factory is None
    if owns_engine:
        _, app.state.session_factory = init_db()

    settings: Settings = app.state.settings
    if settings.scheduler_enabled:
        scheduler = build_scheduler(app.state.session_factory, settings, app.state.clock)
        scheduler.start()
        app.state.scheduler = scheduler

    yield

    # Shutdown
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
        app.state.scheduler = None
    if owns_engine:
        await dispose_db()


def create_app(
    settings: Settings | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="HRMS Engine API",
        description="Attendance, approvals and messaging core",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.clock = clock or make_clock(settings.timezone)
    app.state.scheduler = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(HRMSError)
    async def domain_exception_handler(request: Request, exc: HRMSError) -> JSONResponse:
        """Render domain errors with their status and code."""
        content = {"detail": exc.message, "code": exc.code}
        if isinstance(exc, InvalidTransitionError):
            content["from_status"] = exc.from_status
            content["to_status"] = exc.to_status
        return JSONResponse(status_code=exc.http_status, content=content)

    @app.exception_handler(OperationalError)
    @app.exception_handler(InterfaceError)
    async def store_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Database connectivity failures are reported as retryable."""
        logger.warning("Store unavailable during %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database unavailable", "code": "STORE_UNAVAILABLE"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error during %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(attendance_router, prefix="/api/v1")
    app.include_router(requests_router, prefix="/api/v1")
    app.include_router(toil_router, prefix="/api/v1")
    app.include_router(messages_router, prefix="/api/v1")

    return app
