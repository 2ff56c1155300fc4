"""Main entry point for the automation engine server."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.logging import setup_logging
from .routes import api_router, webhook_router
from .schemas.common import RootResponse, HealthResponse

if TYPE_CHECKING:
    from .runtime import AutomationRuntime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging(settings.log_level)

    if getattr(app.state, "runtime", None) is None:
        from .db import async_session_factory, init_db
        from .runtime import AutomationRuntime

        # Initialize database tables
        await init_db()
        logger.info("Database initialized")
        app.state.runtime = AutomationRuntime.with_database(settings, async_session_factory)

    runtime: AutomationRuntime = app.state.runtime
    await runtime.start()
    logger.info("%s v%s started on http://%s:%s", settings.app_name, settings.app_version, settings.host, settings.port)

    yield

    await runtime.stop()
    logger.info("%s stopped", settings.app_name)


def create_app(runtime: AutomationRuntime | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    A prebuilt runtime is used as is; otherwise the lifespan builds one
    backed by the configured database.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Automation engine - linear step execution with browser, retry and scheduling support",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.runtime = runtime
    app.state.started_at = time.monotonic()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Include routers
    app.include_router(api_router)
    app.include_router(webhook_router, tags=["Webhooks"])

    # Root endpoints
    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health derived from recent execution success rate and durations."""
        status, issues = "healthy", []
        if app.state.runtime is not None:
            status, issues = app.state.runtime.metrics.health_status()
        return HealthResponse(
            status=status,
            version=settings.app_version,
            uptime_seconds=round(time.monotonic() - app.state.started_at, 3),
            issues=issues,
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "automation_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
