"""
DAO Governance - FastAPI Application Factory
Main entry point for the governance API.

This creates and configures the FastAPI application with:
- Proposal and DAO routes
- Middleware (correlation ID, logging, security headers)
- Error handlers
- Background execution scheduler
- OpenAPI documentation
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import sentry_sdk
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from daogov import __version__
from daogov.api.errors import register_exception_handlers
from daogov.api.middleware import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from daogov.config import get_settings
from daogov.database.client import Neo4jClient
from daogov.database.schema import SchemaManager
from daogov.monitoring import configure_logging
from daogov.services.scheduler import BackgroundScheduler, setup_scheduler

# Configure logging early - before any other logging occurs
_settings = get_settings()


def _sentry_before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """Filter out health check endpoint errors from Sentry."""
    request_data = event.get("request")
    url = ""
    if isinstance(request_data, dict):
        url_value = request_data.get("url", "")
        if isinstance(url_value, str):
            url = url_value
    if "/health" in url or "/ready" in url:
        return None
    return event


_sentry_initialized = False
if _settings.sentry_dsn:
    sentry_sdk.init(
        dsn=_settings.sentry_dsn,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sample_rate=_settings.sentry_traces_sample_rate,
        environment=_settings.app_env,
        release=f"daogov@{__version__}",
        send_default_pii=False,
        before_send=_sentry_before_send,
    )
    _sentry_initialized = True

configure_logging(
    level=_settings.log_level,
    json_output=_settings.app_env == "production",
)

logger = structlog.get_logger(__name__)

if _sentry_initialized:
    logger.info("sentry_initialized", environment=_settings.app_env)
else:
    logger.debug("sentry_not_configured", hint="Set SENTRY_DSN to enable error tracking")


class GovernanceApp:
    """
    Application container.

    Holds the database client and background scheduler for dependency
    injection and shutdown.
    """

    def __init__(self) -> None:
        self.settings = get_settings()

        self.db_client: Neo4jClient | None = None
        self.scheduler: BackgroundScheduler | None = None

        self.started_at: datetime | None = None
        self.is_ready: bool = False

    async def initialize(self) -> None:
        """Connect the store, apply the schema and start the scheduler."""
        logger.info("governance_initializing")

        # Database - critical, app cannot run without it
        try:
            self.db_client = Neo4jClient()
            await self.db_client.connect()
            logger.info("database_connected")
        except (ServiceUnavailable, SessionExpired, OSError) as e:
            logger.critical("database_connection_failed", error=str(e))
            raise RuntimeError(f"Cannot start: Database connection failed - {e}") from e

        if self.settings.neo4j_setup_schema_on_startup:
            try:
                await SchemaManager(self.db_client).setup_all()
            except (ServiceUnavailable, SessionExpired, TransientError) as e:
                logger.critical("schema_setup_failed", error=str(e))
                await self.db_client.close()
                raise RuntimeError(f"Cannot start: Schema setup failed - {e}") from e

        # Scheduler - app can serve requests without it
        try:
            self.scheduler = await setup_scheduler(self.db_client, settings=self.settings)
            await self.scheduler.start()
            logger.info(
                "scheduler_started",
                tasks=self.scheduler.get_stats().get("tasks_registered", 0),
            )
        except (RuntimeError, ValueError, OSError) as e:
            logger.warning("scheduler_init_failed", error=str(e))
            self.scheduler = None

        self.started_at = datetime.now(UTC)
        self.is_ready = True

        logger.info("governance_initialized", scheduler=self.scheduler is not None)

    async def shutdown(self) -> None:
        """Stop the scheduler, then close the database connection."""
        logger.info("governance_shutting_down")
        self.is_ready = False

        if self.scheduler:
            try:
                await self.scheduler.stop()
                logger.info("scheduler_shutdown")
            except (RuntimeError, OSError) as e:
                logger.warning("scheduler_shutdown_failed", error=str(e))

        if self.db_client:
            await self.db_client.close()

        logger.info("governance_shutdown_complete")

    def get_status(self) -> dict[str, Any]:
        """Get current application status."""
        return {
            "status": "ready" if self.is_ready else "starting",
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "uptime_seconds": (
                (datetime.now(UTC) - self.started_at).total_seconds() if self.started_at else 0
            ),
            "database": "connected"
            if self.db_client and self.db_client.is_connected
            else "disconnected",
            "scheduler": self.scheduler.get_stats() if self.scheduler else None,
        }


# Global app instance
governance_app = GovernanceApp()

SHUTDOWN_TIMEOUT_SECONDS = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Initializes and shuts down all components.
    """
    container: GovernanceApp = app.state.governance
    try:
        await container.initialize()
        yield
    finally:
        try:
            await asyncio.wait_for(container.shutdown(), timeout=SHUTDOWN_TIMEOUT_SECONDS)
        except TimeoutError:
            logger.error(
                "governance_shutdown_timeout",
                timeout_seconds=SHUTDOWN_TIMEOUT_SECONDS,
                detail="Forced shutdown after timeout. Some resources may not be cleaned up.",
            )


def create_app(
    title: str = "DAO Governance",
    description: str = "DAO proposal voting and timelocked execution",
    version: str = __version__,
    docs_url: str | None = "/docs",
    redoc_url: str | None = "/redoc",
    container: GovernanceApp | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        title: API title for documentation
        description: API description
        version: API version string
        docs_url: Swagger UI URL (None to disable)
        redoc_url: ReDoc URL (None to disable)
        container: Application container (defaults to the global one)

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    container = container or governance_app

    # API docs are disabled in production
    if settings.app_env == "production":
        docs_url = None
        redoc_url = None

    app = FastAPI(
        title=title,
        description=description,
        version=version,
        docs_url=docs_url,
        redoc_url=redoc_url,
        debug=settings.debug,
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "proposals",
                "description": "Proposal lifecycle, voting and execution",
            },
            {
                "name": "governance",
                "description": "Voting power, quorum, execution queue and treasury",
            },
        ],
    )

    app.state.governance = container

    cors_origins = settings.cors_origins_list
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
        )
    else:
        logger.warning("cors_origins_empty")

    # Order matters: the last middleware added runs first
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.app_env == "production")
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    from daogov.api.routes import governance_router, proposals_router

    app.include_router(proposals_router, prefix=settings.api_prefix, tags=["proposals"])
    app.include_router(governance_router, prefix=settings.api_prefix, tags=["governance"])

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "name": title,
            "version": version,
            "status": container.get_status(),
        }

    # Health check (lightweight)
    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {
            "status": "healthy" if container.is_ready else "starting",
        }

    # Readiness check including DB connectivity
    @app.get("/ready", include_in_schema=False)
    async def ready() -> Response:
        if not container.is_ready:
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready"},
            )
        if container.db_client:
            try:
                db_ok = await container.db_client.verify_connection()
            except (ServiceUnavailable, SessionExpired, TransientError, OSError, RuntimeError):
                db_ok = False
            if not db_ok:
                return JSONResponse(
                    status_code=503,
                    content={"status": "degraded", "reason": "database_unreachable"},
                    headers={"Retry-After": "5"},
                )
        return JSONResponse(content={"status": "ready"})

    logger.info(
        "fastapi_app_created",
        title=title,
        version=version,
        docs_url=docs_url,
    )

    return app


# Default app for uvicorn
app = create_app()


def run_server(
    host: str | None = None,
    port: int | None = None,
    reload: bool = False,
    workers: int | None = None,
) -> None:
    """
    Run the governance server.

    For development use:
        python -m daogov.api.app

    For production use:
        uvicorn daogov.api.app:app --host 0.0.0.0 --port 8000 --workers 4
    """
    import uvicorn

    uvicorn.run(
        "daogov.api.app:app",
        host=host or _settings.api_host,
        port=port or _settings.api_port,
        reload=reload,
        workers=1 if reload else (workers or _settings.api_workers),
        log_level=_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server(reload=True)
