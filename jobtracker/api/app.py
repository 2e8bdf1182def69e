"""FastAPI application factory with graceful shutdown support."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jobtracker.api.middleware import setup_middleware
from jobtracker.api.routes import create_routes
from jobtracker.core.config import Settings, settings as default_settings
from jobtracker.core.exceptions import DatabaseError
from jobtracker.core.lifecycle import LifecycleManager
from jobtracker.observability.logging import configure_logging
from jobtracker.utils.service_factory import Services, create_services

logger = logging.getLogger(__name__)

ServicesFactory = Callable[[Settings], Awaitable[Services]]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services once at startup and shut them down in phases.

    Startup sequence:
        1. Create stores and connect database pools
        2. Initialize the cache layer (Redis connect + health probe)
        3. Setup lifecycle manager with signal handlers
        4. Register API routes

    Shutdown sequence (via LifecycleManager):
        1. Drain in-flight requests (30s timeout)
        2. Shut down the cache layer
        3. Close database connection pools
    """
    settings: Settings = app.state.settings
    factory: ServicesFactory = app.state.services_factory

    logger.info("Starting JobTracker API server...")
    services = await factory(settings)
    app.state.services = services

    lifecycle_manager = LifecycleManager(
        cache=services.cache,
        databases=services.databases,
        shutdown_timeout=30.0,
    )
    try:
        lifecycle_manager.install_signal_handlers()
    except (NotImplementedError, RuntimeError, ValueError) as e:
        # Signal handlers need the main thread (not available under test clients)
        logger.warning(f"Could not install signal handlers: {e}")
    app.state.lifecycle_manager = lifecycle_manager

    app.include_router(create_routes(services))
    logger.info("JobTracker API server started successfully")

    yield

    logger.info("Shutting down JobTracker API server...")
    await lifecycle_manager.shutdown()
    logger.info("Shutdown complete")


def create_app(
    settings: Settings | None = None,
    services_factory: ServicesFactory | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Configuration (default: process settings)
        services_factory: Builds the services at startup (default: create_services)

    Returns:
        Configured FastAPI app
    """
    settings = settings or default_settings
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        is_production=settings.is_production,
    )

    app = FastAPI(
        title="JobTracker",
        description="Job application tracker with a resilient Redis cache layer",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services_factory = services_factory or create_services

    setup_middleware(app)

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
        """Store failures surface as 503; the cache never hides them."""
        logger.error(f"Store error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content={"error": exc.code, "detail": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unhandled exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_ERROR", "detail": str(exc)},
        )

    return app
