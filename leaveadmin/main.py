"""
FastAPI application factory.

The lifespan builds the service registry (control store, repositories,
switchover services) before the first request and disposes it on shutdown.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from leaveadmin import __version__
from leaveadmin.api.router_config import configure_routers
from leaveadmin.core.config import get_settings
from leaveadmin.core.dependencies import initialize_service_registry
from leaveadmin.core.exceptions import ServiceNotAvailableError
from leaveadmin.core.logging_config import configure_logging
from leaveadmin.core.service_registration_database_switch import register_database_switch_services
from leaveadmin.core.service_registry import ServiceRegistry
from leaveadmin.middleware.http import prometheus_http_middleware
from leaveadmin.middleware.maintenance import MaintenanceModeMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager with ServiceRegistry integration."""
    settings = get_settings()
    configure_logging(settings)

    service_registry = ServiceRegistry()
    await register_database_switch_services(service_registry, settings)
    initialize_service_registry(service_registry)
    app.state.service_registry = service_registry

    logger.info("%s %s started", settings.app_title, __version__)
    try:
        yield
    finally:
        await service_registry.shutdown()
        initialize_service_registry(None)
        logger.info("%s stopped", settings.app_title)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()
    app = FastAPI(
        title=settings.app_title,
        description="Leave and fee administration backend: database switchover API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(MaintenanceModeMiddleware)
    app.middleware("http")(prometheus_http_middleware)

    @app.exception_handler(ServiceNotAvailableError)
    async def service_not_available_handler(request: Request, exc: ServiceNotAvailableError):
        logger.warning("Service not available: %s", exc.service_name)
        return JSONResponse(
            status_code=503,
            content={"detail": str(exc), "service": exc.service_name},
        )

    configure_routers(app)
    return app
