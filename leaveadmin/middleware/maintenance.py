"""
Maintenance Mode Middleware

Refuses ordinary traffic with 503 while a database switch holds the
maintenance gate. Administrative database endpoints, authentication, health
checks, metrics and documentation stay reachable so an operator can watch the
switch and recover a stuck flag.
"""

import logging
from typing import ClassVar

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from leaveadmin.core.exceptions import ServiceNotAvailableError

logger = logging.getLogger(__name__)

MAINTENANCE_MESSAGE = "The system is undergoing database maintenance. Please try again later."


class MaintenanceModeMiddleware(BaseHTTPMiddleware):
    """Answers 503 for non-exempt requests while maintenance mode is on."""

    EXEMPT_PATHS: ClassVar[set[str]] = {
        "/health",
        "/healthz",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
    }

    EXEMPT_PREFIXES: ClassVar[tuple[str, ...]] = (
        "/api/database/",
        "/api/auth/",
        "/health/",
        "/docs/",
    )

    def __init__(self, app, maintenance_gate=None):
        """
        Initialize the middleware.

        Args:
            app: ASGI application
            maintenance_gate: Gate to consult; resolved from the service
                registry on each request when omitted
        """
        super().__init__(app)
        self.maintenance_gate = maintenance_gate

    async def dispatch(self, request: Request, call_next) -> Response:
        if self._is_exempt_path(request.url.path):
            return await call_next(request)

        gate = self.maintenance_gate or self._resolve_gate()
        if gate is None:
            return await call_next(request)

        try:
            enabled = await gate.is_enabled()
        except (SQLAlchemyError, OSError) as e:
            # Fail open; a broken config store must not lock administrators out
            logger.error("Could not read maintenance flag, allowing request: %s", e)
            return await call_next(request)

        if enabled:
            logger.debug("Maintenance mode: refusing %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"detail": MAINTENANCE_MESSAGE, "maintenance": True},
                headers={"Retry-After": "60"},
            )

        return await call_next(request)

    def _is_exempt_path(self, path: str) -> bool:
        if path in self.EXEMPT_PATHS:
            return True
        return path.startswith(self.EXEMPT_PREFIXES)

    @staticmethod
    def _resolve_gate():
        from leaveadmin.core.dependencies import get_service_registry

        try:
            return get_service_registry().get_service("maintenance_gate")
        except (RuntimeError, ServiceNotAvailableError):
            # Startup has not finished registering services
            return None
