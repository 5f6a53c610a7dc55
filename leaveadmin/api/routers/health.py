"""Health and metrics endpoints."""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from leaveadmin import __version__
from leaveadmin.core.dependencies import get_service_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> JSONResponse:
    """Liveness plus control store reachability."""
    database_ok = False
    try:
        registry = get_service_registry()
        if registry.has_service("database_manager"):
            database_ok = await registry.get_service("database_manager").health_check()
    except RuntimeError:
        logger.debug("Health check before service registry initialization")

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "version": __version__,
            "control_store": "ok" if database_ok else "unavailable",
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


@router.get("/healthz")
async def liveness() -> dict:
    """Process liveness only."""
    return {"status": "ok"}


@router.get("/metrics", summary="Prometheus metrics")
def metrics() -> Response:
    """Prometheus metrics endpoint."""
    data = generate_latest()
    logger.debug("Prometheus metrics generated - %d bytes", len(data))
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
