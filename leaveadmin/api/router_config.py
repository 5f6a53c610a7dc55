"""
Router Configuration

Includes every API router on the application.
"""

import logging

from fastapi import FastAPI

from leaveadmin.api.routers import database_management, health

logger = logging.getLogger(__name__)


def configure_routers(app: FastAPI) -> None:
    """
    Configure all API routers.

    Args:
        app: FastAPI application instance
    """
    app.include_router(health.router)
    app.include_router(database_management.router)

    logger.info("API routers configured")
