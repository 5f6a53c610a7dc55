"""
Maintenance mode gate.

A single persisted flag, ``system.maintenance_mode``, read by the request
layer on every non-exempt request. Whoever enables the gate owns disabling
it; the switchover engine does so in a ``finally`` block.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from leaveadmin.repositories.system_config_repository import SystemConfigRepository

logger = logging.getLogger(__name__)

MAINTENANCE_MODE_KEY = "system.maintenance_mode"


class MaintenanceGate:
    """Process-wide maintenance switch persisted in the control store."""

    def __init__(self, config_repository: SystemConfigRepository):
        self._config_repo = config_repository

    async def enable(self) -> None:
        """Block non-administrative traffic."""
        await self._config_repo.set_value(
            MAINTENANCE_MODE_KEY, "true", description="Block non-admin traffic"
        )
        logger.warning("Maintenance mode ENABLED")

    async def disable(self) -> None:
        """Resume normal traffic."""
        await self._config_repo.set_value(
            MAINTENANCE_MODE_KEY, "false", description="Block non-admin traffic"
        )
        logger.info("Maintenance mode disabled")

    async def is_enabled(self) -> bool:
        """True while ordinary requests must be refused."""
        value = await self._config_repo.get_value(MAINTENANCE_MODE_KEY)
        return (value or "").strip().lower() == "true"

    @staticmethod
    async def scrub(connection: AsyncConnection) -> None:
        """
        Reset a maintenance flag copied onto another database.

        The flag is ``"true"`` while a switch runs, so copying ``system_config``
        carries it to the target; without this the target would come up locked.
        """
        await connection.execute(
            text("UPDATE system_config SET config_value = 'false' WHERE config_key = :key"),
            {"key": MAINTENANCE_MODE_KEY},
        )
