"""Repository for key/value system configuration."""

import logging
from datetime import UTC, datetime

from sqlalchemy import select

from leaveadmin.models.database_switch import SystemConfig
from leaveadmin.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)


class SystemConfigRepository(MonitoredRepository):
    """Reads and upserts rows of the ``system_config`` table."""

    @MonitoredRepository._monitored_operation("get_value")
    async def get_value(self, key: str) -> str | None:
        """Return the value stored under ``key``, or None."""
        async with self.get_session() as session:
            stmt = select(SystemConfig.config_value).where(SystemConfig.config_key == key)
            return (await session.execute(stmt)).scalar_one_or_none()

    @MonitoredRepository._monitored_operation("set_value")
    async def set_value(self, key: str, value: str, description: str | None = None) -> None:
        """Insert or update ``key``."""
        async with self.get_session() as session:
            stmt = select(SystemConfig).where(SystemConfig.config_key == key)
            config = (await session.execute(stmt)).scalar_one_or_none()
            if config is None:
                config = SystemConfig(config_key=key, description=description)
                session.add(config)
            config.config_value = value
            config.updated_at = datetime.now(UTC)
            await session.commit()

    @MonitoredRepository._monitored_operation("get_all")
    async def get_all(self) -> dict[str, str | None]:
        """Every configuration value keyed by name."""
        async with self.get_session() as session:
            result = await session.execute(
                select(SystemConfig.config_key, SystemConfig.config_value)
            )
            return {row.config_key: row.config_value for row in result}
