"""
Database Manager

Connection management for the control store: the database holding the
connection registry, the switch history and the system configuration.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from leaveadmin.core.config import DatabaseSettings
from leaveadmin.models.database import Base
from leaveadmin.services.endpoint_connector import to_async_url

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the control store engine and its session factory."""

    def __init__(self, database_settings: DatabaseSettings):
        self._settings = database_settings
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            msg = "Database manager not initialized"
            raise RuntimeError(msg)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            msg = "Database manager not initialized"
            raise RuntimeError(msg)
        return self._session_factory

    async def initialize(self) -> None:
        """
        Create the engine and make sure the bookkeeping tables exist.

        Production deployments create the tables with Alembic; ``create_all``
        only fills in tables that are missing.
        """
        url = to_async_url(self._settings.url)
        if url.drivername.startswith("sqlite") and url.database:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(
            url,
            echo=self._settings.echo,
            pool_pre_ping=self._settings.pool_pre_ping,
        )
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Control store initialized with %s backend", url.get_backend_name())

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a control store session."""
        async with self.session_factory() as session:
            yield session

    async def health_check(self) -> bool:
        """True when the control store answers a trivial query."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Control store health check failed: %s", e)
            return False
        return True

    async def close(self) -> None:
        """Dispose the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Control store connections closed")
