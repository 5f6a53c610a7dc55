"""
Endpoint connector.

Opens short-lived async SQLAlchemy engines for arbitrary connection strings
(source, target, or a connection being tested) and probes them. Plain
``postgresql://`` and ``sqlite:///`` URLs are upgraded to their async drivers,
and every engine carries an explicit connect timeout so an unreachable host
cannot block the caller indefinitely.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from leaveadmin.core.exceptions import ConnectivityError
from leaveadmin.models.database_switch import ConnectionTestStatus
from leaveadmin.services.credential_cipher import mask_connection_string

logger = logging.getLogger(__name__)

_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "postgresql+psycopg2": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def to_async_url(connection_string: str) -> URL:
    """
    Parse a connection string and select an async driver for it.

    Raises:
        ArgumentError: If the string is not a valid SQLAlchemy URL
    """
    url = make_url(connection_string)
    drivername = _ASYNC_DRIVERS.get(url.drivername, url.drivername)
    url = url.set(drivername=drivername)

    # asyncpg takes libpq sslmode values under the name "ssl"
    if drivername == "postgresql+asyncpg" and "sslmode" in url.query:
        query = {k: v for k, v in url.query.items() if k != "sslmode"}
        query["ssl"] = url.query["sslmode"]
        url = url.set(query=query)

    return url


def connect_args_for(url: URL, timeout_seconds: float) -> dict[str, Any]:
    """Driver specific keyword arguments carrying the connect timeout."""
    if url.drivername.startswith("postgresql"):
        return {"timeout": timeout_seconds}
    if url.drivername.startswith("sqlite"):
        return {"timeout": timeout_seconds}
    if url.drivername.startswith("mysql"):
        return {"connect_timeout": int(timeout_seconds)}
    return {}


class EndpointConnector:
    """Factory for short-lived engines against registered endpoints."""

    def __init__(self, connect_timeout_seconds: float = 10.0):
        self._connect_timeout = connect_timeout_seconds

    @property
    def connect_timeout_seconds(self) -> float:
        return self._connect_timeout

    def create_engine(self, connection_string: str) -> AsyncEngine:
        """Create an engine without pooling; the caller must dispose it."""
        url = to_async_url(connection_string)
        return create_async_engine(
            url,
            poolclass=NullPool,
            connect_args=connect_args_for(url, self._connect_timeout),
        )

    @asynccontextmanager
    async def open(self, connection_string: str) -> AsyncIterator[AsyncEngine]:
        """Yield an engine for ``connection_string`` and dispose it afterwards."""
        engine = self.create_engine(connection_string)
        try:
            yield engine
        finally:
            await engine.dispose()

    async def ping(self, engine: AsyncEngine) -> str:
        """
        Run ``SELECT 1`` against an open engine.

        Returns:
            Server version string

        Raises:
            ConnectivityError: If the endpoint does not answer in time
        """
        try:
            return await asyncio.wait_for(
                self._select_one(engine),
                # connect timeout plus headroom for the query itself
                timeout=self._connect_timeout * 2,
            )
        except (SQLAlchemyError, OSError, TimeoutError) as e:
            raise ConnectivityError(f"Cannot connect to database: {e}") from e

    async def probe(self, connection_string: str) -> dict[str, Any]:
        """
        Check that an endpoint answers a trivial round-trip query.

        Returns:
            Dict with ``success``, ``status``, ``message``, ``version`` and
            ``latency_ms``. Failures are reported, not raised.
        """
        start = time.perf_counter()
        try:
            async with self.open(connection_string) as engine:
                version = await self.ping(engine)
        except (ConnectivityError, ArgumentError) as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(
                "Connection probe failed for %s: %s", mask_connection_string(connection_string), e
            )
            return {
                "success": False,
                "status": ConnectionTestStatus.FAILED.value,
                "message": str(e),
                "version": None,
                "latency_ms": latency_ms,
            }

        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Connection probe succeeded for %s in %d ms",
            mask_connection_string(connection_string),
            latency_ms,
        )
        return {
            "success": True,
            "status": ConnectionTestStatus.SUCCESS.value,
            "message": "Connection successful",
            "version": version,
            "latency_ms": latency_ms,
        }

    async def _select_one(self, engine: AsyncEngine) -> str:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return self.server_version(conn.dialect)

    @staticmethod
    def server_version(dialect: Any) -> str:
        """Human readable ``<dialect> <version>`` string."""
        info = getattr(dialect, "server_version_info", None) or ()
        version = ".".join(str(part) for part in info)
        return f"{dialect.name} {version}".strip()

    @staticmethod
    async def missing_tables(engine: AsyncEngine, tables: list[str]) -> list[str]:
        """Return the names from ``tables`` that do not exist on ``engine``."""
        async with engine.connect() as conn:
            existing = await conn.run_sync(
                lambda sync_conn: set(inspect(sync_conn).get_table_names())
            )
        return [table for table in tables if table not in existing]
