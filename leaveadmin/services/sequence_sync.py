"""
Identity sequence resynchronization.

Rows copied with explicit primary keys do not advance the target's identity
generator. After a transfer or a restore every copied table must have its
next generated id set to ``max(id) + 1`` (or 1 for an empty table).
"""

import logging

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from leaveadmin.models.business_tables import BusinessTable

logger = logging.getLogger(__name__)


class SequenceSynchronizer:
    """Dialect-aware reset of identity sequences."""

    async def resync(self, connection: AsyncConnection, tables: list[BusinessTable]) -> list[str]:
        """
        Resynchronize identity sequences for ``tables`` on ``connection``.

        A table without a sequence or an identity column is skipped. Failures
        are logged and do not abort the caller.

        Returns:
            Names of tables whose sequence could not be reset
        """
        dialect = connection.dialect.name
        failed: list[str] = []

        for table in tables:
            try:
                if dialect == "postgresql":
                    # A failed statement aborts the whole PostgreSQL transaction
                    async with connection.begin_nested():
                        await self._resync_postgresql(connection, table)
                elif dialect == "sqlite":
                    await self._resync_sqlite(connection, table)
                elif dialect in ("mysql", "mariadb"):
                    await self._resync_mysql(connection, table)
                else:
                    logger.debug("No sequence resync for dialect %s", dialect)
            except SQLAlchemyError as e:
                logger.warning("Failed to reset sequence for table %s: %s", table.value, e)
                failed.append(table.value)

        return failed

    async def _resync_postgresql(self, connection: AsyncConnection, table: BusinessTable) -> None:
        sequence = (
            await connection.execute(
                text("SELECT pg_get_serial_sequence(:table, 'id')"), {"table": table.value}
            )
        ).scalar()
        if not sequence:
            return

        # is_called=false on an empty table makes nextval() return 1
        await connection.execute(
            text(
                f'SELECT setval(:sequence, COALESCE((SELECT MAX(id) FROM "{table.value}"), 1), '
                f'(SELECT MAX(id) IS NOT NULL FROM "{table.value}"))'
            ),
            {"sequence": sequence},
        )

    async def _resync_sqlite(self, connection: AsyncConnection, table: BusinessTable) -> None:
        # Without AUTOINCREMENT SQLite already hands out max(rowid) + 1
        has_sequence_table = await connection.run_sync(
            lambda sync_conn: inspect(sync_conn).has_table("sqlite_sequence")
        )
        if not has_sequence_table:
            return

        max_id = (
            await connection.execute(text(f'SELECT COALESCE(MAX(id), 0) FROM "{table.value}"'))
        ).scalar_one()
        await connection.execute(
            text("DELETE FROM sqlite_sequence WHERE name = :table"), {"table": table.value}
        )
        if max_id:
            await connection.execute(
                text("INSERT INTO sqlite_sequence (name, seq) VALUES (:table, :seq)"),
                {"table": table.value, "seq": max_id},
            )

    async def _resync_mysql(self, connection: AsyncConnection, table: BusinessTable) -> None:
        max_id = (
            await connection.execute(text(f"SELECT COALESCE(MAX(id), 0) FROM `{table.value}`"))
        ).scalar_one()
        await connection.execute(text(f"ALTER TABLE `{table.value}` AUTO_INCREMENT = {max_id + 1}"))
