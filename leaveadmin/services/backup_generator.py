"""
Backup script generation and replay.

A backup is a plain SQL script: one INSERT per row of every selected table,
wrapped in a single transaction and ordered by table dependency and primary
key. Restoring replays the INSERT statements after clearing the same tables,
inside one transaction, and then resynchronizes identity sequences.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from sqlalchemy import MetaData, Table, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from leaveadmin.core.exceptions import RestoreError
from leaveadmin.models.business_tables import (
    TABLE_DEPENDENCY_ORDER,
    BusinessTable,
    reverse_dependency_order,
)
from leaveadmin.services.sequence_sync import SequenceSynchronizer
from leaveadmin.services.sql_values import escape_literal

logger = logging.getLogger(__name__)


def split_statements(script: str) -> list[str]:
    """
    Split a SQL script on top-level semicolons.

    Semicolons inside single-quoted literals, double-quoted identifiers and
    ``--`` comments do not terminate a statement. Comments are dropped.
    """
    statements: list[str] = []
    current: list[str] = []
    quote: str | None = None
    i = 0
    length = len(script)

    while i < length:
        char = script[i]

        if quote:
            current.append(char)
            if char == quote:
                # A doubled quote is an escaped quote, not the end of the literal
                if i + 1 < length and script[i + 1] == quote:
                    current.append(script[i + 1])
                    i += 1
                else:
                    quote = None
        elif char in ("'", '"'):
            quote = char
            current.append(char)
        elif char == "-" and script.startswith("--", i):
            newline = script.find("\n", i)
            i = length if newline == -1 else newline
            continue
        elif char == ";":
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
        else:
            current.append(char)
        i += 1

    trailing = "".join(current).strip()
    if trailing:
        statements.append(trailing)
    return statements


class BackupGenerator:
    """Produces, stores and replays backup scripts."""

    def __init__(self, backup_dir: Path, sequence_synchronizer: SequenceSynchronizer):
        self._backup_dir = backup_dir
        self._sequences = sequence_synchronizer

    @property
    def backup_dir(self) -> Path:
        return self._backup_dir

    async def generate(self, connection: AsyncConnection, tables: list[BusinessTable]) -> str:
        """
        Render every row of ``tables`` as an INSERT statement.

        Args:
            connection: Open connection to the database being backed up
            tables: Tables in dependency order

        Returns:
            The backup script
        """
        metadata = MetaData()
        names = [table.value for table in tables]
        await connection.run_sync(lambda sync_conn: metadata.reflect(sync_conn, only=names))
        preparer = connection.dialect.identifier_preparer
        dialect_name = connection.dialect.name

        lines = [
            "-- Database switch backup",
            f"-- Generated at: {datetime.now(UTC).isoformat()}",
            f"-- Source dialect: {dialect_name}",
            "BEGIN;",
            "",
        ]

        total_rows = 0
        for name in names:
            table: Table = metadata.tables[name]
            order_by = list(table.primary_key.columns) or list(table.columns)
            result = await connection.execute(select(table).order_by(*order_by))
            rows = result.all()

            lines.append(f"-- Table: {name} ({len(rows)} rows)")
            column_list = ", ".join(preparer.quote(column.name) for column in table.columns)
            quoted_table = preparer.quote(name)
            for row in rows:
                values = ", ".join(escape_literal(value, dialect_name) for value in row)
                lines.append(f"INSERT INTO {quoted_table} ({column_list}) VALUES ({values});")
            lines.append("")
            total_rows += len(rows)

        lines.append("COMMIT;")
        logger.info("Generated backup script for %d tables (%d rows)", len(names), total_rows)
        return "\n".join(lines) + "\n"

    def write(self, path: Path, script: str) -> Path:
        """Persist a backup script, creating the backup directory if needed."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(script, encoding="utf-8")
        logger.info("Backup written to %s (%d bytes)", path, path.stat().st_size)
        return path

    def read(self, path: Path | str) -> str:
        """Load a previously written backup script."""
        return Path(path).read_text(encoding="utf-8")

    def build_path(
        self, switch_type: str, from_connection_id: int, to_connection_id: int
    ) -> Path:
        """Unique artifact path identifying the attempt's endpoints."""
        timestamp = datetime.now(UTC).isoformat().replace(":", "-").replace(".", "-")
        return self._backup_dir / (
            f"{switch_type}-{timestamp}-{from_connection_id}-to-{to_connection_id}.sql"
        )

    async def restore(
        self,
        engine: AsyncEngine,
        script: str,
        tables: Iterable[BusinessTable] | None = None,
    ) -> int:
        """
        Replace the contents of ``tables`` with the rows in ``script``.

        Tables are cleared children first, the script's INSERT statements are
        replayed and identity sequences are resynchronized, all in one
        transaction.

        Returns:
            Number of INSERT statements replayed

        Raises:
            RestoreError: If any statement fails; the database is unchanged
        """
        selected = list(tables) if tables is not None else list(TABLE_DEPENDENCY_ORDER)
        inserts = [
            statement
            for statement in split_statements(script)
            if statement.lstrip().upper().startswith("INSERT")
        ]

        try:
            async with engine.begin() as conn:
                preparer = conn.dialect.identifier_preparer
                for table in reverse_dependency_order(selected):
                    await conn.exec_driver_sql(f"DELETE FROM {preparer.quote(table.value)}")
                # Driver-level execution; literal text must not be parsed for bind markers
                for statement in inserts:
                    await conn.exec_driver_sql(statement)
                await self._sequences.resync(conn, selected)
        except SQLAlchemyError as e:
            raise RestoreError(f"Restore failed and was rolled back: {e}") from e

        logger.info("Restored %d rows into %d tables", len(inserts), len(selected))
        return len(inserts)
