"""
Database switch service.

Orchestrates moving the deployment from the active database connection to a
target connection: probe the target, fence traffic with the maintenance gate,
back up the source, copy every business table, validate, resynchronize
identity sequences and flip the active pointer. Any failure after the request
has been validated restores the backup, releases the gate and is recorded in
the switch history.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import MetaData, Table, delete, func, insert, select
from sqlalchemy import table as table_clause
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from leaveadmin.core.exceptions import (
    ConnectionNotFoundError,
    ConnectivityError,
    CredentialDecryptionError,
    MigrationValidationError,
    RequestValidationError,
    RestoreError,
    SameTargetError,
    SchemaMismatchError,
    TransferError,
)
from leaveadmin.core.metrics import (
    INSERT_BATCHES,
    ROWS_TRANSFERRED,
    SWITCH_ATTEMPTS,
    SWITCH_PHASE_DURATION,
)
from leaveadmin.models.business_tables import (
    TABLE_DEPENDENCY_ORDER,
    BusinessTable,
    resolve_tables,
    reverse_dependency_order,
)
from leaveadmin.models.database_switch import ConnectionTestStatus, SwitchStatus, SwitchType
from leaveadmin.models.switchover import SwitchOptions
from leaveadmin.services.endpoint_connector import to_async_url
from leaveadmin.services.sql_values import convert_for_column

logger = logging.getLogger(__name__)


@dataclass
class _SwitchRun:
    """Mutable state of one protocol invocation."""

    switch_type: SwitchType
    from_connection_id: int | None
    to_connection_id: int
    tables: list[BusinessTable]
    started_at: datetime
    phase: str = "validating_request"
    source_url: str | None = None
    gate_enabled: bool = False
    backup_path: str | None = None
    source_counts: dict[str, int] = field(default_factory=dict)
    migrated_tables: list[dict[str, Any]] = field(default_factory=list)
    validation_passed: bool | None = None
    rollback: dict[str, Any] | None = None
    gate_error: str | None = None

    @property
    def total_rows(self) -> int:
        return sum(entry["rows"] for entry in self.migrated_tables)

    def elapsed_ms(self) -> int:
        return int((datetime.now(UTC) - self.started_at).total_seconds() * 1000)


class DatabaseSwitchService:
    """
    Switches the application between registered database connections.

    Dependencies are injected; the service holds no connection state between
    calls. Concurrent invocations are not serialized here.
    """

    def __init__(
        self,
        connection_repository,
        history_repository,
        maintenance_gate,
        backup_generator,
        endpoint_connector,
        sequence_synchronizer,
        default_batch_size: int = 1000,
        default_tables: list[str] | None = None,
    ):
        """Initialize with repositories and collaborating services."""
        self._connection_repo = connection_repository
        self._history_repo = history_repository
        self._gate = maintenance_gate
        self._backup = backup_generator
        self._connector = endpoint_connector
        self._sequences = sequence_synchronizer
        self._default_batch_size = default_batch_size
        self._default_tables = default_tables

        logger.info("DatabaseSwitchService initialized with repository injection")

    def default_options(self) -> SwitchOptions:
        """Switch options populated from settings."""
        return SwitchOptions(batch_size=self._default_batch_size)

    # Connection registry

    async def list_connections(self) -> list[dict[str, Any]]:
        return await self._connection_repo.list_connections()

    async def get_connection(self, connection_id: int) -> dict[str, Any]:
        """
        Raises:
            ConnectionNotFoundError: If the id is unknown
        """
        connection = await self._connection_repo.get_connection(connection_id)
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        return connection

    async def create_connection(
        self,
        name: str,
        connection_string: str,
        environment: str,
        description: str | None = None,
        actor_id: int | None = None,
    ) -> dict[str, Any]:
        """
        Raises:
            RequestValidationError: If the connection string is not a database URL
        """
        self._check_connection_string(connection_string)
        return await self._connection_repo.create_connection(
            name=name,
            connection_string=connection_string,
            environment=environment,
            description=description,
            created_by=actor_id,
        )

    async def update_connection(
        self, connection_id: int, actor_id: int | None = None, **changes: Any
    ) -> dict[str, Any]:
        """
        Raises:
            ConnectionNotFoundError: If the id is unknown
        """
        if changes.get("connection_string") is not None:
            self._check_connection_string(changes["connection_string"])
        connection = await self._connection_repo.update_connection(
            connection_id, updated_by=actor_id, **changes
        )
        if connection is None:
            raise ConnectionNotFoundError(connection_id)
        return connection

    async def delete_connection(self, connection_id: int) -> None:
        """
        Raises:
            ConnectionNotFoundError: If the id is unknown
            ActiveConnectionDeletionError: If the connection is active
        """
        if not await self._connection_repo.delete_connection(connection_id):
            raise ConnectionNotFoundError(connection_id)

    @staticmethod
    def _check_connection_string(connection_string: str) -> None:
        try:
            to_async_url(connection_string)
        except ArgumentError:
            # The parser echoes the raw string, password included
            raise RequestValidationError("Invalid connection string") from None

    # Connection tests and status

    async def test_connection(self, connection_string: str) -> dict[str, Any]:
        """Probe an unsaved connection string."""
        return await self._connector.probe(connection_string)

    async def test_saved_connection(self, connection_id: int) -> dict[str, Any]:
        """
        Probe a registered connection and store the outcome on its record.

        Raises:
            ConnectionNotFoundError: If the id is unknown
        """
        try:
            connection_string = await self._connection_repo.get_connection_string(connection_id)
        except CredentialDecryptionError as e:
            result = {
                "success": False,
                "status": ConnectionTestStatus.FAILED.value,
                "message": f"Stored connection string cannot be decrypted: {e}",
                "version": None,
                "latency_ms": None,
            }
        else:
            result = await self._connector.probe(connection_string)

        await self._connection_repo.record_test_result(
            connection_id, result["status"], result["message"]
        )
        return result

    async def get_database_status(self) -> dict[str, Any]:
        """Active connection summary with server version and table row counts."""
        active = await self._connection_repo.get_active_connection()
        if active is None:
            return {
                "active_connection": None,
                "connected": False,
                "version": None,
                "message": "No active database connection",
                "tables": [],
            }

        names = [table.value for table in TABLE_DEPENDENCY_ORDER]
        try:
            connection_string = await self._connection_repo.get_connection_string(active["id"])
            async with self._connector.open(connection_string) as engine:
                version = await self._connector.ping(engine)
                missing = set(await self._connector.missing_tables(engine, names))
                tables = []
                async with engine.connect() as conn:
                    for name in names:
                        rows = None if name in missing else await self._count_rows(conn, name)
                        tables.append({"table": name, "exists": name not in missing, "rows": rows})
        except (ConnectivityError, CredentialDecryptionError, SQLAlchemyError, OSError) as e:
            logger.warning("Could not read status of active database: %s", e)
            return {
                "active_connection": active,
                "connected": False,
                "version": None,
                "message": str(e),
                "tables": [],
            }

        return {
            "active_connection": active,
            "connected": True,
            "version": version,
            "message": "Connected",
            "tables": tables,
        }

    async def get_switch_history(self, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """Paginated switch attempts with connection names resolved."""
        history = await self._history_repo.get_history(page=page, limit=limit)
        ids = {
            connection_id
            for item in history["items"]
            for connection_id in (item["from_connection_id"], item["to_connection_id"])
            if connection_id is not None
        }
        names = await self._connection_repo.get_connection_names(ids)
        for item in history["items"]:
            item["from_connection_name"] = names.get(item["from_connection_id"])
            item["to_connection_name"] = names.get(item["to_connection_id"])
        return history

    # Switch protocol

    async def switch_database(
        self,
        target_connection_id: int,
        options: SwitchOptions | None = None,
        actor_id: int | None = None,
    ) -> dict[str, Any]:
        """
        Switch the application to ``target_connection_id``.

        Args:
            target_connection_id: Connection to activate
            options: Backup, table, batch and validation options
            actor_id: Administrator performing the switch

        Returns:
            Dict with ``success``, ``message`` and, once the request was
            accepted, ``attempt_id`` and ``details``
        """
        return await self._run_protocol(
            SwitchType.SWITCH, target_connection_id, options or self.default_options(), actor_id
        )

    async def rollback_switch(
        self,
        attempt_id: int,
        options: SwitchOptions | None = None,
        actor_id: int | None = None,
    ) -> dict[str, Any]:
        """
        Switch back to the source connection of a successful attempt.

        Returns:
            Same shape as ``switch_database``
        """
        attempt = await self._history_repo.get_attempt(attempt_id)
        if attempt is None:
            return {"success": False, "message": f"Switch attempt {attempt_id} does not exist"}
        if attempt["status"] != SwitchStatus.SUCCESS.value or attempt["from_connection_id"] is None:
            return {
                "success": False,
                "message": "Only successful switches from an existing database can be rolled back",
            }

        logger.info(
            "Rolling back switch attempt %s to connection %s",
            attempt_id,
            attempt["from_connection_id"],
        )
        return await self._run_protocol(
            SwitchType.ROLLBACK,
            attempt["from_connection_id"],
            options or self.default_options(),
            actor_id,
        )

    async def _run_protocol(
        self,
        switch_type: SwitchType,
        target_connection_id: int,
        options: SwitchOptions,
        actor_id: int | None,
    ) -> dict[str, Any]:
        started_at = datetime.now(UTC)
        try:
            active, tables = await self._validate_request(target_connection_id, options)
        except RequestValidationError as e:
            logger.warning("Switch request rejected: %s", e)
            return {"success": False, "message": str(e)}

        run = _SwitchRun(
            switch_type=switch_type,
            from_connection_id=active["id"] if active else None,
            to_connection_id=target_connection_id,
            tables=tables,
            started_at=started_at,
        )
        logger.info(
            "Starting database %s from %s to %s (%d tables, batch size %d)",
            switch_type.value,
            run.from_connection_id,
            run.to_connection_id,
            len(tables),
            options.batch_size,
        )

        error: Exception | None = None
        try:
            await self._execute(run, options, actor_id)
            status = SwitchStatus.SUCCESS
        except Exception as e:
            logger.error("Database %s failed during %s: %s", switch_type.value, run.phase, e)
            error = e
            status = await self._roll_back(run)
        finally:
            if run.gate_enabled:
                await self._release_gate(run)

        return await self._finish(run, status, error, actor_id)

    async def _validate_request(
        self, target_connection_id: int, options: SwitchOptions
    ) -> tuple[dict[str, Any] | None, list[BusinessTable]]:
        active = await self._connection_repo.get_active_connection()
        if active and active["id"] == target_connection_id:
            raise SameTargetError(target_connection_id)

        target = await self._connection_repo.get_connection(target_connection_id)
        if target is None:
            raise ConnectionNotFoundError(target_connection_id)

        tables = resolve_tables(
            options.tables if options.tables is not None else self._default_tables
        )
        if not tables:
            raise RequestValidationError("At least one table must be selected")
        if options.batch_size < 1:
            raise RequestValidationError("Batch size must be at least 1")

        return active, tables

    async def _execute(self, run: _SwitchRun, options: SwitchOptions, actor_id: int | None) -> None:
        target_url = await self._connection_repo.get_connection_string(run.to_connection_id)
        if run.from_connection_id is not None:
            run.source_url = await self._connection_repo.get_connection_string(
                run.from_connection_id
            )

        async with self._connector.open(target_url) as target_engine:
            with self._phase(run, "probing_target"):
                version = await self._connector.ping(target_engine)
                logger.info("Target database reachable (%s)", version)
                missing = await self._connector.missing_tables(
                    target_engine, [table.value for table in run.tables]
                )
                if missing:
                    raise SchemaMismatchError(missing)

            if run.source_url is None:
                logger.info("No active database; activating target without data transfer")
            else:
                async with self._connector.open(run.source_url) as source_engine:
                    run.gate_enabled = True
                    await self._gate.enable()

                    if options.create_backup:
                        with self._phase(run, "backing_up"):
                            await self._create_backup(run, source_engine)

                    with self._phase(run, "migrating"):
                        await self._migrate(run, source_engine, target_engine, options.batch_size)

                if options.validate_after_migration:
                    with self._phase(run, "validating"):
                        await self._validate_migration(run, target_engine)

                with self._phase(run, "syncing_sequences"):
                    async with target_engine.begin() as conn:
                        await self._sequences.resync(conn, run.tables)

        with self._phase(run, "activating"):
            await self._connection_repo.set_active(run.to_connection_id, actor_id)

        run.phase = "completed"

    @contextmanager
    def _phase(self, run: _SwitchRun, phase: str) -> Iterator[None]:
        run.phase = phase
        logger.info("Database %s phase: %s", run.switch_type.value, phase)
        start = time.perf_counter()
        try:
            yield
        finally:
            SWITCH_PHASE_DURATION.labels(phase=phase).observe(time.perf_counter() - start)

    async def _create_backup(self, run: _SwitchRun, source_engine: AsyncEngine) -> None:
        async with source_engine.connect() as conn:
            script = await self._backup.generate(conn, run.tables)
        path = self._backup.build_path(
            run.switch_type.value, run.from_connection_id, run.to_connection_id
        )
        self._backup.write(path, script)
        run.backup_path = str(path)

    async def _migrate(
        self,
        run: _SwitchRun,
        source_engine: AsyncEngine,
        target_engine: AsyncEngine,
        batch_size: int,
    ) -> None:
        names = [table.value for table in run.tables]
        source_meta = MetaData()
        target_meta = MetaData()

        async with source_engine.connect() as conn:
            await conn.run_sync(lambda sync_conn: source_meta.reflect(sync_conn, only=names))
            for name in names:
                run.source_counts[name] = await self._count_rows(conn, name)

        async with target_engine.connect() as conn:
            await conn.run_sync(lambda sync_conn: target_meta.reflect(sync_conn, only=names))

        # Children first so parent rows are never deleted while still referenced
        try:
            async with target_engine.begin() as conn:
                for table in reverse_dependency_order(run.tables):
                    await conn.execute(delete(target_meta.tables[table.value]))
        except SQLAlchemyError as e:
            raise TransferError("*", f"clearing target tables failed: {e}") from e

        for table in run.tables:
            entry = await self._transfer_table(
                source_engine,
                target_engine,
                source_meta.tables[table.value],
                target_meta.tables[table.value],
                batch_size,
            )
            run.migrated_tables.append(entry)

            if table is BusinessTable.SYSTEM_CONFIG:
                async with target_engine.begin() as conn:
                    await self._gate.scrub(conn)

    async def _transfer_table(
        self,
        source_engine: AsyncEngine,
        target_engine: AsyncEngine,
        source_table: Table,
        target_table: Table,
        batch_size: int,
    ) -> dict[str, Any]:
        name = source_table.name
        start = time.perf_counter()
        columns = [column.name for column in source_table.columns]
        missing = [column for column in columns if column not in target_table.c]
        if missing:
            raise TransferError(name, f"target is missing columns {', '.join(missing)}")

        column_types = {column: target_table.c[column].type for column in columns}
        order_by = list(source_table.primary_key.columns) or list(source_table.columns)
        rows = 0
        batches = 0

        try:
            async with source_engine.connect() as source_conn:
                result = await source_conn.stream(select(source_table).order_by(*order_by))
                async for partition in result.mappings().partitions(batch_size):
                    params = [
                        {
                            column: convert_for_column(row[column], column_types[column])
                            for column in columns
                        }
                        for row in partition
                    ]
                    async with target_engine.begin() as target_conn:
                        await target_conn.execute(insert(target_table), params)
                    rows += len(params)
                    batches += 1
                    INSERT_BATCHES.labels(table=name).inc()
        except SQLAlchemyError as e:
            raise TransferError(name, str(e)) from e

        ROWS_TRANSFERRED.labels(table=name).inc(rows)
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Migrated %d rows of %s in %d batches (%d ms)", rows, name, batches, duration_ms
        )
        return {"table": name, "rows": rows, "batches": batches, "duration_ms": duration_ms}

    async def _validate_migration(self, run: _SwitchRun, target_engine: AsyncEngine) -> None:
        mismatches: list[str] = []
        for table in run.tables:
            name = table.value
            try:
                # Fresh connection per table; a failed query can poison the transaction
                async with target_engine.connect() as conn:
                    count = await self._count_rows(conn, name)
            except SQLAlchemyError as e:
                mismatches.append(f"{name} is not queryable on the target ({e})")
                continue

            expected = run.source_counts.get(name, 0)
            if count != expected:
                mismatches.append(f"{name} has {count} rows on the target, expected {expected}")

        run.validation_passed = not mismatches
        if mismatches:
            raise MigrationValidationError(mismatches)
        logger.info("Post-migration validation passed for %d tables", len(run.tables))

    @staticmethod
    async def _count_rows(conn: AsyncConnection, name: str) -> int:
        stmt = select(func.count()).select_from(table_clause(name))
        return (await conn.execute(stmt)).scalar_one()

    async def _roll_back(self, run: _SwitchRun) -> SwitchStatus:
        """Restore the source from the backup, when one was taken."""
        if not run.backup_path or run.source_url is None:
            return SwitchStatus.FAILED

        run.phase = "rolling_back"
        logger.warning("Restoring source database from %s", run.backup_path)
        try:
            script = self._backup.read(run.backup_path)
            async with self._connector.open(run.source_url) as source_engine:
                restored = await self._backup.restore(source_engine, script, run.tables)
        except (RestoreError, SQLAlchemyError, OSError) as e:
            logger.error("Rollback from %s failed: %s", run.backup_path, e)
            run.rollback = {"attempted": True, "success": False, "error": str(e)}
            return SwitchStatus.FAILED

        run.rollback = {"attempted": True, "success": True, "restored_rows": restored}
        return SwitchStatus.ROLLED_BACK

    async def _release_gate(self, run: _SwitchRun) -> None:
        try:
            await self._gate.disable()
        except Exception as e:
            logger.critical(
                "Failed to disable maintenance mode after database %s: %s; "
                "run scripts/disable_maintenance_emergency.py",
                run.switch_type.value,
                e,
            )
            run.gate_error = str(e)

    async def _finish(
        self,
        run: _SwitchRun,
        status: SwitchStatus,
        error: Exception | None,
        actor_id: int | None,
    ) -> dict[str, Any]:
        total_duration_ms = run.elapsed_ms()
        details: dict[str, Any] = {
            "backup_path": run.backup_path,
            "migrated_tables": run.migrated_tables,
            "total_rows": run.total_rows,
            "total_duration_ms": total_duration_ms,
            "validation_passed": run.validation_passed,
        }
        migration_details = {
            **{key: value for key, value in details.items() if key != "migrated_tables"},
            "phase_reached": run.phase,
        }
        if run.rollback is not None:
            migration_details["rollback"] = run.rollback
        if run.gate_error is not None:
            migration_details["maintenance_disable_error"] = run.gate_error

        attempt = await self._history_repo.record_attempt(
            from_connection_id=run.from_connection_id,
            to_connection_id=run.to_connection_id,
            switch_type=run.switch_type.value,
            status=status.value,
            started_at=run.started_at,
            switched_by=actor_id,
            backup_file_path=run.backup_path,
            error_message=str(error) if error else None,
            migrated_tables=run.migrated_tables,
            migration_details=migration_details,
        )
        SWITCH_ATTEMPTS.labels(switch_type=run.switch_type.value, status=status.value).inc()

        if status is SwitchStatus.SUCCESS:
            logger.info(
                "Database %s to connection %s completed: %d rows in %d ms",
                run.switch_type.value,
                run.to_connection_id,
                run.total_rows,
                total_duration_ms,
            )
            message = (
                "Database switched successfully"
                if run.switch_type is SwitchType.SWITCH
                else "Database switch rolled back successfully"
            )
            return {
                "success": True,
                "message": message,
                "attempt_id": attempt["id"],
                "details": details,
            }

        message = f"Database {run.switch_type.value} failed: {error}"
        if status is SwitchStatus.ROLLED_BACK:
            message += " (source restored from backup)"
        details["rollback"] = run.rollback
        return {
            "success": False,
            "message": message,
            "attempt_id": attempt["id"],
            "details": details,
        }
