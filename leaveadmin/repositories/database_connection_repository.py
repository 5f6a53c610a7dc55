"""Repository layer for the database connection registry."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update

from leaveadmin.core.exceptions import (
    ActiveConnectionDeletionError,
    ConnectionNotFoundError,
    CredentialDecryptionError,
)
from leaveadmin.models.database_switch import DatabaseConnection
from leaveadmin.repositories.base import MonitoredRepository
from leaveadmin.services.credential_cipher import CredentialCipher, mask_connection_string

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("name", "environment", "description")


class DatabaseConnectionRepository(MonitoredRepository):
    """
    Persisted catalog of database endpoints with exactly one active record.

    Connection strings are encrypted before they touch the store and only
    decrypted on explicit request.
    """

    def __init__(self, session_factory, cipher: CredentialCipher):
        """Initialize with session factory and the credential cipher."""
        super().__init__(session_factory)
        self._cipher = cipher

    def _to_dict(self, conn: DatabaseConnection, active_id: int | None = None) -> dict[str, Any]:
        return {
            "id": conn.id,
            "name": conn.name,
            "environment": conn.environment,
            "is_active": conn.is_active,
            "is_current": conn.is_active if active_id is None else conn.id == active_id,
            "description": conn.description,
            "masked_connection_string": self._masked(conn.connection_string_encrypted),
            "created_by": conn.created_by,
            "created_at": conn.created_at.isoformat() if conn.created_at else None,
            "updated_by": conn.updated_by,
            "updated_at": conn.updated_at.isoformat() if conn.updated_at else None,
            "last_switched_at": conn.last_switched_at.isoformat()
            if conn.last_switched_at
            else None,
            "last_switched_by": conn.last_switched_by,
            "connection_test_status": conn.connection_test_status,
            "connection_test_message": conn.connection_test_message,
            "connection_test_at": conn.connection_test_at.isoformat()
            if conn.connection_test_at
            else None,
        }

    def _masked(self, encrypted: str) -> str | None:
        # Listing must keep working for rows sealed with a lost ephemeral key
        try:
            return mask_connection_string(self._cipher.decrypt(encrypted))
        except CredentialDecryptionError:
            logger.warning("Stored connection string could not be decrypted for display")
            return None

    @MonitoredRepository._monitored_operation("create_connection")
    async def create_connection(
        self,
        name: str,
        connection_string: str,
        environment: str,
        description: str | None = None,
        created_by: int | None = None,
    ) -> dict[str, Any]:
        """Register a new, inactive endpoint."""
        async with self.get_session() as session:
            now = datetime.now(UTC)
            conn = DatabaseConnection(
                name=name,
                connection_string_encrypted=self._cipher.encrypt(connection_string),
                environment=environment,
                description=description,
                is_active=False,
                created_by=created_by,
                created_at=now,
                updated_at=now,
            )
            session.add(conn)
            await session.commit()
            await session.refresh(conn)
            logger.info("Registered database connection %s (%s)", conn.id, conn.name)
            return self._to_dict(conn)

    @MonitoredRepository._monitored_operation("list_connections")
    async def list_connections(self) -> list[dict[str, Any]]:
        """All endpoints, newest first, flagged with ``is_current``."""
        async with self.get_session() as session:
            stmt = select(DatabaseConnection).order_by(
                DatabaseConnection.created_at.desc(), DatabaseConnection.id.desc()
            )
            result = await session.execute(stmt)
            connections = list(result.scalars())

        active_id = next((c.id for c in connections if c.is_active), None)
        return [self._to_dict(c, active_id) for c in connections]

    @MonitoredRepository._monitored_operation("get_connection")
    async def get_connection(self, connection_id: int) -> dict[str, Any] | None:
        """Get one endpoint by id."""
        async with self.get_session() as session:
            conn = await session.get(DatabaseConnection, connection_id)
            return self._to_dict(conn) if conn else None

    @MonitoredRepository._monitored_operation("get_active_connection")
    async def get_active_connection(self) -> dict[str, Any] | None:
        """Get the endpoint currently serving traffic, if any."""
        async with self.get_session() as session:
            stmt = select(DatabaseConnection).where(DatabaseConnection.is_active.is_(True)).limit(1)
            result = await session.execute(stmt)
            conn = result.scalar_one_or_none()
            return self._to_dict(conn) if conn else None

    @MonitoredRepository._monitored_operation("get_connection_string")
    async def get_connection_string(self, connection_id: int) -> str:
        """
        Decrypt the connection string of an endpoint.

        Raises:
            ConnectionNotFoundError: If the id is unknown
            CredentialDecryptionError: If the stored value cannot be decrypted
        """
        async with self.get_session() as session:
            stmt = select(DatabaseConnection.connection_string_encrypted).where(
                DatabaseConnection.id == connection_id
            )
            encrypted = (await session.execute(stmt)).scalar_one_or_none()

        if encrypted is None:
            raise ConnectionNotFoundError(connection_id)
        return self._cipher.decrypt(encrypted)

    @MonitoredRepository._monitored_operation("update_connection")
    async def update_connection(
        self,
        connection_id: int,
        updated_by: int | None = None,
        connection_string: str | None = None,
        **fields: Any,
    ) -> dict[str, Any] | None:
        """
        Update an endpoint. A new connection string is re-encrypted.

        Returns:
            The updated record, or None if the id is unknown
        """
        async with self.get_session() as session:
            conn = await session.get(DatabaseConnection, connection_id)
            if conn is None:
                return None

            for field in _UPDATABLE_FIELDS:
                if fields.get(field) is not None:
                    setattr(conn, field, fields[field])
            if connection_string is not None:
                conn.connection_string_encrypted = self._cipher.encrypt(connection_string)
                # A new endpoint has not been tested yet
                conn.connection_test_status = None
                conn.connection_test_message = None
                conn.connection_test_at = None

            conn.updated_by = updated_by
            conn.updated_at = datetime.now(UTC)
            await session.commit()
            await session.refresh(conn)
            return self._to_dict(conn)

    @MonitoredRepository._monitored_operation("delete_connection")
    async def delete_connection(self, connection_id: int) -> bool:
        """
        Delete an inactive endpoint.

        Returns:
            False if the id is unknown

        Raises:
            ActiveConnectionDeletionError: If the endpoint is active
        """
        async with self.get_session() as session:
            conn = await session.get(DatabaseConnection, connection_id)
            if conn is None:
                return False
            if conn.is_active:
                raise ActiveConnectionDeletionError(connection_id)

            await session.delete(conn)
            await session.commit()
            logger.info("Deleted database connection %s", connection_id)
            return True

    @MonitoredRepository._monitored_operation("set_active")
    async def set_active(self, connection_id: int, actor_id: int | None = None) -> dict[str, Any]:
        """
        Make one endpoint the active one.

        Clearing every active flag and setting the new one happen in a single
        transaction, so readers never observe two active records.

        Raises:
            ConnectionNotFoundError: If the id is unknown; nothing is changed
        """
        async with self.get_session() as session, session.begin():
            conn = await session.get(DatabaseConnection, connection_id)
            if conn is None:
                raise ConnectionNotFoundError(connection_id)

            await session.execute(
                update(DatabaseConnection)
                .where(DatabaseConnection.is_active.is_(True))
                .where(DatabaseConnection.id != connection_id)
                .values(is_active=False)
            )
            conn.is_active = True
            conn.last_switched_at = datetime.now(UTC)
            conn.last_switched_by = actor_id
            await session.flush()
            result = self._to_dict(conn)

        logger.info("Database connection %s is now active", connection_id)
        return result

    @MonitoredRepository._monitored_operation("record_test_result")
    async def record_test_result(self, connection_id: int, status: str, message: str) -> None:
        """Store the outcome of a reachability test."""
        async with self.get_session() as session:
            await session.execute(
                update(DatabaseConnection)
                .where(DatabaseConnection.id == connection_id)
                .values(
                    connection_test_status=status,
                    connection_test_message=message,
                    connection_test_at=datetime.now(UTC),
                )
            )
            await session.commit()

    @MonitoredRepository._monitored_operation("get_connection_names")
    async def get_connection_names(self, connection_ids: set[int]) -> dict[int, str]:
        """Map ids to display names for history listings."""
        if not connection_ids:
            return {}
        async with self.get_session() as session:
            stmt = select(DatabaseConnection.id, DatabaseConnection.name).where(
                DatabaseConnection.id.in_(connection_ids)
            )
            result = await session.execute(stmt)
            return {row.id: row.name for row in result}
