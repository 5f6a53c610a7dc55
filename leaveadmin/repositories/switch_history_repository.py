"""Repository for the append-only database switch history."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select

from leaveadmin.models.database_switch import DatabaseSwitchHistory
from leaveadmin.repositories.base import MonitoredRepository

logger = logging.getLogger(__name__)


class SwitchHistoryRepository(MonitoredRepository):
    """
    Audit log of switch attempts.

    Attempts are written once, after the protocol has reached a terminal
    state and are never updated or deleted.
    """

    @staticmethod
    def _to_dict(h: DatabaseSwitchHistory) -> dict[str, Any]:
        return {
            "id": h.id,
            "from_connection_id": h.from_connection_id,
            "to_connection_id": h.to_connection_id,
            "switch_type": h.switch_type,
            "status": h.status,
            "backup_file_path": h.backup_file_path,
            "error_message": h.error_message,
            "migrated_tables": h.migrated_tables or [],
            "migration_details": h.migration_details or {},
            "switched_by": h.switched_by,
            "created_at": h.created_at.isoformat() if h.created_at else None,
            "completed_at": h.completed_at.isoformat() if h.completed_at else None,
        }

    @MonitoredRepository._monitored_operation("record_attempt")
    async def record_attempt(
        self,
        from_connection_id: int | None,
        to_connection_id: int,
        switch_type: str,
        status: str,
        started_at: datetime,
        switched_by: int | None = None,
        backup_file_path: str | None = None,
        error_message: str | None = None,
        migrated_tables: list[dict[str, Any]] | None = None,
        migration_details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Append a completed switch attempt."""
        async with self.get_session() as session:
            history = DatabaseSwitchHistory(
                from_connection_id=from_connection_id,
                to_connection_id=to_connection_id,
                switch_type=switch_type,
                status=status,
                backup_file_path=backup_file_path,
                error_message=error_message,
                migrated_tables=migrated_tables or [],
                migration_details=migration_details or {},
                switched_by=switched_by,
                created_at=started_at,
                completed_at=datetime.now(UTC),
            )
            session.add(history)
            await session.commit()
            await session.refresh(history)
            return self._to_dict(history)

    @MonitoredRepository._monitored_operation("get_attempt")
    async def get_attempt(self, attempt_id: int) -> dict[str, Any] | None:
        """Get one attempt by id."""
        async with self.get_session() as session:
            history = await session.get(DatabaseSwitchHistory, attempt_id)
            return self._to_dict(history) if history else None

    @MonitoredRepository._monitored_operation("get_history")
    async def get_history(self, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """
        Get attempts newest first.

        Args:
            page: 1-based page number
            limit: Page size

        Returns:
            Dict with ``items``, ``total``, ``page`` and ``limit``
        """
        page = max(page, 1)
        limit = max(limit, 1)
        async with self.get_session() as session:
            total = (
                await session.execute(select(func.count()).select_from(DatabaseSwitchHistory))
            ).scalar_one()
            stmt = (
                select(DatabaseSwitchHistory)
                .order_by(DatabaseSwitchHistory.created_at.desc(), DatabaseSwitchHistory.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            )
            result = await session.execute(stmt)
            items = [self._to_dict(h) for h in result.scalars()]

        return {"items": items, "total": total, "page": page, "limit": limit}

    @MonitoredRepository._monitored_operation("count_attempts")
    async def count_attempts(self) -> int:
        """Total number of recorded attempts."""
        async with self.get_session() as session:
            stmt = select(func.count()).select_from(DatabaseSwitchHistory)
            return (await session.execute(stmt)).scalar_one()
