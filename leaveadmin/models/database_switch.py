"""
Database switchover models.

SQLAlchemy models for the connection registry, the switch history audit log
and the key/value system configuration that carries the maintenance flag.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leaveadmin.models.database import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConnectionEnvironment(str, Enum):
    """Deployment environment a connection belongs to."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"


class ConnectionTestStatus(str, Enum):
    """Outcome of the last reachability test."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class SwitchType(str, Enum):
    """Kind of switch attempt."""

    SWITCH = "switch"
    ROLLBACK = "rollback"


class SwitchStatus(str, Enum):
    """Terminal status of a switch attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class DatabaseConnection(Base):
    """A known database endpoint; at most one is active."""

    __tablename__ = "database_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    connection_string_encrypted: Mapped[str] = mapped_column(
        Text, nullable=False, comment="nonce:tag:payload hex segments"
    )
    environment: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    last_switched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_switched_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    connection_test_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    connection_test_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    connection_test_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class DatabaseSwitchHistory(Base):
    """One row per switch protocol invocation. Rows are never updated."""

    __tablename__ = "database_switch_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_connection_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("database_connections.id", ondelete="SET NULL"), nullable=True
    )
    to_connection_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("database_connections.id", ondelete="SET NULL"), nullable=True
    )
    switch_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    backup_file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    migrated_tables: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    migration_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    switched_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class SystemConfig(Base):
    """Key/value system configuration."""

    __tablename__ = "system_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    config_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    config_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
