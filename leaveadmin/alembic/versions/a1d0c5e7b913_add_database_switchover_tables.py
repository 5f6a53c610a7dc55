"""Add database connection registry, switch history and system config tables

Revision ID: a1d0c5e7b913
Revises:
Create Date: 2025-09-02 10:14:08.532177

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1d0c5e7b913"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "database_connections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "connection_string_encrypted",
            sa.Text(),
            nullable=False,
            comment="nonce:tag:payload hex segments",
        ),
        sa.Column("environment", sa.String(length=50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_switched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_switched_by", sa.Integer(), nullable=True),
        sa.Column("connection_test_status", sa.String(length=20), nullable=True),
        sa.Column("connection_test_message", sa.Text(), nullable=True),
        sa.Column("connection_test_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_database_connections_is_active", "database_connections", ["is_active"], unique=False
    )

    op.create_table(
        "database_switch_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("from_connection_id", sa.Integer(), nullable=True),
        sa.Column("to_connection_id", sa.Integer(), nullable=True),
        sa.Column("switch_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("backup_file_path", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("migrated_tables", sa.JSON(), nullable=True),
        sa.Column("migration_details", sa.JSON(), nullable=True),
        sa.Column("switched_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["from_connection_id"], ["database_connections.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(
            ["to_connection_id"], ["database_connections.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    # History is listed newest first and filtered by status
    op.create_index(
        "ix_database_switch_history_created_at",
        "database_switch_history",
        ["created_at"],
        unique=False,
    )
    op.create_index(
        "ix_database_switch_history_status", "database_switch_history", ["status"], unique=False
    )

    op.create_table(
        "system_config",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("config_key", sa.String(length=255), nullable=False),
        sa.Column("config_value", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("config_key"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("system_config")

    op.drop_index("ix_database_switch_history_status", table_name="database_switch_history")
    op.drop_index("ix_database_switch_history_created_at", table_name="database_switch_history")
    op.drop_table("database_switch_history")

    op.drop_index("ix_database_connections_is_active", table_name="database_connections")
    op.drop_table("database_connections")
