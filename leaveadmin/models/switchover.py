"""Pydantic models describing a switch request."""

from pydantic import BaseModel, Field


class SwitchOptions(BaseModel):
    """Options accepted by the switch protocol."""

    create_backup: bool = Field(default=True, description="Back up the source before migrating")
    tables: list[str] | None = Field(
        default=None, description="Tables to migrate; all known tables when omitted"
    )
    batch_size: int = Field(default=1000, ge=1, description="Rows per insert transaction")
    validate_after_migration: bool = Field(
        default=True, description="Compare target row counts with the source afterwards"
    )
