"""
Application settings.

Settings are loaded from environment variables (prefix ``LEAVEADMIN_``, nested
sections separated by ``__``) and an optional ``.env`` file. Access them via
``get_settings()`` so the environment is parsed once per process.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leaveadmin.models.business_tables import TABLE_DEPENDENCY_ORDER

logger = logging.getLogger(__name__)


class DatabaseSettings(BaseModel):
    """Control store holding the connection registry, switch history and system config."""

    url: str = Field(
        default="sqlite:///data/leaveadmin.db",
        description="Connection string of the control store",
    )
    echo: bool = Field(default=False, description="Echo SQL statements to the log")
    pool_pre_ping: bool = Field(default=True, description="Check pooled connections before use")


class SecuritySettings(BaseModel):
    """Secrets used for credentials at rest."""

    db_encryption_key: str | None = Field(
        default=None,
        description="Hex encoded 32-byte AES key for stored connection strings",
    )
    auth_disabled: bool = Field(
        default=False,
        description="Treat every request as the built-in admin (development only)",
    )


class SwitchoverSettings(BaseModel):
    """Defaults for the database switchover engine."""

    backup_dir: Path = Field(default=Path("data/backups"), description="Backup artifact root")
    default_batch_size: int = Field(default=1000, ge=1, description="Rows per insert batch")
    connect_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Connect timeout for endpoint probes and transfers"
    )
    default_tables: list[str] = Field(
        default_factory=lambda: [table.value for table in TABLE_DEPENDENCY_ORDER],
        description="Tables migrated when a request names none",
    )

    def get_backup_dir(self) -> Path:
        """Directory holding switchover backup artifacts."""
        return self.backup_dir / "db-switch"


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Root log level")
    format: str = Field(
        default="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        description="Log record format",
    )
    log_file: Path | None = Field(default=None, description="Optional log file")

    @field_validator("level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


class ServerSettings(BaseModel):
    """Uvicorn server configuration."""

    host: str = "127.0.0.1"
    port: int = 8000
    reload: bool = False
    workers: int = 1


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="LEAVEADMIN_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "leaveadmin"
    app_version: str = "1.4.0"
    app_title: str = "Leave Admin Backend"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    switchover: SwitchoverSettings = Field(default_factory=SwitchoverSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, parsing the environment on first use."""
    settings = Settings()

    # Deployments predating the nested layout export a bare DB_ENCRYPTION_KEY
    if not settings.security.db_encryption_key and os.environ.get("DB_ENCRYPTION_KEY"):
        settings.security = settings.security.model_copy(
            update={"db_encryption_key": os.environ["DB_ENCRYPTION_KEY"]}
        )

    return settings
