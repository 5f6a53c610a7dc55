"""Data models for the control store and the switchover engine."""

from leaveadmin.models.business_tables import TABLE_DEPENDENCY_ORDER, BusinessTable
from leaveadmin.models.database import Base
from leaveadmin.models.database_switch import (
    DatabaseConnection,
    DatabaseSwitchHistory,
    SystemConfig,
)

__all__ = [
    "TABLE_DEPENDENCY_ORDER",
    "Base",
    "BusinessTable",
    "DatabaseConnection",
    "DatabaseSwitchHistory",
    "SystemConfig",
]
