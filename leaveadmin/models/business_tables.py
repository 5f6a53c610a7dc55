"""
Business tables known to the switchover engine.

The enum order is the foreign-key dependency order: accounts first, then
organizational units, people, and transactional records. Bulk copies walk it
forward; bulk deletes walk it in reverse.
"""

from collections.abc import Iterable
from enum import Enum

from leaveadmin.core.exceptions import UnknownTableError


class BusinessTable(str, Enum):
    """Allow-listed table identifiers that may appear in generated SQL."""

    USERS = "users"
    SEMESTERS = "semesters"
    GRADES = "grades"
    CLASSES = "classes"
    STUDENTS = "students"
    LEAVE_RECORDS = "leave_records"
    FEE_CONFIGS = "fee_configs"
    NOTIFICATIONS = "notifications"
    SYSTEM_CONFIG = "system_config"
    OPERATION_LOGS = "operation_logs"


TABLE_DEPENDENCY_ORDER: tuple[BusinessTable, ...] = tuple(BusinessTable)


def resolve_tables(names: Iterable[str | BusinessTable] | None = None) -> list[BusinessTable]:
    """
    Validate table names against the allow-list and sort them by dependency.

    Args:
        names: Requested table names; None selects every known table

    Returns:
        Deduplicated tables in dependency order

    Raises:
        UnknownTableError: If any name is not an allow-listed table
    """
    if names is None:
        return list(TABLE_DEPENDENCY_ORDER)

    requested: set[BusinessTable] = set()
    unknown: list[str] = []
    for name in names:
        try:
            requested.add(BusinessTable(name))
        except ValueError:
            unknown.append(str(name))

    if unknown:
        raise UnknownTableError(unknown)

    return [table for table in TABLE_DEPENDENCY_ORDER if table in requested]


def reverse_dependency_order(tables: Iterable[BusinessTable]) -> list[BusinessTable]:
    """Return tables ordered children first, for deletes."""
    selected = set(tables)
    return [table for table in reversed(TABLE_DEPENDENCY_ORDER) if table in selected]
