"""
Value handling shared by the data transfer and the backup script.

Two concerns live here: rendering a Python value as a SQL literal for the
backup script, and converting a value read from the source into something
the target column type accepts.
"""

import json
import math
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Date, DateTime, Time
from sqlalchemy.types import TypeEngine


def format_temporal(value: date | time) -> str:
    """Canonical text form of a date, time or timestamp."""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return value.isoformat()


def escape_literal(value: Any, dialect_name: str = "sqlite") -> str:
    """
    Render ``value`` as a SQL literal.

    Text is single-quoted with embedded quotes doubled; no other character
    needs escaping under standard conforming strings. Binary values become
    hex literals in the form ``dialect_name`` reads back byte for byte.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return _quote(str(value))
        return repr(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date | time):
        return _quote(format_temporal(value))
    if isinstance(value, dict | list):
        return _quote(json.dumps(value, ensure_ascii=False, default=str))
    if isinstance(value, bytes | bytearray | memoryview):
        return _hex_literal(bytes(value), dialect_name)
    return _quote(str(value))


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _hex_literal(data: bytes, dialect_name: str) -> str:
    if dialect_name == "postgresql":
        return f"'\\x{data.hex()}'::bytea"
    return f"X'{data.hex()}'"


def convert_for_column(value: Any, column_type: TypeEngine | None) -> Any:
    """
    Convert a source value for insertion into a target column.

    Temporal values stay native for temporal columns and become canonical
    text otherwise; structured values stay native for JSON columns and
    become JSON text otherwise.
    """
    if value is None or isinstance(value, bool | int | float | Decimal):
        return value

    if isinstance(value, date | time):
        if isinstance(column_type, DateTime | Date | Time):
            return value
        return format_temporal(value)

    if isinstance(value, dict | list):
        if isinstance(column_type, JSON):
            return value
        return json.dumps(value, ensure_ascii=False, default=str)

    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value)

    if isinstance(value, str) and isinstance(column_type, DateTime | Date):
        return _parse_temporal(value, column_type)

    return str(value)


def _parse_temporal(value: str, column_type: TypeEngine) -> Any:
    # Text timestamps from a schemaless source; unparseable text is left to the target
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return value
    if isinstance(column_type, DateTime):
        return parsed
    return parsed.date()
