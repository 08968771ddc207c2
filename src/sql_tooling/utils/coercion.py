"""Coercion of loosely typed catalog values.

Each engine reports flags and counters differently: PostgreSQL returns real
booleans, SQL Server and SQLite return 0/1, MySQL returns '1' or 'YES', and
DuckDB may return numbers as strings. Parsers funnel values through here.
"""

from typing import Any, Optional

_TRUE_STRINGS = {"1", "t", "true", "y", "yes", "on"}


def to_bool(value: Any) -> bool:
    """Interpret a catalog flag; None and unknown strings are False."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="ignore")
    return str(value).strip().lower() in _TRUE_STRINGS


def to_float(value: Any) -> Optional[float]:
    """Convert to float, returning None for missing or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value: Any) -> Optional[int]:
    """Convert to int, returning None for missing or non-numeric values."""
    number = to_float(value)
    return int(number) if number is not None else None


def to_optional_str(value: Any) -> Optional[str]:
    """Convert to str; None and empty strings become None."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    text = str(value)
    return text if text else None
