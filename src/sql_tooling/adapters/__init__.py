"""Dialect adapters and the registry that selects them."""

from sqlalchemy.engine.url import make_url

from .base import BaseAdapter, ResultParseError, UnsupportedDialectError
from .clickhouse import ClickHouseAdapter
from .duckdb import DuckDBAdapter
from .mariadb import MariaDBAdapter
from .mssql import MssqlAdapter
from .mysql import MySQLAdapter
from .postgresql import PostgresAdapter
from .sqlite import SqliteAdapter
from ..models.config import ToolingConfig

__all__ = [
    "BaseAdapter",
    "ClickHouseAdapter",
    "DuckDBAdapter",
    "MariaDBAdapter",
    "MssqlAdapter",
    "MySQLAdapter",
    "PostgresAdapter",
    "SqliteAdapter",
    "ResultParseError",
    "UnsupportedDialectError",
    "create_adapter",
    "detect_dialect",
    "get_adapter",
    "list_dialects",
    "normalize_dialect",
]

# Adapters are stateless, so one shared instance per dialect is enough
_ADAPTERS: dict[str, BaseAdapter] = {
    adapter.dialect: adapter
    for adapter in (
        PostgresAdapter(),
        SqliteAdapter(),
        MySQLAdapter(),
        MariaDBAdapter(),
        MssqlAdapter(),
        DuckDBAdapter(),
        ClickHouseAdapter(),
    )
}

_ALIASES = {
    "postgresql": "postgres",
    "pg": "postgres",
    "sqlserver": "mssql",
    "sqlite3": "sqlite",
}


def list_dialects() -> list[str]:
    """Registered dialect identifiers, in registration order."""
    return list(_ADAPTERS)


def normalize_dialect(dialect: str) -> str:
    """
    Resolve a dialect identifier or alias to its registered name.

    Args:
        dialect: Identifier such as "PostgreSQL" or "sqlserver"

    Returns:
        Registered dialect identifier

    Raises:
        UnsupportedDialectError: If no adapter is registered for it
    """
    key = (dialect or "").strip().lower()
    key = _ALIASES.get(key, key)
    if key not in _ADAPTERS:
        raise UnsupportedDialectError(dialect, list_dialects())
    return key


def get_adapter(dialect: str) -> BaseAdapter:
    """
    Get the adapter registered for a dialect.

    Args:
        dialect: Dialect identifier or alias (case-insensitive)

    Returns:
        Shared adapter instance

    Raises:
        UnsupportedDialectError: If the dialect is not supported
    """
    return _ADAPTERS[normalize_dialect(dialect)]


def detect_dialect(url: str) -> str:
    """
    Detect database dialect from connection URL.

    Args:
        url: Database connection URL

    Returns:
        Registered dialect name (e.g. "postgres" for postgresql+psycopg://)

    Raises:
        ValueError: If the URL cannot be parsed
        UnsupportedDialectError: If the URL names an unsupported database
    """
    try:
        parsed_url = make_url(url)
    except Exception as e:
        raise ValueError(f"Failed to detect dialect from URL: {e}") from e
    # Extract base dialect (e.g., "postgresql" from "postgresql+psycopg")
    return normalize_dialect(parsed_url.drivername.split("+")[0])


def create_adapter(config: ToolingConfig) -> BaseAdapter:
    """
    Get the adapter for a tooling configuration.

    Args:
        config: Tooling configuration

    Returns:
        Database adapter instance

    Raises:
        UnsupportedDialectError: If the configured dialect is not supported
    """
    return get_adapter(config.dialect or detect_dialect(config.database_url or ""))
