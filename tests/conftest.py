"""Pytest configuration and shared fixtures for sql-tooling tests"""

from collections.abc import Iterator
from typing import Any, Optional

import pytest

from sql_tooling.adapters import get_adapter
from sql_tooling.adapters.base import BaseAdapter
from sql_tooling.core import DatabaseConnection, SchemaInspector
from sql_tooling.models.config import ToolingConfig

SQLITE_SCHEMA = [
    """CREATE TABLE users (
        id INTEGER PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE orders (
        id INTEGER PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        total REAL NOT NULL DEFAULT 0,
        status TEXT
    )""",
    "CREATE INDEX idx_orders_user ON orders (user_id, status)",
    "CREATE VIEW big_orders AS SELECT * FROM orders WHERE total > 100",
    "INSERT INTO users (id, email, name) VALUES (1, 'ada@example.com', 'Ada')",
    "INSERT INTO users (id, email, name) VALUES (2, 'alan@example.com', 'Alan')",
    "INSERT INTO orders (id, user_id, total, status) VALUES (1, 1, 250.0, 'paid')",
    "INSERT INTO orders (id, user_id, total, status) VALUES (2, 2, 20.0, 'open')",
    "INSERT INTO orders (id, user_id, total, status) VALUES (3, 1, 75.5, 'paid')",
]


class FakeRunner:
    """Query runner returning canned rows for SQL matching a substring."""

    def __init__(self, responses: Optional[dict[str, list[dict[str, Any]]]] = None):
        self.responses = responses or {}
        self.queries: list[str] = []

    def run(self, sql: str) -> list[dict[str, Any]]:
        self.queries.append(sql)
        for fragment, rows in self.responses.items():
            if fragment in sql:
                return rows
        return []


# ==================== Runner Fixtures ====================


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Empty fake runner; tests fill in responses"""
    return FakeRunner()


@pytest.fixture
def runner_class() -> type[FakeRunner]:
    """FakeRunner class, for runners built with canned responses"""
    return FakeRunner


@pytest.fixture
def sqlite_config() -> ToolingConfig:
    """In-memory SQLite configuration"""
    return ToolingConfig(database_url="sqlite://")


@pytest.fixture
def sqlite_schema() -> list[str]:
    """DDL and seed rows of the users/orders test database"""
    return list(SQLITE_SCHEMA)


@pytest.fixture
def sqlite_connection(sqlite_config: ToolingConfig) -> Iterator[DatabaseConnection]:
    """In-memory SQLite connection with the users/orders schema loaded"""
    connection = DatabaseConnection(sqlite_config)
    connection.initialize()
    try:
        for statement in SQLITE_SCHEMA:
            connection.run(statement)
        connection.commit()
        yield connection
    finally:
        connection.dispose()


@pytest.fixture
def sqlite_adapter() -> BaseAdapter:
    """SQLite adapter instance"""
    return get_adapter("sqlite")


@pytest.fixture
def sqlite_inspector(
    sqlite_connection: DatabaseConnection, sqlite_adapter: BaseAdapter
) -> SchemaInspector:
    """Inspector over the in-memory SQLite database"""
    return SchemaInspector(sqlite_connection, sqlite_adapter)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove configuration variables and stop .env files from leaking in"""
    for name in (
        "DATABASE_URL",
        "SQL_TOOLING_DIALECT",
        "SQL_TOOLING_MAX_SCRIPT_LENGTH",
        "SQL_TOOLING_LOG_LEVEL",
        "SQL_TOOLING_ECHO_SQL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("sql_tooling.models.config.load_dotenv", lambda: False)
    return monkeypatch
