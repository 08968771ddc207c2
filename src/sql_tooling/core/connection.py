"""Database connection management with SQLAlchemy."""

import logging
from typing import Any, Optional, Protocol

from sqlalchemy import Connection, Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from sql_tooling.models.config import ToolingConfig
from sql_tooling.utils import convert_rows_to_json_safe

logger = logging.getLogger(__name__)


class QueryRunner(Protocol):
    """Anything that can run raw SQL and hand back rows as dicts."""

    def run(self, sql: str) -> list[dict[str, Any]]: ...


class DatabaseConnection:
    """Runs raw SQL text over a single SQLAlchemy connection.

    SQL built by the adapters (and user statements being explained) is sent
    with ``exec_driver_sql`` so it reaches the driver untouched.
    """

    def __init__(self, config: ToolingConfig):
        """
        Initialize database connection.

        Args:
            config: Tooling configuration with a database URL
        """
        if not config.database_url:
            raise ValueError("DatabaseConnection requires a database_url")
        self.config = config
        self.engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None

    @property
    def dialect(self) -> Optional[str]:
        """Registered dialect identifier of the target database."""
        return self.config.dialect

    def initialize(self) -> None:
        """Create the engine and open the connection."""
        if self._connection is not None:
            return  # Already initialized

        engine_args: dict[str, Any] = {
            "pool_pre_ping": True,
            "echo": self.config.echo_sql,
        }
        url = make_url(self.config.database_url)
        if url.get_backend_name() == "sqlite":
            # Handlers run the connection from worker threads
            engine_args["connect_args"] = {"check_same_thread": False}
            if url.database in (None, "", ":memory:"):
                # One shared in-memory database instead of one per thread
                engine_args["poolclass"] = StaticPool

        self.engine = create_engine(self.config.database_url, **engine_args)
        self._connection = self.engine.connect()
        logger.debug("Connected to %s database", self.dialect)

    def dispose(self) -> None:
        """Close the connection and dispose of the engine."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None

    def __enter__(self) -> "DatabaseConnection":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def run(self, sql: str) -> list[dict[str, Any]]:
        """
        Execute raw SQL.

        Args:
            sql: SQL text, passed to the driver as-is

        Returns:
            JSON-safe rows as dicts, or an empty list when the statement
            produces no result set

        Raises:
            RuntimeError: If the connection is not initialized
        """
        if self._connection is None:
            raise RuntimeError(
                "DatabaseConnection not initialized. Call initialize() first."
            )

        result = self._connection.exec_driver_sql(sql)
        if not result.returns_rows:
            return []
        return convert_rows_to_json_safe([dict(row) for row in result.mappings()])

    def commit(self) -> None:
        """Commit the connection's current transaction."""
        if self._connection is not None:
            self._connection.commit()
