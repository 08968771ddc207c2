"""
sql_tooling - SQL statement segmentation and dialect-aware schema tooling

Splits SQL scripts into statements without being fooled by quotes, comments,
or dollar-quoted bodies, and builds and parses catalog and EXPLAIN queries
for PostgreSQL, SQLite, MySQL, MariaDB, SQL Server, DuckDB, and ClickHouse.
"""

__version__ = "1.0.0"

from .adapters import (
    BaseAdapter,
    ResultParseError,
    UnsupportedDialectError,
    create_adapter,
    detect_dialect,
    get_adapter,
    list_dialects,
)
from .core.splitter import get_statement_at_offset, split_sql_statements
from .models.config import ToolingConfig
from .models.explain import ExplainNode, ExplainResult
from .models.schema import ForeignKeyRef, SchemaColumn, SchemaIndex, SchemaTable
from .models.statement import StatementSpan

__all__ = [
    "BaseAdapter",
    "ResultParseError",
    "UnsupportedDialectError",
    "create_adapter",
    "detect_dialect",
    "get_adapter",
    "list_dialects",
    "get_statement_at_offset",
    "split_sql_statements",
    "ToolingConfig",
    "ExplainNode",
    "ExplainResult",
    "ForeignKeyRef",
    "SchemaColumn",
    "SchemaIndex",
    "SchemaTable",
    "StatementSpan",
]
