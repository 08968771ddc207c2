"""Base adapter abstract class for dialect-specific implementations."""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, Optional

from sql_tooling.models.capabilities import DialectCapabilities
from sql_tooling.models.explain import ExplainNode
from sql_tooling.models.schema import SchemaColumn, SchemaIndex, SchemaTable
from sql_tooling.models.statistics import (
    DatabaseOverview,
    IndexUsageInfo,
    TableSizeInfo,
)
from sql_tooling.utils import to_int

# Raw result rows as handed back by the query channel
Row = Mapping[str, Any]
Rows = Sequence[Row]

_INDEX_COLUMNS = re.compile(r"\((.*?)\)", re.DOTALL)


class UnsupportedDialectError(ValueError):
    """Raised when no adapter is registered for a dialect identifier."""

    def __init__(self, dialect: str, supported: Sequence[str]):
        self.dialect = dialect
        self.supported = list(supported)
        super().__init__(
            f"Unsupported database dialect: {dialect}. "
            f"Supported dialects: {', '.join(self.supported)}"
        )


class ResultParseError(ValueError):
    """Raised when raw rows lack fields an adapter parser requires."""


class BaseAdapter(ABC):
    """Base adapter defining the dialect-specific interface.

    Adapters are stateless: SQL builders are pure functions of their
    arguments and parsers are pure transforms of raw rows into the canonical
    schema model. A single instance per dialect is shared process-wide.
    """

    dialect: ClassVar[str]
    default_schema: ClassVar[str] = "public"

    @property
    @abstractmethod
    def capabilities(self) -> DialectCapabilities:
        """Get capabilities for this dialect."""
        ...

    @abstractmethod
    def get_schema_query(self) -> str:
        """
        SQL listing tables (and views where relevant) with their schema.

        Returns:
            Query ordered by schema, then name
        """
        ...

    @abstractmethod
    def get_columns_query(self, table: str, schema: str) -> str:
        """
        SQL listing the columns of one table in ordinal order.

        Args:
            table: Table name
            schema: Schema name

        Returns:
            Query including nullability, default and key membership
        """
        ...

    @abstractmethod
    def get_indexes_query(self, table: str, schema: str) -> str:
        """
        SQL listing the indexes defined on a table.

        Args:
            table: Table name
            schema: Schema name

        Returns:
            Index query
        """
        ...

    def get_foreign_keys_query(self, table: str, schema: str) -> Optional[str]:
        """
        SQL listing foreign keys, for dialects that cannot fold them into
        the columns query.

        Returns:
            Foreign key query, or None when the columns query covers them
        """
        return None

    def get_index_columns_query(self, index_name: str, schema: str) -> Optional[str]:
        """
        SQL listing the columns of one index, for dialects whose index query
        does not report them.

        Returns:
            Index column query, or None when the index query covers them
        """
        return None

    @abstractmethod
    def get_explain_query(self, query: str, analyze: bool) -> str:
        """
        Generate dialect-specific EXPLAIN query.

        Args:
            query: Query to explain
            analyze: Whether to request actual execution statistics

        Returns:
            EXPLAIN query string
        """
        ...

    def get_explain_setup(self, analyze: bool) -> list[str]:
        """Session statements to run before the EXPLAIN query."""
        return []

    def get_explain_teardown(self, analyze: bool) -> list[str]:
        """Session statements to run after the EXPLAIN query."""
        return []

    @abstractmethod
    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """
        Rebuild the plan tree from raw EXPLAIN output.

        Args:
            rows: Rows returned by the EXPLAIN query
            analyze: Whether this was an ANALYZE run

        Returns:
            Root plan node
        """
        ...

    @abstractmethod
    def parse_schema_result(self, rows: Rows) -> list[SchemaTable]:
        """Transform schema query rows into tables (without columns/indexes)."""
        ...

    @abstractmethod
    def parse_columns_result(
        self, rows: Rows, foreign_keys: Optional[Rows] = None
    ) -> list[SchemaColumn]:
        """
        Transform columns query rows into columns.

        Args:
            rows: Columns query rows
            foreign_keys: Rows of the separate foreign key query, if any

        Returns:
            Columns in ordinal order
        """
        ...

    @abstractmethod
    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Transform index query rows into indexes."""
        ...

    def parse_index_columns_result(self, rows: Rows) -> list[str]:
        """Transform index column query rows into column names."""
        return []

    # Statistics (optional; dialects without them keep the None defaults)

    def get_table_sizes_query(self) -> Optional[str]:
        """
        SQL listing tables with their storage sizes.

        Returns:
            Table size query, or None when the dialect reports no statistics
        """
        return None

    def get_table_row_count_query(self, table: str, schema: str) -> Optional[str]:
        """
        SQL counting the rows of one table, for dialects whose table size
        query does not report them.

        Returns:
            Query returning a single 'row_count' value, or None
        """
        return None

    def get_index_usage_query(self) -> Optional[str]:
        """SQL listing indexes with their sizes and scan counters, if available."""
        return None

    def get_database_overview_query(self) -> Optional[str]:
        """SQL returning one row of whole-database counters, if available."""
        return None

    def parse_table_sizes_result(self, rows: Rows) -> list[TableSizeInfo]:
        """Transform table size query rows."""
        return []

    def parse_table_row_count_result(self, rows: Rows) -> Optional[int]:
        """Read the row count from a row count query result."""
        if not rows:
            return None
        return to_int(self._value(rows[0], "row_count", required=True))

    def parse_index_usage_result(self, rows: Rows) -> list[IndexUsageInfo]:
        """Transform index usage query rows."""
        return []

    def parse_database_overview_result(
        self, rows: Rows
    ) -> Optional[DatabaseOverview]:
        """Transform the overview query row, or None when there is none."""
        return None

    # Helpers shared by the dialect implementations

    def _quote_literal(self, value: str) -> str:
        """Quote a value as a SQL string literal."""
        return "'" + value.replace("'", "''") + "'"

    def _quote_identifier(self, name: str) -> str:
        """Quote an identifier with double quotes."""
        return '"' + name.replace('"', '""') + '"'

    def _strip_terminator(self, query: str) -> str:
        """Remove trailing semicolons so the query can be wrapped."""
        return query.strip().rstrip(";").rstrip()

    def _value(self, row: Row, *keys: str, required: bool = False) -> Any:
        """
        Read a field from a raw row.

        Keys are tried in order, first exactly and then case-insensitively,
        since catalogs differ in the case of the column names they return.

        Raises:
            ResultParseError: If the row is not a mapping, or a required
                field is absent
        """
        if not isinstance(row, Mapping):
            raise ResultParseError(
                f"{self.dialect}: expected a mapping row, got {type(row).__name__}"
            )
        for key in keys:
            if key in row:
                return row[key]
        lowered = {str(name).lower(): value for name, value in row.items()}
        for key in keys:
            if key.lower() in lowered:
                return lowered[key.lower()]
        if required:
            raise ResultParseError(
                f"{self.dialect}: result row is missing required field "
                f"'{keys[0]}' (got {sorted(map(str, row))})"
            )
        return None

    def _split_index_columns(self, definition: Optional[str]) -> list[str]:
        """
        Extract index columns from DDL text.

        Takes the first parenthesized portion and splits it on commas. This
        is a best-effort textual parse: expression indexes are not handled.
        """
        if not definition:
            return []
        match = _INDEX_COLUMNS.search(definition)
        if not match:
            return []
        return [col.strip() for col in match.group(1).split(",") if col.strip()]

    def _build_indented_tree(
        self, entries: Sequence[tuple[int, ExplainNode]]
    ) -> list[ExplainNode]:
        """
        Nest plan nodes by indentation depth.

        Args:
            entries: (depth, node) pairs in output order

        Returns:
            Top-level nodes with descendants attached
        """
        roots: list[ExplainNode] = []
        stack: list[tuple[int, ExplainNode]] = []
        for depth, node in entries:
            while stack and stack[-1][0] >= depth:
                stack.pop()
            if stack:
                stack[-1][1].children.append(node)
            else:
                roots.append(node)
            stack.append((depth, node))
        return roots

    def _plan_root(self, nodes: list[ExplainNode], label: str) -> ExplainNode:
        """Return the single top node, or wrap several under a synthetic root."""
        if len(nodes) == 1:
            return nodes[0]
        return ExplainNode(type="Query Plan", label=label, children=nodes)
