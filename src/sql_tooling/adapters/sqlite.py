"""SQLite adapter using sqlite_master and PRAGMA introspection."""

from typing import Optional

from sql_tooling.adapters.base import BaseAdapter, Rows
from sql_tooling.models.capabilities import DialectCapabilities
from sql_tooling.models.explain import ExplainNode
from sql_tooling.models.schema import (
    ForeignKeyRef,
    SchemaColumn,
    SchemaIndex,
    SchemaTable,
)
from sql_tooling.models.statistics import (
    DatabaseOverview,
    IndexUsageInfo,
    TableSizeInfo,
)
from sql_tooling.utils import to_bool, to_int, to_optional_str

# Known EXPLAIN QUERY PLAN detail prefixes and their node types
_PLAN_OPERATIONS = [
    ("USE TEMP B-TREE", "Temp B-Tree"),
    ("COMPOUND QUERY", "Compound Query"),
    ("CORRELATED SCALAR SUBQUERY", "Correlated Subquery"),
    ("SCALAR SUBQUERY", "Scalar Subquery"),
    ("LIST SUBQUERY", "List Subquery"),
    ("MULTI-INDEX OR", "Multi-Index OR"),
    ("CO-ROUTINE", "Co-Routine"),
    ("MATERIALIZE", "Materialize"),
    ("SEARCH", "Search"),
    ("SCAN", "Scan"),
]


class SqliteAdapter(BaseAdapter):
    """SQLite adapter; foreign keys and index columns need extra PRAGMAs."""

    dialect = "sqlite"
    default_schema = "main"

    @property
    def capabilities(self) -> DialectCapabilities:
        """SQLite reports keys through PRAGMAs and has no ANALYZE timing."""
        return DialectCapabilities(
            foreign_keys=True,
            indexes=True,
            views=True,
            schemas=False,
            explain_plans=True,
            explain_analyze=False,
            separate_foreign_keys_query=True,
            separate_index_columns_query=True,
            statistics=True,
        )

    def _pragma(self, name: str, argument: str, schema: Optional[str]) -> str:
        """Build a PRAGMA call, qualified when targeting an attached database."""
        prefix = ""
        if schema and schema != self.default_schema:
            prefix = f"{self._quote_identifier(schema)}."
        return f"PRAGMA {prefix}{name}({self._quote_literal(argument)})"

    def get_schema_query(self) -> str:
        """List user tables and views."""
        return """SELECT name, type
FROM sqlite_master
WHERE type IN ('table', 'view')
    AND name NOT LIKE 'sqlite_%'
ORDER BY name"""

    def get_columns_query(self, table: str, schema: str) -> str:
        """SQLite uses PRAGMA table_info for column metadata."""
        return self._pragma("table_info", table, schema)

    def get_indexes_query(self, table: str, schema: str) -> str:
        """List indexes with PRAGMA index_list."""
        return self._pragma("index_list", table, schema)

    def get_foreign_keys_query(self, table: str, schema: str) -> Optional[str]:
        """Foreign keys are only available through PRAGMA foreign_key_list."""
        return self._pragma("foreign_key_list", table, schema)

    def get_index_columns_query(self, index_name: str, schema: str) -> Optional[str]:
        """Index columns are only available through PRAGMA index_info."""
        return self._pragma("index_info", index_name, schema)

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """SQLite only has EXPLAIN QUERY PLAN; actual stats are measured by the caller."""
        return f"EXPLAIN QUERY PLAN {self._strip_terminator(query)}"

    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """Rebuild the tree from (id, parent, detail) rows."""
        root = ExplainNode(type="Query Plan", label="SQLite Query Plan")
        nodes: dict[int, ExplainNode] = {}

        for row in rows:
            detail = str(self._value(row, "detail", required=True))
            node = ExplainNode(type=self._operation_type(detail), label=detail)
            node_id = to_int(self._value(row, "id"))
            parent_id = to_int(self._value(row, "parent"))

            parent = nodes.get(parent_id) if parent_id else None
            (parent or root).children.append(node)
            if node_id is not None:
                nodes[node_id] = node

        return root

    def _operation_type(self, detail: str) -> str:
        """Derive a node type from the plan detail text."""
        upper = detail.upper()
        for prefix, operation in _PLAN_OPERATIONS:
            if upper.startswith(prefix):
                return operation
        first_word = detail.split(" ", 1)[0]
        return first_word.title() if first_word else "Unknown"

    def parse_schema_result(self, rows: Rows) -> list[SchemaTable]:
        """Transform sqlite_master rows; everything lives in schema 'main'."""
        return [
            SchemaTable(
                name=self._value(row, "name", required=True),
                schema=self.default_schema,
                type="view" if self._value(row, "type") == "view" else "table",
            )
            for row in rows
        ]

    def parse_columns_result(
        self, rows: Rows, foreign_keys: Optional[Rows] = None
    ) -> list[SchemaColumn]:
        """Transform PRAGMA table_info rows, merging foreign_key_list rows."""
        references: dict[str, ForeignKeyRef] = {}
        for fk in foreign_keys or []:
            column = to_optional_str(self._value(fk, "from"))
            if not column:
                continue
            references[column] = ForeignKeyRef(
                referenced_schema=self.default_schema,
                referenced_table=str(self._value(fk, "table", required=True)),
                # NULL when the reference targets the implicit primary key
                referenced_column=to_optional_str(self._value(fk, "to")) or "",
            )

        columns = []
        for row in rows:
            name = self._value(row, "name", required=True)
            columns.append(
                SchemaColumn(
                    name=name,
                    # SQLite allows columns without a declared type
                    type=to_optional_str(self._value(row, "type")) or "BLOB",
                    nullable=not to_bool(self._value(row, "notnull")),
                    default_value=to_optional_str(self._value(row, "dflt_value")),
                    is_primary_key=(to_int(self._value(row, "pk")) or 0) > 0,
                    is_foreign_key=name in references,
                    foreign_key_ref=references.get(name),
                )
            )
        return columns

    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Transform PRAGMA index_list rows, skipping internal auto-indexes."""
        indexes = []
        for row in rows:
            name = to_optional_str(self._value(row, "name"))
            if not name or name.startswith("sqlite_"):
                continue
            indexes.append(
                SchemaIndex(
                    name=name,
                    columns=[],
                    unique=to_bool(self._value(row, "unique")),
                    type="btree",
                )
            )
        return indexes

    def parse_index_columns_result(self, rows: Rows) -> list[str]:
        """Transform PRAGMA index_info rows into column names in key order."""
        ordered = sorted(rows, key=lambda row: to_int(self._value(row, "seqno")) or 0)
        return [
            name
            for name in (to_optional_str(self._value(row, "name")) for row in ordered)
            if name
        ]

    def get_table_sizes_query(self) -> str:
        """List user tables; sizes need the optional dbstat table and are omitted."""
        return """SELECT name AS table_name
FROM sqlite_master
WHERE type = 'table'
    AND name NOT LIKE 'sqlite_%'
ORDER BY name"""

    def get_table_row_count_query(self, table: str, schema: str) -> Optional[str]:
        """Exact row count of one table."""
        prefix = ""
        if schema and schema != self.default_schema:
            prefix = f"{self._quote_identifier(schema)}."
        return (
            f"SELECT COUNT(*) AS row_count FROM {prefix}{self._quote_identifier(table)}"
        )

    def get_index_usage_query(self) -> str:
        """List user-created indexes; SQLite keeps no scan counters."""
        return """SELECT
    m.tbl_name AS table_name,
    m.name AS index_name,
    il."unique" AS is_unique
FROM sqlite_master m
JOIN pragma_index_list(m.tbl_name) il ON il.name = m.name
WHERE m.type = 'index'
    AND m.name NOT LIKE 'sqlite_%'
ORDER BY m.tbl_name, m.name"""

    def get_database_overview_query(self) -> str:
        """Object counts and the file size (page count times page size)."""
        return """SELECT
    (SELECT COUNT(*) FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%') AS table_count,
    (SELECT COUNT(*) FROM sqlite_master
        WHERE type = 'index' AND name NOT LIKE 'sqlite_%') AS index_count,
    (SELECT page_count FROM pragma_page_count())
        * (SELECT page_size FROM pragma_page_size()) AS total_size"""

    def parse_table_sizes_result(self, rows: Rows) -> list[TableSizeInfo]:
        return [
            TableSizeInfo(
                schema=self.default_schema,
                name=self._value(row, "table_name", "name", required=True),
            )
            for row in rows
        ]

    def parse_index_usage_result(self, rows: Rows) -> list[IndexUsageInfo]:
        return [
            IndexUsageInfo(
                schema=self.default_schema,
                table=self._value(row, "table_name", required=True),
                index_name=self._value(row, "index_name", required=True),
                unique=to_bool(self._value(row, "is_unique")),
            )
            for row in rows
        ]

    def parse_database_overview_result(
        self, rows: Rows
    ) -> Optional[DatabaseOverview]:
        if not rows:
            return None
        row = rows[0]
        return DatabaseOverview(
            database_name=self.default_schema,
            total_size_bytes=to_int(self._value(row, "total_size")),
            table_count=to_int(self._value(row, "table_count")) or 0,
            index_count=to_int(self._value(row, "index_count")) or 0,
        )
