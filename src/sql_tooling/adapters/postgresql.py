"""PostgreSQL adapter with full feature support."""

import re
from typing import Any, Optional

import orjson

from sql_tooling.adapters.base import BaseAdapter, ResultParseError, Rows
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
from sql_tooling.utils import (
    load_json_payload,
    to_bool,
    to_float,
    to_int,
    to_optional_str,
)

_INDEX_METHOD = re.compile(r"\bUSING\s+(\w+)", re.IGNORECASE)


class PostgresAdapter(BaseAdapter):
    """PostgreSQL adapter backed by information_schema and pg_catalog."""

    dialect = "postgres"
    default_schema = "public"

    @property
    def capabilities(self) -> DialectCapabilities:
        """PostgreSQL supports all features."""
        return DialectCapabilities(
            foreign_keys=True,
            indexes=True,
            views=True,
            schemas=True,
            explain_plans=True,
            explain_analyze=True,
            statistics=True,
        )

    def get_schema_query(self) -> str:
        """List base tables and views outside the system schemas."""
        return """SELECT
    table_schema AS schema_name,
    table_name,
    table_type
FROM information_schema.tables
WHERE table_type IN ('BASE TABLE', 'VIEW')
    AND table_schema NOT IN ('pg_catalog', 'information_schema')
ORDER BY table_schema, table_name"""

    def get_columns_query(self, table: str, schema: str) -> str:
        """List columns with key membership and foreign key targets."""
        return f"""SELECT
    c.column_name,
    c.data_type,
    c.is_nullable,
    c.column_default,
    EXISTS (
        SELECT 1
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
            ON tc.constraint_name = kcu.constraint_name
            AND tc.constraint_schema = kcu.constraint_schema
        WHERE tc.constraint_type = 'PRIMARY KEY'
            AND kcu.table_schema = c.table_schema
            AND kcu.table_name = c.table_name
            AND kcu.column_name = c.column_name
    ) AS is_primary_key,
    fk.referenced_table IS NOT NULL AS is_foreign_key,
    fk.referenced_schema,
    fk.referenced_table,
    fk.referenced_column
FROM information_schema.columns c
LEFT JOIN LATERAL (
    SELECT
        target.table_schema AS referenced_schema,
        target.table_name AS referenced_table,
        target.column_name AS referenced_column
    FROM information_schema.key_column_usage kcu
    JOIN information_schema.referential_constraints rc
        ON rc.constraint_schema = kcu.constraint_schema
        AND rc.constraint_name = kcu.constraint_name
    JOIN information_schema.key_column_usage target
        ON target.constraint_schema = rc.unique_constraint_schema
        AND target.constraint_name = rc.unique_constraint_name
        AND target.ordinal_position = kcu.position_in_unique_constraint
    WHERE kcu.table_schema = c.table_schema
        AND kcu.table_name = c.table_name
        AND kcu.column_name = c.column_name
    ORDER BY kcu.constraint_name
    LIMIT 1
) fk ON true
WHERE c.table_name = {self._quote_literal(table)}
    AND c.table_schema = {self._quote_literal(schema)}
ORDER BY c.ordinal_position"""

    def get_indexes_query(self, table: str, schema: str) -> str:
        """List index definitions from pg_indexes."""
        return f"""SELECT
    indexname,
    indexdef,
    schemaname,
    tablename
FROM pg_indexes
WHERE tablename = {self._quote_literal(table)}
    AND schemaname = {self._quote_literal(schema)}
ORDER BY indexname"""

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """Generate PostgreSQL EXPLAIN query with JSON output."""
        base_query = self._strip_terminator(query)
        if analyze:
            return f"EXPLAIN (ANALYZE, FORMAT JSON) {base_query}"
        return f"EXPLAIN (FORMAT JSON) {base_query}"

    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """Parse PostgreSQL EXPLAIN JSON output."""
        if not rows:
            raise ResultParseError("postgres: EXPLAIN returned no rows")

        payload = self._value(rows[0], "QUERY PLAN", required=True)
        try:
            plan_data = load_json_payload(payload)
        except orjson.JSONDecodeError as e:
            raise ResultParseError(f"postgres: EXPLAIN output is not JSON: {e}") from e

        if isinstance(plan_data, list) and plan_data:
            plan_data = plan_data[0]
        if not isinstance(plan_data, dict) or not isinstance(
            plan_data.get("Plan"), dict
        ):
            raise ResultParseError("postgres: EXPLAIN JSON has no 'Plan' object")

        return self._convert_plan_node(plan_data["Plan"], analyze)

    def _convert_plan_node(self, node: dict[str, Any], analyze: bool) -> ExplainNode:
        """Convert one JSON plan node and its children."""
        result = ExplainNode(
            type=str(node.get("Node Type") or "Unknown"),
            label=self._build_node_label(node),
            cost=to_float(node.get("Total Cost")),
            rows=to_float(node.get("Plan Rows")),
        )

        if analyze:
            result.actual_time = to_float(node.get("Actual Total Time"))
            result.actual_rows = to_float(node.get("Actual Rows"))

        for child in node.get("Plans") or []:
            result.children.append(self._convert_plan_node(child, analyze))

        return result

    def _build_node_label(self, node: dict[str, Any]) -> str:
        """Format node type, relation, index and join type as a label."""
        parts = [str(node.get("Node Type") or "")]
        if node.get("Relation Name"):
            parts.append(f"on {node['Relation Name']}")
        if node.get("Index Name"):
            parts.append(f"using {node['Index Name']}")
        if node.get("Join Type"):
            parts.append(f"({node['Join Type']})")
        return " ".join(parts)

    def parse_schema_result(self, rows: Rows) -> list[SchemaTable]:
        """Transform information_schema.tables rows."""
        tables = []
        for row in rows:
            table_type = to_optional_str(self._value(row, "table_type")) or ""
            tables.append(
                SchemaTable(
                    name=self._value(row, "table_name", required=True),
                    schema=self._value(row, "schema_name", required=True),
                    type="view" if table_type.upper() == "VIEW" else "table",
                )
            )
        return tables

    def parse_columns_result(
        self, rows: Rows, foreign_keys: Optional[Rows] = None
    ) -> list[SchemaColumn]:
        """Transform information_schema.columns rows."""
        columns = []
        for row in rows:
            referenced_table = to_optional_str(self._value(row, "referenced_table"))
            foreign_key_ref = None
            if referenced_table:
                foreign_key_ref = ForeignKeyRef(
                    referenced_schema=to_optional_str(
                        self._value(row, "referenced_schema")
                    )
                    or self.default_schema,
                    referenced_table=referenced_table,
                    referenced_column=to_optional_str(
                        self._value(row, "referenced_column")
                    )
                    or "",
                )

            columns.append(
                SchemaColumn(
                    name=self._value(row, "column_name", required=True),
                    type=self._value(row, "data_type", required=True),
                    nullable=to_bool(self._value(row, "is_nullable")),
                    default_value=to_optional_str(self._value(row, "column_default")),
                    is_primary_key=to_bool(self._value(row, "is_primary_key")),
                    is_foreign_key=to_bool(self._value(row, "is_foreign_key"))
                    or foreign_key_ref is not None,
                    foreign_key_ref=foreign_key_ref,
                )
            )
        return columns

    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Transform pg_indexes rows, recovering columns from the definition."""
        indexes = []
        for row in rows:
            indexdef = to_optional_str(self._value(row, "indexdef")) or ""
            method = _INDEX_METHOD.search(indexdef)
            indexes.append(
                SchemaIndex(
                    name=self._value(row, "indexname", required=True),
                    columns=self._split_index_columns(indexdef),
                    unique="UNIQUE" in indexdef.upper().split("INDEX", 1)[0],
                    type=method.group(1).lower() if method else "btree",
                )
            )
        return indexes

    def get_table_sizes_query(self) -> str:
        """Table sizes from pg_class; row counts are the planner's estimates."""
        return """SELECT
    n.nspname AS schema_name,
    c.relname AS table_name,
    c.reltuples::bigint AS row_count,
    pg_total_relation_size(c.oid)::bigint AS total_size,
    pg_relation_size(c.oid)::bigint AS data_size,
    pg_indexes_size(c.oid)::bigint AS index_size
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
WHERE c.relkind IN ('r', 'p')
    AND n.nspname NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
ORDER BY total_size DESC, schema_name, table_name"""

    def get_index_usage_query(self) -> str:
        """Index scan counters from pg_stat_user_indexes, least used first."""
        return """SELECT
    s.schemaname AS schema_name,
    s.relname AS table_name,
    s.indexrelname AS index_name,
    i.indisunique AS is_unique,
    pg_relation_size(s.indexrelid)::bigint AS index_size,
    s.idx_scan AS scans,
    s.idx_tup_read AS rows_read
FROM pg_stat_user_indexes s
JOIN pg_index i ON i.indexrelid = s.indexrelid
ORDER BY s.idx_scan, index_size DESC, s.schemaname, s.indexrelname"""

    def get_database_overview_query(self) -> str:
        """Size, object counts, and connections of the current database."""
        return """SELECT
    current_database() AS database_name,
    pg_database_size(current_database())::bigint AS total_size,
    (SELECT COUNT(*) FROM pg_tables
        WHERE schemaname NOT IN ('pg_catalog', 'information_schema')) AS table_count,
    (SELECT COUNT(*) FROM pg_indexes
        WHERE schemaname NOT IN ('pg_catalog', 'information_schema')) AS index_count,
    (SELECT COUNT(*) FROM pg_stat_activity
        WHERE datname = current_database()) AS connection_count"""

    def parse_table_sizes_result(self, rows: Rows) -> list[TableSizeInfo]:
        """Transform pg_class size rows."""
        tables = []
        for row in rows:
            row_count = to_int(self._value(row, "row_count"))
            if row_count is not None and row_count < 0:
                # reltuples is -1 until the table is first analyzed
                row_count = None
            tables.append(
                TableSizeInfo(
                    schema=self._value(row, "schema_name", required=True),
                    name=self._value(row, "table_name", required=True),
                    row_count=row_count,
                    total_size_bytes=to_int(self._value(row, "total_size")),
                    data_size_bytes=to_int(self._value(row, "data_size")),
                    index_size_bytes=to_int(self._value(row, "index_size")),
                )
            )
        return tables

    def parse_index_usage_result(self, rows: Rows) -> list[IndexUsageInfo]:
        """Transform pg_stat_user_indexes rows."""
        return [
            IndexUsageInfo(
                schema=self._value(row, "schema_name", required=True),
                table=self._value(row, "table_name", required=True),
                index_name=self._value(row, "index_name", required=True),
                unique=to_bool(self._value(row, "is_unique")),
                size_bytes=to_int(self._value(row, "index_size")),
                scans=to_int(self._value(row, "scans")),
                rows_read=to_int(self._value(row, "rows_read")),
            )
            for row in rows
        ]

    def parse_database_overview_result(
        self, rows: Rows
    ) -> Optional[DatabaseOverview]:
        """Transform the single overview row."""
        if not rows:
            return None
        row = rows[0]
        return DatabaseOverview(
            database_name=self._value(row, "database_name", required=True),
            total_size_bytes=to_int(self._value(row, "total_size")),
            table_count=to_int(self._value(row, "table_count")) or 0,
            index_count=to_int(self._value(row, "index_count")) or 0,
            connection_count=to_int(self._value(row, "connection_count")),
        )
