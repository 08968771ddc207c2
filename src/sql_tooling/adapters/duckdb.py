"""DuckDB adapter."""

import logging
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

logger = logging.getLogger(__name__)

# "FOREIGN KEY (user_id) REFERENCES main.users(id)"
_REFERENCES = re.compile(r"REFERENCES\s+([^\s(]+)\s*\(([^)]*)\)", re.IGNORECASE)
_CARDINALITY = re.compile(r"[\d.]+")


def _unquote(name: str) -> str:
    name = name.strip()
    if len(name) >= 2 and name[0] == name[-1] == '"':
        return name[1:-1].replace('""', '"')
    return name


class DuckDBAdapter(BaseAdapter):
    """DuckDB adapter; PostgreSQL-like catalog plus duckdb_* table functions."""

    dialect = "duckdb"
    default_schema = "main"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(
            foreign_keys=True,
            indexes=True,
            views=True,
            schemas=True,
            explain_plans=True,
            explain_analyze=True,
            separate_foreign_keys_query=True,
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
        """List columns; primary keys come from duckdb_constraints()."""
        return f"""SELECT
    c.column_name,
    c.data_type,
    c.is_nullable,
    c.column_default,
    EXISTS (
        SELECT 1
        FROM duckdb_constraints() k
        WHERE k.constraint_type = 'PRIMARY KEY'
            AND k.schema_name = c.table_schema
            AND k.table_name = c.table_name
            AND list_contains(k.constraint_column_names, c.column_name)
    ) AS is_primary_key
FROM information_schema.columns c
WHERE c.table_name = {self._quote_literal(table)}
    AND c.table_schema = {self._quote_literal(schema)}
ORDER BY c.ordinal_position"""

    def get_foreign_keys_query(self, table: str, schema: str) -> Optional[str]:
        """Foreign keys only surface as constraint text."""
        return f"""SELECT
    constraint_column_names AS column_names,
    constraint_text
FROM duckdb_constraints()
WHERE constraint_type = 'FOREIGN KEY'
    AND table_name = {self._quote_literal(table)}
    AND schema_name = {self._quote_literal(schema)}"""

    def get_indexes_query(self, table: str, schema: str) -> str:
        """List explicitly created indexes with their DDL."""
        return f"""SELECT
    index_name,
    is_unique,
    sql
FROM duckdb_indexes()
WHERE table_name = {self._quote_literal(table)}
    AND schema_name = {self._quote_literal(schema)}
ORDER BY index_name"""

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """Generate DuckDB EXPLAIN query with JSON output."""
        base_query = self._strip_terminator(query)
        if analyze:
            return f"EXPLAIN (ANALYZE, FORMAT JSON) {base_query}"
        return f"EXPLAIN (FORMAT JSON) {base_query}"

    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """Convert the JSON operator tree, falling back to the raw text."""
        values = [
            value
            for value in (self._value(row, "explain_value", "QUERY PLAN") for row in rows)
            if value is not None and str(value).strip()
        ]
        if not values:
            return ExplainNode(type="Query Plan", label="No plan available")

        try:
            plan_data = load_json_payload(values[-1])
        except orjson.JSONDecodeError:
            logger.warning("duckdb: EXPLAIN output is not JSON, returning raw text")
            return ExplainNode(
                type="Query Plan", label="\n".join(str(v) for v in values)
            )

        nodes = self._convert_operators(plan_data, analyze)
        if not nodes:
            raise ResultParseError("duckdb: EXPLAIN JSON has no operators")
        root = self._plan_root(nodes, "DuckDB Query Plan")

        # ANALYZE profiles report the whole query latency in seconds
        if analyze and isinstance(plan_data, dict) and root.actual_time is None:
            latency = to_float(plan_data.get("latency"))
            if latency is not None:
                root.actual_time = latency * 1000
        return root

    def _convert_operators(self, data: Any, analyze: bool) -> list[ExplainNode]:
        """Convert a list of operators or a profile object wrapping them."""
        if isinstance(data, list):
            return [
                self._convert_operator(item, analyze)
                for item in data
                if isinstance(item, dict)
            ]
        if isinstance(data, dict):
            if self._operator_name(data):
                return [self._convert_operator(data, analyze)]
            return self._convert_operators(data.get("children") or [], analyze)
        return []

    def _operator_name(self, operator: dict[str, Any]) -> str:
        name = operator.get("name") or operator.get("operator_name")
        if not name:
            name = operator.get("operator_type") or ""
        return str(name).strip()

    def _convert_operator(self, operator: dict[str, Any], analyze: bool) -> ExplainNode:
        """Convert one operator and its children."""
        name = self._operator_name(operator) or "Unknown"
        extra = operator.get("extra_info")
        label = name
        rows = None

        if isinstance(extra, dict):
            if extra.get("Table"):
                label += f" on {extra['Table']}"
            cardinality = extra.get("Estimated Cardinality")
            if cardinality is not None:
                match = _CARDINALITY.search(str(cardinality))
                rows = to_float(match.group(0)) if match else None

        node = ExplainNode(type=name, label=label, rows=rows)
        if analyze:
            timing = to_float(operator.get("operator_timing"))
            node.actual_time = timing * 1000 if timing is not None else None
            node.actual_rows = to_float(operator.get("operator_cardinality"))

        node.children.extend(
            self._convert_operator(child, analyze)
            for child in operator.get("children") or []
            if isinstance(child, dict)
        )
        return node

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
        """Transform columns rows, merging the parsed foreign key constraints."""
        references = self._parse_foreign_keys(foreign_keys or [])
        columns = []
        for row in rows:
            name = self._value(row, "column_name", required=True)
            columns.append(
                SchemaColumn(
                    name=name,
                    type=self._value(row, "data_type", required=True),
                    nullable=to_bool(self._value(row, "is_nullable")),
                    default_value=to_optional_str(self._value(row, "column_default")),
                    is_primary_key=to_bool(self._value(row, "is_primary_key")),
                    is_foreign_key=name in references,
                    foreign_key_ref=references.get(name),
                )
            )
        return columns

    def _parse_foreign_keys(self, rows: Rows) -> dict[str, ForeignKeyRef]:
        """Map source column to reference by parsing REFERENCES clauses."""
        references: dict[str, ForeignKeyRef] = {}
        for row in rows:
            text = to_optional_str(self._value(row, "constraint_text")) or ""
            match = _REFERENCES.search(text)
            if not match:
                logger.debug("duckdb: skipping unparseable FK constraint %r", text)
                continue

            target = match.group(1)
            if "." in target:
                schema, table = (_unquote(part) for part in target.rsplit(".", 1))
            else:
                schema, table = self.default_schema, _unquote(target)
            targets = [_unquote(col) for col in match.group(2).split(",") if col.strip()]

            sources = self._value(row, "column_names", "constraint_column_names")
            if isinstance(sources, str):
                sources = sources.strip("[]").split(",")
            for source, referenced in zip(
                (_unquote(str(col)) for col in sources or []), targets
            ):
                references[source] = ForeignKeyRef(
                    referenced_schema=schema,
                    referenced_table=table,
                    referenced_column=referenced,
                )
        return references

    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Transform duckdb_indexes() rows, reading columns from the DDL."""
        return [
            SchemaIndex(
                name=self._value(row, "index_name", required=True),
                columns=[
                    _unquote(col)
                    for col in self._split_index_columns(
                        to_optional_str(self._value(row, "sql"))
                    )
                ],
                unique=to_bool(self._value(row, "is_unique")),
                type="art",
            )
            for row in rows
        ]

    def get_table_sizes_query(self) -> str:
        """List base tables; DuckDB reports no per-table storage size."""
        return """SELECT
    table_schema AS schema_name,
    table_name
FROM information_schema.tables
WHERE table_type = 'BASE TABLE'
    AND table_schema NOT IN ('pg_catalog', 'information_schema')
ORDER BY table_schema, table_name"""

    def get_table_row_count_query(self, table: str, schema: str) -> Optional[str]:
        return (
            f"SELECT COUNT(*) AS row_count FROM "
            f"{self._quote_identifier(schema)}.{self._quote_identifier(table)}"
        )

    def get_index_usage_query(self) -> str:
        """List indexes from duckdb_indexes(); no scan counters are tracked."""
        return """SELECT
    schema_name,
    table_name,
    index_name,
    is_unique
FROM duckdb_indexes()
ORDER BY schema_name, table_name, index_name"""

    def get_database_overview_query(self) -> str:
        return """SELECT
    current_database() AS database_name,
    (SELECT COUNT(*) FROM information_schema.tables
        WHERE table_type = 'BASE TABLE'
            AND table_schema NOT IN ('pg_catalog', 'information_schema')) AS table_count,
    (SELECT COUNT(*) FROM duckdb_indexes()) AS index_count"""

    def parse_table_sizes_result(self, rows: Rows) -> list[TableSizeInfo]:
        return [
            TableSizeInfo(
                schema=to_optional_str(self._value(row, "schema_name"))
                or self.default_schema,
                name=self._value(row, "table_name", required=True),
            )
            for row in rows
        ]

    def parse_index_usage_result(self, rows: Rows) -> list[IndexUsageInfo]:
        return [
            IndexUsageInfo(
                schema=to_optional_str(self._value(row, "schema_name"))
                or self.default_schema,
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
            database_name=to_optional_str(self._value(row, "database_name"))
            or "memory",
            table_count=to_int(self._value(row, "table_count")) or 0,
            index_count=to_int(self._value(row, "index_count")) or 0,
        )
