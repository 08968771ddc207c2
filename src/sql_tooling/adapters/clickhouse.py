"""ClickHouse adapter optimized for analytics workloads."""

from typing import Optional

from sql_tooling.adapters.base import BaseAdapter, Rows
from sql_tooling.models.capabilities import DialectCapabilities
from sql_tooling.models.explain import ExplainNode
from sql_tooling.models.schema import SchemaColumn, SchemaIndex, SchemaTable
from sql_tooling.utils import to_bool, to_int, to_optional_str

_VIEW_ENGINES = ("View", "MaterializedView", "LiveView", "WindowView")


class ClickHouseAdapter(BaseAdapter):
    """ClickHouse adapter backed by the system.* tables."""

    dialect = "clickhouse"
    default_schema = "default"

    @property
    def capabilities(self) -> DialectCapabilities:
        """ClickHouse analytics-focused capabilities."""
        return DialectCapabilities(
            foreign_keys=False,  # ClickHouse doesn't enforce FK constraints
            indexes=True,  # Data skipping indexes
            views=True,
            schemas=True,  # Called databases in ClickHouse
            explain_plans=True,
            explain_analyze=False,
        )

    def get_schema_query(self) -> str:
        """List tables and views outside the system databases."""
        return """SELECT
    database AS schema_name,
    name AS table_name,
    engine,
    total_rows
FROM system.tables
WHERE database NOT IN ('system', 'INFORMATION_SCHEMA', 'information_schema')
    AND NOT is_temporary
ORDER BY database, name"""

    def get_columns_query(self, table: str, schema: str) -> str:
        """List columns with primary key membership."""
        return f"""SELECT
    name AS column_name,
    type AS data_type,
    default_expression AS column_default,
    is_in_primary_key
FROM system.columns
WHERE table = {self._quote_literal(table)}
    AND database = {self._quote_literal(schema)}
ORDER BY position"""

    def get_indexes_query(self, table: str, schema: str) -> str:
        """List data skipping indexes."""
        return f"""SELECT
    name AS index_name,
    expr,
    type AS index_type
FROM system.data_skipping_indices
WHERE table = {self._quote_literal(table)}
    AND database = {self._quote_literal(schema)}
ORDER BY name"""

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """Generate ClickHouse EXPLAIN query."""
        base_query = self._strip_terminator(query)
        if analyze:
            return f"EXPLAIN PIPELINE {base_query}"
        return f"EXPLAIN PLAN {base_query}"

    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """Nest the text plan by its two-space indentation."""
        entries: list[tuple[int, ExplainNode]] = []
        for row in rows:
            line = self._value(row, "explain")
            if line is None and row:
                line = next(iter(row.values()))
            line = str(line or "").rstrip()
            if not line.strip():
                continue

            depth = (len(line) - len(line.lstrip(" "))) // 2
            label = line.strip()
            entries.append((depth, ExplainNode(type=self._step_type(label), label=label)))

        nodes = self._build_indented_tree(entries)
        if not nodes:
            return ExplainNode(type="Query Plan", label="No plan available")
        return self._plan_root(nodes, "ClickHouse Query Plan")

    def _step_type(self, label: str) -> str:
        """Plan step name: 'ReadFromMergeTree (default.t)' gives 'ReadFromMergeTree'."""
        step = label.strip("()") if label.startswith("(") else label.split(" (", 1)[0]
        return step.split(" ", 1)[0] or "Unknown"

    def parse_schema_result(self, rows: Rows) -> list[SchemaTable]:
        """Transform system.tables rows; view engines mark views."""
        return [
            SchemaTable(
                name=self._value(row, "table_name", required=True),
                schema=self._value(row, "schema_name", required=True),
                type="view"
                if to_optional_str(self._value(row, "engine")) in _VIEW_ENGINES
                else "table",
                row_count=to_int(self._value(row, "total_rows")),
            )
            for row in rows
        ]

    def parse_columns_result(
        self, rows: Rows, foreign_keys: Optional[Rows] = None
    ) -> list[SchemaColumn]:
        """Transform system.columns rows; Nullable(...) types are nullable."""
        columns = []
        for row in rows:
            data_type = str(self._value(row, "data_type", required=True))
            columns.append(
                SchemaColumn(
                    name=self._value(row, "column_name", required=True),
                    type=data_type,
                    nullable=data_type.startswith("Nullable("),
                    default_value=to_optional_str(self._value(row, "column_default")),
                    is_primary_key=to_bool(self._value(row, "is_in_primary_key")),
                )
            )
        return columns

    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Transform data skipping index rows; the expression lists the columns."""
        return [
            SchemaIndex(
                name=self._value(row, "index_name", required=True),
                columns=[
                    col.strip()
                    for col in (to_optional_str(self._value(row, "expr")) or "").split(",")
                    if col.strip()
                ],
                unique=False,
                type=(to_optional_str(self._value(row, "index_type")) or "minmax").lower(),
            )
            for row in rows
        ]
