"""MySQL adapter with good feature support."""

import logging
import re
from typing import Any, Optional

import orjson

from sql_tooling.adapters.base import BaseAdapter, ResultParseError, Row, Rows
from sql_tooling.models.capabilities import DialectCapabilities
from sql_tooling.models.explain import ExplainNode
from sql_tooling.models.schema import (
    ForeignKeyRef,
    SchemaColumn,
    SchemaIndex,
    SchemaTable,
)
from sql_tooling.utils import to_bool, to_float, to_optional_str

logger = logging.getLogger(__name__)

# Readable names for JSON EXPLAIN access types
_ACCESS_TYPES = {
    "ALL": "Full Table Scan",
    "index": "Full Index Scan",
    "range": "Index Range Scan",
    "ref": "Index Lookup",
    "ref_or_null": "Index Lookup",
    "eq_ref": "Unique Index Lookup",
    "const": "Constant Lookup",
    "system": "Constant Lookup",
    "fulltext": "Fulltext Index Lookup",
    "index_merge": "Index Merge",
    "unique_subquery": "Subquery Index Lookup",
    "index_subquery": "Subquery Index Lookup",
}

# Operation wrappers found around tables in a query_block
_WRAPPERS = {
    "ordering_operation": "Sort",
    "grouping_operation": "Group",
    "duplicates_removal": "Duplicates Removal",
    "windowing": "Window",
    "buffer_result": "Buffer Result",
    "union_result": "Union Result",
    "filesort": "Sort",
    "temporary_table": "Temporary Table",
}

_SUBQUERY_LISTS = (
    "attached_subqueries",
    "optimized_away_subqueries",
    "query_specifications",
    "subqueries",
)

# "(cost=0.55 rows=5)" or "(cost=0.25..0.55 rows=5)"
_TREE_COST = re.compile(
    r"\(cost=(?:[\d.eE+-]+\.\.)?([\d.eE+-]+)\s+rows=([\d.eE+-]+)\)"
)
# "(actual time=0.03..0.04 rows=5 loops=1)"
_TREE_ACTUAL = re.compile(
    r"\(actual time=[\d.eE+-]+\.\.([\d.eE+-]+)\s+rows=([\d.eE+-]+)\s+loops=(\d+)\)"
)
_TREE_NEVER = re.compile(r"\(never executed\)")


class MySQLAdapter(BaseAdapter):
    """MySQL adapter backed by information_schema."""

    dialect = "mysql"
    # MySQL schemas are databases; an empty schema means the current one
    default_schema = ""

    @property
    def capabilities(self) -> DialectCapabilities:
        """MySQL has good but not comprehensive support."""
        return DialectCapabilities(
            foreign_keys=True,
            indexes=True,
            views=True,
            schemas=True,  # MySQL calls them databases
            explain_plans=True,
            explain_analyze=True,
        )

    def _schema_predicate(self, column: str, schema: str) -> str:
        """Match a schema column, falling back to the current database."""
        if schema:
            return f"{column} = {self._quote_literal(schema)}"
        return f"{column} = DATABASE()"

    def get_schema_query(self) -> str:
        """List tables and views outside the system databases."""
        return """SELECT
    table_schema AS schema_name,
    table_name AS table_name,
    table_type AS table_type
FROM information_schema.tables
WHERE table_schema NOT IN ('mysql', 'information_schema', 'performance_schema', 'sys')
ORDER BY table_schema, table_name"""

    def get_columns_query(self, table: str, schema: str) -> str:
        """List columns with key membership and foreign key targets."""
        return f"""SELECT
    c.column_name AS column_name,
    c.column_type AS data_type,
    c.is_nullable AS is_nullable,
    c.column_default AS column_default,
    c.column_key = 'PRI' AS is_primary_key,
    kcu.referenced_table_name IS NOT NULL AS is_foreign_key,
    kcu.referenced_table_schema AS referenced_schema,
    kcu.referenced_table_name AS referenced_table,
    kcu.referenced_column_name AS referenced_column
FROM information_schema.columns c
LEFT JOIN information_schema.key_column_usage kcu
    ON kcu.table_schema = c.table_schema
    AND kcu.table_name = c.table_name
    AND kcu.column_name = c.column_name
    AND kcu.referenced_table_name IS NOT NULL
WHERE c.table_name = {self._quote_literal(table)}
    AND {self._schema_predicate("c.table_schema", schema)}
ORDER BY c.ordinal_position"""

    def get_indexes_query(self, table: str, schema: str) -> str:
        """List index columns from information_schema.statistics."""
        return f"""SELECT
    index_name AS index_name,
    column_name AS column_name,
    non_unique AS non_unique,
    index_type AS index_type
FROM information_schema.statistics
WHERE table_name = {self._quote_literal(table)}
    AND {self._schema_predicate("table_schema", schema)}
ORDER BY index_name, seq_in_index"""

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """Generate MySQL EXPLAIN query."""
        base_query = self._strip_terminator(query)
        if analyze:
            return f"EXPLAIN ANALYZE {base_query}"
        return f"EXPLAIN FORMAT=JSON {base_query}"

    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """Parse JSON EXPLAIN output or the EXPLAIN ANALYZE text tree."""
        if not rows:
            raise ResultParseError(f"{self.dialect}: EXPLAIN returned no rows")

        payload = "\n".join(
            str(value) for value in (self._plan_payload(row) for row in rows) if value
        ).strip()

        if payload.startswith("{"):
            try:
                plan_data = orjson.loads(payload)
            except orjson.JSONDecodeError as e:
                raise ResultParseError(
                    f"{self.dialect}: EXPLAIN output is not JSON: {e}"
                ) from e
            return self._convert_json_plan(plan_data, analyze)

        nodes = self._parse_tree_text(payload)
        if not nodes:
            logger.warning("%s: unrecognized EXPLAIN output, returning raw text", self.dialect)
            return ExplainNode(
                type="Query Plan", label=payload or "No plan available"
            )
        return self._plan_root(nodes, "MySQL Query Plan")

    def _plan_payload(self, row: Row) -> Any:
        """Get the plan text column, whatever the server named it."""
        value = self._value(row, "EXPLAIN", "ANALYZE")
        if value is None and row:
            value = next(iter(row.values()))
        return value

    # JSON format

    def _convert_json_plan(self, data: Any, analyze: bool) -> ExplainNode:
        """Convert the top-level JSON EXPLAIN document."""
        if not isinstance(data, dict):
            raise ResultParseError(f"{self.dialect}: EXPLAIN JSON is not an object")
        if isinstance(data.get("query_block"), dict):
            return self._convert_query_block(data["query_block"], analyze)
        return self._plan_root(self._json_children(data, analyze), "Query Plan")

    def _convert_query_block(self, block: dict[str, Any], analyze: bool) -> ExplainNode:
        """Convert a query_block object."""
        select_id = block.get("select_id")
        node = ExplainNode(
            type="Query Block",
            label=f"Query Block #{select_id}" if select_id is not None else "Query Block",
            cost=self._json_cost(block),
        )
        if analyze:
            node.actual_time = to_float(block.get("r_total_time_ms"))
        node.children.extend(self._json_children(block, analyze))
        return node

    def _convert_table(self, table: dict[str, Any], analyze: bool) -> ExplainNode:
        """Convert a table access object."""
        access_type = str(table.get("access_type") or "")
        operation = _ACCESS_TYPES.get(access_type, access_type or "Table Access")
        label = operation
        if table.get("table_name"):
            label += f" on {table['table_name']}"
        if table.get("key"):
            label += f" using {table['key']}"

        node = ExplainNode(
            type=operation,
            label=label,
            cost=self._json_cost(table),
            rows=to_float(table.get("rows_examined_per_scan", table.get("rows"))),
        )
        if analyze:
            node.actual_rows = to_float(table.get("r_rows"))
            node.actual_time = to_float(table.get("r_total_time_ms"))
        node.children.extend(self._json_children(table, analyze))
        return node

    def _convert_wrapper(
        self, operation: str, body: dict[str, Any], analyze: bool
    ) -> ExplainNode:
        """Convert an operation wrapper such as ordering_operation."""
        label = operation
        if body.get("using_filesort"):
            label += " (filesort)"
        if body.get("using_temporary_table"):
            label += " (temporary table)"
        node = ExplainNode(type=operation, label=label, cost=self._json_cost(body))
        if analyze:
            node.actual_time = to_float(body.get("r_total_time_ms"))
        node.children.extend(self._json_children(body, analyze))
        return node

    def _json_children(self, obj: dict[str, Any], analyze: bool) -> list[ExplainNode]:
        """Collect the child operations nested inside a JSON plan object."""
        children: list[ExplainNode] = []
        for key, value in obj.items():
            if key == "table" and isinstance(value, dict):
                children.append(self._convert_table(value, analyze))
            elif key == "query_block" and isinstance(value, dict):
                children.append(self._convert_query_block(value, analyze))
            elif key == "nested_loop" and isinstance(value, list):
                for item in value:
                    if isinstance(item, dict):
                        children.extend(self._json_children(item, analyze))
            elif key in _WRAPPERS and isinstance(value, dict):
                children.append(self._convert_wrapper(_WRAPPERS[key], value, analyze))
            elif key in _SUBQUERY_LISTS and isinstance(value, list):
                for item in value:
                    if isinstance(item, dict):
                        children.extend(self._json_children(item, analyze))
            elif key == "materialized_from_subquery" and isinstance(value, dict):
                children.extend(self._json_children(value, analyze))
        return children

    def _json_cost(self, obj: dict[str, Any]) -> Optional[float]:
        """Pick the most inclusive cost figure of a JSON plan object."""
        cost_info = obj.get("cost_info")
        if not isinstance(cost_info, dict):
            return None
        for key in ("query_cost", "prefix_cost", "sort_cost", "read_cost"):
            if key in cost_info:
                return to_float(cost_info[key])
        return None

    # EXPLAIN ANALYZE tree format

    def _parse_tree_text(self, text: str) -> list[ExplainNode]:
        """Parse the indented '->' tree printed by EXPLAIN ANALYZE / FORMAT=TREE."""
        entries: list[tuple[int, ExplainNode]] = []
        for line in text.splitlines():
            marker = line.find("->")
            if marker == -1:
                continue
            body = line[marker + 2 :].strip()

            cost = _TREE_COST.search(body)
            actual = _TREE_ACTUAL.search(body)
            label = _TREE_NEVER.sub("", _TREE_ACTUAL.sub("", _TREE_COST.sub("", body)))
            label = label.strip()

            node = ExplainNode(
                type=self._tree_operation(label),
                label=label,
                cost=to_float(cost.group(1)) if cost else None,
                rows=to_float(cost.group(2)) if cost else None,
            )
            if actual:
                node.actual_time = to_float(actual.group(1))
                node.actual_rows = to_float(actual.group(2))
            elif _TREE_NEVER.search(body):
                node.actual_rows = 0.0
            entries.append((marker, node))
        return self._build_indented_tree(entries)

    def _tree_operation(self, label: str) -> str:
        """Operation name of a tree line: text before ':', ' on ' or ' using '."""
        operation = label.split(":", 1)[0]
        for separator in (" on ", " using "):
            operation = operation.split(separator, 1)[0]
        return operation.strip() or "Unknown"

    # Catalog results

    def parse_schema_result(self, rows: Rows) -> list[SchemaTable]:
        """Transform information_schema.tables rows."""
        tables = []
        for row in rows:
            table_type = to_optional_str(self._value(row, "table_type")) or ""
            tables.append(
                SchemaTable(
                    name=self._value(row, "table_name", required=True),
                    schema=self._value(row, "schema_name", "table_schema", required=True),
                    type="view" if "VIEW" in table_type.upper() else "table",
                )
            )
        return tables

    def parse_columns_result(
        self, rows: Rows, foreign_keys: Optional[Rows] = None
    ) -> list[SchemaColumn]:
        """Transform columns rows; a column in several FKs keeps the first."""
        columns: list[SchemaColumn] = []
        seen: set[str] = set()
        for row in rows:
            name = self._value(row, "column_name", required=True)
            if name in seen:
                continue
            seen.add(name)

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
                    name=name,
                    type=self._value(row, "data_type", "column_type", required=True),
                    nullable=to_bool(self._value(row, "is_nullable")),
                    default_value=to_optional_str(self._value(row, "column_default")),
                    is_primary_key=to_bool(self._value(row, "is_primary_key")),
                    is_foreign_key=foreign_key_ref is not None
                    or to_bool(self._value(row, "is_foreign_key")),
                    foreign_key_ref=foreign_key_ref,
                )
            )
        return columns

    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Group statistics rows (one per index column) into indexes."""
        grouped: dict[str, list[Row]] = {}
        for row in rows:
            name = self._value(row, "index_name", required=True)
            grouped.setdefault(name, []).append(row)

        indexes = []
        for name, index_rows in grouped.items():
            first = index_rows[0]
            index_type = to_optional_str(self._value(first, "index_type")) or "btree"
            indexes.append(
                SchemaIndex(
                    name=name,
                    columns=[
                        column
                        for column in (
                            to_optional_str(self._value(r, "column_name"))
                            for r in index_rows
                        )
                        if column
                    ],
                    unique=not to_bool(self._value(first, "non_unique")),
                    type=index_type.lower(),
                )
            )
        return indexes
