"""Microsoft SQL Server adapter."""

import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterator, Mapping
from typing import Optional

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

SHOWPLAN_NAMESPACE = "http://schemas.microsoft.com/sqlserver/2004/07/showplan"
_NS = f"{{{SHOWPLAN_NAMESPACE}}}"
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")


def _local(tag: str) -> str:
    """Strip the XML namespace from a tag."""
    return tag.rsplit("}", 1)[-1]


class MssqlAdapter(BaseAdapter):
    """SQL Server adapter backed by the sys.* catalog views.

    Execution plans are not produced by a wrapping EXPLAIN statement: the
    query runs unchanged between SET SHOWPLAN_XML session settings, and the
    ShowPlan XML document it yields is parsed into a RelOp tree.

    SET STATISTICS XML returns its plan as a second result set after the
    data rows, which the single-result query channel never reads. ANALYZE is
    therefore reported as non-native and measured by executing the
    statement. The parser still reads RunTimeInformation counters from
    actual plans captured elsewhere.
    """

    dialect = "mssql"
    default_schema = "dbo"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(
            foreign_keys=True,
            indexes=True,
            views=True,
            schemas=True,
            explain_plans=True,
            explain_analyze=False,
        )

    def get_schema_query(self) -> str:
        """List user tables and views with their schema."""
        return """SELECT
    s.name AS schema_name,
    o.name AS table_name,
    o.type AS table_type
FROM sys.objects o
INNER JOIN sys.schemas s ON o.schema_id = s.schema_id
WHERE o.type IN ('U', 'V')
    AND o.is_ms_shipped = 0
ORDER BY s.name, o.name"""

    def get_columns_query(self, table: str, schema: str) -> str:
        """List columns with primary key membership and inline FK targets."""
        return f"""SELECT
    c.name AS column_name,
    TYPE_NAME(c.user_type_id) AS data_type,
    CASE WHEN c.is_nullable = 1 THEN 'YES' ELSE 'NO' END AS is_nullable,
    dc.definition AS column_default,
    CASE WHEN pk.column_id IS NOT NULL THEN 1 ELSE 0 END AS is_primary_key,
    CASE WHEN fk.parent_column_id IS NOT NULL THEN 1 ELSE 0 END AS is_foreign_key,
    rs.name AS referenced_schema,
    rt.name AS referenced_table,
    rc.name AS referenced_column
FROM sys.columns c
INNER JOIN sys.objects t ON c.object_id = t.object_id
INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
LEFT JOIN sys.default_constraints dc ON c.default_object_id = dc.object_id
LEFT JOIN (
    SELECT ic.object_id, ic.column_id
    FROM sys.index_columns ic
    INNER JOIN sys.indexes i ON ic.object_id = i.object_id AND ic.index_id = i.index_id
    WHERE i.is_primary_key = 1
) pk ON c.object_id = pk.object_id AND c.column_id = pk.column_id
LEFT JOIN sys.foreign_key_columns fk
    ON c.object_id = fk.parent_object_id AND c.column_id = fk.parent_column_id
LEFT JOIN sys.tables rt ON fk.referenced_object_id = rt.object_id
LEFT JOIN sys.schemas rs ON rt.schema_id = rs.schema_id
LEFT JOIN sys.columns rc
    ON fk.referenced_object_id = rc.object_id AND fk.referenced_column_id = rc.column_id
WHERE t.name = {self._quote_literal(table)}
    AND s.name = {self._quote_literal(schema)}
ORDER BY c.column_id"""

    def get_indexes_query(self, table: str, schema: str) -> str:
        """List index key columns, one row per column."""
        return f"""SELECT
    i.name AS index_name,
    c.name AS column_name,
    i.is_unique AS is_unique,
    i.type_desc AS index_type
FROM sys.indexes i
INNER JOIN sys.index_columns ic ON i.object_id = ic.object_id AND i.index_id = ic.index_id
INNER JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id
INNER JOIN sys.objects t ON i.object_id = t.object_id
INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
WHERE t.name = {self._quote_literal(table)}
    AND s.name = {self._quote_literal(schema)}
    AND i.name IS NOT NULL
    AND ic.is_included_column = 0
ORDER BY i.name, ic.key_ordinal"""

    def _quote_identifier(self, name: str) -> str:
        """Quote an identifier with brackets."""
        return "[" + name.replace("]", "]]") + "]"

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """The statement itself; the plan comes from the session settings."""
        return self._strip_terminator(query)

    def get_explain_setup(self, analyze: bool) -> list[str]:
        return ["SET SHOWPLAN_XML ON"]

    def get_explain_teardown(self, analyze: bool) -> list[str]:
        return ["SET SHOWPLAN_XML OFF"]

    def parse_explain_result(self, rows: Rows, analyze: bool) -> ExplainNode:
        """Parse the ShowPlan XML document found in the result rows."""
        document = self._find_showplan(rows)
        if document is None:
            logger.warning("mssql: no ShowPlan XML in EXPLAIN result")
            return ExplainNode(
                type="Query Plan",
                label="No ShowPlan XML returned; run with SHOWPLAN_XML enabled",
            )

        try:
            root = ET.fromstring(_XML_DECLARATION.sub("", document))
        except ET.ParseError as e:
            raise ResultParseError(f"mssql: ShowPlan is not valid XML: {e}") from e

        statements = []
        for statement in root.iter(f"{_NS}StmtSimple"):
            query_plan = statement.find(f"{_NS}QueryPlan")
            if query_plan is None:
                continue
            relop = query_plan.find(f"{_NS}RelOp")
            if relop is None:
                continue
            statements.append(self._convert_relop(relop, analyze))

        if not statements:
            raise ResultParseError("mssql: ShowPlan XML contains no RelOp elements")
        return self._plan_root(statements, "SQL Server Query Plan")

    def _find_showplan(self, rows: Rows) -> Optional[str]:
        """Return the first cell holding a ShowPlan XML document."""
        for row in rows:
            if not isinstance(row, Mapping):
                raise ResultParseError(
                    f"mssql: expected a mapping row, got {type(row).__name__}"
                )
            for value in row.values():
                if isinstance(value, bytes):
                    value = value.decode("utf-8", errors="replace")
                if isinstance(value, str) and "<ShowPlanXML" in value:
                    return value
        return None

    def _convert_relop(self, relop: ET.Element, analyze: bool) -> ExplainNode:
        """Convert one RelOp element and the RelOps nested below it."""
        physical_op = relop.get("PhysicalOp") or relop.get("LogicalOp") or "Unknown"
        node = ExplainNode(
            type=physical_op,
            label=self._relop_label(relop, physical_op),
            cost=to_float(relop.get("EstimatedTotalSubtreeCost")),
            rows=to_float(relop.get("EstimateRows")),
        )

        if analyze:
            counters = relop.findall(
                f"{_NS}RunTimeInformation/{_NS}RunTimeCountersPerThread"
            )
            if counters:
                node.actual_rows = sum(
                    to_float(counter.get("ActualRows")) or 0.0 for counter in counters
                )
                elapsed = [
                    value
                    for value in (
                        to_float(counter.get("ActualElapsedms")) for counter in counters
                    )
                    if value is not None
                ]
                node.actual_time = max(elapsed) if elapsed else None

        node.children.extend(
            self._convert_relop(child, analyze) for child in self._child_relops(relop)
        )
        return node

    def _child_relops(self, element: ET.Element) -> Iterator[ET.Element]:
        """Yield the nearest RelOp descendants, skipping operator wrappers."""
        for child in element:
            if _local(child.tag) == "RelOp":
                yield child
            else:
                yield from self._child_relops(child)

    def _relop_label(self, relop: ET.Element, physical_op: str) -> str:
        """Format the operator with the object it reads, if any."""
        target = self._relop_object(relop)
        if target is None:
            return physical_op

        label = physical_op
        table = (target.get("Table") or "").strip("[]")
        if table:
            schema = (target.get("Schema") or "").strip("[]")
            label += f" on {schema}.{table}" if schema else f" on {table}"
        index = (target.get("Index") or "").strip("[]")
        if index:
            label += f" using {index}"
        return label

    def _relop_object(self, element: ET.Element) -> Optional[ET.Element]:
        """Find the Object element owned by this RelOp, not a nested one."""
        for child in element:
            tag = _local(child.tag)
            if tag == "RelOp":
                continue
            if tag == "Object":
                return child
            found = self._relop_object(child)
            if found is not None:
                return found
        return None

    def parse_schema_result(self, rows: Rows) -> list[SchemaTable]:
        """Transform sys.objects rows; type 'V' marks a view."""
        tables = []
        for row in rows:
            table_type = (to_optional_str(self._value(row, "table_type")) or "U").strip()
            tables.append(
                SchemaTable(
                    name=self._value(row, "table_name", required=True),
                    schema=self._value(row, "schema_name", required=True),
                    type="view" if table_type.upper() in ("V", "VIEW") else "table",
                )
            )
        return tables

    def parse_columns_result(
        self, rows: Rows, foreign_keys: Optional[Rows] = None
    ) -> list[SchemaColumn]:
        """Transform sys.columns rows with inline foreign key references."""
        columns = []
        for row in rows:
            is_foreign_key = to_bool(self._value(row, "is_foreign_key"))
            referenced_table = to_optional_str(self._value(row, "referenced_table"))
            foreign_key_ref = None
            if is_foreign_key and referenced_table:
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
                    is_foreign_key=is_foreign_key,
                    foreign_key_ref=foreign_key_ref,
                )
            )
        return columns

    def parse_indexes_result(self, rows: Rows) -> list[SchemaIndex]:
        """Group one-row-per-column results by index name."""
        grouped: dict[str, list[Row]] = {}
        for row in rows:
            grouped.setdefault(self._value(row, "index_name", required=True), []).append(
                row
            )

        return [
            SchemaIndex(
                name=name,
                columns=[str(self._value(r, "column_name", required=True)) for r in group],
                unique=to_bool(self._value(group[0], "is_unique")),
                type=(to_optional_str(self._value(group[0], "index_type")) or "").lower()
                or "nonclustered",
            )
            for name, group in grouped.items()
        ]
