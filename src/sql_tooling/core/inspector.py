"""Schema introspection and EXPLAIN over a query runner."""

import logging
import re
import time
from typing import Optional

from sql_tooling.adapters.base import BaseAdapter
from sql_tooling.core.connection import QueryRunner
from sql_tooling.core.plan_analysis import plan_warnings
from sql_tooling.core.splitter import (
    get_statement_at_offset,
    mask_literals,
    split_sql_statements,
)
from sql_tooling.models.explain import ExplainResult
from sql_tooling.models.schema import SchemaColumn, SchemaIndex, SchemaTable
from sql_tooling.models.statistics import (
    DatabaseOverview,
    DatabaseStatistics,
    IndexUsageInfo,
    TableSizeInfo,
)

logger = logging.getLogger(__name__)


class SchemaInspector:
    """Runs adapter-built catalog queries and parses them into the schema model."""

    # Statements that may be executed for ANALYZE
    ALLOWED_ANALYZE_TYPES = {"SELECT", "WITH", "VALUES", "TABLE"}

    def __init__(self, runner: QueryRunner, adapter: BaseAdapter):
        """
        Initialize schema inspector.

        Args:
            runner: Query channel returning rows as dicts
            adapter: Dialect adapter building and parsing the queries
        """
        self.runner = runner
        self.adapter = adapter

    def _run(self, sql: str) -> list[dict]:
        logger.debug("%s: running %s", self.adapter.dialect, sql)
        return self.runner.run(sql)

    def list_tables(self) -> list[SchemaTable]:
        """
        List tables and views.

        Returns:
            Tables without columns or indexes, ordered by schema then name
        """
        return self.adapter.parse_schema_result(
            self._run(self.adapter.get_schema_query())
        )

    def describe_table(self, table: str, schema: Optional[str] = None) -> SchemaTable:
        """
        Get a table with its columns and indexes.

        Args:
            table: Table name
            schema: Schema name (None for the dialect's default schema)

        Returns:
            Populated table

        Raises:
            ValueError: If the table has no columns (does not exist)
        """
        schema = self.adapter.default_schema if schema is None else schema

        columns = self._get_columns(table, schema)
        if not columns:
            raise ValueError(f"Table not found: {schema + '.' if schema else ''}{table}")

        indexes = []
        if self.adapter.capabilities.indexes:
            indexes = self._get_indexes(table, schema)

        listed = self._find_listed_table(table, schema)
        return SchemaTable(
            name=table,
            schema=listed.schema if listed else schema,
            type=listed.type if listed else "table",
            row_count=listed.row_count if listed else None,
            columns=columns,
            indexes=indexes,
        )

    def _get_columns(self, table: str, schema: str) -> list[SchemaColumn]:
        rows = self._run(self.adapter.get_columns_query(table, schema))
        foreign_keys = None
        fk_query = self.adapter.get_foreign_keys_query(table, schema)
        if fk_query is not None:
            foreign_keys = self._run(fk_query)
        return self.adapter.parse_columns_result(rows, foreign_keys)

    def _get_indexes(self, table: str, schema: str) -> list[SchemaIndex]:
        indexes = self.adapter.parse_indexes_result(
            self._run(self.adapter.get_indexes_query(table, schema))
        )
        for index in indexes:
            query = self.adapter.get_index_columns_query(index.name, schema)
            if query is not None:
                index.columns = self.adapter.parse_index_columns_result(
                    self._run(query)
                )
        return indexes

    def _find_listed_table(self, table: str, schema: str) -> Optional[SchemaTable]:
        """Look the table up in the schema listing for its type and row count."""
        for listed in self.list_tables():
            if listed.name == table and (not schema or listed.schema == schema):
                return listed
        return None

    def table_sizes(self) -> list[TableSizeInfo]:
        """
        Get storage sizes and row counts of all tables.

        Row counts missing from the size query are filled in with one count
        query per table. A failing count leaves that table's row_count unset.
        """
        query = self.adapter.get_table_sizes_query()
        if query is None:
            return []
        tables = self.adapter.parse_table_sizes_result(self._run(query))

        for table in tables:
            if table.row_count is not None:
                continue
            count_query = self.adapter.get_table_row_count_query(
                table.name, table.schema
            )
            if count_query is None:
                continue
            try:
                table.row_count = self.adapter.parse_table_row_count_result(
                    self._run(count_query)
                )
            except Exception as e:
                logger.warning(
                    "Could not count rows of %s.%s: %s", table.schema, table.name, e
                )
        return tables

    def index_usage(self) -> list[IndexUsageInfo]:
        """Get index sizes and scan counters, where the dialect tracks them."""
        query = self.adapter.get_index_usage_query()
        if query is None:
            return []
        return self.adapter.parse_index_usage_result(self._run(query))

    def database_overview(self) -> Optional[DatabaseOverview]:
        """Get whole-database counters, or None when the dialect has none."""
        query = self.adapter.get_database_overview_query()
        if query is None:
            return None
        return self.adapter.parse_database_overview_result(self._run(query))

    def statistics(self) -> DatabaseStatistics:
        """
        Collect the overview, table sizes, and index usage.

        Returns:
            Statistics; the overview falls back to counts of the listed
            tables and indexes when the dialect has no overview query

        Raises:
            ValueError: If the dialect reports no statistics
        """
        if not self.adapter.capabilities.statistics:
            raise ValueError(f"Statistics not supported for {self.adapter.dialect}")

        table_sizes = self.table_sizes()
        index_usage = self.index_usage()
        overview = self.database_overview() or DatabaseOverview(
            database_name=self.adapter.dialect,
            table_count=len(table_sizes),
            index_count=len(index_usage),
        )
        return DatabaseStatistics(
            overview=overview, table_sizes=table_sizes, index_usage=index_usage
        )

    def explain(
        self, sql: str, analyze: bool = False, cursor_offset: Optional[int] = None
    ) -> ExplainResult:
        """
        Get the execution plan of a statement.

        Args:
            sql: SQL buffer; may hold several statements
            analyze: Whether to collect actual execution statistics
            cursor_offset: Explain the statement under this offset instead of
                the first one

        Returns:
            Plan with timings, warnings, and recommendations

        Raises:
            ValueError: If there is no statement, the dialect has no EXPLAIN,
                or ANALYZE is requested for a statement that is not read-only
        """
        if not self.adapter.capabilities.explain_plans:
            raise ValueError(f"EXPLAIN not supported for {self.adapter.dialect}")

        dialect = self.adapter.dialect
        if cursor_offset is not None:
            span = get_statement_at_offset(sql, cursor_offset, dialect)
        else:
            spans = split_sql_statements(sql, dialect)
            span = spans[0] if spans else None
        if span is None:
            raise ValueError("No SQL statement to explain")

        statement = span.text
        if analyze:
            self._validate_query(statement)

        explain_query = self.adapter.get_explain_query(statement, analyze)
        start = time.perf_counter()
        for setup in self.adapter.get_explain_setup(analyze):
            self._run(setup)
        try:
            rows = self._run(explain_query)
        finally:
            for teardown in self.adapter.get_explain_teardown(analyze):
                self._run(teardown)
        execution_time_ms = (time.perf_counter() - start) * 1000

        plan = self.adapter.parse_explain_result(rows, analyze)

        if analyze and not self.adapter.capabilities.explain_analyze:
            # No native ANALYZE: execute once and attach the measurements to the root
            logger.info("%s has no EXPLAIN ANALYZE, measuring execution", dialect)
            start = time.perf_counter()
            result_rows = self._run(statement)
            execution_time_ms = (time.perf_counter() - start) * 1000
            plan.actual_time = execution_time_ms
            plan.actual_rows = float(len(result_rows))

        result = ExplainResult(
            query=statement,
            dialect=dialect,
            plan=plan,
            is_analyze=analyze,
            execution_time_ms=execution_time_ms,
        )
        warnings, recommendations = plan_warnings(plan)
        for warning in warnings:
            result.add_warning(warning)
        for recommendation in recommendations:
            result.add_recommendation(recommendation)
        return result

    def _validate_query(self, query: str) -> None:
        """
        Validate that a statement is safe to execute (read-only).

        Raises:
            ValueError: If the statement is not a read-only query
        """
        # Keywords inside strings, quoted identifiers, and comments do not count
        normalized = mask_literals(query, self.adapter.dialect).strip().upper()

        first_keyword = normalized.split()[0] if normalized.split() else ""
        if first_keyword not in self.ALLOWED_ANALYZE_TYPES:
            raise ValueError(
                f"ANALYZE executes the statement; only "
                f"{', '.join(sorted(self.ALLOWED_ANALYZE_TYPES))} statements are "
                f"allowed. Got: {first_keyword}"
            )

        dangerous_keywords = {
            "DROP",
            "DELETE",
            "INSERT",
            "UPDATE",
            "TRUNCATE",
            "ALTER",
            "CREATE",
            "GRANT",
            "REVOKE",
        }
        for keyword in dangerous_keywords:
            if re.search(rf"\b{keyword}\b", normalized):
                raise ValueError(
                    f"Query contains dangerous keyword: {keyword}. "
                    f"Only read-only queries can be analyzed."
                )
