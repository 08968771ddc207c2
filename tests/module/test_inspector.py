"""Module Tests for SchemaInspector

Exercises introspection and EXPLAIN end to end: canned rows through a fake
runner for server dialects, and a real in-memory SQLite database.
"""

import asyncio
import json

import pytest

from sql_tooling.adapters import get_adapter
from sql_tooling.core import SchemaInspector

pytestmark = pytest.mark.module

PG_PLAN = [
    {
        "Plan": {
            "Node Type": "Seq Scan",
            "Relation Name": "users",
            "Total Cost": 25.88,
            "Plan Rows": 6,
            "Actual Total Time": 0.02,
            "Actual Rows": 2,
        }
    }
]


class TestInspectorWithFakeRunner:
    """Query flow with canned catalog rows."""

    def test_describe_table(self, runner_class):
        runner = runner_class(
            {
                "information_schema.columns": [
                    {
                        "column_name": "id",
                        "data_type": "integer",
                        "is_nullable": "NO",
                        "column_default": None,
                        "is_primary_key": True,
                        "is_foreign_key": False,
                    }
                ],
                "pg_indexes": [
                    {
                        "indexname": "users_pkey",
                        "indexdef": "CREATE UNIQUE INDEX users_pkey ON public.users USING btree (id)",
                    }
                ],
                "information_schema.tables": [
                    {"schema_name": "public", "table_name": "users", "table_type": "BASE TABLE"},
                    {"schema_name": "audit", "table_name": "users", "table_type": "VIEW"},
                ],
            }
        )
        inspector = SchemaInspector(runner, get_adapter("postgres"))

        table = inspector.describe_table("users")

        assert table.schema == "public"
        assert table.type == "table"
        assert table.primary_key_columns == ["id"]
        assert table.indexes[0].name == "users_pkey"
        assert "c.table_schema = 'public'" in runner.queries[0]

    def test_missing_table(self, fake_runner):
        inspector = SchemaInspector(fake_runner, get_adapter("postgres"))
        with pytest.raises(ValueError, match="Table not found: public.ghost"):
            inspector.describe_table("ghost")

    def test_explain_wraps_first_statement(self, runner_class):
        runner = runner_class({"EXPLAIN": [{"QUERY PLAN": json.dumps(PG_PLAN)}]})
        inspector = SchemaInspector(runner, get_adapter("postgres"))

        result = inspector.explain("SELECT * FROM users; SELECT 2;", analyze=True)

        assert runner.queries == ["EXPLAIN (ANALYZE, FORMAT JSON) SELECT * FROM users"]
        assert result.query == "SELECT * FROM users"
        assert result.dialect == "postgres"
        assert result.is_analyze is True
        assert result.plan.actual_rows == 2
        assert result.execution_time_ms is not None
        assert result.warnings == ["Full table scan on users - may be slow on large tables"]

    def test_explain_statement_under_cursor(self, runner_class):
        runner = runner_class({"EXPLAIN": [{"QUERY PLAN": json.dumps(PG_PLAN)}]})
        inspector = SchemaInspector(runner, get_adapter("postgres"))

        sql = "SELECT 1;\nSELECT * FROM users;"
        result = inspector.explain(sql, cursor_offset=sql.index("users"))

        assert result.query == "SELECT * FROM users"
        assert runner.queries == ["EXPLAIN (FORMAT JSON) SELECT * FROM users"]

    def test_session_settings_wrap_the_statement(self, runner_class):
        runner = runner_class()
        inspector = SchemaInspector(runner, get_adapter("mssql"))

        result = inspector.explain("SELECT * FROM dbo.users")

        assert runner.queries == [
            "SET SHOWPLAN_XML ON",
            "SELECT * FROM dbo.users",
            "SET SHOWPLAN_XML OFF",
        ]
        assert result.plan.type == "Query Plan"

    def test_teardown_runs_when_explain_fails(self, runner_class):
        class FailingRunner(runner_class):
            def run(self, sql):
                rows = super().run(sql)
                if sql.startswith("SELECT"):
                    raise RuntimeError("deadlock victim")
                return rows

        runner = FailingRunner()
        inspector = SchemaInspector(runner, get_adapter("mssql"))

        with pytest.raises(RuntimeError, match="deadlock"):
            inspector.explain("SELECT 1", analyze=True)
        assert runner.queries == [
            "SET SHOWPLAN_XML ON",
            "SELECT 1",
            "SET SHOWPLAN_XML OFF",
        ]

    def test_measured_analyze_runs_after_session_settings_are_cleared(
        self, runner_class
    ):
        runner = runner_class({"FROM dbo.users": [{"id": 1}, {"id": 2}]})
        inspector = SchemaInspector(runner, get_adapter("mssql"))

        result = inspector.explain("SELECT id FROM dbo.users", analyze=True)

        assert runner.queries == [
            "SET SHOWPLAN_XML ON",
            "SELECT id FROM dbo.users",
            "SET SHOWPLAN_XML OFF",
            "SELECT id FROM dbo.users",
        ]
        assert result.is_analyze is True
        assert result.plan.actual_rows == 2
        assert result.plan.actual_time is not None

    @pytest.mark.parametrize("sql", ["", "   ", "-- only a comment\n", ";;"])
    def test_nothing_to_explain(self, fake_runner, sql):
        inspector = SchemaInspector(fake_runner, get_adapter("postgres"))
        with pytest.raises(ValueError, match="No SQL statement"):
            inspector.explain(sql)

    @pytest.mark.parametrize(
        "sql",
        [
            "DELETE FROM users",
            "UPDATE users SET name = 'x'",
            "WITH gone AS (DELETE FROM users RETURNING *) SELECT * FROM gone",
        ],
    )
    def test_analyze_rejects_writes(self, fake_runner, sql):
        inspector = SchemaInspector(fake_runner, get_adapter("postgres"))
        with pytest.raises(ValueError):
            inspector.explain(sql, analyze=True)
        assert fake_runner.queries == []

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT 'drop table users' AS note",
            "SELECT id FROM users /* delete later */",
            "SELECT $$update$$ AS body",
            "SELECT \"update\" FROM users",
        ],
    )
    def test_analyze_ignores_keywords_in_literals_and_comments(self, runner_class, sql):
        runner = runner_class({"EXPLAIN": [{"QUERY PLAN": json.dumps(PG_PLAN)}]})
        inspector = SchemaInspector(runner, get_adapter("postgres"))

        result = inspector.explain(sql, analyze=True)

        assert result.query == sql
        assert runner.queries == [f"EXPLAIN (ANALYZE, FORMAT JSON) {sql}"]

    def test_plain_explain_allows_writes(self, runner_class):
        runner = runner_class({"EXPLAIN": [{"QUERY PLAN": json.dumps(PG_PLAN)}]})
        inspector = SchemaInspector(runner, get_adapter("postgres"))
        inspector.explain("DELETE FROM users WHERE id = 1")
        assert runner.queries == ["EXPLAIN (FORMAT JSON) DELETE FROM users WHERE id = 1"]


class TestStatisticsWithFakeRunner:
    """Statistics collection over canned rows."""

    def test_duckdb_row_counts_fill_in_per_table(self, runner_class):
        runner = runner_class(
            {
                "COUNT(*) AS row_count FROM \"main\".\"events\"": [{"row_count": 5}],
                "information_schema.tables\nWHERE table_type = 'BASE TABLE'": [
                    {"schema_name": "main", "table_name": "events"},
                    {"schema_name": "main", "table_name": "users"},
                ],
            }
        )
        inspector = SchemaInspector(runner, get_adapter("duckdb"))

        tables = inspector.table_sizes()

        # An empty count result leaves the row count unknown
        assert [(t.name, t.row_count) for t in tables] == [
            ("events", 5),
            ("users", None),
        ]
        assert runner.queries[1:] == [
            'SELECT COUNT(*) AS row_count FROM "main"."events"',
            'SELECT COUNT(*) AS row_count FROM "main"."users"',
        ]

    def test_failing_row_count_is_logged(self, runner_class, caplog):
        class FailingCounts(runner_class):
            def run(self, sql):
                if "COUNT(*) AS row_count" in sql:
                    super().run(sql)
                    raise RuntimeError("permission denied")
                return super().run(sql)

        runner = FailingCounts(
            {"information_schema.tables": [{"schema_name": "main", "table_name": "locked"}]}
        )
        inspector = SchemaInspector(runner, get_adapter("duckdb"))

        (table,) = inspector.table_sizes()

        assert table.row_count is None
        assert "Could not count rows of main.locked" in caplog.text

    def test_postgres_counts_come_with_sizes(self, runner_class):
        runner = runner_class(
            {
                "pg_total_relation_size": [
                    {
                        "schema_name": "public",
                        "table_name": "orders",
                        "row_count": 10,
                        "total_size": 8192,
                    }
                ],
                "pg_stat_user_indexes": [
                    {
                        "schema_name": "public",
                        "table_name": "orders",
                        "index_name": "orders_pkey",
                        "scans": 0,
                    }
                ],
                "pg_database_size": [
                    {"database_name": "shop", "table_count": 1, "index_count": 1}
                ],
            }
        )
        inspector = SchemaInspector(runner, get_adapter("postgres"))

        statistics = inspector.statistics()

        assert len(runner.queries) == 3
        assert statistics.overview.database_name == "shop"
        assert statistics.table_sizes[0].row_count == 10
        assert [i.index_name for i in statistics.unused_indexes] == ["orders_pkey"]

    def test_overview_falls_back_to_counts(self, runner_class):
        runner = runner_class(
            {
                "table_name\nFROM information_schema.tables": [
                    {"schema_name": "main", "table_name": "t"}
                ]
            }
        )
        inspector = SchemaInspector(runner, get_adapter("duckdb"))

        statistics = inspector.statistics()

        assert statistics.overview.database_name == "duckdb"
        assert statistics.overview.table_count == 1
        assert statistics.overview.index_count == 0

    def test_statistics_not_supported(self, fake_runner):
        inspector = SchemaInspector(fake_runner, get_adapter("mysql"))
        with pytest.raises(ValueError, match="Statistics not supported for mysql"):
            inspector.statistics()
        assert fake_runner.queries == []
        assert inspector.table_sizes() == []
        assert inspector.database_overview() is None


class TestInspectorWithSqlite:
    """Real catalog queries against an in-memory SQLite database."""

    def test_list_tables(self, sqlite_inspector):
        tables = sqlite_inspector.list_tables()
        assert [(t.name, t.type) for t in tables] == [
            ("big_orders", "view"),
            ("orders", "table"),
            ("users", "table"),
        ]
        assert all(t.schema == "main" for t in tables)

    def test_describe_orders(self, sqlite_inspector):
        table = sqlite_inspector.describe_table("orders")

        assert table.qualified_name == "main.orders"
        assert [c.name for c in table.columns] == ["id", "user_id", "total", "status"]
        assert table.primary_key_columns == ["id"]

        user_id = table.get_column("user_id")
        assert user_id.nullable is False
        assert user_id.foreign_key_ref.target == "main.users.id"
        assert table.get_column("total").default_value == "0"

        (index,) = table.indexes
        assert index.name == "idx_orders_user"
        assert index.columns == ["user_id", "status"]
        assert index.unique is False

    def test_describe_view(self, sqlite_inspector):
        table = sqlite_inspector.describe_table("big_orders")
        assert table.type == "view"
        assert table.get_column("total") is not None

    def test_describe_missing_table(self, sqlite_inspector):
        with pytest.raises(ValueError, match="Table not found"):
            sqlite_inspector.describe_table("ghost")

    def test_explain(self, sqlite_inspector):
        result = sqlite_inspector.explain(
            "SELECT * FROM orders WHERE total > 10 ORDER BY total"
        )

        assert result.plan.label == "SQLite Query Plan"
        types = [child.type for child in result.plan.children]
        assert "Scan" in types
        assert "Temp B-Tree" in types
        assert result.plan.actual_time is None
        assert "Full table scan on orders - may be slow on large tables" in result.warnings

    def test_explain_uses_index(self, sqlite_inspector):
        result = sqlite_inspector.explain("SELECT * FROM orders WHERE user_id = 1")
        (search,) = result.plan.children
        assert search.type == "Search"
        assert "idx_orders_user" in search.label
        assert result.warnings == []

    def test_analyze_measures_execution(self, sqlite_inspector):
        result = sqlite_inspector.explain(
            "SELECT * FROM orders WHERE status = 'paid'", analyze=True
        )

        assert result.is_analyze is True
        assert result.plan.actual_rows == 2
        assert result.plan.actual_time is not None
        assert result.plan.actual_time >= 0

    async def test_connection_usable_from_worker_thread(self, sqlite_connection):
        rows = await asyncio.to_thread(
            sqlite_connection.run, "SELECT count(*) AS n FROM users"
        )
        assert rows == [{"n": 2}]

    def test_statistics(self, sqlite_inspector):
        statistics = sqlite_inspector.statistics()

        assert statistics.overview.table_count == 2
        assert statistics.overview.index_count == 1
        assert statistics.overview.total_size_bytes > 0
        assert [(t.name, t.row_count) for t in statistics.table_sizes] == [
            ("orders", 3),
            ("users", 2),
        ]
        (index,) = statistics.index_usage
        assert (index.table, index.index_name, index.unique) == (
            "orders",
            "idx_orders_user",
            False,
        )
        assert statistics.unused_indexes == []
