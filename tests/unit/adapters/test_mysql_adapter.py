"""Unit Tests for MySQL and MariaDB Adapters

Tests information_schema queries, JSON EXPLAIN walking, the EXPLAIN ANALYZE
tree format, and MariaDB's ANALYZE FORMAT=JSON statistics.
"""

import json

import pytest

from sql_tooling.adapters import get_adapter
from sql_tooling.adapters.base import ResultParseError

pytestmark = pytest.mark.unit

JSON_PLAN = {
    "query_block": {
        "select_id": 1,
        "cost_info": {"query_cost": "12.50"},
        "ordering_operation": {
            "using_filesort": True,
            "nested_loop": [
                {
                    "table": {
                        "table_name": "o",
                        "access_type": "ALL",
                        "rows_examined_per_scan": 100,
                        "cost_info": {"read_cost": "9.00", "prefix_cost": "10.25"},
                    }
                },
                {
                    "table": {
                        "table_name": "u",
                        "access_type": "eq_ref",
                        "key": "PRIMARY",
                        "rows_examined_per_scan": 1,
                        "cost_info": {"prefix_cost": "12.50"},
                    }
                },
            ],
        },
    }
}

ANALYZE_TREE = """-> Nested loop inner join  (cost=4.70 rows=3) (actual time=0.0650..0.0822 rows=3 loops=1)
    -> Filter: (o.total > 10)  (cost=1.55 rows=3) (actual time=0.0401..0.0476 rows=3 loops=1)
        -> Table scan on o  (cost=1.55 rows=9) (actual time=0.0382..0.0440 rows=9 loops=1)
    -> Single-row index lookup on u using PRIMARY (id=o.user_id)  (cost=0.28 rows=1) (actual time=0.0098..0.0099 rows=1 loops=3)
"""


@pytest.fixture
def mysql():
    return get_adapter("mysql")


@pytest.fixture
def mariadb():
    return get_adapter("mariadb")


class TestMySQLQueries:
    """SQL generation."""

    def test_schema_query_excludes_system_databases(self, mysql):
        query = mysql.get_schema_query()
        assert "'performance_schema'" in query
        assert "ORDER BY table_schema, table_name" in query

    def test_columns_query(self, mysql):
        query = mysql.get_columns_query("users", "shop")
        assert "c.column_type AS data_type" in query
        assert "c.column_key = 'PRI'" in query
        assert "referenced_table_name" in query
        assert "c.table_schema = 'shop'" in query

    def test_empty_schema_uses_current_database(self, mysql):
        query = mysql.get_indexes_query("users", "")
        assert "table_schema = DATABASE()" in query
        assert "ORDER BY index_name, seq_in_index" in query

    @pytest.mark.parametrize(
        "analyze,expected",
        [
            (False, "EXPLAIN FORMAT=JSON SELECT 1"),
            (True, "EXPLAIN ANALYZE SELECT 1"),
        ],
    )
    def test_explain_query(self, mysql, analyze, expected):
        assert mysql.get_explain_query("SELECT 1;", analyze) == expected

    def test_mariadb_explain_query(self, mariadb):
        assert mariadb.get_explain_query("SELECT 1", True) == "ANALYZE FORMAT=JSON SELECT 1"
        assert mariadb.get_explain_query("SELECT 1", False) == "EXPLAIN FORMAT=JSON SELECT 1"


class TestMySQLExplainParsing:
    """JSON and tree EXPLAIN output."""

    def test_json_plan(self, mysql):
        plan = mysql.parse_explain_result([{"EXPLAIN": json.dumps(JSON_PLAN)}], False)

        assert plan.type == "Query Block"
        assert plan.label == "Query Block #1"
        assert plan.cost == 12.5

        (sort,) = plan.children
        assert sort.type == "Sort"
        assert "filesort" in sort.label

        scan, lookup = sort.children
        assert scan.type == "Full Table Scan"
        assert scan.label == "Full Table Scan on o"
        assert scan.rows == 100
        assert scan.cost == 10.25
        assert lookup.type == "Unique Index Lookup"
        assert lookup.label == "Unique Index Lookup on u using PRIMARY"

    def test_json_plan_with_subqueries(self, mysql):
        data = {
            "query_block": {
                "select_id": 1,
                "table": {
                    "table_name": "t",
                    "access_type": "ref",
                    "key": "idx_a",
                    "attached_subqueries": [
                        {
                            "query_block": {
                                "select_id": 2,
                                "table": {"table_name": "s", "access_type": "index"},
                            }
                        }
                    ],
                },
            }
        }
        plan = mysql.parse_explain_result([{"EXPLAIN": json.dumps(data)}], False)
        table = plan.children[0]
        assert table.type == "Index Lookup"
        subquery = table.children[0]
        assert subquery.label == "Query Block #2"
        assert subquery.children[0].type == "Full Index Scan"

    def test_analyze_tree(self, mysql):
        plan = mysql.parse_explain_result([{"EXPLAIN": ANALYZE_TREE}], True)

        assert plan.type == "Nested loop inner join"
        assert plan.cost == 4.7
        assert plan.rows == 3
        assert plan.actual_time == pytest.approx(0.0822)
        assert plan.actual_rows == 3

        filter_node, lookup = plan.children
        assert filter_node.type == "Filter"
        assert filter_node.label == "Filter: (o.total > 10)"
        scan = filter_node.children[0]
        assert scan.type == "Table scan"
        assert scan.label == "Table scan on o"
        assert scan.actual_rows == 9
        assert lookup.type == "Single-row index lookup"

    def test_never_executed_branch(self, mysql):
        text = (
            "-> Filter: (a = 1)  (cost=1.00 rows=1) (actual time=0.01..0.01 rows=0 loops=1)\n"
            "    -> Table scan on t  (cost=1.00 rows=1) (never executed)\n"
        )
        plan = mysql.parse_explain_result([{"EXPLAIN": text}], True)
        assert plan.children[0].actual_rows == 0
        assert plan.children[0].actual_time is None

    def test_first_column_fallback(self, mysql):
        plan = mysql.parse_explain_result(
            [{"plan": "-> Table scan on t  (cost=0.35 rows=1)"}], False
        )
        assert plan.label == "Table scan on t"

    def test_unrecognized_text(self, mysql):
        plan = mysql.parse_explain_result([{"EXPLAIN": "garbage"}], False)
        assert plan.type == "Query Plan"
        assert plan.label == "garbage"

    def test_invalid_json(self, mysql):
        with pytest.raises(ResultParseError):
            mysql.parse_explain_result([{"EXPLAIN": "{not json"}], False)

    def test_no_rows(self, mysql):
        with pytest.raises(ResultParseError):
            mysql.parse_explain_result([], False)

    def test_mariadb_analyze_statistics(self, mariadb):
        data = {
            "query_block": {
                "select_id": 1,
                "r_total_time_ms": 0.52,
                "table": {
                    "table_name": "users",
                    "access_type": "ALL",
                    "rows": 1000,
                    "r_rows": 998,
                    "r_total_time_ms": 0.41,
                },
            }
        }
        plan = mariadb.parse_explain_result([{"ANALYZE": json.dumps(data)}], True)

        assert plan.actual_time == 0.52
        table = plan.children[0]
        assert table.rows == 1000
        assert table.actual_rows == 998
        assert table.actual_time == 0.41


class TestMySQLResultParsing:
    """Catalog row conversion."""

    def test_parse_schema_result(self, mysql):
        tables = mysql.parse_schema_result(
            [
                {"SCHEMA_NAME": "shop", "TABLE_NAME": "users", "TABLE_TYPE": "BASE TABLE"},
                {"schema_name": "shop", "table_name": "v_users", "table_type": "VIEW"},
            ]
        )
        assert [(t.schema, t.name, t.type) for t in tables] == [
            ("shop", "users", "table"),
            ("shop", "v_users", "view"),
        ]

    def test_parse_columns_result(self, mysql):
        rows = [
            {
                "column_name": "id",
                "data_type": "int unsigned",
                "is_nullable": "NO",
                "column_default": None,
                "is_primary_key": 1,
                "is_foreign_key": 0,
                "referenced_schema": None,
                "referenced_table": None,
                "referenced_column": None,
            },
            {
                "column_name": "org_id",
                "data_type": "int",
                "is_nullable": "YES",
                "column_default": None,
                "is_primary_key": 0,
                "is_foreign_key": 1,
                "referenced_schema": "shop",
                "referenced_table": "orgs",
                "referenced_column": "id",
            },
            {
                "column_name": "org_id",
                "data_type": "int",
                "is_nullable": "YES",
                "is_primary_key": 0,
                "is_foreign_key": 1,
                "referenced_schema": "shop",
                "referenced_table": "orgs_archive",
                "referenced_column": "id",
            },
        ]
        columns = mysql.parse_columns_result(rows)

        assert [c.name for c in columns] == ["id", "org_id"]
        assert columns[0].type == "int unsigned"
        assert columns[0].is_primary_key is True
        assert columns[1].foreign_key_ref.target == "shop.orgs.id"

    def test_parse_indexes_groups_columns(self, mysql):
        indexes = mysql.parse_indexes_result(
            [
                {"index_name": "PRIMARY", "column_name": "id", "non_unique": 0, "index_type": "BTREE"},
                {"index_name": "idx_name", "column_name": "last", "non_unique": 1, "index_type": "BTREE"},
                {"index_name": "idx_name", "column_name": "first", "non_unique": 1, "index_type": "BTREE"},
                {"index_name": "ft_bio", "column_name": "bio", "non_unique": "1", "index_type": "FULLTEXT"},
            ]
        )

        assert [i.name for i in indexes] == ["PRIMARY", "idx_name", "ft_bio"]
        assert indexes[0].unique is True
        assert indexes[1].columns == ["last", "first"]
        assert indexes[1].unique is False
        assert indexes[2].type == "fulltext"
