"""Unit Tests for ClickHouse Adapter

Tests ClickHouse-specific adapter implementation:
- Adapter capabilities
- system.* catalog queries
- Indented EXPLAIN PLAN / PIPELINE text parsing
"""

import pytest

from sql_tooling.adapters import get_adapter

pytestmark = pytest.mark.unit

PLAN_ROWS = [
    {"explain": "Expression ((Projection + Before ORDER BY))"},
    {"explain": "  Sorting (Sorting for ORDER BY)"},
    {"explain": "    Expression (Before ORDER BY)"},
    {"explain": "      ReadFromMergeTree (default.events)"},
    {"explain": "  "},
]


@pytest.fixture
def adapter():
    return get_adapter("clickhouse")


class TestClickHouseQueries:
    """SQL generation."""

    def test_capabilities(self, adapter):
        capabilities = adapter.capabilities

        # ClickHouse-specific: doesn't support foreign keys
        assert capabilities.foreign_keys is False
        assert capabilities.explain_analyze is False
        assert adapter.default_schema == "default"

    def test_catalog_queries(self, adapter):
        assert "system.tables" in adapter.get_schema_query()
        assert "NOT is_temporary" in adapter.get_schema_query()
        assert "ORDER BY position" in adapter.get_columns_query("events", "default")
        assert "system.data_skipping_indices" in adapter.get_indexes_query(
            "events", "default"
        )
        assert adapter.get_foreign_keys_query("events", "default") is None

    def test_explain_query(self, adapter):
        assert adapter.get_explain_query("SELECT 1;", False) == "EXPLAIN PLAN SELECT 1"
        assert adapter.get_explain_query("SELECT 1", True) == "EXPLAIN PIPELINE SELECT 1"


class TestClickHouseExplainParsing:
    """Indentation-based plan trees."""

    def test_plan_tree(self, adapter):
        plan = adapter.parse_explain_result(PLAN_ROWS, False)

        assert plan.type == "Expression"
        assert plan.label == "Expression ((Projection + Before ORDER BY))"
        sorting = plan.children[0]
        assert sorting.type == "Sorting"
        read = sorting.children[0].children[0]
        assert read.type == "ReadFromMergeTree"
        assert read.label == "ReadFromMergeTree (default.events)"
        assert plan.node_count == 4

    def test_pipeline_output(self, adapter):
        rows = [
            {"explain": "(Expression)"},
            {"explain": "ExpressionTransform × 4"},
            {"explain": "  (ReadFromMergeTree)"},
        ]
        plan = adapter.parse_explain_result(rows, True)

        assert plan.type == "Query Plan"
        assert plan.label == "ClickHouse Query Plan"
        first, second = plan.children
        assert first.type == "Expression"
        assert second.type == "ExpressionTransform"
        assert second.children[0].type == "ReadFromMergeTree"

    def test_first_column_fallback(self, adapter):
        plan = adapter.parse_explain_result([{"plan": "ReadFromStorage (SystemOne)"}], False)
        assert plan.type == "ReadFromStorage"

    def test_empty_output(self, adapter):
        plan = adapter.parse_explain_result([], False)
        assert plan.label == "No plan available"


class TestClickHouseResultParsing:
    """Catalog row conversion."""

    def test_parse_schema_result(self, adapter):
        tables = adapter.parse_schema_result(
            [
                {"schema_name": "default", "table_name": "events", "engine": "MergeTree", "total_rows": "1500"},
                {"schema_name": "default", "table_name": "daily", "engine": "MaterializedView", "total_rows": None},
            ]
        )
        events, daily = tables
        assert events.type == "table"
        assert events.row_count == 1500
        assert daily.type == "view"
        assert daily.row_count is None

    def test_parse_columns_result(self, adapter):
        columns = adapter.parse_columns_result(
            [
                {"column_name": "id", "data_type": "UInt64", "column_default": "", "is_in_primary_key": 1},
                {"column_name": "note", "data_type": "Nullable(String)", "column_default": None, "is_in_primary_key": 0},
            ]
        )
        id_column, note = columns
        assert id_column.nullable is False
        assert id_column.is_primary_key is True
        assert id_column.default_value is None
        assert note.nullable is True
        assert note.is_foreign_key is False

    def test_parse_indexes_result(self, adapter):
        (index,) = adapter.parse_indexes_result(
            [{"index_name": "idx_ts", "expr": "ts, user_id", "index_type": "MinMax"}]
        )
        assert index.columns == ["ts", "user_id"]
        assert index.unique is False
        assert index.type == "minmax"
