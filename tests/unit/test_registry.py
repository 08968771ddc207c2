"""Unit Tests for the dialect adapter registry"""

import pytest

from sql_tooling.adapters import (
    BaseAdapter,
    MariaDBAdapter,
    MssqlAdapter,
    PostgresAdapter,
    SqliteAdapter,
    UnsupportedDialectError,
    create_adapter,
    detect_dialect,
    get_adapter,
    list_dialects,
    normalize_dialect,
)
from sql_tooling.models.config import ToolingConfig

pytestmark = pytest.mark.unit

ALL_DIALECTS = ["postgres", "sqlite", "mysql", "mariadb", "mssql", "duckdb", "clickhouse"]


class TestGetAdapter:
    """Adapter lookup."""

    def test_all_dialects_registered(self):
        assert list_dialects() == ALL_DIALECTS

    def test_postgres_adapter(self):
        adapter = get_adapter("postgres")
        assert isinstance(adapter, PostgresAdapter)
        assert adapter.get_schema_query() == adapter.get_schema_query()

    def test_adapters_are_singletons(self):
        assert get_adapter("sqlite") is get_adapter("sqlite")

    @pytest.mark.parametrize(
        "alias,expected",
        [
            ("postgresql", PostgresAdapter),
            ("PostgreSQL", PostgresAdapter),
            ("sqlserver", MssqlAdapter),
            (" SQLite ", SqliteAdapter),
            ("mariadb", MariaDBAdapter),
        ],
    )
    def test_aliases_and_case(self, alias, expected):
        assert isinstance(get_adapter(alias), expected)

    def test_unsupported_dialect(self):
        with pytest.raises(UnsupportedDialectError) as exc_info:
            get_adapter("oracle")

        error = exc_info.value
        assert isinstance(error, ValueError)
        assert error.dialect == "oracle"
        assert error.supported == ALL_DIALECTS
        assert "Unsupported database dialect: oracle" in str(error)

    def test_empty_dialect(self):
        with pytest.raises(UnsupportedDialectError):
            normalize_dialect("")

    @pytest.mark.parametrize("dialect", ALL_DIALECTS)
    def test_schema_query_deterministic(self, dialect):
        adapter: BaseAdapter = get_adapter(dialect)
        assert adapter.dialect == dialect
        assert adapter.get_schema_query() == adapter.get_schema_query()
        assert adapter.get_schema_query().strip()

    @pytest.mark.parametrize("dialect", ALL_DIALECTS)
    def test_statistics_queries_follow_capability(self, dialect):
        adapter = get_adapter(dialect)
        queries = [
            adapter.get_table_sizes_query(),
            adapter.get_index_usage_query(),
            adapter.get_database_overview_query(),
        ]
        if adapter.capabilities.statistics:
            assert all(queries)
        else:
            assert queries == [None, None, None]
            assert adapter.get_table_row_count_query("t", "s") is None
            assert adapter.parse_table_sizes_result([{"table_name": "t"}]) == []
            assert adapter.parse_database_overview_result([{}]) is None

    @pytest.mark.parametrize("dialect", ALL_DIALECTS)
    def test_table_names_are_escaped(self, dialect):
        adapter = get_adapter(dialect)
        columns_query = adapter.get_columns_query("o'brien", "main")
        indexes_query = adapter.get_indexes_query("o'brien", "main")
        assert "'o''brien'" in columns_query
        assert "'o''brien'" in indexes_query


class TestDetectDialect:
    """Dialect detection from SQLAlchemy URLs."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("postgresql+psycopg://u:p@localhost/db", "postgres"),
            ("postgresql://localhost/db", "postgres"),
            ("mysql+pymysql://u:p@localhost/db", "mysql"),
            ("mariadb+mariadbconnector://u@localhost/db", "mariadb"),
            ("sqlite:///app.db", "sqlite"),
            ("mssql+pyodbc://u:p@dsn", "mssql"),
            ("duckdb:///:memory:", "duckdb"),
            ("clickhouse+native://localhost/default", "clickhouse"),
        ],
    )
    def test_detect(self, url, expected):
        assert detect_dialect(url) == expected

    def test_invalid_url(self):
        with pytest.raises(ValueError, match="Failed to detect dialect"):
            detect_dialect("not a url")

    def test_unsupported_url(self):
        with pytest.raises(UnsupportedDialectError):
            detect_dialect("oracle://u:p@localhost/db")

    def test_create_adapter_from_config(self):
        config = ToolingConfig(database_url="sqlite://")
        assert isinstance(create_adapter(config), SqliteAdapter)
