"""MariaDB adapter."""

from sql_tooling.adapters.mysql import MySQLAdapter
from sql_tooling.models.capabilities import DialectCapabilities


class MariaDBAdapter(MySQLAdapter):
    """MariaDB shares MySQL's catalog but reports ANALYZE as JSON.

    ANALYZE FORMAT=JSON annotates each plan object with r_rows and
    r_total_time_ms, which the shared JSON walker reads when analyze is set.
    """

    dialect = "mariadb"

    @property
    def capabilities(self) -> DialectCapabilities:
        return DialectCapabilities(
            foreign_keys=True,
            indexes=True,
            views=True,
            schemas=True,
            explain_plans=True,
            explain_analyze=True,
        )

    def get_explain_query(self, query: str, analyze: bool) -> str:
        """Generate MariaDB EXPLAIN query with JSON output."""
        base_query = self._strip_terminator(query)
        if analyze:
            return f"ANALYZE FORMAT=JSON {base_query}"
        return f"EXPLAIN FORMAT=JSON {base_query}"
