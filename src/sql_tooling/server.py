"""SQL Tooling MCP Server

A Model Context Protocol (MCP) server exposing SQL statement segmentation,
dialect-aware introspection and EXPLAIN query builders, and (when a database
is configured) live schema inspection and execution plans. Database
statistics are served for dialects that report them.
"""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from mcp.server import Server
from mcp.types import TextContent, Tool

from sql_tooling.adapters import BaseAdapter, create_adapter, get_adapter, list_dialects
from sql_tooling.core import (
    DatabaseConnection,
    SchemaInspector,
    analyze_plan,
    extract_parameters,
    get_statement_at_offset,
    split_sql_statements,
    substitute_parameters,
)
from sql_tooling.models.config import ToolingConfig
from sql_tooling.utils import dumps

logger = logging.getLogger(__name__)

# Response size limits (in characters) for MCP tool responses
MAX_RESPONSE_LIST_DIALECTS = 4000  # Dialects with capabilities
MAX_RESPONSE_INTROSPECTION_QUERIES = 8000  # Generated catalog SQL
MAX_RESPONSE_BUILD_EXPLAIN = 4000  # Generated EXPLAIN SQL
MAX_RESPONSE_BIND_PARAMETERS = 8000  # Substituted SQL and bind values
MAX_RESPONSE_STATEMENT_AT_OFFSET = 8000  # Single statement span
MAX_RESPONSE_LIST_TABLES = 5000  # Table listings
MAX_RESPONSE_DESCRIBE_TABLE = 8000  # Detailed table structure
MAX_RESPONSE_EXPLAIN_QUERY = 8000  # Query execution plans
MAX_RESPONSE_SPLIT_STATEMENTS = 10000  # Statement spans of a whole script
MAX_RESPONSE_DATABASE_STATISTICS = 10000  # Table sizes and index usage

Handler = Callable[[dict[str, Any]], Awaitable[list[TextContent]]]


def truncate_json_response(data: str, max_length: int) -> str:
    """
    Truncate JSON response to a maximum length while preserving JSON structure.

    Args:
        data: JSON string to truncate
        max_length: Maximum length in characters

    Returns:
        Truncated JSON string with truncation notice if needed
    """
    if len(data) <= max_length:
        return data

    truncation_msg = (
        f"\n\n... [Response truncated: {len(data)} chars -> {max_length} chars "
        f"to preserve context window]"
    )
    available_length = max_length - len(truncation_msg)

    if available_length < 100:
        return dumps(
            {
                "error": "Response too large",
                "original_size": len(data),
                "limit": max_length,
                "message": "Response exceeds size limit. Please narrow the request.",
            }
        )

    truncated = data[:available_length]

    # Cut at a line end when one falls in the last 20%
    last_newline = truncated.rfind("\n")
    if last_newline > available_length * 0.8:
        truncated = truncated[:last_newline]

    return truncated + truncation_msg


def _text_response(payload: Any, max_length: int) -> list[TextContent]:
    return [
        TextContent(
            type="text",
            text=truncate_json_response(dumps(payload), max_length),
        )
    ]


class SqlToolingMCPServer:
    """MCP server for SQL segmentation and dialect tooling."""

    def __init__(self, config: ToolingConfig):
        """
        Initialize the SQL tooling MCP server.

        Args:
            config: Tooling configuration
        """
        self.config = config
        self.adapter = create_adapter(config)
        self.connection: Optional[DatabaseConnection] = (
            DatabaseConnection(config) if config.has_database else None
        )
        self.inspector: Optional[SchemaInspector] = None
        # The inspector shares one connection; calls into it are serialized
        self._db_lock = asyncio.Lock()
        self.server = Server("sql-tooling-mcp")

    async def initialize(self) -> None:
        """Open the database connection, if one is configured."""
        if self.connection is not None:
            self.connection.initialize()
            self.inspector = SchemaInspector(self.connection, self.adapter)

        logger.info(
            f"Initialized {self.config.dialect} SQL tooling server "
            f"({len(self.adapter.capabilities.get_supported_features())} features, "
            f"database {'connected' if self.inspector else 'not configured'})"
        )

    def _resolve_adapter(self, arguments: dict[str, Any]) -> BaseAdapter:
        """Adapter named by the 'dialect' argument, else the configured one."""
        dialect = arguments.get("dialect")
        return get_adapter(dialect) if dialect else self.adapter

    async def _run_blocking(
        self, func: Callable[..., Any], *args: Any, **kwargs: Any
    ) -> Any:
        """Run a blocking database call in a worker thread."""
        async with self._db_lock:
            return await asyncio.to_thread(func, *args, **kwargs)

    def _check_script(self, sql: str) -> None:
        if len(sql) > self.config.max_script_length:
            raise ValueError(
                f"SQL script is {len(sql)} characters; the limit is "
                f"{self.config.max_script_length}"
            )

    # Tool definitions

    def _create_split_statements_tool(self) -> Tool:
        """Create split_statements tool."""
        return Tool(
            name="split_statements",
            description="Split a SQL script into statements with their character offsets",
            inputSchema={
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "SQL script"},
                    "dialect": {
                        "type": "string",
                        "description": "Dialect for quoting rules (optional)",
                    },
                },
                "required": ["sql"],
            },
        )

    def _create_statement_at_offset_tool(self) -> Tool:
        """Create statement_at_offset tool."""
        return Tool(
            name="statement_at_offset",
            description="Get the statement containing a cursor offset in a SQL script",
            inputSchema={
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "SQL script"},
                    "offset": {
                        "type": "integer",
                        "description": "Zero-based character offset of the cursor",
                    },
                    "dialect": {
                        "type": "string",
                        "description": "Dialect for quoting rules (optional)",
                    },
                },
                "required": ["sql", "offset"],
            },
        )

    def _create_list_dialects_tool(self) -> Tool:
        """Create list_dialects tool."""
        return Tool(
            name="list_dialects",
            description="List supported SQL dialects and their capabilities",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def _create_get_introspection_queries_tool(self) -> Tool:
        """Create get_introspection_queries tool."""
        return Tool(
            name="get_introspection_queries",
            description=(
                "Get the catalog SQL a dialect uses to list tables, and, for a "
                "table, its columns, foreign keys, and indexes"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "dialect": {
                        "type": "string",
                        "description": "Dialect (optional, uses the configured one)",
                    },
                    "table": {"type": "string", "description": "Table name (optional)"},
                    "schema": {
                        "type": "string",
                        "description": "Schema name (optional)",
                    },
                    "index": {
                        "type": "string",
                        "description": "Index name, for dialects listing index columns separately (optional)",
                    },
                },
                "required": [],
            },
        )

    def _create_build_explain_query_tool(self) -> Tool:
        """Create build_explain_query tool."""
        return Tool(
            name="build_explain_query",
            description="Build the dialect-specific EXPLAIN statement for a query",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "SQL query to explain"},
                    "dialect": {
                        "type": "string",
                        "description": "Dialect (optional, uses the configured one)",
                    },
                    "analyze": {
                        "type": "boolean",
                        "description": "Request actual execution statistics",
                        "default": False,
                    },
                },
                "required": ["query"],
            },
        )

    def _create_bind_parameters_tool(self) -> Tool:
        """Create bind_parameters tool."""
        return Tool(
            name="bind_parameters",
            description=(
                "Substitute {{name}} placeholders in a query, as positional binds "
                "or escaped inline values depending on the dialect"
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "SQL query with {{name}} placeholders",
                    },
                    "values": {
                        "type": "object",
                        "description": "Parameter values by name (missing names are NULL)",
                        "default": {},
                    },
                    "dialect": {
                        "type": "string",
                        "description": "Dialect (optional, uses the configured one)",
                    },
                },
                "required": ["query"],
            },
        )

    def _create_list_tables_tool(self) -> Tool:
        """Create list_tables tool."""
        return Tool(
            name="list_tables",
            description="List all tables and views in the connected database",
            inputSchema={
                "type": "object",
                "properties": {
                    "schema": {
                        "type": "string",
                        "description": "Only list this schema (optional)",
                    },
                },
                "required": [],
            },
        )

    def _create_describe_table_tool(self) -> Tool:
        """Create describe_table tool."""
        return Tool(
            name="describe_table",
            description="Get table columns, keys, and indexes",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "schema": {
                        "type": "string",
                        "description": "Schema name (optional)",
                    },
                },
                "required": ["table"],
            },
        )

    def _create_explain_query_tool(self) -> Tool:
        """Create explain_query tool."""
        return Tool(
            name="explain_query",
            description="Get query execution plan to analyze performance",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "SQL script; the first statement is explained",
                    },
                    "analyze": {
                        "type": "boolean",
                        "description": "Whether to execute the query (EXPLAIN ANALYZE)",
                        "default": False,
                    },
                    "cursor_offset": {
                        "type": "integer",
                        "description": "Explain the statement under this offset instead",
                    },
                },
                "required": ["query"],
            },
        )

    def _create_database_statistics_tool(self) -> Tool:
        """Create database_statistics tool."""
        return Tool(
            name="database_statistics",
            description=(
                "Get database size, table sizes and row counts, and index usage "
                "(unused indexes are flagged where scans are tracked)"
            ),
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def list_tools(self) -> list[Tool]:
        """List available tools; database tools need a configured connection."""
        tools = [
            self._create_split_statements_tool(),
            self._create_statement_at_offset_tool(),
            self._create_list_dialects_tool(),
            self._create_get_introspection_queries_tool(),
            self._create_build_explain_query_tool(),
            self._create_bind_parameters_tool(),
        ]

        if self.inspector is not None:
            tools.append(self._create_list_tables_tool())
            tools.append(self._create_describe_table_tool())
            if self.adapter.capabilities.explain_plans:
                tools.append(self._create_explain_query_tool())
            if self.adapter.capabilities.statistics:
                tools.append(self._create_database_statistics_tool())

        return tools

    def get_handlers(self) -> dict[str, Handler]:
        """Map tool names to their handlers."""
        handlers: dict[str, Handler] = {
            "split_statements": self.handle_split_statements,
            "statement_at_offset": self.handle_statement_at_offset,
            "list_dialects": self.handle_list_dialects,
            "get_introspection_queries": self.handle_get_introspection_queries,
            "build_explain_query": self.handle_build_explain_query,
            "bind_parameters": self.handle_bind_parameters,
        }
        if self.inspector is not None:
            handlers["list_tables"] = self.handle_list_tables
            handlers["describe_table"] = self.handle_describe_table
            handlers["explain_query"] = self.handle_explain_query
            handlers["database_statistics"] = self.handle_database_statistics
        return handlers

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[TextContent]:
        """Dispatch a tool call."""
        handler = self.get_handlers().get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        try:
            return await handler(arguments or {})
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            raise

    # Tool handlers

    async def handle_split_statements(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle split_statements request."""
        sql = arguments["sql"]
        self._check_script(sql)

        spans = split_sql_statements(sql, arguments.get("dialect"))
        return _text_response(
            {
                "count": len(spans),
                "statements": [span.model_dump() for span in spans],
            },
            MAX_RESPONSE_SPLIT_STATEMENTS,
        )

    async def handle_statement_at_offset(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle statement_at_offset request."""
        sql = arguments["sql"]
        self._check_script(sql)

        span = get_statement_at_offset(
            sql, int(arguments["offset"]), arguments.get("dialect")
        )
        return _text_response(
            span.model_dump() if span else None, MAX_RESPONSE_STATEMENT_AT_OFFSET
        )

    async def handle_list_dialects(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle list_dialects request."""
        dialects = []
        for dialect in list_dialects():
            capabilities = get_adapter(dialect).capabilities
            dialects.append(
                {
                    "dialect": dialect,
                    "default_schema": get_adapter(dialect).default_schema,
                    "capabilities": capabilities.model_dump(),
                    "supported_features": capabilities.get_supported_features(),
                }
            )
        return _text_response(
            {"configured": self.config.dialect, "dialects": dialects},
            MAX_RESPONSE_LIST_DIALECTS,
        )

    async def handle_get_introspection_queries(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle get_introspection_queries request."""
        adapter = self._resolve_adapter(arguments)
        schema = arguments.get("schema")
        if schema is None:
            schema = adapter.default_schema

        queries: dict[str, Any] = {
            "dialect": adapter.dialect,
            "schema_query": adapter.get_schema_query(),
            "table_sizes_query": adapter.get_table_sizes_query(),
            "index_usage_query": adapter.get_index_usage_query(),
            "database_overview_query": adapter.get_database_overview_query(),
        }
        table = arguments.get("table")
        if table:
            queries["columns_query"] = adapter.get_columns_query(table, schema)
            queries["foreign_keys_query"] = adapter.get_foreign_keys_query(table, schema)
            queries["indexes_query"] = adapter.get_indexes_query(table, schema)
            queries["row_count_query"] = adapter.get_table_row_count_query(
                table, schema
            )
        index = arguments.get("index")
        if index:
            queries["index_columns_query"] = adapter.get_index_columns_query(
                index, schema
            )

        return _text_response(queries, MAX_RESPONSE_INTROSPECTION_QUERIES)

    async def handle_build_explain_query(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle build_explain_query request."""
        adapter = self._resolve_adapter(arguments)
        query = arguments["query"]
        self._check_script(query)
        analyze = bool(arguments.get("analyze", False))

        return _text_response(
            {
                "dialect": adapter.dialect,
                "analyze": analyze,
                "native_analyze": adapter.capabilities.explain_analyze,
                "setup": adapter.get_explain_setup(analyze),
                "query": adapter.get_explain_query(query, analyze),
                "teardown": adapter.get_explain_teardown(analyze),
            },
            MAX_RESPONSE_BUILD_EXPLAIN,
        )

    async def handle_bind_parameters(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle bind_parameters request."""
        adapter = self._resolve_adapter(arguments)
        query = arguments["query"]
        self._check_script(query)

        bound = substitute_parameters(
            query, arguments.get("values") or {}, adapter.dialect
        )
        return _text_response(
            {
                "dialect": adapter.dialect,
                "parameters": extract_parameters(query),
                **bound.model_dump(),
            },
            MAX_RESPONSE_BIND_PARAMETERS,
        )

    async def handle_list_tables(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle list_tables request."""
        assert self.inspector is not None

        tables = await self._run_blocking(self.inspector.list_tables)
        schema = arguments.get("schema")
        if schema:
            tables = [t for t in tables if t.schema == schema]

        return _text_response(
            [t.model_dump(exclude={"columns", "indexes"}) for t in tables],
            MAX_RESPONSE_LIST_TABLES,
        )

    async def handle_describe_table(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle describe_table request."""
        assert self.inspector is not None

        table_info = await self._run_blocking(
            self.inspector.describe_table, arguments["table"], arguments.get("schema")
        )
        return _text_response(table_info.model_dump(), MAX_RESPONSE_DESCRIBE_TABLE)

    async def handle_explain_query(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle explain_query request."""
        assert self.inspector is not None

        query = arguments["query"]
        self._check_script(query)
        analyze = bool(arguments.get("analyze", False))
        cursor_offset = arguments.get("cursor_offset")

        result = await self._run_blocking(
            self.inspector.explain,
            query,
            analyze=analyze,
            cursor_offset=int(cursor_offset) if cursor_offset is not None else None,
        )
        payload = result.model_dump()
        if analyze:
            payload["analysis"] = analyze_plan(result.plan).model_dump(
                exclude={"nodes"}
            )
        return _text_response(payload, MAX_RESPONSE_EXPLAIN_QUERY)

    async def handle_database_statistics(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle database_statistics request."""
        assert self.inspector is not None

        statistics = await self._run_blocking(self.inspector.statistics)

        payload = statistics.model_dump()
        payload["overview"]["total_size"] = statistics.overview.total_size_human
        for entry, table in zip(payload["table_sizes"], statistics.table_sizes):
            entry["total_size"] = table.total_size_human
        for entry, index in zip(payload["index_usage"], statistics.index_usage):
            entry["size"] = index.size_human
            entry["unused"] = index.unused
        return _text_response(payload, MAX_RESPONSE_DATABASE_STATISTICS)

    async def cleanup(self) -> None:
        """Cleanup resources."""
        if self.connection is not None:
            self.connection.dispose()
        logger.info("SQL tooling MCP server cleaned up")


async def main() -> None:
    """Main entry point for the MCP server."""
    config = ToolingConfig.from_env()
    logging.basicConfig(level=config.log_level_value)

    mcp_server = SqlToolingMCPServer(config)

    try:
        await mcp_server.initialize()

        @mcp_server.server.list_tools()
        async def list_tools() -> list[Tool]:
            """List available tools."""
            return mcp_server.list_tools()

        @mcp_server.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await mcp_server.call_tool(name, arguments)

        # Run the server
        from mcp.server.stdio import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await mcp_server.server.run(
                read_stream,
                write_stream,
                mcp_server.server.create_initialization_options(),
            )

    finally:
        await mcp_server.cleanup()


def cli_entry() -> None:
    """
    Synchronous entry point for console script.

    This function is called by the 'sql-tooling-mcp' console script.
    It sets up the event loop and runs the async main() function.
    """
    # Windows-specific event loop policy
    if os.name == "nt":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())  # type: ignore[attr-defined]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli_entry()
