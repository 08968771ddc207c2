"""Statement segmentation, parameters, query channel, and schema inspection."""

from .connection import DatabaseConnection, QueryRunner
from .inspector import SchemaInspector
from .plan_analysis import analyze_plan, plan_warnings
from .query_params import extract_parameters, has_parameters, substitute_parameters
from .splitter import get_statement_at_offset, split_sql_statements

__all__ = [
    "DatabaseConnection",
    "QueryRunner",
    "SchemaInspector",
    "analyze_plan",
    "plan_warnings",
    "extract_parameters",
    "has_parameters",
    "substitute_parameters",
    "get_statement_at_offset",
    "split_sql_statements",
]
