"""Pydantic models for statements, schema metadata, and plans."""

from .capabilities import DialectCapabilities
from .config import ToolingConfig
from .explain import (
    ExplainNode,
    ExplainResult,
    HotPathTier,
    NodeAnalysis,
    PlanAnalysis,
)
from .schema import ForeignKeyRef, SchemaColumn, SchemaIndex, SchemaTable
from .statistics import (
    DatabaseOverview,
    DatabaseStatistics,
    IndexUsageInfo,
    TableSizeInfo,
)
from .statement import StatementSpan

__all__ = [
    "DialectCapabilities",
    "ToolingConfig",
    "ExplainNode",
    "ExplainResult",
    "HotPathTier",
    "NodeAnalysis",
    "PlanAnalysis",
    "ForeignKeyRef",
    "SchemaColumn",
    "SchemaIndex",
    "SchemaTable",
    "DatabaseOverview",
    "DatabaseStatistics",
    "IndexUsageInfo",
    "TableSizeInfo",
    "StatementSpan",
]
