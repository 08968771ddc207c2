"""Database statistics models: table sizes, index usage, and overview."""

import warnings
from typing import Optional

from pydantic import BaseModel, Field

# Suppress the warning about field 'schema' shadowing a BaseModel attribute
warnings.filterwarnings(
    "ignore",
    message=r'Field name "schema" in "(TableSizeInfo|IndexUsageInfo)" shadows an attribute in parent',
    category=UserWarning,
)


def format_size(size_bytes: Optional[int]) -> Optional[str]:
    """Human-readable size, or None when the size is unknown."""
    if size_bytes is None:
        return None

    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} PB"


class TableSizeInfo(BaseModel):
    """Storage size and row count of one table."""

    schema: str = Field(..., description="Schema name")
    name: str = Field(..., description="Table name")
    row_count: Optional[int] = Field(
        None, description="Number of rows (exact or estimated, per dialect)"
    )
    total_size_bytes: Optional[int] = Field(
        None, description="Total size including indexes, in bytes"
    )
    data_size_bytes: Optional[int] = Field(None, description="Table data size in bytes")
    index_size_bytes: Optional[int] = Field(
        None, description="Size of the table's indexes in bytes"
    )

    @property
    def total_size_human(self) -> Optional[str]:
        """Human-readable total size."""
        return format_size(self.total_size_bytes)

    model_config = {
        "json_schema_extra": {
            "example": {
                "schema": "public",
                "name": "orders",
                "row_count": 120000,
                "total_size_bytes": 18874368,
                "data_size_bytes": 12582912,
                "index_size_bytes": 6291456,
            }
        }
    }


class IndexUsageInfo(BaseModel):
    """Size and scan counters of one index."""

    schema: str = Field(..., description="Schema name")
    table: str = Field(..., description="Table the index belongs to")
    index_name: str = Field(..., description="Index name")
    unique: Optional[bool] = Field(None, description="Whether the index is unique")
    size_bytes: Optional[int] = Field(None, description="Index size in bytes")
    scans: Optional[int] = Field(
        None, description="Index scans performed (None when not tracked)"
    )
    rows_read: Optional[int] = Field(None, description="Rows read through the index")

    @property
    def unused(self) -> bool:
        """Whether the index is tracked and has never been scanned."""
        return self.scans == 0

    @property
    def size_human(self) -> Optional[str]:
        """Human-readable index size."""
        return format_size(self.size_bytes)


class DatabaseOverview(BaseModel):
    """Whole-database counters."""

    database_name: str = Field(..., description="Database name")
    total_size_bytes: Optional[int] = Field(
        None, description="Total database size in bytes"
    )
    table_count: int = Field(default=0, description="Number of tables")
    index_count: int = Field(default=0, description="Number of indexes")
    connection_count: Optional[int] = Field(
        None, description="Active connections, if the database reports them"
    )

    @property
    def total_size_human(self) -> Optional[str]:
        """Human-readable total size."""
        return format_size(self.total_size_bytes)


class DatabaseStatistics(BaseModel):
    """Overview, table sizes, and index usage of one database."""

    overview: DatabaseOverview = Field(..., description="Whole-database counters")
    table_sizes: list[TableSizeInfo] = Field(
        default_factory=list, description="Per-table sizes"
    )
    index_usage: list[IndexUsageInfo] = Field(
        default_factory=list, description="Per-index usage"
    )

    @property
    def unused_indexes(self) -> list[IndexUsageInfo]:
        """Indexes that were never scanned."""
        return [index for index in self.index_usage if index.unused]
