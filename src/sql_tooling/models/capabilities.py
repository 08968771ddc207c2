"""Dialect capabilities model."""

from pydantic import BaseModel, Field


class DialectCapabilities(BaseModel):
    """Flags describing what a dialect adapter can introspect."""

    foreign_keys: bool = Field(
        default=False,
        description="Dialect reports foreign key references",
    )
    indexes: bool = Field(
        default=True,
        description="Dialect exposes index definitions",
    )
    views: bool = Field(
        default=True,
        description="Schema query lists views as well as tables",
    )
    schemas: bool = Field(
        default=True,
        description="Dialect has schemas/namespaces",
    )
    explain_plans: bool = Field(
        default=True,
        description="Dialect produces a parseable EXPLAIN plan",
    )
    explain_analyze: bool = Field(
        default=False,
        description="EXPLAIN can report actual execution statistics",
    )
    separate_foreign_keys_query: bool = Field(
        default=False,
        description="Foreign keys need a query separate from the columns query",
    )
    separate_index_columns_query: bool = Field(
        default=False,
        description="Index columns need one extra query per index",
    )
    statistics: bool = Field(
        default=False,
        description="Adapter builds table size, index usage, and overview queries",
    )

    def get_supported_features(self) -> list[str]:
        """Get list of supported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is True
        ]

    def get_unsupported_features(self) -> list[str]:
        """Get list of unsupported feature names."""
        return [
            field_name
            for field_name, value in self.model_dump().items()
            if value is False
        ]
