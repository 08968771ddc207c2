"""Canonical schema models: tables, columns, indexes, and foreign keys."""

import warnings
from typing import Literal, Optional

from pydantic import BaseModel, Field

# Suppress the specific warning about field 'schema' shadowing
warnings.filterwarnings(
    "ignore",
    message='Field name "schema" in "SchemaTable" shadows an attribute in parent',
    category=UserWarning,
)


class ForeignKeyRef(BaseModel):
    """Target of a foreign key column."""

    referenced_schema: str = Field(..., description="Schema of the referenced table")
    referenced_table: str = Field(..., description="Referenced table name")
    referenced_column: str = Field(..., description="Referenced column name")

    @property
    def target(self) -> str:
        """Dotted reference (schema.table.column)."""
        return (
            f"{self.referenced_schema}.{self.referenced_table}.{self.referenced_column}"
        )


class SchemaColumn(BaseModel):
    """A column of a table or view."""

    name: str = Field(..., description="Column name")
    type: str = Field(..., description="Data type as reported by the database")
    nullable: bool = Field(..., description="Whether the column allows NULL")
    default_value: Optional[str] = Field(
        None, description="Default value expression, if any"
    )
    is_primary_key: bool = Field(
        default=False, description="Whether column is part of the primary key"
    )
    is_foreign_key: bool = Field(
        default=False, description="Whether column references another table"
    )
    foreign_key_ref: Optional[ForeignKeyRef] = Field(
        None, description="Referenced column when known"
    )


class SchemaIndex(BaseModel):
    """An index defined on a table."""

    name: str = Field(..., description="Index name")
    columns: list[str] = Field(default_factory=list, description="Indexed columns")
    unique: bool = Field(default=False, description="Whether index is unique")
    type: str = Field(default="btree", description="Index method (btree, hash, ...)")


class SchemaTable(BaseModel):
    """A table or view with its columns and indexes."""

    name: str = Field(..., description="Table or view name")
    schema: str = Field(..., description="Owning schema / namespace")
    type: Literal["table", "view"] = Field(default="table", description="Object kind")
    row_count: Optional[int] = Field(None, description="Approximate row count")
    columns: list[SchemaColumn] = Field(
        default_factory=list, description="Column definitions in ordinal order"
    )
    indexes: list[SchemaIndex] = Field(
        default_factory=list, description="Index definitions"
    )

    @property
    def qualified_name(self) -> str:
        """Schema-qualified name."""
        return f"{self.schema}.{self.name}"

    @property
    def primary_key_columns(self) -> list[str]:
        """Names of primary key columns in ordinal order."""
        return [col.name for col in self.columns if col.is_primary_key]

    def get_column(self, name: str) -> Optional[SchemaColumn]:
        """Get column by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "orders",
                    "schema": "public",
                    "type": "table",
                    "row_count": None,
                    "columns": [
                        {
                            "name": "id",
                            "type": "integer",
                            "nullable": False,
                            "default_value": "nextval('orders_id_seq'::regclass)",
                            "is_primary_key": True,
                            "is_foreign_key": False,
                            "foreign_key_ref": None,
                        }
                    ],
                    "indexes": [
                        {
                            "name": "orders_pkey",
                            "columns": ["id"],
                            "unique": True,
                            "type": "btree",
                        }
                    ],
                }
            ]
        }
    }
