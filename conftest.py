"""Pytest configuration for sql-tooling tests.

This module provides global pytest configuration and custom warning filters.
"""

import warnings

# Filter Pydantic warning about 'schema' field shadowing BaseModel attribute
# SchemaTable needs a 'schema' field for the owning namespace
warnings.filterwarnings(
    "ignore",
    message=r".*Field name \"schema\".*shadows an attribute.*",
    category=UserWarning,
)
