"""Utility modules for the SQL tooling engine."""

from sql_tooling.utils.coercion import to_bool, to_float, to_int, to_optional_str
from sql_tooling.utils.serialization import (
    convert_row_to_json_safe,
    convert_rows_to_json_safe,
    convert_value_to_json_safe,
    dumps,
    load_json_payload,
)

__all__ = [
    "convert_value_to_json_safe",
    "convert_row_to_json_safe",
    "convert_rows_to_json_safe",
    "dumps",
    "load_json_payload",
    "to_bool",
    "to_float",
    "to_int",
    "to_optional_str",
]
