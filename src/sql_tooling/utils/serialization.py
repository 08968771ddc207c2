"""JSON handling built on orjson.

Rows coming back from a query channel can hold driver-specific values
(Decimal, bytes, timedelta, IP addresses); they are normalized to plain JSON
types before adapters and tool responses see them. Plan payloads returned as
JSON text are decoded here as well.
"""

import base64
import datetime
import decimal
import ipaddress
from typing import Any

import orjson
from pydantic import BaseModel


def _default_handler(obj: Any) -> Any:
    """
    Serialize types orjson does not handle natively.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable representation

    Raises:
        TypeError: If object cannot be serialized
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump()

    if isinstance(obj, decimal.Decimal):
        return float(obj)

    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    if isinstance(obj, (bytes, bytearray, memoryview)):
        data = bytes(obj)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(data).decode("ascii")

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    if isinstance(
        obj,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
        ),
    ):
        return str(obj)

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def convert_value_to_json_safe(value: Any) -> Any:
    """
    Convert a value to a JSON-serializable form.

    Args:
        value: Value to convert

    Returns:
        JSON-serializable value; unknown types fall back to str()
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    try:
        return orjson.loads(orjson.dumps(value, default=_default_handler))
    except TypeError:
        return str(value)


def convert_row_to_json_safe(row: dict[str, Any]) -> dict[str, Any]:
    """Convert all values in a row dict to JSON-serializable forms."""
    return {key: convert_value_to_json_safe(value) for key, value in row.items()}


def convert_rows_to_json_safe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert all rows to JSON-serializable forms."""
    return [convert_row_to_json_safe(row) for row in rows]


def load_json_payload(payload: Any) -> Any:
    """
    Decode a JSON payload that may already be decoded.

    Drivers return JSON columns either as text or as parsed Python objects,
    depending on the driver and column type.

    Args:
        payload: JSON text, bytes, or an already decoded object

    Returns:
        Decoded Python object

    Raises:
        orjson.JSONDecodeError: If text payload is not valid JSON
    """
    if isinstance(payload, (str, bytes, bytearray, memoryview)):
        return orjson.loads(bytes(payload) if isinstance(payload, memoryview) else payload)
    return payload


def dumps(obj: Any, indent: bool = True) -> str:
    """
    Serialize an object (pydantic models included) to a JSON string.

    Args:
        obj: Object to serialize
        indent: Pretty-print with two-space indentation

    Returns:
        JSON string
    """
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(obj, default=_default_handler, option=option).decode("utf-8")
