"""Named {{parameter}} placeholders in SQL text.

Placeholders are extracted in order of first appearance and substituted
either as positional binds (``$1``, ``$2``...) for dialects whose drivers
accept them, or as escaped inline literals for the rest. A placeholder
inside a single-quoted string is spliced into the string instead of
replacing it wholesale.
"""

import logging
import math
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from sql_tooling.utils import to_float

logger = logging.getLogger(__name__)

PARAMETER_PATTERN = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")

# Dialects whose drivers take numbered $N binds; all others get inline values
POSITIONAL_DIALECTS = {"postgres", "sqlite"}

ParameterType = Literal["text", "number", "boolean", "date", "datetime"]


class ParameterizedQuery(BaseModel):
    """SQL with placeholders substituted."""

    sql: str = Field(..., description="SQL text after substitution")
    bind_values: list[Any] = Field(
        default_factory=list,
        description="Values for $1, $2... in order (empty for inline substitution)",
    )


def extract_parameters(query: str) -> list[str]:
    """Unique placeholder names in order of first appearance."""
    return list(dict.fromkeys(PARAMETER_PATTERN.findall(query)))


def has_parameters(query: str) -> bool:
    """Check if a query contains any {{name}} placeholder."""
    return PARAMETER_PATTERN.search(query) is not None


def escape_inline_value(value: Any, inside_string: bool = False) -> str:
    """
    Render a value as a SQL literal for inline substitution.

    Args:
        value: Parameter value
        inside_string: The placeholder sits inside a string literal, so the
            value is spliced in without its own quotes

    Returns:
        SQL text; None and non-finite numbers become NULL (or nothing
        inside a string)
    """
    if value is None:
        return "" if inside_string else "NULL"

    if isinstance(value, bool):
        return "1" if value else "0"

    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and not math.isfinite(value):
            return "" if inside_string else "NULL"
        return str(value)

    if isinstance(value, (datetime, date, time)):
        value = value.isoformat()

    text = str(value).replace("'", "''")
    return text if inside_string else f"'{text}'"


def _inside_string_literal(query: str, position: int) -> bool:
    """Whether position falls inside a single-quoted literal ('' escapes)."""
    inside = False
    pos = 0
    while pos < position:
        if query[pos] == "'":
            if inside and query.startswith("'", pos + 1) and pos + 1 < position:
                pos += 2
                continue
            inside = not inside
        pos += 1
    return inside


def substitute_parameters(
    query: str, values: dict[str, Any], dialect: Optional[str] = None
) -> ParameterizedQuery:
    """
    Replace {{name}} placeholders with binds or inline literals.

    Args:
        query: SQL text with placeholders
        values: Parameter values by name; missing names bind NULL
        dialect: Registered dialect identifier selecting the strategy

    Returns:
        Substituted SQL and, for positional dialects, the bind values

    Example:
        ``WHERE name LIKE '%{{q}}%'`` becomes ``WHERE name LIKE '%' || $1 || '%'``
        for postgres, and ``WHERE name LIKE '%abc%'`` for mssql.
    """
    positional = (dialect or "").strip().lower() in POSITIONAL_DIALECTS
    bind_values: list[Any] = []
    positions: dict[str, int] = {}
    parts: list[str] = []
    last = 0

    for match in PARAMETER_PATTERN.finditer(query):
        name = match.group(1)
        if name not in values:
            logger.debug("No value for parameter %s, using NULL", name)
        inside_string = _inside_string_literal(query, match.start())
        parts.append(query[last : match.start()])

        if positional:
            if name not in positions:
                bind_values.append(values.get(name))
                positions[name] = len(bind_values)
            bind = f"${positions[name]}"
            parts.append(f"' || {bind} || '" if inside_string else bind)
        else:
            parts.append(escape_inline_value(values.get(name), inside_string))

        last = match.end()

    parts.append(query[last:])
    return ParameterizedQuery(sql="".join(parts), bind_values=bind_values)


def coerce_parameter_value(value: Optional[str], type: ParameterType = "text") -> Any:
    """
    Convert a parameter entered as text to its declared type.

    Empty input is None. Numbers that do not parse become None, and dates
    stay ISO strings for the database to interpret.
    """
    if value is None or value == "":
        return None
    if type == "number":
        return to_float(value)
    if type == "boolean":
        return value.lower() == "true" or value == "1"
    return value
