"""Split SQL scripts into executable statements.

A single left-to-right scan drives a small lexical state machine so that
semicolons inside string literals, quoted identifiers, comments, and
dollar-quoted bodies never end a statement. Offsets always refer to the
original buffer; statement text is sliced once at each boundary.

Malformed input is never an error: an unterminated quote or comment simply
runs to the end of the buffer, which keeps the splitter usable mid-edit.
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sql_tooling.models.statement import StatementSpan

logger = logging.getLogger(__name__)

_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")


class LexState(Enum):
    """Lexical states of the splitter."""

    NORMAL = "normal"
    SINGLE_QUOTE = "single_quote"
    DOUBLE_QUOTE = "double_quote"
    LINE_COMMENT = "line_comment"
    BLOCK_COMMENT = "block_comment"
    DOLLAR_QUOTE = "dollar_quote"
    BACKTICK = "backtick"
    BRACKET = "bracket"


@dataclass(frozen=True)
class Lexicon:
    """Dialect-specific lexical extensions on top of the base grammar."""

    backtick_identifiers: bool = False
    bracket_identifiers: bool = False
    backslash_escapes: bool = False
    hash_comments: bool = False


BASE_LEXICON = Lexicon()

_LEXICONS: dict[str, Lexicon] = {
    "mysql": Lexicon(
        backtick_identifiers=True, backslash_escapes=True, hash_comments=True
    ),
    "mariadb": Lexicon(
        backtick_identifiers=True, backslash_escapes=True, hash_comments=True
    ),
    "clickhouse": Lexicon(backtick_identifiers=True, backslash_escapes=True),
    "sqlite": Lexicon(backtick_identifiers=True, bracket_identifiers=True),
    "mssql": Lexicon(bracket_identifiers=True),
    "sqlserver": Lexicon(bracket_identifiers=True),
}

_CLOSERS = {
    LexState.SINGLE_QUOTE: "'",
    LexState.DOUBLE_QUOTE: '"',
    LexState.BACKTICK: "`",
    LexState.BRACKET: "]",
}


def get_lexicon(dialect: Optional[str]) -> Lexicon:
    """Get lexical extensions for a dialect; unknown dialects use the base rules."""
    if not dialect:
        return BASE_LEXICON
    return _LEXICONS.get(dialect.strip().lower(), BASE_LEXICON)


def _skip_quoted(sql: str, pos: int, quote: str, backslash: bool) -> int:
    """Return the offset just past the closing quote, or len(sql) if unterminated.

    A doubled quote character is an escaped literal quote. With ``backslash``
    set, a backslash escapes the following character as well.
    """
    length = len(sql)
    while pos < length:
        if backslash:
            next_quote = sql.find(quote, pos)
            next_escape = sql.find("\\", pos, next_quote if next_quote != -1 else length)
            if next_escape != -1:
                pos = next_escape + 2
                continue
        else:
            next_quote = sql.find(quote, pos)
        if next_quote == -1:
            return length
        if sql.startswith(quote, next_quote + 1):
            pos = next_quote + 2
            continue
        return next_quote + 1
    return length


def _continues_identifier(sql: str, pos: int) -> bool:
    """Whether the character before pos belongs to an identifier (as in price$usd)."""
    if pos == 0:
        return False
    previous = sql[pos - 1]
    return previous.isalnum() or previous in "_$"


def _is_only_comments(text: str, lexicon: Lexicon = BASE_LEXICON) -> bool:
    """Check if text contains nothing but whitespace and comments."""
    pos = 0
    length = len(text)
    while pos < length:
        if text[pos].isspace():
            pos += 1
        elif text.startswith("--", pos) or (
            lexicon.hash_comments and text.startswith("#", pos)
        ):
            newline = text.find("\n", pos)
            if newline == -1:
                return True
            pos = newline + 1
        elif text.startswith("/*", pos):
            close = text.find("*/", pos + 2)
            if close == -1:
                return True
            pos = close + 2
        else:
            return False
    return True


def _code_positions(sql: str, lexicon: Lexicon) -> Iterator[int]:
    """Yield the offset of every character outside literals and comments."""
    length = len(sql)
    state = LexState.NORMAL
    dollar_tag = ""
    pos = 0

    while pos < length:
        char = sql[pos]

        if state is LexState.NORMAL:
            if char == "'":
                state = LexState.SINGLE_QUOTE
            elif char == '"':
                state = LexState.DOUBLE_QUOTE
            elif char == "`" and lexicon.backtick_identifiers:
                state = LexState.BACKTICK
            elif char == "[" and lexicon.bracket_identifiers:
                state = LexState.BRACKET
            elif char == "-" and sql.startswith("-", pos + 1):
                state = LexState.LINE_COMMENT
                pos += 1
            elif char == "/" and sql.startswith("*", pos + 1):
                state = LexState.BLOCK_COMMENT
                pos += 1
            elif char == "#" and lexicon.hash_comments:
                state = LexState.LINE_COMMENT
            else:
                match = None
                if char == "$" and not _continues_identifier(sql, pos):
                    match = _DOLLAR_TAG.match(sql, pos)
                if match:
                    state = LexState.DOLLAR_QUOTE
                    dollar_tag = match.group()
                    pos = match.end() - 1
                else:
                    yield pos
            pos += 1
            continue

        if state in _CLOSERS:
            backslash = lexicon.backslash_escapes and state in (
                LexState.SINGLE_QUOTE,
                LexState.DOUBLE_QUOTE,
            )
            pos = _skip_quoted(sql, pos, _CLOSERS[state], backslash)
        elif state is LexState.LINE_COMMENT:
            newline = sql.find("\n", pos)
            pos = length if newline == -1 else newline + 1
        elif state is LexState.BLOCK_COMMENT:
            close = sql.find("*/", pos)
            pos = length if close == -1 else close + 2
        elif state is LexState.DOLLAR_QUOTE:
            close = sql.find(dollar_tag, pos)
            pos = length if close == -1 else close + len(dollar_tag)
        state = LexState.NORMAL


def split_sql_statements(
    sql: str, dialect: Optional[str] = None
) -> list[StatementSpan]:
    """
    Split a SQL buffer into statements.

    Args:
        sql: Raw SQL text, possibly holding several statements
        dialect: Dialect identifier selecting lexical extensions

    Returns:
        Statement spans in source order; comment-only statements are dropped
        and the survivors re-indexed without shifting their offsets
    """
    lexicon = get_lexicon(dialect)
    spans: list[StatementSpan] = []

    def emit(start: int, stop: int, end_offset: int) -> None:
        text = sql[start:stop].strip()
        if text and not _is_only_comments(text, lexicon):
            spans.append(
                StatementSpan(
                    text=text,
                    index=len(spans),
                    start_offset=start,
                    end_offset=end_offset,
                )
            )

    length = len(sql)
    start = 0
    for pos in _code_positions(sql, lexicon):
        if sql[pos] == ";":
            emit(start, pos, pos)
            start = pos + 1

    if start < length:
        emit(start, length, length - 1)

    logger.debug("Split %d characters into %d statements", length, len(spans))
    return spans


def mask_literals(sql: str, dialect: Optional[str] = None) -> str:
    """
    Blank out literals, quoted identifiers, and comments.

    Args:
        sql: Raw SQL text
        dialect: Dialect identifier selecting lexical extensions

    Returns:
        Text of the same length where every character inside a string,
        quoted identifier, dollar-quoted body, or comment is a space
    """
    masked = [" "] * len(sql)
    for pos in _code_positions(sql, get_lexicon(dialect)):
        masked[pos] = sql[pos]
    return "".join(masked)


def get_statement_at_offset(
    sql: str, offset: int, dialect: Optional[str] = None
) -> Optional[StatementSpan]:
    """
    Find the statement under a cursor.

    Args:
        sql: Raw SQL text
        offset: Cursor position in the buffer
        dialect: Dialect identifier selecting lexical extensions

    Returns:
        The first statement containing the offset, else the first statement,
        or None when the buffer holds no statements
    """
    statements = split_sql_statements(sql, dialect)
    if not statements:
        return None

    for statement in statements:
        if statement.contains(offset):
            return statement
    return statements[0]
