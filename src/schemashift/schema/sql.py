"""
SQL text helpers shared by the statement builders.
"""

import re
from typing import Iterable


def quote_identifier(name: str) -> str:
    """Backtick-quote an identifier, doubling embedded backticks."""
    return "`" + name.replace("`", "``") + "`"


def escape_string(value: str) -> str:
    """Escape a value for use inside a single-quoted MySQL string literal."""
    return (
        value.replace("\\", "\\\\")
        .replace("\0", "\\0")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\x1a", "\\Z")
        .replace("'", "\\'")
    )


def quote_string(value: str) -> str:
    return f"'{escape_string(value)}'"


def alter_table(table: str, fragments: Iterable[str]) -> str:
    """Join alter fragments into one ALTER TABLE statement."""
    return f"ALTER TABLE {quote_identifier(table)} " + ", ".join(fragments)


_UNESCAPES = {
    "0": "\0",
    "b": "\b",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "Z": "\x1a",
}

_ESCAPE_RE = re.compile(r"\\(.)|('')|(\"\")", re.DOTALL)


def unescape_string(value: str, quote: str = "'") -> str:
    """Decode the body of a MySQL string literal delimited by ``quote``.

    A doubled delimiter collapses to one. Backslash escapes are decoded;
    ``\\%`` and ``\\_`` keep their backslash as the server does.
    """
    def replace(match) -> str:
        doubled = match.group(2) or match.group(3)
        if doubled:
            return quote if doubled[0] == quote else doubled
        ch = match.group(1)
        if ch in ("%", "_"):
            return "\\" + ch
        return _UNESCAPES.get(ch, ch)

    return _ESCAPE_RE.sub(replace, value)
