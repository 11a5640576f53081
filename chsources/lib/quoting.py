"""Quoting helpers for generated ClickHouse text.

Two escaping dialects appear in the same output and must never be mixed:

- string literals (table-function arguments, SOURCE values, DEFAULT
  values) escape an embedded single quote with a backslash: ``'`` -> ``\\'``
- identifiers (dictionary, column and key names) are wrapped in double
  quotes and escape an embedded double quote by doubling it: ``"`` -> ``""``
"""

from __future__ import annotations

__all__ = [
    "escape_string_literal",
    "quote_identifier",
    "quote_string_literal",
    "to_snake_case",
]


def escape_string_literal(value: str) -> str:
    """Backslash-escape single quotes; no other character is touched."""
    return value.replace("'", "\\'")


def quote_string_literal(value: str) -> str:
    """Render ``value`` as a single-quoted, backslash-escaped literal.

    Example:
        >>> quote_string_literal("O'Brien")
        "'O\\\\'Brien'"
    """
    return f"'{escape_string_literal(value)}'"


def quote_identifier(name: str) -> str:
    """Render ``name`` as a double-quoted identifier with doubled quotes.

    Example:
        >>> quote_identifier('odd"name')
        '"odd""name"'
    """
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def to_snake_case(name: str) -> str:
    """Convert ``CountryLookup`` to ``country_lookup``."""
    if not name:
        return name

    chars = []
    for i, c in enumerate(name):
        if c.isupper():
            if i > 0:
                chars.append("_")
            chars.append(c.lower())
        else:
            chars.append(c)
    return "".join(chars)
