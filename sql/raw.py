"""
=====================
Raw SQL fragments.
=====================

A ``Raw`` is literal SQL that bypasses value quoting. Inside the text,
``<column>`` and ``<table.column>`` markers are expanded to quoted
identifiers, and ``<table>`` right after FROM, TABLE, INTO, UPDATE or JOIN is
expanded to a prefixed table name. Markers inside a quoted literal are left
alone.

The fragment's own parameters are merged into the statement's parameter map
under the names the caller chose (a leading ``:`` is optional).

Example:
    >>> from sql.raw import raw
    >>>
    >>> fragment = raw('SUM(<age> + <experience>)')
    >>> where = {'created[>]': raw('DATE_SUB(NOW(), INTERVAL :days DAY)', {'days': 7})}
"""

import re
from typing import Any, Dict, Optional

_IDENT = r'[^\W\d][\w@$#\-]*'

MARKER = re.compile(rf"(?:(FROM|TABLE|INTO|UPDATE|JOIN)\s*)?<({_IDENT}(?:\.{_IDENT})?)>")

# Single-quoted (with doubled or backslashed quotes) or backticked literals
LITERAL = re.compile(r"('(?:[^'\\]|\\.|'')*'|`[^`]*`)")


class Raw:
    """Literal SQL fragment plus its named parameters."""

    __slots__ = ('value', 'params')

    def __init__(self, value: str, params: Optional[Dict[str, Any]] = None):
        self.value = value
        self.params = dict(params or {})

    def __eq__(self, other):
        if not isinstance(other, Raw):
            return NotImplemented
        return self.value == other.value and self.params == other.params

    def __hash__(self):
        return hash(self.value)

    def __repr__(self):
        if self.params:
            return f'Raw({self.value!r}, {self.params!r})'
        return f'Raw({self.value!r})'


def raw(value: str, params: Optional[Dict[str, Any]] = None) -> Raw:
    """Shorthand constructor for ``Raw``."""
    return Raw(value, params)


def expand_markers(text: str, table_quote, column_quote) -> str:
    """Replace ``<...>`` markers outside quoted literals with quoted identifiers."""
    def substitute(match):
        if match.group(1):
            return f'{match.group(1)} {table_quote(match.group(2))}'
        return column_quote(match.group(2))

    parts = LITERAL.split(text)
    # split() with one capture group alternates: code, literal, code, ...
    for index in range(0, len(parts), 2):
        parts[index] = MARKER.sub(substitute, parts[index])
    return ''.join(parts)
