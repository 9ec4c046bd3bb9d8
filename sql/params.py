"""
=======================================
Bound parameters and value dispatching.
=======================================

Every value that reaches a compiled statement is classified once into a
``ValueKind`` and then either spliced (``Raw``), expanded (lists) or bound as
a named parameter carrying a ``ParamType``. The parameter map is a plain
ordered ``dict`` of placeholder name -> ``BoundParam``.

Generated placeholder names come from a per-driver ``PlaceholderCounter`` and
live in the reserved ``_p<N>`` namespace, so repeated literal values at
different positions never collide.

Example:
    >>> counter = PlaceholderCounter()
    >>> params = {}
    >>> name = counter.next_name()
    >>> params[name] = type_map(True)
    >>> render(f"SELECT * FROM t WHERE flag = :{name}", params, quote)
    'SELECT * FROM t WHERE flag = 1'
"""

import itertools
import re
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, NamedTuple

from sqlalchemy import bindparam
from sqlalchemy.sql.elements import BindParameter
from sqlalchemy.types import Float, Integer, LargeBinary, NullType, String

from sql.raw import Raw

RESERVED_NAME = re.compile(r'^_p\d+')

# Same shape SQLAlchemy's text() uses to find bind parameters
PLACEHOLDER = re.compile(r'(?<![:\w\\]):(\w+)(?!:)')

# Scalars the DB-API drivers adapt natively; bound as-is with a string type
STRING_LIKE = (str, Decimal, datetime, date, time, timedelta, uuid.UUID)


class ValueKind(Enum):
    NULL = 'null'
    BOOL = 'bool'
    INT = 'int'
    FLOAT = 'float'
    STRING = 'string'
    LIST = 'list'
    MAPPING = 'mapping'
    RAW = 'raw'
    BYTES = 'bytes'
    OBJECT = 'object'


class ParamType(Enum):
    NULL = 'null'
    INT = 'int'
    FLOAT = 'float'
    STR = 'str'
    BOOL = 'bool'
    LOB = 'lob'


class BoundParam(NamedTuple):
    value: Any
    type: ParamType


ParameterMap = Dict[str, BoundParam]

SQLALCHEMY_TYPES = {
    ParamType.NULL: NullType(),
    ParamType.INT: Integer(),
    ParamType.FLOAT: Float(),
    ParamType.STR: String(),
    # booleans travel as '1'/'0'
    ParamType.BOOL: String(),
    ParamType.LOB: LargeBinary(),
}


class PlaceholderCounter:
    """Monotonic source of generated placeholder names."""

    def __init__(self, start: int = 0):
        self._counter = itertools.count(start)

    def next_name(self) -> str:
        return f'_p{next(self._counter)}'


def classify(value: Any) -> ValueKind:
    """Decide the ValueKind of ``value``; bool is checked before int."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, Raw):
        return ValueKind.RAW
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, STRING_LIKE):
        return ValueKind.STRING
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BYTES
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    if isinstance(value, dict):
        return ValueKind.MAPPING
    return ValueKind.OBJECT


def is_numeric(value: Any) -> bool:
    return classify(value) in (ValueKind.INT, ValueKind.FLOAT)


def type_map(value: Any, kind: ValueKind = None) -> BoundParam:
    """Pair a scalar with the ParamType it is bound as.

    Raises:
        ValueError: For lists, mappings, Raw fragments and arbitrary objects,
            which the caller has to expand or serialise first
    """
    kind = kind or classify(value)
    if kind is ValueKind.NULL:
        return BoundParam(None, ParamType.NULL)
    if kind is ValueKind.BOOL:
        return BoundParam('1' if value else '0', ParamType.BOOL)
    if kind is ValueKind.INT:
        return BoundParam(value, ParamType.INT)
    if kind is ValueKind.FLOAT:
        return BoundParam(value, ParamType.FLOAT)
    if kind is ValueKind.STRING:
        return BoundParam(value, ParamType.STR)
    if kind is ValueKind.BYTES:
        return BoundParam(bytes(value), ParamType.LOB)
    raise ValueError(f"Cannot bind a {kind.value} value: {value!r}")


def bind_parameters(params: ParameterMap) -> List[BindParameter]:
    """Turn a parameter map into typed SQLAlchemy bind parameters."""
    return [
        bindparam(name, param.value, type_=SQLALCHEMY_TYPES[param.type])
        for name, param in params.items()
    ]


def render(statement: str, params: ParameterMap, quote: Callable[[str], str]) -> str:
    """Substitute bound values back into ``statement`` for display.

    Strings are quoted with the dialect's ``quote``, NULL is spelled out and
    binary data is shown as ``{LOB_DATA}``. Placeholders without a value are
    left in place.
    """
    def substitute(match):
        name = match.group(1)
        if name not in params:
            return match.group(0)
        value, param_type = params[name]
        if param_type is ParamType.STR:
            return quote(str(value))
        if param_type is ParamType.NULL:
            return 'NULL'
        if param_type is ParamType.LOB:
            return '{LOB_DATA}'
        return str(value)

    return PLACEHOLDER.sub(substitute, statement)
