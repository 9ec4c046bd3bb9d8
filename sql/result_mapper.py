"""
=====================================
Result decoding by column type tags.
=====================================

A column specification such as ``['user_id [Int]', 'profile [JSON]',
'name(nick)']`` produces a column map recording, for every entry, the key it
appears under in the result row and the type it decodes to. Rows fetched
from the backend are then reshaped to follow the specification:

- type tags decode values (Int, Number, Bool, JSON, Object, String)
- nested mappings produce nested dictionaries
- a single grouped root ``{"user_id": [...]}`` indexes rows by ``user_id``

Example:
    >>> columns = ['user_id [Int]', 'name(nick)']
    >>> column_map_builder(columns)
    {'user_id [Int]': ('user_id', 'Int'), 'name(nick)': ('nick', 'String')}
"""

import json
import pickle
import re
from typing import Any, Dict, List, Mapping, Tuple, Union

from sql.query_builder import is_nested, items
from sql.raw import Raw

_IDENT = r'[^\W\d][\w@$#\-]*'
_TYPES = r'String|Bool|Int|Number|Object|JSON'

COLUMN_KEY = re.compile(
    rf'(?:{_IDENT}\.)?(?P<column>{_IDENT})(?:\s*\((?P<alias>{_IDENT})\))?(?:\s*\[(?P<type>{_TYPES})\])?'
)
RAW_KEY = re.compile(rf'(?:{_IDENT}\.)?(?P<column>{_IDENT})(?:\s*\[(?P<type>{_TYPES})\])?')
TABLE_PREFIX = re.compile(rf'^{_IDENT}\.')

ColumnMap = Dict[Any, Tuple[str, str]]


def column_map_builder(columns: Any, stack: ColumnMap = None, root: bool = True) -> ColumnMap:
    """Map every column entry to its (result key, type tag)."""
    stack = {} if stack is None else stack
    if columns == '*' or isinstance(columns, Raw) or columns is None:
        return stack
    if isinstance(columns, str):
        columns = [columns]

    entries = list(items(columns))
    for key, value in entries:
        if isinstance(key, int) and isinstance(value, str):
            match = COLUMN_KEY.search(value)
            if match:
                stack[value] = (match.group('alias') or match.group('column'), match.group('type') or 'String')
        elif isinstance(value, Raw):
            match = RAW_KEY.search(key)
            if match:
                stack[key] = (match.group('column'), match.group('type') or 'String')
        elif is_nested(value):
            if root and not isinstance(key, int) and len(entries) == 1:
                stack[key] = (key, 'String')
            column_map_builder(value, stack, False)

    return stack


def decode(value: Any, type_tag: str) -> Any:
    """Decode one value according to its type tag; NULL stays None."""
    if value is None:
        return None
    if type_tag == 'Int':
        return int(value)
    if type_tag == 'Number':
        return float(value)
    if type_tag == 'Bool':
        return bool(int(value)) if isinstance(value, str) and value.isdigit() else bool(value)
    if type_tag == 'JSON':
        return json.loads(value)
    if type_tag == 'Object':
        return pickle.loads(value)
    return value


def row_builder(row: Mapping[str, Any], columns: Any, column_map: ColumnMap) -> Dict[Any, Any]:
    """Reshape one fetched row following the column specification."""
    stack = {}
    for key, value in items(columns):
        is_raw = isinstance(value, Raw)
        if is_raw or (isinstance(key, int) and isinstance(value, str)):
            column_key, type_tag = column_map[key if is_raw else value]
            if is_raw and type_tag in ('Object', 'JSON'):
                continue
            stack[column_key] = decode(row.get(column_key), type_tag)
        elif is_nested(value):
            stack[key] = row_builder(row, value, column_map)
    return stack


def map_rows(
    rows: List[Mapping[str, Any]],
    columns: Any,
    column_map: ColumnMap = None
) -> Union[List[Dict[Any, Any]], Dict[Any, Dict[Any, Any]]]:
    """
    Decode fetched rows.

    Args:
        rows: Rows as mappings of column label to value
        columns: The column specification the statement was built from
        column_map: Precomputed column map (built from ``columns`` when omitted)

    Returns:
        A list of decoded rows, or for a single grouped root column a dict
        keyed by that column's value. Each input row is visited once.
    """
    if columns == '*' or columns is None or isinstance(columns, Raw):
        return [dict(row) for row in rows]
    if isinstance(columns, str):
        columns = [columns]
    column_map = column_map if column_map is not None else column_map_builder(columns)

    entries = list(items(columns))
    if len(entries) == 1 and not isinstance(entries[0][0], int) and is_nested(entries[0][1]):
        index_key, inner = entries[0]
        data_key = TABLE_PREFIX.sub('', index_key)
        return {row[data_key]: row_builder(row, inner, column_map) for row in rows}

    return [row_builder(row, columns, column_map) for row in rows]
