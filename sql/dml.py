"""
===========================================
Data Manipulation Language (DML) Utilities.
===========================================

Builds INSERT, UPDATE, DELETE and REPLACE statements on top of the
QueryBuilder, which supplies quoting, placeholders and the where clause.

Value handling shared by INSERT and UPDATE:
- Raw values are spliced verbatim
- lists and dicts are stored as JSON (a ``[JSON]`` tag on the key is optional
  and stripped from the column name)
- bytes are bound as LOB
- any other object is pickled and bound as LOB
- everything else is bound with its natural parameter type

Functions:
- insert_builder: Single or multi-row INSERT over the union of row keys
- update_builder: UPDATE with ``[+]``, ``[-]``, ``[*]``, ``[/]`` arithmetic keys
- delete_builder: DELETE with a where clause
- replace_builder: UPDATE ... SET col = REPLACE(col, old, new)

Usage:
    from sql.dml import insert_builder, update_builder

    params = {}
    sql = insert_builder(builder, 'account', {'user_name': 'foo', 'age': 25}, params)
    sql = update_builder(builder, 'account', {'age[+]': 1}, {'user_id': 3}, params)
"""

import json
import pickle
import re
from typing import Any, Dict, List, Union

from core.exceptions import InvalidArgumentError
from sql.params import ParameterMap, ParamType, ValueKind, classify
from sql.query_builder import QueryBuilder

JSON_TAG = re.compile(r'\s*\[JSON\]$', re.IGNORECASE)
UPDATE_KEY = re.compile(r'^(?P<column>.*?)\s*(?:\[(?P<operator>JSON|\+|-|\*|/)\])?$', re.IGNORECASE)


def value_builder(builder: QueryBuilder, value: Any, params: ParameterMap) -> str:
    """Placeholder (or spliced Raw) for one INSERT/UPDATE value."""
    kind = classify(value)

    if kind is ValueKind.RAW:
        return builder.build_raw(value, params)
    if kind in (ValueKind.LIST, ValueKind.MAPPING):
        return builder.bind(params, json.dumps(value), ParamType.STR)
    if kind is ValueKind.OBJECT:
        return builder.bind(params, pickle.dumps(value), ParamType.LOB)
    return builder.bind(params, value)


def insert_builder(
    builder: QueryBuilder,
    table: str,
    values: Union[Dict[str, Any], List[Dict[str, Any]]],
    params: ParameterMap
) -> str:
    """
    Build a single or multi-row INSERT.

    Columns are the union of every row's keys in first-seen order; rows
    missing a column bind NULL for it.

    Args:
        builder: QueryBuilder for the target dialect
        table: Table name
        values: One row mapping or a list of row mappings
        params: Parameter map receiving bound values

    Returns:
        SQL text

    Raises:
        InvalidArgumentError: If no rows or no columns were supplied
    """
    rows = [values] if isinstance(values, dict) else list(values)
    if not rows:
        raise InvalidArgumentError('Insert needs at least one row.')

    columns = list(dict.fromkeys(key for row in rows for key in row))
    if not columns:
        raise InvalidArgumentError('Insert needs at least one column.')

    stack = []
    for row in rows:
        placeholders = [value_builder(builder, row.get(column), params) for column in columns]
        stack.append('(' + ', '.join(placeholders) + ')')

    fields = ', '.join(builder.dialect.column_quote(JSON_TAG.sub('', column)) for column in columns)

    return f"INSERT INTO {builder.dialect.table_quote(table)} ({fields}) VALUES {', '.join(stack)}"


def update_builder(
    builder: QueryBuilder,
    table: str,
    data: Dict[str, Any],
    where: Any,
    params: ParameterMap
) -> str:
    """
    Build an UPDATE.

    ``{"age[+]": 1}`` compiles to ``"age" = "age" + 1``; arithmetic keys
    need a numeric value.

    Raises:
        InvalidArgumentError: If there is nothing to set or an arithmetic
            key has a non-numeric value
    """
    if not data:
        raise InvalidArgumentError('Update needs at least one column.')

    fields = []
    for key, value in data.items():
        match = UPDATE_KEY.match(key)
        column = builder.dialect.column_quote(match.group('column'))
        operator = match.group('operator')
        kind = classify(value)

        if operator and operator.upper() != 'JSON' and kind is not ValueKind.RAW:
            if kind not in (ValueKind.INT, ValueKind.FLOAT):
                raise InvalidArgumentError(f"Arithmetic update of {key} needs a number.")
            fields.append(f'{column} = {column} {operator} {value}')
            continue

        fields.append(f'{column} = {value_builder(builder, value, params)}')

    where_clause = builder.where_builder(where, params)
    return f"UPDATE {builder.dialect.table_quote(table)} SET {', '.join(fields)}{where_clause}"


def delete_builder(builder: QueryBuilder, table: str, where: Any, params: ParameterMap) -> str:
    """Build ``DELETE FROM table <where>``."""
    return f'DELETE FROM {builder.dialect.table_quote(table)}{builder.where_builder(where, params)}'


def replace_builder(
    builder: QueryBuilder,
    table: str,
    columns: Dict[str, Dict[str, str]],
    where: Any,
    params: ParameterMap
) -> str:
    """
    Build string replacement updates.

    Args:
        columns: ``{column: {old: new, ...}}``

    Raises:
        InvalidArgumentError: If no replacement pairs were supplied
    """
    stack = []
    for column, replacements in columns.items():
        if not isinstance(replacements, dict):
            continue
        name = builder.dialect.column_quote(column)
        for old, new in replacements.items():
            old_key = builder.bind(params, old, ParamType.STR)
            new_key = builder.bind(params, new, ParamType.STR)
            stack.append(f'{name} = REPLACE({name}, {old_key}, {new_key})')

    if not stack:
        raise InvalidArgumentError('Invalid columns supplied.')

    where_clause = builder.where_builder(where, params)
    return f"UPDATE {builder.dialect.table_quote(table)} SET {', '.join(stack)}{where_clause}"
