"""
============================================
Data Definition Language (DDL) Utilities.
============================================

CREATE TABLE / DROP TABLE builders.

Column definitions are given as a mapping of column name to a type string or
a list of definition tokens. Integer keys (or plain list items) are raw
definitions in which ``<column>`` markers are quoted, e.g. table constraints.

Example:
    >>> create_builder(builder, 'account', {
    ...     'id': ['INT', 'NOT NULL', 'AUTO_INCREMENT'],
    ...     'email': 'VARCHAR(70)',
    ...     0: 'PRIMARY KEY (<id>)',
    ... }, {'AUTO_INCREMENT': 200})
    'CREATE TABLE IF NOT EXISTS `account` (`id` INT NOT NULL AUTO_INCREMENT, `email` VARCHAR(70), PRIMARY KEY (`id`)) AUTO_INCREMENT = 200'
"""

import re
from typing import Any, Dict, List, Union

from core.exceptions import InvalidArgumentError
from sql.query_builder import QueryBuilder, items

COLUMN_MARKER = re.compile(r'<([^\W\d][\w@$#\-]*)>')


def create_builder(
    builder: QueryBuilder,
    table: str,
    columns: Union[Dict[Any, Any], List[str]],
    options: Union[Dict[str, Any], str, None] = None
) -> str:
    """
    Build ``CREATE TABLE IF NOT EXISTS``.

    Args:
        builder: QueryBuilder for the target dialect
        table: Table name
        columns: Column definitions
        options: Table options as ``{key: value}`` or a literal string

    Raises:
        InvalidArgumentError: If no column definitions were supplied
    """
    dialect = builder.dialect
    stack = []

    for name, definition in items(columns):
        if isinstance(name, int):
            stack.append(COLUMN_MARKER.sub(lambda m: dialect.column_quote(m.group(1)), definition))
        elif isinstance(definition, (list, tuple)):
            stack.append(f"{dialect.column_quote(name)} {' '.join(definition)}")
        elif isinstance(definition, str):
            stack.append(f'{dialect.column_quote(name)} {definition}')

    if not stack:
        raise InvalidArgumentError('Create needs at least one column definition.')

    table_option = ''
    if isinstance(options, dict):
        option_stack = [
            f'{key} = {value}'
            for key, value in options.items()
            if isinstance(value, (str, int)) and not isinstance(value, bool)
        ]
        if option_stack:
            table_option = ' ' + ', '.join(option_stack)
    elif isinstance(options, str) and options:
        table_option = ' ' + options

    return f"CREATE TABLE IF NOT EXISTS {dialect.table_quote(table)} ({', '.join(stack)}){table_option}"


def drop_builder(builder: QueryBuilder, table: str) -> str:
    """Build ``DROP TABLE IF EXISTS``."""
    return f'DROP TABLE IF EXISTS {builder.dialect.table_quote(table)}'
