"""
====================================================
SQL generation package for the access layer.
====================================================

Compiles declarative statement structures into dialect-quoted SQL text and a
typed parameter map. Nothing here touches a connection.

The package follows a clear organization:
    - params.py: ValueKind dispatch, ParamType, BoundParam and debug rendering
    - raw.py: Raw fragments and ``<identifier>`` marker expansion
    - query_builder.py: Column, condition, join, clause and SELECT builders
    - dml.py: INSERT/UPDATE/DELETE/REPLACE builders
    - ddl.py: CREATE/DROP TABLE builders
    - result_mapper.py: Type-tag decoding of fetched rows

Architecture:
    - All builders end with '_builder' suffix (e.g., select_builder, insert_builder)
    - dml.py and ddl.py import from query_builder.py (not vice versa)
    - Placeholders are named ``_p<N>`` from a counter shared per driver

Example:
    >>> from drivers import factory
    >>> from sql import QueryBuilder, raw
    >>>
    >>> builder = QueryBuilder(factory(options))
    >>> params = {}
    >>> builder.select_builder('account', params, where={'age[>]': 18})
    'SELECT * FROM "account" WHERE "age" > :_p0'
"""

__version__ = "0.1.0"
__all__ = [
    'QueryBuilder', 'Raw', 'raw',
    'BoundParam', 'ParamType', 'ValueKind', 'PlaceholderCounter', 'render',
    'insert_builder', 'update_builder', 'delete_builder', 'replace_builder',
    'create_builder', 'drop_builder',
    'map_rows', 'column_map_builder',
]

from .ddl import create_builder, drop_builder
from .dml import delete_builder, insert_builder, replace_builder, update_builder
from .params import BoundParam, ParamType, PlaceholderCounter, ValueKind, render
from .query_builder import QueryBuilder
from .raw import Raw, raw
from .result_mapper import column_map_builder, map_rows
