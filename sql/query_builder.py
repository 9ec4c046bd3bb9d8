"""
============================
SQL Query Builder Utilities.
============================

Recursive compiler turning declarative column, condition, join and clause
structures into dialect-quoted SQL text plus a parameter map. All builders
follow the _builder naming convention for consistency.

Query Builders:
- column_builder: Column lists with aliases, DISTINCT, grouping and Raw columns
- condition_builder: Condition mappings with operator tags and AND/OR groups
- where_builder: WHERE plus MATCH, GROUP BY, HAVING, ORDER BY, LIMIT, FOR UPDATE
- join_builder: LEFT/RIGHT/FULL/INNER joins with USING or ON predicates
- order_builder / group_builder / limit_builder / match_builder: clause parts
- select_builder: SELECT statements, aggregates and existence checks

Condition keys:
    "age[>]": 18              "age" > :p
    "email[!]": None          "email" IS NOT NULL
    "user_id": [1, 2]         "user_id" IN (:p, :p)
    "city[~]": "lon"          ("city" LIKE '%lon%')
    "age[<>]": [20, 30]       ("age" BETWEEN :p AND :p)
    "OR #any": {...}          (... OR ...)
    0: "created[>]updated"    "created" > "updated"

Usage:
    from sql.query_builder import QueryBuilder

    builder = QueryBuilder(dialect)
    params = {}
    sql = builder.select_builder(
        'account', params,
        columns=['user_name', 'email(mail)'],
        where={'age[>=]': 18, 'ORDER': {'user_id': 'DESC'}, 'LIMIT': 10}
    )
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from core.exceptions import InvalidArgumentError
from sql.params import (
    BoundParam,
    ParameterMap,
    ParamType,
    PlaceholderCounter,
    RESERVED_NAME,
    ValueKind,
    classify,
    type_map,
)
from sql.raw import Raw, expand_markers

_IDENT = r'[^\W\d][\w@$#\-]*'
_DOTTED = r'[^\W\d][\w@$#\-.]*'
_TYPES = r'String|Bool|Int|Number|Object|JSON'

COLUMN_SPEC = re.compile(
    rf'(?P<column>{_DOTTED})(?:\s*\((?P<alias>{_IDENT})\))?(?:\s*\[(?P<type>{_TYPES})\])?'
)
RAW_COLUMN_KEY = re.compile(rf'(?P<column>{_DOTTED})(?:\s*\[(?P<type>{_TYPES})\])?')
CONDITION_KEY = re.compile(
    rf'(?P<column>{_DOTTED})(?:\[(?P<operator>>=?|<=?|!|<>|><|!?~|REGEXP)\])?'
)
COLUMN_COMPARISON = re.compile(
    rf'^\s*(?P<left>{_DOTTED})\s*\[(?P<operator>=|!=|!|>=?|<=?)\]\s*(?P<right>{_DOTTED})\s*$'
)
CONNECTIVE_KEY = re.compile(r'^(AND|OR)(\s+#.*)?$')
JOIN_KEY = re.compile(rf'^\[(?P<join><>?|><?)\](?P<table>{_IDENT})\s?(?:\((?P<alias>{_IDENT})\))?$')
TABLE_ALIAS = re.compile(rf'^(?P<table>{_IDENT})\s*\((?P<alias>{_IDENT})\)$')

LIKE_PATTERN = re.compile(r'((?<!\\)\[.+(?<!\\)\]|(?<!\\)[*?!%\-#^_]|%.+|.+%)')

JOIN_TYPES = {
    '>': 'LEFT',
    '<': 'RIGHT',
    '<>': 'FULL',
    '><': 'INNER',
}

MATCH_MODES = {
    'natural': 'IN NATURAL LANGUAGE MODE',
    'natural+query': 'IN NATURAL LANGUAGE MODE WITH QUERY EXPANSION',
    'boolean': 'IN BOOLEAN MODE',
    'query': 'WITH QUERY EXPANSION',
}

# Keys of a where mapping that are clause modifiers, not conditions
CLAUSE_KEYS = ('GROUP', 'ORDER', 'HAVING', 'LIMIT', 'MATCH', 'FOR UPDATE')

ORDER_DIRECTIONS = ('ASC', 'DESC')


def items(columns: Union[Dict, List, Tuple]) -> Iterable[Tuple[Any, Any]]:
    """Iterate a mapping as (key, value) and a sequence as (index, value)."""
    if isinstance(columns, dict):
        return columns.items()
    return enumerate(columns)


def is_nested(value: Any) -> bool:
    return isinstance(value, (list, tuple, dict))


def is_join(join: Any) -> bool:
    """True when ``join`` is a mapping whose first key starts with ``[``."""
    if not isinstance(join, dict) or not join:
        return False
    first = next(iter(join))
    return isinstance(first, str) and first.startswith('[')


class QueryBuilder:
    """Compiles statement structures for one dialect.

    Args:
        dialect: Dialect supplying identifier and literal quoting
        counter: Placeholder name source; share the driver's counter so names
            stay unique across every statement it runs
    """

    def __init__(self, dialect, counter: Optional[PlaceholderCounter] = None):
        self.dialect = dialect
        self.counter = counter or PlaceholderCounter()

    # -- parameters ---------------------------------------------------------

    def map_key(self) -> str:
        return self.counter.next_name()

    def bind(self, params: ParameterMap, value: Any, param_type: Optional[ParamType] = None) -> str:
        """Add ``value`` under a new placeholder and return ``:name``."""
        name = self.map_key()
        params[name] = BoundParam(value, param_type) if param_type else type_map(value)
        return f':{name}'

    def build_raw(self, value: Any, params: ParameterMap) -> Optional[str]:
        """Expand a Raw fragment and merge its parameters; None for non-Raw values."""
        if not isinstance(value, Raw):
            return None
        for key, item in value.params.items():
            name = key[1:] if key.startswith(':') else key
            if RESERVED_NAME.match(name):
                raise InvalidArgumentError(
                    f"Raw parameter name {key!r} is reserved for generated placeholders."
                )
            try:
                params[name] = type_map(item)
            except ValueError as error:
                raise InvalidArgumentError(f"Raw parameter {key!r}: {error}") from error
        return expand_markers(value.value, self.dialect.table_quote, self.dialect.column_quote)

    # -- columns ------------------------------------------------------------

    def column_builder(self, columns: Any, params: ParameterMap,
                       root: bool = True, join: bool = False) -> str:
        """Compile a column specification into a comma-joined column list."""
        if isinstance(columns, Raw):
            return self.build_raw(columns, params)
        if columns == '*':
            return '*'
        if isinstance(columns, str):
            columns = [columns]
        if not is_nested(columns):
            raise InvalidArgumentError(f"Invalid column specification: {columns!r}.")

        stack = []
        has_distinct = False
        entries = list(items(columns))

        for key, value in entries:
            is_index = isinstance(key, int)

            if not is_index and is_nested(value) and root and len(entries) == 1:
                # {"user_id": [...]} indexes the result by user_id
                stack.append(self.dialect.column_quote(key))
                stack.append(self.column_builder(value, params, False, join))
            elif is_nested(value):
                stack.append(self.column_builder(value, params, False, join))
            elif not is_index and isinstance(value, Raw):
                match = RAW_COLUMN_KEY.search(key)
                if match is None:
                    raise InvalidArgumentError(f"Incorrect column name: {key}.")
                alias = self.dialect.column_quote(match.group('column'))
                stack.append(f"{self.build_raw(value, params)} AS {alias}")
            elif is_index and isinstance(value, str):
                column = self._column_string(value, join)
                if not has_distinct and value.startswith('@'):
                    has_distinct = True
                    stack.insert(0, f'DISTINCT {column}')
                    continue
                stack.append(column)
            else:
                raise InvalidArgumentError(f"Invalid column specification: {value!r}.")

        return ','.join(stack)

    def _column_string(self, value: str, join: bool) -> str:
        if '*' in value:
            if join:
                raise InvalidArgumentError(
                    'Cannot use table.* to select all columns while joining table.'
                )
            if value.endswith('.*'):
                return f'{self.dialect.table_quote(value[:-2])}.*'

        match = COLUMN_SPEC.search(value)
        if match is None:
            raise InvalidArgumentError(f"Incorrect column name: {value}.")

        column = self.dialect.column_quote(match.group('column'))
        if match.group('alias'):
            return f"{column} AS {self.dialect.column_quote(match.group('alias'))}"
        return column

    # -- conditions ---------------------------------------------------------

    def condition_builder(self, data: Dict, params: ParameterMap, conjunctor: str = ' AND') -> str:
        """Compile a condition mapping; nested AND/OR keys recurse."""
        stack = []

        for key, value in data.items():
            if isinstance(key, str) and isinstance(value, dict):
                relation = CONNECTIVE_KEY.match(key)
                if relation:
                    inner = self.condition_builder(value, params, ' ' + relation.group(1))
                    stack.append(f'({inner})')
                    continue

            if isinstance(key, int):
                stack.append(self._column_comparison(value))
                continue

            match = CONDITION_KEY.match(key)
            if match is None:
                raise InvalidArgumentError(f"Incorrect column name: {key}.")

            column = self.dialect.column_quote(match.group('column'))
            operator = match.group('operator')
            stack.append(self._condition(column, operator, value, params))

        return (conjunctor + ' ').join(stack)

    def _column_comparison(self, value: Any) -> str:
        match = COLUMN_COMPARISON.match(value) if isinstance(value, str) else None
        if match is None:
            raise InvalidArgumentError(f"Invalid column comparison: {value!r}.")
        operator = '!=' if match.group('operator') == '!' else match.group('operator')
        left = self.dialect.column_quote(match.group('left'))
        right = self.dialect.column_quote(match.group('right'))
        return f'{left} {operator} {right}'

    def _condition(self, column: str, operator: Optional[str], value: Any, params: ParameterMap) -> str:
        kind = classify(value)

        if operator in ('>', '>=', '<', '<='):
            if kind is ValueKind.RAW:
                return f'{column} {operator} {self.build_raw(value, params)}'
            if kind in (ValueKind.INT, ValueKind.FLOAT):
                return f'{column} {operator} {self.bind(params, value)}'
            return f'{column} {operator} {self.bind(params, self._as_string(value), ParamType.STR)}'

        if operator in ('~', '!~'):
            return self._like(column, operator == '!~', value, kind, params)

        if operator in ('<>', '><'):
            return self._between(column, operator == '><', value, kind, params)

        if operator == 'REGEXP':
            return f'{column} REGEXP {self.bind(params, str(value), ParamType.STR)}'

        negate = operator == '!'

        if kind is ValueKind.NULL:
            return f"{column} IS {'NOT ' if negate else ''}NULL"

        if kind is ValueKind.LIST:
            placeholders = [self._list_item(column, item, params) for item in value]
            inner = ', '.join(placeholders) if placeholders else 'NULL'
            return f"{column} {'NOT IN' if negate else 'IN'} ({inner})"

        if kind is ValueKind.RAW:
            return f"{column} {'!=' if negate else '='} {self.build_raw(value, params)}"

        if kind in (ValueKind.MAPPING, ValueKind.OBJECT):
            raise InvalidArgumentError(f"Unsupported value for {column}: {value!r}.")

        return f"{column} {'!=' if negate else '='} {self.bind(params, value)}"

    @staticmethod
    def _as_string(value: Any) -> Any:
        return value if classify(value) is ValueKind.STRING else str(value)

    def _list_item(self, column: str, item: Any, params: ParameterMap) -> str:
        kind = classify(item)
        if kind is ValueKind.RAW:
            return self.build_raw(item, params)
        if kind in (ValueKind.LIST, ValueKind.MAPPING, ValueKind.OBJECT):
            raise InvalidArgumentError(f"Unsupported list item for {column}: {item!r}.")
        return self.bind(params, item)

    def _like(self, column: str, negate: bool, value: Any, kind: ValueKind, params: ParameterMap) -> str:
        connector = ' OR '

        if kind is ValueKind.MAPPING:
            if len(value) != 1 or next(iter(value)) not in ('AND', 'OR'):
                raise InvalidArgumentError(f"LIKE groups take a single AND or OR key: {value!r}.")
            relation, candidates = next(iter(value.items()))
            connector = f' {relation} '
            if not isinstance(candidates, (list, tuple)):
                candidates = [candidates]
        elif kind is ValueKind.LIST:
            candidates = value
        else:
            candidates = [value]

        clauses = []
        for item in candidates:
            item = str(item)
            if not LIKE_PATTERN.search(item):
                item = f'%{item}%'
            keyword = 'NOT LIKE' if negate else 'LIKE'
            clauses.append(f'{column} {keyword} {self.bind(params, item, ParamType.STR)}')

        return '(' + connector.join(clauses) + ')'

    def _between(self, column: str, negate: bool, value: Any, kind: ValueKind, params: ParameterMap) -> str:
        if kind is not ValueKind.LIST or len(value) != 2:
            raise InvalidArgumentError(f"BETWEEN on {column} needs a two-element list.")

        if negate:
            column = f'{column} NOT'

        low, high = value
        if isinstance(low, Raw) and isinstance(high, Raw):
            return f'({column} BETWEEN {self.build_raw(low, params)} AND {self.build_raw(high, params)})'

        kinds = {classify(low), classify(high)}
        if kinds == {ValueKind.INT}:
            param_type = ParamType.INT
        elif kinds <= {ValueKind.INT, ValueKind.FLOAT}:
            param_type = ParamType.FLOAT
        else:
            param_type = ParamType.STR
            low, high = self._as_string(low), self._as_string(high)

        return f'({column} BETWEEN {self.bind(params, low, param_type)} AND {self.bind(params, high, param_type)})'

    # -- clauses ------------------------------------------------------------

    def where_builder(self, where: Any, params: ParameterMap) -> str:
        """Compile a where mapping (conditions plus clause modifiers) or a Raw.

        Modifiers are appended in SQL order regardless of mapping order:
        WHERE, MATCH, GROUP BY, HAVING, ORDER BY, LIMIT, FOR UPDATE.
        """
        if where is None:
            return ''
        if isinstance(where, Raw):
            return ' ' + self.build_raw(where, params)
        if not isinstance(where, dict):
            raise InvalidArgumentError(f"Invalid where clause: {where!r}.")

        conditions = {key: value for key, value in where.items() if key not in CLAUSE_KEYS}
        clause = ''

        if conditions:
            clause = ' WHERE ' + self.condition_builder(conditions, params, ' AND')

        if 'MATCH' in where and self.dialect.supports_full_text:
            match = self.match_builder(where['MATCH'], params)
            if match:
                clause += (' AND ' if clause else ' WHERE ') + match

        if where.get('GROUP'):
            clause += ' GROUP BY ' + self.group_builder(where['GROUP'], params)

        if where.get('HAVING'):
            having = where['HAVING']
            if isinstance(having, Raw):
                clause += ' HAVING ' + self.build_raw(having, params)
            else:
                clause += ' HAVING ' + self.condition_builder(having, params, ' AND')

        if where.get('ORDER'):
            clause += ' ORDER BY ' + self.order_builder(where['ORDER'], params)

        if where.get('LIMIT') is not None:
            clause += self.limit_builder(where['LIMIT'])

        if where.get('FOR UPDATE'):
            clause += ' FOR UPDATE'

        return clause

    def match_builder(self, match: Any, params: ParameterMap) -> str:
        """MySQL full-text search: ``MATCH (cols) AGAINST (:p [MODE])``."""
        if not isinstance(match, dict) or 'columns' not in match or 'keyword' not in match:
            return ''
        columns = ', '.join(self.dialect.column_quote(column) for column in match['columns'])
        mode = MATCH_MODES.get(match.get('mode'))
        keyword = self.bind(params, str(match['keyword']), ParamType.STR)
        against = f'{keyword} {mode}' if mode else keyword
        return f'MATCH ({columns}) AGAINST ({against})'

    def group_builder(self, group: Any, params: ParameterMap) -> str:
        if isinstance(group, Raw):
            return self.build_raw(group, params)
        if isinstance(group, (list, tuple)):
            return ','.join(self.dialect.column_quote(column) for column in group)
        return self.dialect.column_quote(group)

    def order_builder(self, order: Any, params: ParameterMap) -> str:
        if isinstance(order, Raw):
            return self.build_raw(order, params)
        if isinstance(order, str):
            return self._order_item(order)

        stack = []
        for column, value in items(order):
            if isinstance(value, (list, tuple)):
                values = ','.join(
                    str(item) if classify(item) is ValueKind.INT else self.dialect.quote(str(item))
                    for item in value
                )
                stack.append(f'FIELD({self.dialect.column_quote(column)}, {values})')
            elif isinstance(column, int):
                stack.append(self.order_builder(value, params))
            elif value is None:
                stack.append(self.dialect.column_quote(column))
            elif isinstance(value, str) and value.upper() in ORDER_DIRECTIONS:
                stack.append(f'{self.dialect.column_quote(column)} {value.upper()}')
            else:
                raise InvalidArgumentError(f"Invalid order direction for {column}: {value!r}.")

        return ','.join(stack)

    def _order_item(self, text: str) -> str:
        parts = text.split()
        if len(parts) == 2 and parts[1].upper() in ORDER_DIRECTIONS:
            return f'{self.dialect.column_quote(parts[0])} {parts[1].upper()}'
        return self.dialect.column_quote(text.strip())

    @staticmethod
    def limit_builder(limit: Any) -> str:
        """``LIMIT n`` or, for an (offset, count) pair, ``LIMIT count OFFSET offset``."""
        if isinstance(limit, bool):
            raise InvalidArgumentError(f"Invalid limit: {limit!r}.")
        if isinstance(limit, int) or (isinstance(limit, str) and limit.isdigit()):
            return f' LIMIT {int(limit)}'
        if isinstance(limit, (list, tuple)) and len(limit) == 2:
            offset, count = (int(part) for part in limit)
            return f' LIMIT {count} OFFSET {offset}'
        raise InvalidArgumentError(f"Invalid limit: {limit!r}.")

    def join_builder(self, table: str, join: Dict, params: ParameterMap) -> str:
        """Compile ``{"[>]other(alias)": relation}`` entries.

        Args:
            table: Quoted name (or alias) of the main table
            join: Join mapping
            params: Parameter map receiving bound values
        """
        joins = []

        for key, relation in join.items():
            match = JOIN_KEY.match(key) if isinstance(key, str) else None
            if match is None:
                raise InvalidArgumentError(f"Invalid join key: {key!r}.")

            target = self.dialect.table_quote(match.group('alias') or match.group('table'))

            if isinstance(relation, str):
                predicate = f'USING ({self.dialect.column_quote(relation)})'
            elif isinstance(relation, (list, tuple)):
                columns = ', '.join(self.dialect.column_quote(column) for column in relation)
                predicate = f'USING ({columns})'
            elif isinstance(relation, dict):
                predicate = 'ON ' + self._join_on(table, target, relation, params)
            elif isinstance(relation, Raw):
                predicate = self.build_raw(relation, params)
            else:
                raise InvalidArgumentError(f"Invalid join relation for {key}: {relation!r}.")

            table_name = self.dialect.table_quote(match.group('table'))
            if match.group('alias'):
                table_name += f" AS {self.dialect.table_quote(match.group('alias'))}"

            joins.append(f"{JOIN_TYPES[match.group('join')]} JOIN {table_name} {predicate}")

        return ' '.join(joins)

    def _join_on(self, table: str, target: str, relation: Dict, params: ParameterMap) -> str:
        stack = []
        for left, right in relation.items():
            if left == 'AND' and isinstance(right, dict):
                stack.append(self.condition_builder(right, params, ' AND'))
                continue
            if '.' in left:
                left_column = self.dialect.column_quote(left)
            else:
                left_column = f'{table}.{self.dialect.column_quote(left)}'
            stack.append(f'{left_column} = {target}.{self.dialect.column_quote(right)}')
        return ' AND '.join(stack)

    # -- statements ---------------------------------------------------------

    def table_builder(self, table: str) -> Tuple[str, str]:
        """Return (FROM text, reference used to qualify join columns)."""
        match = TABLE_ALIAS.match(table)
        if match:
            name = self.dialect.table_quote(match.group('table'))
            alias = self.dialect.table_quote(match.group('alias'))
            return f'{name} AS {alias}', alias
        name = self.dialect.table_quote(table)
        return name, name

    def select_builder(
        self,
        table: str,
        params: ParameterMap,
        columns: Any = '*',
        where: Any = None,
        join: Optional[Dict] = None,
        column_fn: Any = None
    ) -> str:
        """
        Build a SELECT statement.

        Args:
            table: Table name, optionally ``"table(alias)"``
            params: Parameter map receiving bound values
            columns: Column specification (see column_builder)
            where: Where mapping or Raw
            join: Join mapping
            column_fn: Aggregate function name (COUNT, SUM, ...) or a Raw
                replacing the column list

        Returns:
            SQL text
        """
        table_query, reference = self.table_builder(table)

        joined = is_join(join)
        if joined:
            table_query += ' ' + self.join_builder(reference, join, params)
        elif join:
            raise InvalidArgumentError('Join keys must start with [>], [<], [<>] or [><].')

        if column_fn is None:
            column = self.column_builder(columns, params, True, joined)
        elif isinstance(column_fn, Raw):
            column = self.build_raw(column_fn, params)
        else:
            column = f'{column_fn}({self.column_builder(columns or "*", params, True)})'

        return f'SELECT {column} FROM {table_query}{self.where_builder(where, params)}'

    def exists_builder(self, table: str, params: ParameterMap,
                       where: Any = None, join: Optional[Dict] = None) -> str:
        """``SELECT EXISTS(SELECT 1 FROM ...)``."""
        inner = self.select_builder(table, params, where=where, join=join, column_fn=Raw('1'))
        return f'SELECT EXISTS({inner})'
