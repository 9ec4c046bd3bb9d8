"""
=====================================
Fluent query building over a Driver.
=====================================

A ``Connection`` accumulates clause state (table, join, fields, where, order,
limit, group, having) through chained setters and hands it to its Driver
when a terminal operation runs. Every terminal operation resets the state
with ``cleanup()``; the table name is kept so a model can issue several
statements against it.

The Driver is built lazily by ``activate()``. Activation failures are kept
in ``get_error()``; until a Connection is activated every operation returns
False.

Example:
    >>> db = Connection({'driver': 'sqlite', 'dbname': ':memory:'}).activate()
    >>> db.table('account').field('id,name').where({'age[>]': 18}).order('id DESC').limit(10).select()
"""

import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from core.config import Options
from core.exceptions import ConfigurationError, DatabaseError, InvalidArgumentError
from engine.driver import Driver
from sql.params import BoundParam, ParameterMap, type_map

logger = logging.getLogger(__name__)

# keys such as "age[+]" lose their operator tag when insert(filter=True)
OPERATOR_KEY = re.compile(r'^(?P<column>.*?)\[(?:\+|-|\*|/|>=?|<=?|!|<>|><|!?~)\]$')


class Connection:
    """
    Clause-state holder bound to at most one Driver.

    Args:
        config: Options or configuration mapping (can be supplied later by
            calling the instance)
        logger: Logger handed to the Driver
    """

    def __init__(self, config: Any = None, logger: Optional[logging.Logger] = None):
        self._config = config
        self._logger = logger
        self._driver: Optional[Driver] = None
        self._error: Optional[str] = None

        self._table: Optional[str] = None
        self.cleanup()

    def __call__(self, config: Any, logger: Optional[logging.Logger] = None) -> 'Connection':
        return self.configure(config, logger)

    def configure(self, config: Any, logger: Optional[logging.Logger] = None) -> 'Connection':
        """Validate and store the configuration used by ``activate()``.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self._config = Options.from_mapping(config)
        self._logger = logger or self._logger
        return self

    def activate(self) -> 'Connection':
        """Build the Driver once; failures are kept in ``get_error()``."""
        if self._driver is not None:
            return self
        if not self._config:
            self._error = 'config error'
            return self
        try:
            self._driver = Driver(self._config, self._logger)
            self._error = None
        except SQLAlchemyError as error:
            self._error = f'db server exception : {error}'
            logger.error(f"Failed to activate connection: {error}")
        except DatabaseError as error:
            self._error = f'exception : {error}'
            logger.error(f"Failed to activate connection: {error}")
        return self

    def is_activated(self) -> bool:
        return self._error is None and self._driver is not None

    def get_error(self) -> Optional[str]:
        return self._error

    def driver(self) -> Optional[Driver]:
        return self._driver

    def close(self) -> None:
        """Release the Driver's connection and forget the Driver."""
        if self._driver is not None:
            self._driver.close()
            self._driver = None

    # -- build state --------------------------------------------------------

    def table(self, table: str) -> 'Connection':
        return self.from_(table)

    def from_(self, table: str) -> 'Connection':
        self._table = table
        return self

    def join(self, join: Dict[str, Any]) -> 'Connection':
        merged = dict(self._join)
        for key, value in join.items():
            if isinstance(merged.get(key), dict) and isinstance(value, dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        self._join = merged
        return self

    def field(self, field: Union[str, List[Any], Dict[str, Any]]) -> 'Connection':
        """Set the columns; a comma-separated string is split, lists merge."""
        if isinstance(field, str):
            fields = [part.strip() for part in field.split(',')]
            if len(fields) > 1:
                field = fields
        if isinstance(field, list) and isinstance(self._field, list):
            self._field = self._field + field
            return self
        self._field = field
        return self

    def where(self, where: Dict[Any, Any]) -> 'Connection':
        self._where = {**self._where, **where}
        return self

    def order(self, order: Union[str, Dict[str, Any], List[Any]]) -> 'Connection':
        """Accepts a mapping/list, a ``"column DIR"`` string or a bare column."""
        if isinstance(order, (dict, list)):
            self._order = order
            return self
        if isinstance(order, str):
            parts = order.split()
            if parts:
                current = self._order if isinstance(self._order, dict) else {}
                self._order = {**current, parts[0]: parts[1] if len(parts) > 1 else None}
        return self

    def limit(self, offset: Union[int, str], limit: Optional[int] = None) -> 'Connection':
        """``limit(10)``, ``limit(20, 10)`` or ``limit("20,10")``: offset first."""
        if isinstance(offset, str) and ',' in offset:
            first, second = offset.split(',', 1)
            offset, limit = int(first), int(second)
        if limit is None:
            offset, limit = 0, offset
        self._limit = [int(offset), int(limit)]
        return self

    def group(self, group: Union[str, List[str]]) -> 'Connection':
        if isinstance(group, list) and isinstance(self._group, list):
            self._group = self._group + group
            return self
        self._group = group
        return self

    def having(self, having: Any) -> 'Connection':
        self._having = having
        return self

    def cleanup(self) -> None:
        """Reset every clause to its default; the table is kept."""
        self._join: Dict[str, Any] = {}
        self._field: Any = '*'
        self._where: Dict[Any, Any] = {}
        self._order: Any = None
        self._limit: Optional[List[int]] = None
        self._group: Any = None
        self._having: Any = None

    def get_params(self) -> Dict[str, Any]:
        return {
            'table': self._table,
            'join': self._join,
            'field': self._field,
            'where': self._where,
            'order': self._order,
            'limit': self._limit,
            'group': self._group,
            'having': self._having,
        }

    def set_params(self, params: Dict[str, Any]) -> None:
        """Restore state saved with ``get_params()``; empty entries are skipped."""
        for key in ('table', 'join', 'field', 'where', 'order', 'limit', 'group', 'having'):
            if params.get(key):
                setattr(self, f'_{key}', params[key])

    def _get_where(self, extra: Optional[Dict[str, Any]] = None) -> Dict[Any, Any]:
        where = dict(self._where)
        if self._order:
            where['ORDER'] = self._order
        if self._limit:
            offset, count = self._limit
            where['LIMIT'] = count if offset == 0 else (offset, count)
        if self._group:
            where['GROUP'] = self._group
        if self._having:
            where['HAVING'] = self._having
        if extra:
            where.update(extra)
        return where

    def _join_or_none(self) -> Optional[Dict[str, Any]]:
        return self._join or None

    # -- reads --------------------------------------------------------------

    def select(self):
        if not self.is_activated():
            return False
        try:
            result = self._driver.select(self._table, self._field, self._get_where(), self._join_or_none())
        finally:
            self.cleanup()
        return False if result is None else result

    def find(self, lock: bool = False):
        """First matching row; ``lock`` appends ``FOR UPDATE``."""
        if not self.is_activated():
            return False
        self.limit(1)
        where = self._get_where({'FOR UPDATE': True} if lock else None)
        try:
            result = self._driver.select(self._table, self._field, where, self._join_or_none())
        finally:
            self.cleanup()
        if result is None:
            return False
        if isinstance(result, dict):
            return next(iter(result.values()), None)
        return result[0] if result else None

    def get(self, lock: bool = False):
        if not self.is_activated():
            return False
        where = self._get_where({'FOR UPDATE': True} if lock else None)
        try:
            return self._driver.get(self._table, self._field, where, self._join_or_none())
        finally:
            self.cleanup()

    def has(self):
        if not self.is_activated():
            return False
        try:
            result = self._driver.has(self._table, self._get_where(), self._join_or_none())
        finally:
            self.cleanup()
        return False if result is None else result

    def _aggregate(self, function: str, column: Any):
        if not self.is_activated():
            return False
        try:
            return getattr(self._driver, function)(
                self._table, column, self._get_where(), self._join_or_none()
            )
        finally:
            self.cleanup()

    def count(self):
        column = None if self._field == '*' else self._field
        return self._aggregate('count', column)

    def max(self):
        return self._aggregate('max', self._field)

    def min(self):
        return self._aggregate('min', self._field)

    def avg(self):
        return self._aggregate('avg', self._field)

    def sum(self):
        return self._aggregate('sum', self._field)

    def sum_group(self):
        """``SUM`` of every field separately: ``{field: total}``."""
        if not self.is_activated() or not isinstance(self._field, list):
            self.cleanup()
            return False
        saved = self.get_params()
        data = {}
        for column in saved['field']:
            self.set_params(saved)
            self._field = [column]
            data[column] = self.sum()
        return data

    # -- writes -------------------------------------------------------------

    def insert(self, data: Any, filter: bool = False):
        """
        Insert rows and return the generated id.

        Args:
            data: Row mapping or list of row mappings
            filter: Strip operator tags such as ``[+]`` from the keys
        """
        if not self.is_activated():
            return False
        if filter:
            data = self._filter_keys(data)
        try:
            result = self._driver.insert(self._table, data)
            if result is None:
                return False
            return self._driver.id()
        finally:
            self.cleanup()

    @staticmethod
    def _filter_keys(data: Any) -> Any:
        if isinstance(data, list):
            return [Connection._filter_keys(row) for row in data]
        filtered = {}
        for key, value in data.items():
            match = OPERATOR_KEY.match(key)
            filtered[match.group('column') if match else key] = value
        return filtered

    def update(self, data: Dict[str, Any]):
        """Returns the affected row count, or False."""
        if not self.is_activated():
            return False
        try:
            result = self._driver.update(self._table, data, self._get_where())
        finally:
            self.cleanup()
        return False if result is None else result.rowcount

    def delete(self):
        if not self.is_activated():
            return False
        try:
            result = self._driver.delete(self._table, self._get_where())
        finally:
            self.cleanup()
        return False if result is None else result.rowcount

    def replace(self, columns: Dict[str, Dict[str, str]]):
        if not self.is_activated():
            return False
        try:
            result = self._driver.replace(self._table, columns, self._get_where())
        finally:
            self.cleanup()
        return False if result is None else result

    def create(self, columns: Any, options: Any = None):
        if not self.is_activated():
            return False
        try:
            result = self._driver.create(self._table, columns, options)
        finally:
            self.cleanup()
        return False if result is None else result

    def drop(self):
        if not self.is_activated():
            return False
        try:
            result = self._driver.drop(self._table)
        finally:
            self.cleanup()
        return False if result is None else result

    # -- passthrough --------------------------------------------------------

    def info(self):
        return self._driver.info() if self.is_activated() else False

    def error(self):
        return self._driver.error() if self.is_activated() else False

    def last(self):
        return self._driver.last() if self.is_activated() else False

    def log(self):
        return self._driver.log() if self.is_activated() else False

    def quote(self, string: str):
        return self._driver.quote(string) if self.is_activated() else False

    def query(self, statement: str, params: Optional[Dict[str, Any]] = None):
        return self._driver.query(statement, params) if self.is_activated() else False

    def exec(self, statement: str, params: Optional[Dict[str, Any]] = None):
        """Run ``statement`` as written; plain values in ``params`` are typed and bound."""
        if not self.is_activated():
            return False
        bound: ParameterMap = {}
        for name, value in (params or {}).items():
            name = name[1:] if name.startswith(':') else name
            try:
                bound[name] = value if isinstance(value, BoundParam) else type_map(value)
            except ValueError as error:
                raise InvalidArgumentError(f"Parameter {name!r}: {error}") from error
        return self._driver.exec(statement, bound)

    # -- transactions -------------------------------------------------------

    def begin_transaction(self, timeout: Optional[float] = None) -> bool:
        """Begin; ``timeout`` seconds from now becomes the expiry."""
        if not self.is_activated():
            return False
        expire_at = None if timeout is None else time.time() + timeout
        return self._driver.transactions.begin(expire_at)

    def commit(self) -> bool:
        return self._driver.transactions.commit() if self.is_activated() else False

    def rollback(self) -> bool:
        return self._driver.transactions.rollback() if self.is_activated() else False

    @contextmanager
    def transaction(self, timeout: Optional[float] = None):
        """Context manager committing on success, rolling back on error.

        Raises:
            ConfigurationError: If the connection is not activated
        """
        if not self.is_activated():
            raise ConfigurationError(f'Connection is not activated: {self._error}')
        expire_at = None if timeout is None else time.time() + timeout
        with self._driver.transactions.transaction(expire_at):
            yield self

    def action(self, actions: Callable[['Connection'], Any], timeout: Optional[float] = None) -> bool:
        """Run ``actions(self)`` in a transaction; returning False rolls back."""
        if not self.is_activated():
            return False
        expire_at = None if timeout is None else time.time() + timeout
        return self._driver.transactions.action(lambda _driver: actions(self), expire_at)
