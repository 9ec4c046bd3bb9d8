"""
========================================
Statement execution over one connection.
========================================

A ``Driver`` owns one SQLAlchemy connection (opened lazily, never pooled),
the query builder for its dialect and a bounded execution log. Every
operation compiles its statement, runs it through ``exec()`` and maps the
result.

Execution policy:
- Failures are classified by SQLSTATE. A lost connection is retried up to
  three times with a short sleep, but never inside an explicit transaction.
- Outside a transaction each statement is committed (or rolled back on
  failure) on its own.
- Failures are kept as the driver's last error. Depending on ``options.error``
  they are additionally raised (``exception``) or warned (``warning``).
- In debug mode statements are only rendered into ``query_string``; nothing
  reaches the backend.

Example:
    >>> driver = Driver({'driver': 'sqlite', 'dbname': ':memory:'})
    >>> driver.create('account', {'id': 'INTEGER PRIMARY KEY', 'name': 'TEXT'})
    >>> driver.insert('account', {'name': 'foo'})
    >>> driver.select('account', ['id [Int]', 'name'])
    [{'id': 1, 'name': 'foo'}]
"""

import logging
import time
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import Options
from core.exceptions import BackendError, DatabaseError, ErrorInfo, InvalidArgumentError
from core.logger import get_driver_logger
from drivers import StateConstant, factory
from engine.transaction import TransactionManager
from logs.execution_log import ExecutionLog
from sql.ddl import create_builder, drop_builder
from sql.dml import delete_builder, insert_builder, replace_builder, update_builder
from sql.params import BoundParam, ParameterMap, PlaceholderCounter, bind_parameters, render
from sql.query_builder import QueryBuilder
from sql.raw import Raw
from sql.result_mapper import column_map_builder, decode, map_rows
from utils.database_utils import create_sqlalchemy_engine

MAX_RECONNECTS = 3
RECONNECT_BACKOFF = 0.0005

Hook = Optional[Callable[['Driver'], None]]


@dataclass
class StatementResult:
    """Outcome of one executed statement."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = -1
    lastrowid: Any = None
    returns_rows: bool = False

    @classmethod
    def from_cursor(cls, cursor) -> 'StatementResult':
        returns_rows = bool(cursor.returns_rows)
        rows = [dict(row) for row in cursor.mappings().all()] if returns_rows else []
        return cls(
            rows=rows,
            rowcount=cursor.rowcount,
            lastrowid=None if returns_rows else getattr(cursor, 'lastrowid', None),
            returns_rows=returns_rows,
        )

    def scalar(self) -> Any:
        """First column of the first row, or None."""
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()), None)

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


class Driver:
    """
    Executes compiled statements against one backend.

    Args:
        options: Options or a configuration mapping
        logger: Logger for execution events (defaults to ``database.<driver>``)
        engine: Pre-built SQLAlchemy engine; built from ``options`` when omitted

    Raises:
        ConfigurationError: If the options are invalid or the driver unknown
        BackendError: If the initial connection cannot be opened
    """

    def __init__(self, options: Any, logger: Optional[logging.Logger] = None, engine=None):
        self.options = Options.from_mapping(options)
        self.dialect = factory(self.options)
        self.logger = logger or get_driver_logger(self.dialect.name)
        self.builder = QueryBuilder(self.dialect, PlaceholderCounter())
        self.transactions = TransactionManager(self)
        self.engine = engine
        self.connection = None
        self.query_string: Optional[str] = None
        self.statement: Optional[StatementResult] = None

        self.on_before_prepare: Hook = None
        self.on_before_bind: Hook = None
        self.on_before_exec: Hook = None
        self.on_after_exec: Hook = None

        self._log = ExecutionLog(self.options.log_size)
        self._error: Optional[ErrorInfo] = None
        self._failure: Optional[DatabaseError] = None
        self._count = 0

        try:
            self.reconnect()
        except SQLAlchemyError as error:
            info = self.dialect.error_info(error)
            self.logger.error('Database Connect Error.', extra={'error_info': info})
            raise BackendError(info, self.dialect.recognize(info)) from error

    # -- connection ---------------------------------------------------------

    def reconnect(self) -> None:
        """Open the connection if there is none; runs the connect commands."""
        if self.is_debug() or self.connection is not None:
            return

        if self.engine is None:
            self.engine = create_sqlalchemy_engine(self.options, self.dialect)

        connection = self.engine.connect()
        try:
            for command in self.dialect.connect_commands():
                connection.exec_driver_sql(command)
            connection.commit()
        except SQLAlchemyError:
            connection.close()
            raise
        self.connection = connection

    def close(self) -> None:
        """Roll back any open transaction and release the connection."""
        self.transactions.active = False
        self.transactions.expire_at = None
        connection, self.connection = self.connection, None
        if connection is None:
            return

        try:
            if connection.in_transaction():
                connection.rollback()
        except SQLAlchemyError as error:
            self.logger.warning(f"Rollback on close failed: {error}")
        try:
            connection.close()
        except SQLAlchemyError as error:
            self.logger.warning(f"Closing connection failed: {error}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def is_debug(self) -> bool:
        return self.options.debug

    def debug(self) -> 'Driver':
        """Switch to debug mode: statements are rendered, not executed."""
        self.options = self.options.with_debug()
        return self

    # -- errors -------------------------------------------------------------

    def reset_error(self) -> None:
        self._error = None
        self._failure = None

    def record(self, error: BaseException) -> StateConstant:
        """Store a backend failure as the last error and classify it."""
        info = self.dialect.error_info(error)
        state = self.dialect.recognize(info)
        failure = BackendError(info, state)
        failure.__cause__ = error
        self.record_failure(failure, info)
        return state

    def record_failure(self, failure: DatabaseError, info: ErrorInfo) -> None:
        self._error = info
        self._failure = failure

    def error(self) -> Optional[ErrorInfo]:
        """Last error triple, or None when the last operation succeeded."""
        return self._error

    def failure(self) -> Optional[DatabaseError]:
        return self._failure

    def report(self) -> None:
        """Surface the last failure according to ``options.error``."""
        if self._failure is None:
            return
        if self.options.error == 'exception':
            raise self._failure
        if self.options.error == 'warning':
            warnings.warn(str(self._failure), RuntimeWarning, stacklevel=3)

    def emit(self, action: str) -> None:
        """Log one execution event."""
        if self._error is None:
            if self.logger.isEnabledFor(logging.DEBUG):
                self.logger.debug(f'Database {action} Success.', extra={'statement': self.last()})
        else:
            self.logger.error(
                f'Database {action} Error.',
                extra={'statement': self.last(), 'error_info': self._error}
            )

    # -- execution ----------------------------------------------------------

    def _run_hook(self, hook: Hook) -> None:
        if hook is not None:
            hook(self)

    def exec(self, statement: str, params: Optional[ParameterMap] = None) -> Optional[StatementResult]:
        """
        Execute a compiled statement with its parameter map.

        Returns:
            StatementResult, or None on failure and in debug mode

        Raises:
            ExpiredTransactionError: If the open transaction has expired
            InvalidArgumentError: If a parameter is not a BoundParam
            BackendError: On failure when ``options.error`` is 'exception'
        """
        params = {} if params is None else params
        for name, param in params.items():
            if not isinstance(param, BoundParam):
                raise InvalidArgumentError(f"Parameter {name!r} is not bound; use query() for plain values.")
        self.transactions.check_expiry()
        self._log.append(statement, params)

        while True:
            self.reset_error()
            self.statement = None
            try:
                self.reconnect()
                if self.is_debug():
                    self.query_string = render(statement, params, self.dialect.quote)
                    return None
                self.statement = self._execute(statement, params)
                self._count = 0
                return self.statement
            except SQLAlchemyError as error:
                state = self.record(error)
                if (state is StateConstant.RECONNECT and self._count < MAX_RECONNECTS
                        and not self.transactions.active):
                    self._count += 1
                    self.close()
                    time.sleep(RECONNECT_BACKOFF)
                    continue
                self._count = 0
                self._after_failure(state)
            finally:
                self.emit('Execute')
                self._run_hook(self.on_after_exec)

            self.report()
            return None

    def _execute(self, statement: str, params: ParameterMap) -> StatementResult:
        self._run_hook(self.on_before_prepare)
        clause = text(statement)
        self._run_hook(self.on_before_bind)
        clause = clause.bindparams(*bind_parameters(params))
        self._run_hook(self.on_before_exec)

        result = StatementResult.from_cursor(self.connection.execute(clause))
        if not self.transactions.active:
            self.connection.commit()
        return result

    def _after_failure(self, state: StateConstant) -> None:
        if state in (StateConstant.INTERRUPT, StateConstant.RECONNECT):
            self.close()
        elif not self.transactions.active and self.connection is not None:
            try:
                self.connection.rollback()
            except SQLAlchemyError as error:
                self.logger.warning(f"Rollback after failed statement failed: {error}")
                self.close()

    def query(self, statement: str, params: Optional[Mapping[str, Any]] = None) -> Optional[StatementResult]:
        """Run a raw statement; ``<table>`` markers are quoted, params bound."""
        bound: ParameterMap = {}
        sql = self.builder.build_raw(Raw(statement, dict(params or {})), bound)
        return self.exec(sql, bound)

    # -- reads --------------------------------------------------------------

    def select(self, table: str, columns: Any = '*', where: Any = None, join: Optional[Dict] = None):
        """
        Fetch rows.

        Returns:
            List of decoded rows; a list of values when ``columns`` is a
            single column name; a dict for a single grouped root column;
            None on failure
        """
        params: ParameterMap = {}
        sql = self.builder.select_builder(table, params, columns, where, join)
        result = self.exec(sql, params)
        if result is None:
            return None
        return self._map(result.rows, columns)

    @staticmethod
    def _map(rows: List[Dict[str, Any]], columns: Any):
        if isinstance(columns, str) and columns != '*':
            column_key, type_tag = column_map_builder(columns)[columns]
            return [decode(row.get(column_key), type_tag) for row in rows]
        return map_rows(rows, columns)

    def get(self, table: str, columns: Any = '*', where: Any = None, join: Optional[Dict] = None):
        """Fetch the first matching row (or value); None when absent or failed."""
        where = self._with_clause(where, 'LIMIT', 1)
        mapped = self.select(table, columns, where, join)
        if not mapped:
            return None
        if isinstance(mapped, dict):
            return next(iter(mapped.values()))
        return mapped[0]

    def has(self, table: str, where: Any = None, join: Optional[Dict] = None) -> Optional[bool]:
        params: ParameterMap = {}
        sql = self.builder.exists_builder(table, params, where, join)
        result = self.exec(sql, params)
        if result is None:
            return None
        value = result.scalar()
        return value is not None and str(value) not in ('0', 'False', 'false', '')

    def rand(self, table: str, columns: Any = '*', where: Any = None, join: Optional[Dict] = None):
        """Select rows in random order."""
        where = self._with_clause(where, 'ORDER', Raw(self.dialect.random_function))
        return self.select(table, columns, where, join)

    @staticmethod
    def _with_clause(where: Any, key: str, value: Any) -> Any:
        if isinstance(where, Raw):
            return where
        merged = dict(where or {})
        merged[key] = value
        return merged

    def _aggregate(self, function: str, table: str, column: Any, where: Any, join: Optional[Dict]):
        params: ParameterMap = {}
        sql = self.builder.select_builder(table, params, column or '*', where, join, column_fn=function)
        result = self.exec(sql, params)
        return None if result is None else result.scalar()

    def count(self, table: str, column: Any = None, where: Any = None, join: Optional[Dict] = None) -> Optional[int]:
        value = self._aggregate('COUNT', table, column, where, join)
        return None if value is None else int(value)

    def avg(self, table: str, column: Any = None, where: Any = None, join: Optional[Dict] = None):
        return self._aggregate('AVG', table, column, where, join)

    def max(self, table: str, column: Any = None, where: Any = None, join: Optional[Dict] = None):
        return self._aggregate('MAX', table, column, where, join)

    def min(self, table: str, column: Any = None, where: Any = None, join: Optional[Dict] = None):
        return self._aggregate('MIN', table, column, where, join)

    def sum(self, table: str, column: Any = None, where: Any = None, join: Optional[Dict] = None):
        return self._aggregate('SUM', table, column, where, join)

    # -- writes -------------------------------------------------------------

    def insert(self, table: str, values: Any) -> Optional[StatementResult]:
        params: ParameterMap = {}
        return self.exec(insert_builder(self.builder, table, values, params), params)

    def update(self, table: str, data: Dict[str, Any], where: Any = None) -> Optional[StatementResult]:
        params: ParameterMap = {}
        return self.exec(update_builder(self.builder, table, data, where, params), params)

    def delete(self, table: str, where: Any) -> Optional[StatementResult]:
        params: ParameterMap = {}
        return self.exec(delete_builder(self.builder, table, where, params), params)

    def replace(self, table: str, columns: Dict[str, Dict[str, str]], where: Any = None) -> Optional[StatementResult]:
        params: ParameterMap = {}
        return self.exec(replace_builder(self.builder, table, columns, where, params), params)

    def create(self, table: str, columns: Any, options: Any = None) -> Optional[StatementResult]:
        return self.exec(create_builder(self.builder, table, columns, options), {})

    def drop(self, table: str) -> Optional[StatementResult]:
        return self.exec(drop_builder(self.builder, table), {})

    def id(self) -> Any:
        """Id generated by the last INSERT, or None.

        The sequence lookup runs on the raw connection, so the execution log,
        ``last()`` and the error state still describe the INSERT.
        """
        if self.is_debug():
            return None
        sql = self.dialect.last_insert_id_sql()
        if not sql:
            return None if self.statement is None else self.statement.lastrowid
        if self.connection is None:
            return None
        try:
            value = StatementResult.from_cursor(self.connection.execute(text(sql))).scalar()
            if not self.transactions.active:
                self.connection.commit()
            return value
        except SQLAlchemyError as error:
            self.logger.warning(f"Last insert id lookup failed: {error}")
            return None

    # -- introspection ------------------------------------------------------

    def last(self) -> Optional[str]:
        """The most recently executed statement with its values inlined."""
        entry = self._log.last()
        if entry is None:
            return None
        return render(entry.statement, entry.params, self.dialect.quote)

    def log(self) -> List[str]:
        return [render(entry.statement, entry.params, self.dialect.quote) for entry in self._log]

    def reset_log(self) -> None:
        self._log.reset()

    def info(self) -> Dict[str, Any]:
        """Server, client and connection details."""
        output = {
            'server': None,
            'driver': self.dialect.name,
            'client': None,
            'version': None,
            'connection': 'closed',
            'dsn': self.dialect.dsn(),
        }
        if self.engine is not None:
            sa_dialect = self.engine.dialect
            output['server'] = sa_dialect.name
            dbapi = getattr(sa_dialect, 'dbapi', None)
            output['client'] = getattr(dbapi, '__version__', None) or getattr(dbapi, 'sqlite_version', None)
        if self.connection is not None:
            version = self.connection.dialect.server_version_info
            if version:
                output['version'] = '.'.join(str(part) for part in version)
            output['connection'] = 'closed' if self.connection.closed else 'open'
        return output

    def quote(self, string: str) -> str:
        return self.dialect.quote(string)

    def table_quote(self, table: str) -> str:
        return self.dialect.table_quote(table)

    def column_quote(self, column: str) -> str:
        return self.dialect.column_quote(column)

    @staticmethod
    def raw(value: str, params: Optional[Dict[str, Any]] = None) -> Raw:
        return Raw(value, params)
