"""
=================================
Dialect rules shared by backends.
=================================

A dialect knows how one backend spells things: identifier quoting, string
literal escaping, how a connection URL is assembled from ``Options``, which
statements to run after connecting, and how the backend's exceptions map onto
the SQLSTATE classifier.

Dialects never hold a connection; the driver passes them whatever it needs.
"""

import re
from typing import Any, Dict, List, Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL, make_url

from core.config import Options
from core.exceptions import ErrorInfo, InvalidArgumentError
from drivers.sqlstate import StateConstant, classify

# Letter or underscore, then letters, digits and @ $ # - _
IDENTIFIER = r'[^\W\d][\w@$#\-]*'

TABLE_NAME = re.compile(rf'^{IDENTIFIER}$')
COLUMN_NAME = re.compile(rf'^{IDENTIFIER}(?:\.{IDENTIFIER})?$')

# SQLSTATE used when a wrapped DB-API exception carries none of its own
WRAPPER_SQLSTATES = (
    (sa_exc.IntegrityError, '23000'),
    (sa_exc.ProgrammingError, '42000'),
    (sa_exc.DataError, '22000'),
    (sa_exc.NotSupportedError, '0A000'),
    (sa_exc.InternalError, 'XX000'),
    (sa_exc.InterfaceError, '08003'),
    (sa_exc.OperationalError, '08006'),
)


def extract_sqlstate(error: BaseException) -> Optional[str]:
    """Pull a five-character SQLSTATE out of a DB-API exception, if present."""
    for attribute in ('sqlstate', 'pgcode'):
        value = getattr(error, attribute, None)
        if isinstance(value, str) and len(value) == 5:
            return value.upper()

    # pyodbc and several other drivers put the SQLSTATE first in args
    args = getattr(error, 'args', ())
    if args and isinstance(args[0], str) and re.match(r'^[0-9A-Z]{5}$', args[0]):
        return args[0]

    return None


class Dialect:
    """Base dialect; concrete backends override the class attributes."""

    name = 'generic'
    drivername: Optional[str] = None
    identifier_quote = '"'
    random_function = 'RANDOM()'
    supports_full_text = False

    def __init__(self, options: Options):
        self.options = options

    # -- connection ---------------------------------------------------------

    def url(self) -> URL:
        """Build the SQLAlchemy URL (the DSN) for these options."""
        if self.options.dsn:
            return make_url(self.options.dsn)
        return URL.create(
            drivername=self.drivername,
            username=self.options.username,
            password=self.options.password,
            host=self.options.host,
            port=self.options.port,
            database=self.options.dbname,
            query=self.url_query(),
        )

    def url_query(self) -> Dict[str, str]:
        return {}

    def dsn(self) -> str:
        """Printable DSN with the password masked."""
        return self.url().render_as_string(hide_password=True)

    def connect_args(self) -> Dict[str, Any]:
        """Keyword arguments handed to the DB-API ``connect()``."""
        return dict(self.options.option)

    def connect_commands(self) -> List[str]:
        """Statements executed right after a connection is opened."""
        return list(self.options.command)

    def last_insert_id_sql(self) -> Optional[str]:
        """Statement returning the last generated id, when the cursor cannot."""
        return None

    # -- quoting ------------------------------------------------------------

    def quote(self, string: str) -> str:
        """Quote a string literal for inline use in a statement."""
        return "'" + string.replace("'", "''") + "'"

    def quote_identifier(self, name: str) -> str:
        q = self.identifier_quote
        return q + name.replace(q, q + q) + q

    def table_quote(self, table: str) -> str:
        """Quote a table name, applying the configured prefix.

        Raises:
            InvalidArgumentError: If the name is not a plain identifier
        """
        if TABLE_NAME.match(table or ''):
            return self.quote_identifier(self.options.prefix + table)
        raise InvalidArgumentError(f"Incorrect table name: {table}.")

    def column_quote(self, column: str) -> str:
        """Quote ``column`` or ``table.column``; the table part gets the prefix.

        Raises:
            InvalidArgumentError: If the name is not a plain identifier
        """
        if not COLUMN_NAME.match(column or ''):
            raise InvalidArgumentError(f"Incorrect column name: {column}.")
        if '.' in column:
            table, name = column.split('.', 1)
            return self.quote_identifier(self.options.prefix + table) + '.' + self.quote_identifier(name)
        return self.quote_identifier(column)

    # -- errors -------------------------------------------------------------

    def error_info(self, error: BaseException) -> ErrorInfo:
        """Reduce a SQLAlchemy or DB-API exception to an ErrorInfo triple."""
        orig = getattr(error, 'orig', None) or error
        sqlstate = extract_sqlstate(orig)
        if sqlstate is None:
            sqlstate = self.fallback_sqlstate(error, orig)
        message = str(orig).strip() or type(orig).__name__
        return ErrorInfo(sqlstate, self.error_code(orig), message)

    def error_code(self, orig: BaseException) -> Optional[object]:
        args = getattr(orig, 'args', ())
        if args and isinstance(args[0], int):
            return args[0]
        return None

    def fallback_sqlstate(self, error: BaseException, orig: BaseException) -> str:
        if getattr(error, 'connection_invalidated', False):
            return '08003'
        if isinstance(error, sa_exc.ResourceClosedError):
            return '08003'
        if isinstance(error, (sa_exc.ArgumentError, sa_exc.CompileError)):
            return 'HY093'
        for wrapper, sqlstate in WRAPPER_SQLSTATES:
            if isinstance(error, wrapper):
                return sqlstate
        return 'HY000'

    def recognize(self, info: Optional[ErrorInfo]) -> StateConstant:
        """Classify an ErrorInfo; ``None`` means success."""
        if info is None:
            return StateConstant.SUCCESS
        return classify(info.sqlstate)
