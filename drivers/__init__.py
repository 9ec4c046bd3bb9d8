"""
=================================
Backend dialects and their registry.
=================================

Maps the ``driver`` key of ``Options`` to a Dialect class.

Modules:
    base: Shared quoting, URL construction and error extraction
    sqlstate: SQLSTATE classifier and StateConstant
    mysql / pgsql / sqlite / odbc: Concrete dialects

Example:
    >>> from core.config import Options
    >>> from drivers import factory
    >>>
    >>> dialect = factory(Options(driver='sqlite', dbname=':memory:'))
    >>> dialect.table_quote('account')
    '"account"'
"""

from typing import Dict, Type

from core.config import Options
from core.exceptions import ConfigurationError
from drivers.base import Dialect
from drivers.mysql import MySQLDialect
from drivers.odbc import OdbcDialect
from drivers.pgsql import PostgresDialect
from drivers.sqlite import SQLiteDialect
from drivers.sqlstate import StateConstant, classify

__version__ = "0.1.0"
__all__ = [
    'Dialect', 'MySQLDialect', 'PostgresDialect', 'SQLiteDialect', 'OdbcDialect',
    'StateConstant', 'classify', 'register', 'factory', 'DIALECTS',
]

DIALECTS: Dict[str, Type[Dialect]] = {
    'mysql': MySQLDialect,
    'mariadb': MySQLDialect,
    'pgsql': PostgresDialect,
    'sqlite': SQLiteDialect,
    'odbc': OdbcDialect,
}


def register(driver: str, dialect_class: Type[Dialect]) -> bool:
    """Register a dialect class under a driver key.

    Returns:
        False when ``dialect_class`` is not a Dialect subclass
    """
    if isinstance(dialect_class, type) and issubclass(dialect_class, Dialect):
        DIALECTS[driver] = dialect_class
        return True
    return False


def factory(options: Options) -> Dialect:
    """Instantiate the dialect for ``options.driver``.

    Raises:
        ConfigurationError: If no dialect is registered for the driver
    """
    dialect_class = DIALECTS.get(options.driver)
    if dialect_class is None:
        raise ConfigurationError(f"Unregistered {options.driver}.")
    return dialect_class(options)
