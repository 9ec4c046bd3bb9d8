"""
==================================
Base class for table-bound models.
==================================

A model names its logical database and table; connections come from a
``ConnectionRegistry`` (passed in, or the module default installed once by
the application with ``set_default_registry()``).

Example:
    >>> class AccountModel(AbstractModel):
    ...     database = 'accounts'
    ...     table_name = 'account'
    ...     table_log = 'account_log'
    >>>
    >>> model = AccountModel(registry)
    >>> model.db_name().table(model.table()).where({'id': 1}).get()
    >>> model.table('log')
    'account_log'
"""

from typing import Optional

from core.exceptions import ConfigurationError
from engine.connection import Connection
from engine.registry import ConnectionRegistry

_default_registry: Optional[ConnectionRegistry] = None


def set_default_registry(registry: Optional[ConnectionRegistry]) -> None:
    global _default_registry
    _default_registry = registry


def get_default_registry() -> Optional[ConnectionRegistry]:
    return _default_registry


class AbstractModel:
    """
    Table-bound access to a logical database.

    Attributes:
        database: Logical database name resolved by the registry
        table_name: Main table of the model
    """

    database: str = ''
    table_name: str = ''

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        registry = registry or _default_registry
        if registry is None:
            raise ConfigurationError(f'No connection registry for {type(self).__name__}.')
        self.registry = registry
        self._slave = False

    def slave(self, flag: bool) -> 'AbstractModel':
        """Route ``db_name()`` without arguments to the slave pool."""
        self._slave = flag
        return self

    def db_name(self, master: Optional[bool] = None) -> Connection:
        """
        Connection for this model's database.

        Args:
            master: Force the master (True) or slave (False) pool; defaults
                to the pool selected with ``slave()``
        """
        if master is None:
            master = not self._slave
        return self.registry.connection(self.database, master)

    def table(self, name: str = '') -> str:
        """Main table name, or the ``table_<name>`` attribute."""
        if not name:
            return self.table_name
        try:
            return getattr(self, f'table_{name}')
        except AttributeError:
            raise ConfigurationError(f'{type(self).__name__} has no table {name!r}.')
