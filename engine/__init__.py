"""
=============================================
Execution engine: drivers, connections, pools.
=============================================

Modules:
    driver: Statement execution, retry policy and result mapping
    transaction: Begin/commit/rollback state machine with expiry
    connection: Fluent clause accumulation over a Driver
    registry: Connections per logical database name (master/slave)

Example:
    >>> from engine import Connection
    >>>
    >>> db = Connection({'driver': 'sqlite', 'dbname': ':memory:'}).activate()
    >>> db.table('account').where({'id': 1}).get()
"""

__version__ = "0.1.0"
__all__ = [
    'Driver', 'StatementResult',
    'TransactionManager',
    'Connection',
    'ConnectionRegistry', 'ConfigProvider',
]

from .connection import Connection
from .driver import Driver, StatementResult
from .registry import ConfigProvider, ConnectionRegistry
from .transaction import TransactionManager
