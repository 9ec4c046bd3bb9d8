"""
==========================
Utility Functions Package.
==========================

Native client helpers shared by the engine and the CLI.

Modules:
    database_utils: Engine construction and availability checks
"""

__version__ = "0.1.0"
__all__ = [
    'DatabaseConnectionError',
    'wait_for_database',
    'check_database_available',
    'get_connection_string',
    'create_sqlalchemy_engine',
]

from .database_utils import (
    DatabaseConnectionError,
    check_database_available,
    create_sqlalchemy_engine,
    get_connection_string,
    wait_for_database,
)
