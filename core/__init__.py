"""
========================================
Core infrastructure for the access layer.
========================================

Configuration, logging and the error taxonomy shared by every package.

Modules:
    config: Connection options and environment-backed configuration
    logger: Logging configuration and utilities
    exceptions: Error taxonomy and the backend error triple
"""

__version__ = "0.1.0"
__all__ = [
    'Options', 'EnvConfigProvider',
    'get_logger', 'setup_logging', 'get_driver_logger',
    'DatabaseError', 'ConfigurationError', 'InvalidArgumentError', 'BackendError',
    'ExpiredTransactionError', 'TransactionStateError', 'ErrorInfo',
]

from core.config import EnvConfigProvider, Options
from core.exceptions import (
    BackendError,
    ConfigurationError,
    DatabaseError,
    ErrorInfo,
    ExpiredTransactionError,
    InvalidArgumentError,
    TransactionStateError,
)
from core.logger import get_driver_logger, get_logger, setup_logging
