"""
=====================================
Error taxonomy for the access layer.
=====================================

Configuration and argument errors are raised at the call site. Backend
failures are classified, recovered where the policy allows it, and otherwise
reported through the driver's last-error state; ``BackendError`` instances
are stored there rather than raised.

Classes:
    DatabaseError: Base class for every error raised by this project
    ConfigurationError: Missing or invalid connection options
    InvalidArgumentError: Malformed identifiers or statement arguments
    BackendError: A classified failure reported by the database backend
    ExpiredTransactionError: A transaction outlived its expiry timestamp
    TransactionStateError: Commit/rollback/begin in the wrong state
"""

from typing import NamedTuple, Optional


class ErrorInfo(NamedTuple):
    """Backend error triple: SQLSTATE, driver-specific code, message."""

    sqlstate: Optional[str]
    code: Optional[object]
    message: Optional[str]


class DatabaseError(Exception):
    """Base exception for the database access layer."""
    pass


class ConfigurationError(DatabaseError):
    """Raised when connection options are missing or invalid."""
    pass


class InvalidArgumentError(DatabaseError, ValueError):
    """Raised for malformed table/column identifiers or statement arguments."""
    pass


class BackendError(DatabaseError):
    """A failure reported by the backend, with its classification.

    Attributes:
        info: ErrorInfo triple extracted from the driver exception
        state: StateConstant the dialect assigned to ``info``
    """

    def __init__(self, info: ErrorInfo, state=None):
        self.info = info
        self.state = state
        super().__init__(info.message or "Unknown database error")

    @property
    def sqlstate(self) -> Optional[str]:
        return self.info.sqlstate


class ExpiredTransactionError(DatabaseError):
    """Raised when a statement runs inside a transaction past its expiry."""
    pass


class TransactionStateError(DatabaseError):
    """Reported when a transaction operation does not match the backend state."""
    pass
