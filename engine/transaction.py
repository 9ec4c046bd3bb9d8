"""
==================================
Transaction lifecycle for a Driver.
==================================

States: Idle -> InTransaction -> (Committed | RolledBack) -> Idle.

- ``begin()`` refuses while the backend already reports a transaction, and
  retries once on a fresh connection when the failure is classified as a
  lost connection. An optional absolute expiry timestamp can be attached.
- Every statement checks the expiry first; an expired transaction is rolled
  back and the statement fails with ``ExpiredTransactionError``.
- ``commit()`` / ``rollback()`` report a ``TransactionStateError`` when no
  transaction is active. A backend failure while finishing closes the handle.
- Statement failures inside a transaction never roll it back implicitly,
  except through the expiry guard or an Interrupt classification.

Example:
    >>> with driver.transactions.transaction():
    ...     driver.insert('account', {'user_name': 'foo'})
    ...     driver.update('stats', {'accounts[+]': 1})
"""

import time
from contextlib import contextmanager
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import (
    BackendError,
    DatabaseError,
    ErrorInfo,
    ExpiredTransactionError,
    TransactionStateError,
)
from drivers.sqlstate import StateConstant

# SQLSTATE class 25: invalid transaction state
ACTIVE_TRANSACTION = '25001'
NO_ACTIVE_TRANSACTION = '25P01'


class TransactionManager:
    """Begin/commit/rollback state machine bound to one Driver.

    Attributes:
        active: True between a successful begin and commit/rollback
        expire_at: Absolute ``time.time()`` deadline, or None
    """

    def __init__(self, driver):
        self.driver = driver
        self.active = False
        self.expire_at: Optional[float] = None

    def in_transaction(self) -> bool:
        """Transaction status as reported by the backend."""
        if self.driver.is_debug():
            return self.active
        connection = self.driver.connection
        return connection is not None and bool(connection.in_transaction())

    def _state_error(self, sqlstate: str, message: str) -> None:
        self.driver.record_failure(TransactionStateError(message), ErrorInfo(sqlstate, None, message))

    def begin(self, expire_at: Optional[float] = None) -> bool:
        """
        Start a transaction.

        Args:
            expire_at: Absolute deadline (seconds since the epoch)

        Returns:
            True on success, False when refused or failed (see Driver.error())
        """
        driver = self.driver
        retried = False

        while True:
            driver.reset_error()
            try:
                driver.reconnect()
                if self.active or self.in_transaction():
                    self._state_error(ACTIVE_TRANSACTION, 'There is already an active transaction.')
                elif not driver.is_debug():
                    driver.connection.begin()
            except SQLAlchemyError as error:
                state = driver.record(error)
                if state is StateConstant.RECONNECT and not retried:
                    retried = True
                    driver.close()
                    continue
                if state in (StateConstant.INTERRUPT, StateConstant.RECONNECT):
                    driver.close()

            driver.emit('Begin Transaction')
            break

        if driver.error() is not None:
            driver.report()
            return False

        self.active = True
        self.expire_at = expire_at
        return True

    def commit(self) -> bool:
        """Commit the active transaction."""
        return self._finish('commit', 'Commit Transaction')

    def rollback(self) -> bool:
        """Roll back the active transaction."""
        return self._finish('rollback', 'Rollback Transaction')

    def _finish(self, action: str, event: str) -> bool:
        driver = self.driver
        driver.reset_error()

        if not self.in_transaction():
            self.active = False
            self.expire_at = None
            self._state_error(NO_ACTIVE_TRANSACTION, f'Cannot {action}: there is no active transaction.')
            driver.emit(event)
            driver.report()
            return False

        try:
            if not driver.is_debug():
                getattr(driver.connection, action)()
        except SQLAlchemyError as error:
            driver.record(error)
            driver.close()
        finally:
            self.active = False
            self.expire_at = None
            driver.emit(event)

        if driver.error() is not None:
            driver.report()
            return False
        return True

    def check_expiry(self) -> None:
        """Roll back and raise when the transaction outlived ``expire_at``.

        Raises:
            ExpiredTransactionError: If the deadline has passed
        """
        if self.expire_at is None or time.time() <= self.expire_at:
            return
        expired_at = self.expire_at
        self.expire_at = None
        if self.in_transaction():
            self.rollback()
        self.active = False
        raise ExpiredTransactionError(f'Transaction expired at {expired_at:.0f}; it was rolled back.')

    @contextmanager
    def transaction(self, expire_at: Optional[float] = None):
        """
        Run a block inside a transaction.

        Commits when the block finishes, rolls back when it raises. Errors
        other than DatabaseError are re-raised wrapped in DatabaseError.

        Raises:
            BackendError: If the transaction could not be started or committed
        """
        if not self.begin(expire_at):
            raise self._begin_failure()

        try:
            yield self.driver
        except DatabaseError:
            if self.active:
                self.rollback()
            raise
        except Exception as error:
            if self.active:
                self.rollback()
            raise DatabaseError(str(error)) from error

        if not self.commit():
            raise self._begin_failure()

    def action(self, actions: Callable[[Any], Any], expire_at: Optional[float] = None) -> bool:
        """
        Run ``actions(driver)`` inside a transaction.

        Returns:
            True when committed; False when the callable returned False (the
            transaction is rolled back) or begin/commit failed
        """
        if not self.begin(expire_at):
            return False

        try:
            result = actions(self.driver)
        except DatabaseError:
            if self.active:
                self.rollback()
            raise
        except Exception as error:
            if self.active:
                self.rollback()
            raise DatabaseError(str(error)) from error

        if result is False:
            self.rollback()
            return False
        return self.commit()

    def _begin_failure(self) -> DatabaseError:
        failure = self.driver.failure()
        if isinstance(failure, DatabaseError):
            return failure
        info = self.driver.error() or ErrorInfo(None, None, 'Transaction failed')
        return BackendError(info)
