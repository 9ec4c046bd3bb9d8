"""
===================================
Bounded statement execution log.
===================================

Keeps the (statement, parameter map) pairs a driver executed so they can be
rendered back into readable SQL by ``Driver.last()`` and ``Driver.log()``.
Only the most recent ``maxlen`` entries are kept.

Example:
    >>> log = ExecutionLog(maxlen=2)
    >>> log.append('SELECT 1', {})
    >>> log.append('SELECT 2', {})
    >>> log.append('SELECT 3', {})
    >>> [statement for statement, _ in log]
    ['SELECT 2', 'SELECT 3']
"""

from collections import deque
from typing import Iterator, NamedTuple, Optional

from core.config import DEFAULT_LOG_SIZE
from sql.params import ParameterMap


class LogEntry(NamedTuple):
    statement: str
    params: ParameterMap


class ExecutionLog:
    """Append-only ring buffer of executed statements."""

    def __init__(self, maxlen: int = DEFAULT_LOG_SIZE):
        self._entries = deque(maxlen=maxlen)

    def append(self, statement: str, params: ParameterMap) -> None:
        self._entries.append(LogEntry(statement, dict(params)))

    def last(self) -> Optional[LogEntry]:
        return self._entries[-1] if self._entries else None

    def reset(self) -> None:
        self._entries.clear()

    @property
    def maxlen(self) -> int:
        return self._entries.maxlen

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
