"""
=============================================================
Execution history for database drivers.
=============================================================

Modules:
    execution_log: Bounded log of executed (statement, parameters) pairs

Components:
    ExecutionLog: Ring buffer backing Driver.last() and Driver.log()
    LogEntry: One executed statement with its parameter map

Example:
    >>> from logs.execution_log import ExecutionLog
    >>>
    >>> log = ExecutionLog(maxlen=100)
    >>> log.append('SELECT * FROM "account" WHERE "id" = :_p0', params)
"""

__version__ = "0.1.0"
__all__ = ['ExecutionLog', 'LogEntry']

from .execution_log import ExecutionLog, LogEntry
