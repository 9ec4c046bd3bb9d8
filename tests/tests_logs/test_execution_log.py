"""
========================================================
Pytest suite for logs/execution_log.py
========================================================

Sections:
---------
1. Unit tests - Appending, trimming and resetting
2. Integration tests - Rendering through a Driver

Available markers:
------------------
unit, integration

How to Execute:
---------------
All tests:          pytest tests/tests_logs/test_execution_log.py -v
"""

import pytest

from core.config import DEFAULT_LOG_SIZE
from engine.driver import Driver
from logs import ExecutionLog, LogEntry
from sql.params import BoundParam, ParamType

# ===============
# 1. UNIT TESTS
# ===============


@pytest.mark.unit
def test_empty_log():
    log = ExecutionLog()

    assert log.last() is None
    assert len(log) == 0
    assert log.maxlen == DEFAULT_LOG_SIZE


@pytest.mark.unit
def test_keeps_most_recent_entries():
    log = ExecutionLog(maxlen=2)
    for number in range(3):
        log.append(f'SELECT {number}', {})

    assert [entry.statement for entry in log] == ['SELECT 1', 'SELECT 2']
    assert log.last() == LogEntry('SELECT 2', {})


@pytest.mark.unit
def test_params_are_copied():
    params = {'_p0': BoundParam(1, ParamType.INT)}
    log = ExecutionLog()
    log.append('SELECT :_p0', params)

    params['_p0'] = BoundParam(2, ParamType.INT)

    assert log.last().params == {'_p0': BoundParam(1, ParamType.INT)}


@pytest.mark.unit
def test_reset():
    log = ExecutionLog()
    log.append('SELECT 1', {})

    log.reset()

    assert len(log) == 0
    assert log.last() is None


# ======================
# 2. INTEGRATION TESTS
# ======================


@pytest.mark.integration
def test_driver_log_size():
    driver = Driver({'driver': 'sqlite', 'dbname': ':memory:', 'debug': True, 'log_size': 3})
    for user_id in range(5):
        driver.select('account', 'name', {'id': user_id})

    assert driver.log() == [
        'SELECT "name" FROM "account" WHERE "id" = 2',
        'SELECT "name" FROM "account" WHERE "id" = 3',
        'SELECT "name" FROM "account" WHERE "id" = 4',
    ]
