"""
========================================================
Comprehensive pytest suite for engine/driver.py
========================================================

Sections:
---------
1. Unit tests - exec(), result mapping, hooks, execution log
2. Integration tests - Reconnect policy and error modes
3. Edge case tests - Connection failures and debug mode
4. Smoke tests - Real in-memory SQLite round trip

Available markers:
------------------
unit, integration, edge_case, smoke

How to Execute:
---------------
All tests:          pytest tests/tests_engine/test_driver.py -v
By category:        pytest tests/tests_engine/test_driver.py -m integration

The PostgreSQL-dialect tests run against FakeEngine (see conftest.py), so no
server is needed.
"""

import logging
from unittest.mock import MagicMock

import pytest

from core.exceptions import BackendError, ConfigurationError, InvalidArgumentError
from drivers import StateConstant
from engine.driver import RECONNECT_BACKOFF, Driver, StatementResult

# ===============
# 1. UNIT TESTS
# ===============


@pytest.mark.unit
def test_exec_returns_statement_result(pg_driver, fake_engine, make_cursor):
    fake_engine.outcomes.append(make_cursor(rows=[{'one': 1}], rowcount=1))

    result = pg_driver.exec('SELECT 1')

    assert isinstance(result, StatementResult)
    assert result.rows == [{'one': 1}]
    assert result.scalar() == 1
    assert result.first() == {'one': 1}
    assert pg_driver.error() is None
    assert fake_engine.connection.in_transaction() is False


@pytest.mark.unit
def test_select_decodes_typed_columns(pg_driver, fake_engine, make_cursor):
    fake_engine.outcomes.append(make_cursor(rows=[{'id': '1', 'name': 'a'}, {'id': '2', 'name': 'b'}]))

    rows = pg_driver.select('account', ['id [Int]', 'name'], {'age[>]': 18})

    assert rows == [{'id': 1, 'name': 'a'}, {'id': 2, 'name': 'b'}]
    assert fake_engine.connection.executed[-1] == 'SELECT "id","name" FROM "account" WHERE "age" > :_p0'


@pytest.mark.unit
def test_select_single_column_returns_values(pg_driver, fake_engine, make_cursor):
    fake_engine.outcomes.append(make_cursor(rows=[{'name': 'a'}, {'name': 'b'}]))

    assert pg_driver.select('account', 'name') == ['a', 'b']


@pytest.mark.unit
def test_get_has_and_count(pg_driver, fake_engine, make_cursor):
    fake_engine.outcomes.extend([
        make_cursor(rows=[]),
        make_cursor(rows=[{'exists': True}]),
        make_cursor(rows=[{'count': 3}]),
    ])

    assert pg_driver.get('account', '*', {'id': 1}) is None
    assert pg_driver.has('account', {'id': 1}) is True
    assert pg_driver.count('account') == 3


@pytest.mark.unit
def test_last_insert_id_uses_lastval(pg_driver, fake_engine, make_cursor):
    fake_engine.outcomes.extend([
        make_cursor(rowcount=1),
        make_cursor(rows=[{'lastval': 42}]),
    ])

    pg_driver.insert('account', {'name': 'foo'})

    assert pg_driver.id() == 42
    assert fake_engine.connection.executed[-1] == 'SELECT LASTVAL()'


@pytest.mark.regression
def test_last_insert_id_leaves_log_and_error_state(pg_driver, fake_engine, make_cursor, caplog):
    fake_engine.outcomes.extend([
        make_cursor(rowcount=1),
        make_cursor(rows=[{'lastval': 7}]),
    ])
    pg_driver.insert('account', {'name': 'foo'})
    inserted = pg_driver.statement
    caplog.clear()

    with caplog.at_level(logging.DEBUG, logger='database.pgsql'):
        assert pg_driver.id() == 7

    assert pg_driver.last() == 'INSERT INTO "account" ("name") VALUES (\'foo\')'
    assert pg_driver.log() == [pg_driver.last()]
    assert pg_driver.statement is inserted
    assert pg_driver.error() is None
    assert not caplog.records


@pytest.mark.edge_case
def test_last_insert_id_lookup_failure(pg_driver, fake_engine, make_cursor, errors):
    fake_engine.outcomes.extend([make_cursor(rowcount=1), errors.syntax_error()])
    pg_driver.insert('account', {'name': 'foo'})

    assert pg_driver.id() is None
    assert pg_driver.error() is None


@pytest.mark.regression
def test_exec_rejects_unbound_parameters(pg_driver):
    with pytest.raises(InvalidArgumentError, match='value'):
        pg_driver.exec('SELECT :value', {'value': 5})

    assert pg_driver.log() == []


@pytest.mark.unit
def test_hooks_are_called_in_order(pg_driver):
    calls = []
    pg_driver.on_before_prepare = lambda driver: calls.append('prepare')
    pg_driver.on_before_bind = lambda driver: calls.append('bind')
    pg_driver.on_before_exec = lambda driver: calls.append('exec')
    pg_driver.on_after_exec = MagicMock(side_effect=lambda driver: calls.append('after'))

    pg_driver.exec('SELECT 1')

    assert calls == ['prepare', 'bind', 'exec', 'after']
    pg_driver.on_after_exec.assert_called_once_with(pg_driver)


@pytest.mark.unit
def test_last_and_log_render_statements(make_pg_driver):
    driver = make_pg_driver(log_size=2)

    driver.select('account', '*', {'name': 'foo'})
    driver.select('account', '*', {'id': 1})
    driver.delete('account', {'id': [1, 2]})

    assert driver.last() == 'DELETE FROM "account" WHERE "id" IN (1, 2)'
    assert driver.log() == [
        'SELECT * FROM "account" WHERE "id" = 1',
        'DELETE FROM "account" WHERE "id" IN (1, 2)',
    ]

    driver.reset_log()
    assert driver.log() == []
    assert driver.last() is None


@pytest.mark.unit
def test_connect_commands_run_after_connecting(make_pg_driver, fake_engine):
    make_pg_driver(command=['SET search_path TO app'])

    assert fake_engine.connection.executed == ['SET search_path TO app']
    assert fake_engine.connection.in_transaction() is False


@pytest.mark.unit
def test_info(pg_driver):
    info = pg_driver.info()

    assert info['server'] == 'postgresql'
    assert info['driver'] == 'pgsql'
    assert info['client'] == '2.9.9'
    assert info['version'] == '15.4'
    assert info['connection'] == 'open'
    assert info['dsn'] == 'postgresql+psycopg2://localhost:5432/app'


@pytest.mark.unit
def test_success_event_is_logged(pg_driver, caplog):
    with caplog.at_level(logging.DEBUG, logger='database.pgsql'):
        pg_driver.exec('SELECT 1')

    record = next(r for r in caplog.records if r.getMessage() == 'Database Execute Success.')
    assert record.statement == 'SELECT 1'


@pytest.mark.unit
def test_close_rolls_back_open_transaction(pg_driver, fake_engine):
    pg_driver.transactions.begin()
    connection = fake_engine.connection

    pg_driver.close()

    assert connection.rollbacks == 1
    assert connection.closed is True
    assert pg_driver.connection is None
    assert pg_driver.transactions.active is False


# ======================
# 2. INTEGRATION TESTS
# ======================


@pytest.mark.integration
def test_reconnect_succeeds_on_fourth_attempt(pg_driver, fake_engine, make_cursor, errors, no_sleep):
    """Three lost connections are retried; the fourth attempt succeeds."""
    fake_engine.outcomes.extend([
        errors.connection_lost(),
        errors.connection_lost(),
        errors.connection_lost(),
        make_cursor(rows=[{'one': 1}]),
    ])

    result = pg_driver.exec('SELECT 1')

    assert result.rows == [{'one': 1}]
    assert pg_driver.error() is None
    assert len(fake_engine.connections) == 4
    assert all(connection.closed for connection in fake_engine.connections[:3])
    assert no_sleep.call_count == 3
    no_sleep.assert_called_with(RECONNECT_BACKOFF)


@pytest.mark.integration
def test_reconnect_budget_exhausted_then_reset(pg_driver, fake_engine, make_cursor, errors, no_sleep):
    """Four lost connections surface the failure; the next call gets a fresh budget."""
    fake_engine.outcomes.extend([errors.connection_lost() for _ in range(4)])

    assert pg_driver.exec('SELECT 1') is None
    assert pg_driver.error().sqlstate == '08006'
    assert pg_driver.failure().state is StateConstant.RECONNECT
    assert pg_driver.connection is None
    assert len(fake_engine.connections) == 4

    fake_engine.outcomes.extend([
        errors.connection_lost(),
        errors.connection_lost(),
        errors.connection_lost(),
        make_cursor(rows=[{'one': 1}]),
    ])

    assert pg_driver.exec('SELECT 1').rows == [{'one': 1}]
    assert pg_driver.error() is None


@pytest.mark.integration
def test_statement_error_is_not_retried(pg_driver, fake_engine, errors, no_sleep):
    fake_engine.outcomes.append(errors.syntax_error())

    assert pg_driver.exec('SELEC 1') is None

    info = pg_driver.error()
    assert info.sqlstate == '42000'
    assert 'syntax error' in info.message
    assert len(fake_engine.connections) == 1
    assert fake_engine.connection.rollbacks == 1
    assert pg_driver.connection is not None
    no_sleep.assert_not_called()


@pytest.mark.integration
def test_exception_mode_raises(make_pg_driver, fake_engine, errors):
    driver = make_pg_driver(error='exception')
    fake_engine.outcomes.append(errors.syntax_error())

    with pytest.raises(BackendError) as excinfo:
        driver.exec('SELEC 1')

    assert excinfo.value.sqlstate == '42000'
    assert excinfo.value.state is StateConstant.ERROR


@pytest.mark.integration
def test_warning_mode_warns(make_pg_driver, fake_engine, errors):
    driver = make_pg_driver(error='warning')
    fake_engine.outcomes.append(errors.syntax_error())

    with pytest.warns(RuntimeWarning, match='syntax error'):
        assert driver.exec('SELEC 1') is None


@pytest.mark.integration
def test_failure_event_is_logged(pg_driver, fake_engine, errors, caplog):
    fake_engine.outcomes.append(errors.syntax_error())

    with caplog.at_level(logging.ERROR, logger='database.pgsql'):
        pg_driver.exec('SELEC 1')

    record = next(r for r in caplog.records if r.getMessage() == 'Database Execute Error.')
    assert record.error_info.sqlstate == '42000'


@pytest.mark.integration
def test_interrupt_closes_connection(pg_driver, fake_engine):
    class DiskFull(Exception):
        pgcode = '53100'

    from sqlalchemy.exc import OperationalError
    fake_engine.outcomes.append(OperationalError('INSERT', {}, DiskFull('could not extend file')))

    assert pg_driver.exec('INSERT INTO t VALUES (1)') is None
    assert pg_driver.error().sqlstate == '53100'
    assert pg_driver.failure().state is StateConstant.INTERRUPT
    assert pg_driver.connection is None
    assert fake_engine.connection.closed is True


# ====================
# 3. EDGE CASE TESTS
# ====================


@pytest.mark.edge_case
def test_connect_failure_raises_backend_error(errors):
    engine = MagicMock()
    engine.connect.side_effect = errors.connection_lost()

    with pytest.raises(BackendError) as excinfo:
        Driver({'driver': 'pgsql', 'host': 'localhost', 'port': 5432, 'dbname': 'app'}, engine=engine)

    assert excinfo.value.state is StateConstant.RECONNECT


@pytest.mark.edge_case
def test_unregistered_driver():
    with pytest.raises(ConfigurationError, match='Unregistered oracle.'):
        Driver({'driver': 'oracle', 'dsn': 'oracle://db'})


@pytest.mark.edge_case
def test_debug_mode_never_connects(make_pg_driver, fake_engine):
    driver = make_pg_driver(debug=True)

    assert driver.select('account', '*', {'name': "O'Reilly"}) is None
    assert driver.query_string == 'SELECT * FROM "account" WHERE "name" = \'O\'\'Reilly\''
    assert fake_engine.connections == []


@pytest.mark.edge_case
def test_debug_switch_at_runtime(pg_driver, fake_engine):
    pg_driver.debug().count('account')

    assert pg_driver.query_string == 'SELECT COUNT(*) FROM "account"'
    assert fake_engine.connection.executed == []


@pytest.mark.edge_case
def test_aggregate_failure_returns_none(pg_driver, fake_engine, errors):
    fake_engine.outcomes.append(errors.syntax_error())

    assert pg_driver.count('account') is None


# ================
# 4. SMOKE TESTS
# ================


@pytest.mark.smoke
def test_sqlite_round_trip(sqlite_driver):
    sqlite_driver.create('account', {
        'id': 'INTEGER PRIMARY KEY',
        'name': 'TEXT',
        'age': 'INTEGER',
        'profile': 'TEXT',
    })

    inserted = sqlite_driver.insert('account', [
        {'name': 'foo', 'age': 20, 'profile': {'lang': 'en'}},
        {'name': 'bar', 'age': 30},
    ])
    assert inserted.rowcount == 2
    assert sqlite_driver.id() == 2

    assert sqlite_driver.select('account', ['id [Int]', 'name', 'profile [JSON]'], {'age[<]': 25}) == [
        {'id': 1, 'name': 'foo', 'profile': {'lang': 'en'}},
    ]
    assert sqlite_driver.get('account', 'name', {'id': 2}) == 'bar'
    assert sqlite_driver.has('account', {'name': 'bar'}) is True
    assert sqlite_driver.has('account', {'name': 'baz'}) is False
    assert sqlite_driver.count('account') == 2
    assert sqlite_driver.sum('account', 'age') == 50

    assert sqlite_driver.update('account', {'age[+]': 1}, {'name': 'foo'}).rowcount == 1
    assert sqlite_driver.get('account', 'age [Int]', {'name': 'foo'}) == 21

    assert sqlite_driver.delete('account', {'id': 2}).rowcount == 1
    assert sqlite_driver.query('SELECT COUNT(*) AS n FROM <account>').scalar() == 1


@pytest.mark.smoke
def test_sqlite_missing_table_is_reported(sqlite_driver):
    assert sqlite_driver.select('missing') is None
    assert sqlite_driver.error().sqlstate == '42000'
    assert sqlite_driver.connection is not None
