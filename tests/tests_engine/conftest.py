"""
Shared fakes and fixtures for executor and transaction tests.

Key fixtures:
- fake_engine: FakeEngine whose connections replay a shared list of outcomes
  (cursors or exceptions) and track commit/rollback/close calls.
- pg_driver: Driver for the PostgreSQL dialect wired to ``fake_engine``.
- no_sleep: patches the reconnect backoff so retries are instant.
- sqlite_driver: Driver on a real in-memory SQLite database.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from engine.driver import Driver

PG_CONFIG = {'driver': 'pgsql', 'host': 'localhost', 'port': 5432, 'dbname': 'app'}


class FakeCursor:
    """Mock SQLAlchemy CursorResult."""
    def __init__(self, rows=None, rowcount=-1, lastrowid=None):
        self.rows = rows
        self.returns_rows = rows is not None
        self.rowcount = rowcount
        self.lastrowid = lastrowid

    def mappings(self):
        return self

    def all(self):
        return list(self.rows or [])


class FakeConnection:
    """Mock SQLAlchemy Connection with autobegin semantics."""
    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.executed = []
        self.transaction = False
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.dialect = SimpleNamespace(server_version_info=(15, 4))

    def execute(self, clause):
        self.executed.append(str(clause))
        self.transaction = True
        outcome = self.outcomes.pop(0) if self.outcomes else FakeCursor()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def exec_driver_sql(self, sql):
        self.executed.append(sql)
        self.transaction = True

    def begin(self):
        self.transaction = True

    def in_transaction(self):
        return self.transaction

    def commit(self):
        self.commits += 1
        self.transaction = False

    def rollback(self):
        self.rollbacks += 1
        self.transaction = False

    def close(self):
        self.closed = True
        self.transaction = False


class FakeEngine:
    """Mock SQLAlchemy Engine; every connection shares one outcome queue."""
    def __init__(self):
        self.outcomes = []
        self.connections = []
        self.dialect = SimpleNamespace(
            name='postgresql',
            driver='psycopg2',
            dbapi=SimpleNamespace(__version__='2.9.9'),
        )

    def connect(self):
        connection = FakeConnection(self.outcomes)
        self.connections.append(connection)
        return connection

    @property
    def connection(self):
        return self.connections[-1]


def connection_lost():
    return OperationalError('SELECT 1', {}, Exception('server closed the connection unexpectedly'))


def syntax_error():
    return ProgrammingError('SELEC 1', {}, Exception('syntax error at or near "SELEC"'))


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def make_pg_driver(fake_engine):
    def factory(**overrides):
        return Driver(dict(PG_CONFIG, **overrides), engine=fake_engine)
    return factory


@pytest.fixture
def pg_driver(make_pg_driver):
    return make_pg_driver()


@pytest.fixture
def no_sleep():
    with patch('engine.driver.time.sleep') as mock_sleep:
        yield mock_sleep


@pytest.fixture
def sqlite_driver():
    driver = Driver({'driver': 'sqlite', 'dbname': ':memory:'})
    yield driver
    driver.close()


@pytest.fixture
def errors():
    """Factories for backend failures: ``errors.connection_lost()``."""
    return SimpleNamespace(connection_lost=connection_lost, syntax_error=syntax_error)


@pytest.fixture
def make_cursor():
    return FakeCursor
