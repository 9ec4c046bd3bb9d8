"""
Shared fixtures for compiler tests.

Key fixtures:
- make_driver: builds a debug-mode Driver for a dialect; statements are
  rendered into ``driver.query_string`` and never reach a backend.
- builder: a QueryBuilder for the SQLite dialect with a fresh counter.
"""

import pytest

from core.config import Options
from drivers import factory
from engine.driver import Driver
from sql.query_builder import QueryBuilder

DIALECT_OPTIONS = {
    'sqlite': {'driver': 'sqlite', 'dbname': ':memory:'},
    'mysql': {'driver': 'mysql', 'host': 'localhost', 'port': 3306, 'dbname': 'app'},
    'pgsql': {'driver': 'pgsql', 'host': 'localhost', 'port': 5432, 'dbname': 'app'},
}


@pytest.fixture
def make_driver():
    """Factory returning a debug Driver: ``make_driver('mysql', prefix='pre_')``."""
    def factory_(dialect='sqlite', **overrides):
        config = dict(DIALECT_OPTIONS[dialect], debug=True)
        config.update(overrides)
        return Driver(config)
    return factory_


@pytest.fixture
def driver(make_driver):
    return make_driver('sqlite')


@pytest.fixture
def builder():
    return QueryBuilder(factory(Options(driver='sqlite', dbname=':memory:')))
