"""
========================================================
Pytest suite for engine/connection.py
========================================================

Sections:
---------
1. Unit tests - Clause-state setters and cleanup
2. Integration tests - Compiled statements in debug mode
3. Edge case tests - Activation failures
4. Smoke tests - Full round trip on in-memory SQLite

Available markers:
------------------
unit, integration, edge_case, smoke

How to Execute:
---------------
All tests:          pytest tests/tests_engine/test_connection.py -v
"""

import pytest

from core.exceptions import ConfigurationError, DatabaseError, InvalidArgumentError
from engine.connection import Connection

DEBUG_CONFIG = {'driver': 'sqlite', 'dbname': ':memory:', 'debug': True}

DEFAULT_PARAMS = {
    'table': None,
    'join': {},
    'field': '*',
    'where': {},
    'order': None,
    'limit': None,
    'group': None,
    'having': None,
}


@pytest.fixture
def db():
    """Activated Connection in debug mode; statements land in query_string."""
    connection = Connection(DEBUG_CONFIG).activate()
    yield connection
    connection.close()


@pytest.fixture
def sqlite_db():
    connection = Connection({'driver': 'sqlite', 'dbname': ':memory:'}).activate()
    connection.table('account').create({
        'id': 'INTEGER PRIMARY KEY',
        'name': 'TEXT',
        'age': 'INTEGER',
        'score': 'REAL',
    })
    yield connection
    connection.close()


def statement(db):
    return db.driver().query_string


# ===============
# 1. UNIT TESTS
# ===============


@pytest.mark.unit
def test_defaults():
    assert Connection().get_params() == DEFAULT_PARAMS


@pytest.mark.unit
def test_cleanup_keeps_table_and_is_idempotent(db):
    db.table('account').field('id,name').where({'id': 1}).order('id DESC').limit(5).group('type')

    db.cleanup()
    first = db.get_params()
    db.cleanup()

    assert db.get_params() == first == dict(DEFAULT_PARAMS, table='account')


@pytest.mark.unit
def test_field_parsing(db):
    assert db.field('id, name').get_params()['field'] == ['id', 'name']
    assert db.field(['age']).get_params()['field'] == ['id', 'name', 'age']
    assert db.field('email').get_params()['field'] == 'email'


@pytest.mark.unit
@pytest.mark.parametrize("args, expected", [
    ((10,), [0, 10]),
    ((20, 10), [20, 10]),
    (('20,10',), [20, 10]),
])
def test_limit_parsing(db, args, expected):
    assert db.limit(*args).get_params()['limit'] == expected


@pytest.mark.unit
def test_order_parsing(db):
    db.order('id DESC').order('name ASC')
    assert db.get_params()['order'] == {'id': 'DESC', 'name': 'ASC'}

    db.order(['age'])
    assert db.get_params()['order'] == ['age']


@pytest.mark.unit
def test_order_bare_column(db):
    db.order('name').order('id DESC')

    assert db.get_params()['order'] == {'name': None, 'id': 'DESC'}


@pytest.mark.unit
def test_where_and_join_merge(db):
    db.where({'a': 1}).where({'b': 2})
    db.join({'[>]account': {'author_id': 'user_id'}}).join({'[>]account': {'lang': 'lang'}})

    params = db.get_params()
    assert params['where'] == {'a': 1, 'b': 2}
    assert params['join'] == {'[>]account': {'author_id': 'user_id', 'lang': 'lang'}}


@pytest.mark.unit
def test_set_params_restores_state(db):
    db.table('account').field(['id']).where({'id': 1})
    saved = db.get_params()
    db.cleanup()

    db.set_params(saved)

    assert db.get_params() == saved


# ======================
# 2. INTEGRATION TESTS
# ======================


@pytest.mark.integration
def test_chained_select(db):
    result = db.table('account').field('id,name').where({'age[>]': 18}).order('id DESC').limit(10).select()

    # debug mode executes nothing
    assert result is False
    assert statement(db) == (
        'SELECT "id","name" FROM "account" WHERE "age" > 18 ORDER BY "id" DESC LIMIT 10'
    )
    assert db.get_params() == dict(DEFAULT_PARAMS, table='account')


@pytest.mark.integration
def test_order_bare_column_compiles(db):
    db.table('account').order('name').select()

    assert statement(db) == 'SELECT * FROM "account" ORDER BY "name"'


@pytest.mark.integration
def test_limit_with_offset(db):
    db.table('account').limit('20,10').select()

    assert statement(db) == 'SELECT * FROM "account" LIMIT 10 OFFSET 20'


@pytest.mark.integration
def test_group_and_having(db):
    db.table('account').field(['type']).group('type').having({'total[>]': 1}).select()

    assert statement(db) == 'SELECT "type" FROM "account" GROUP BY "type" HAVING "total" > 1'


@pytest.mark.integration
def test_join(db):
    db.from_('post').join({'[>]account': {'author_id': 'user_id'}}).field(['post.title']).select()

    assert statement(db) == (
        'SELECT "post"."title" FROM "post" LEFT JOIN "account" ON "post"."author_id" = "account"."user_id"'
    )


@pytest.mark.integration
def test_find_with_lock(db):
    db.table('account').where({'id': 1}).find(lock=True)

    assert statement(db) == 'SELECT * FROM "account" WHERE "id" = 1 LIMIT 1 FOR UPDATE'


@pytest.mark.integration
def test_count_uses_field(db):
    db.table('account').count()
    assert statement(db) == 'SELECT COUNT(*) FROM "account"'

    db.table('account').field('id').where({'age[>]': 1}).count()
    assert statement(db) == 'SELECT COUNT("id") FROM "account" WHERE "age" > 1'


@pytest.mark.integration
def test_insert_filter_strips_operator_tags(db):
    assert db.table('account').insert({'age[+]': 1, 'name': 'x'}, filter=True) is False

    assert statement(db) == 'INSERT INTO "account" ("age", "name") VALUES (1, \'x\')'


@pytest.mark.integration
def test_update_uses_where(db):
    db.table('account').where({'id': 3}).update({'age[+]': 1})

    assert statement(db) == 'UPDATE "account" SET "age" = "age" + 1 WHERE "id" = 3'


# ====================
# 3. EDGE CASE TESTS
# ====================


@pytest.mark.edge_case
def test_missing_config():
    db = Connection().activate()

    assert db.is_activated() is False
    assert db.get_error() == 'config error'
    assert db.table('account').select() is False
    assert db.begin_transaction() is False
    assert db.info() is False


@pytest.mark.edge_case
def test_unregistered_driver():
    db = Connection({'driver': 'oracle', 'dsn': 'oracle://db'}).activate()

    assert db.is_activated() is False
    assert db.get_error() == 'exception : Unregistered oracle.'


@pytest.mark.edge_case
def test_configure_validates_eagerly():
    with pytest.raises(ConfigurationError, match='host'):
        Connection().configure({'driver': 'pgsql'})


@pytest.mark.edge_case
def test_call_configures():
    db = Connection()(DEBUG_CONFIG).activate()

    assert db.is_activated() is True
    db.close()


@pytest.mark.edge_case
def test_transaction_requires_activation():
    with pytest.raises(ConfigurationError, match='not activated'):
        with Connection().transaction():
            pass


@pytest.mark.edge_case
def test_sum_group_needs_field_list(db):
    assert db.table('account').sum_group() is False


# ================
# 4. SMOKE TESTS
# ================


@pytest.mark.smoke
def test_sqlite_round_trip(sqlite_db):
    db = sqlite_db

    assert db.table('account').insert({'name': 'foo', 'age': 20, 'score': 1.5}) == 1
    assert db.table('account').insert({'name': 'bar', 'age': 30, 'score': 2.5}) == 2

    assert db.table('account').where({'age[>]': 25}).field('name').select() == ['bar']
    assert db.table('account').count() == 2
    assert db.table('account').field(['age', 'score']).sum_group() == {'age': 50, 'score': 4.0}

    assert db.table('account').where({'id': 1}).update({'age[+]': 5}) == 1
    assert db.table('account').where({'id': 1}).get() == {'id': 1, 'name': 'foo', 'age': 25, 'score': 1.5}
    assert db.table('account').where({'name': 'foo'}).has() is True
    assert db.table('account').where({'name': 'zzz'}).has() is False

    assert db.table('account').where({'id': 2}).delete() == 1
    assert db.table('account').where({'id': 1}).replace({'name': {'foo': 'baz'}})
    assert db.table('account').field('name').where({'id': 1}).find() == 'baz'

    assert db.last() == 'SELECT "name" FROM "account" WHERE "id" = 1 LIMIT 1'
    assert db.error() is None


@pytest.mark.smoke
def test_sqlite_transaction_rollback(sqlite_db):
    db = sqlite_db
    db.table('account').insert({'name': 'kept'})

    assert db.begin_transaction() is True
    db.table('account').insert({'name': 'discarded'})
    assert db.rollback() is True

    assert db.table('account').count() == 1


@pytest.mark.smoke
def test_sqlite_action_commits(sqlite_db):
    assert sqlite_db.action(lambda db: db.table('account').insert({'name': 'foo'})) is True

    assert sqlite_db.table('account').field('name').select() == ['foo']


@pytest.mark.smoke
def test_sqlite_context_manager_rolls_back(sqlite_db):
    with pytest.raises(DatabaseError, match="abort"):
        with sqlite_db.transaction(timeout=60) as db:
            db.table('account').insert({'name': 'foo'})
            raise RuntimeError('abort')

    assert sqlite_db.table('account').count() == 0


@pytest.mark.smoke
def test_sqlite_exec_binds_plain_values(sqlite_db):
    result = sqlite_db.exec('SELECT :value AS v, :label AS label', {'value': 5, ':label': 'five'})

    assert result.rows == [{'v': 5, 'label': 'five'}]
    assert sqlite_db.last() == "SELECT 5 AS v, 'five' AS label"
    assert sqlite_db.log()[-1] == sqlite_db.last()


@pytest.mark.edge_case
def test_exec_rejects_unbindable_values(sqlite_db):
    with pytest.raises(InvalidArgumentError, match='value'):
        sqlite_db.exec('SELECT :value', {'value': [1, 2]})

    assert sqlite_db.log()
