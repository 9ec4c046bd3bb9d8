"""SQLite dialect (stdlib sqlite3 driver).

sqlite3 exceptions carry no SQLSTATE. Since Python 3.11 they expose the
extended result code name (``sqlite_errorname``), which is mapped onto the
nearest SQLSTATE so the shared classifier can handle it.
"""

from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import URL, make_url

from drivers.base import Dialect

# Result-code prefix -> pseudo SQLSTATE
RESULT_CODE_SQLSTATES = (
    ('SQLITE_CONSTRAINT', '23000'),
    ('SQLITE_BUSY', '40001'),
    ('SQLITE_LOCKED', '40001'),
    ('SQLITE_CANTOPEN', '08001'),
    ('SQLITE_NOTADB', '08004'),
    ('SQLITE_MISUSE', '08003'),
    ('SQLITE_IOERR', '58030'),
    ('SQLITE_CORRUPT', '58030'),
    ('SQLITE_FULL', '53100'),
    ('SQLITE_NOMEM', '53200'),
    ('SQLITE_INTERRUPT', '57014'),
    ('SQLITE_READONLY', '25006'),
    ('SQLITE_TOOBIG', '54000'),
    ('SQLITE_MISMATCH', '22000'),
    ('SQLITE_RANGE', 'HY093'),
    ('SQLITE_ERROR', '42000'),
)


class SQLiteDialect(Dialect):
    name = 'sqlite'
    drivername = 'sqlite'
    identifier_quote = '"'
    random_function = 'RANDOM()'

    def url(self) -> URL:
        if self.options.dsn:
            return make_url(self.options.dsn)
        return URL.create(drivername=self.drivername, database=self.options.dbname)

    def fallback_sqlstate(self, error: BaseException, orig: BaseException) -> str:
        if getattr(error, 'connection_invalidated', False):
            return '08003'

        name = getattr(orig, 'sqlite_errorname', None)
        if name:
            for prefix, sqlstate in RESULT_CODE_SQLSTATES:
                if name.startswith(prefix):
                    return sqlstate

        if 'closed database' in str(orig):
            return '08003'

        # sqlite3 raises OperationalError for "no such table" and syntax errors
        if isinstance(error, sa_exc.OperationalError):
            return '42000'
        return super().fallback_sqlstate(error, orig)
