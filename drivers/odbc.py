"""ODBC dialect (pyodbc through SQLAlchemy's mssql+pyodbc)."""

from typing import Any, Dict

from sqlalchemy.engine import URL, make_url

from drivers.base import Dialect


class OdbcDialect(Dialect):
    """ODBC connections.

    ``dsn`` may be a SQLAlchemy URL or a plain ODBC connection string such as
    ``DRIVER={ODBC Driver 18 for SQL Server};SERVER=db;DATABASE=app``; the
    latter is passed through untouched as ``odbc_connect``. Host-based options
    take the ODBC driver name from ``option['odbc_driver']``.
    """

    name = 'odbc'
    drivername = 'mssql+pyodbc'
    identifier_quote = '"'
    random_function = 'NEWID()'

    def url(self) -> URL:
        dsn = self.options.dsn
        if dsn:
            if '://' in dsn:
                return make_url(dsn)
            return URL.create(self.drivername, query={'odbc_connect': dsn})
        return super().url()

    def url_query(self) -> Dict[str, str]:
        query = {'charset': self.options.charset}
        odbc_driver = self.options.option.get('odbc_driver')
        if odbc_driver:
            query['driver'] = odbc_driver
        return query

    def connect_args(self) -> Dict[str, Any]:
        return {k: v for k, v in self.options.option.items() if k != 'odbc_driver'}

    def last_insert_id_sql(self) -> str:
        return 'SELECT @@IDENTITY'
