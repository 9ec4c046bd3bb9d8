"""PostgreSQL dialect (psycopg2 driver)."""

from typing import Any, Dict, Optional

from psycopg2 import errorcodes

from core.exceptions import ErrorInfo
from drivers.base import Dialect
from drivers.sqlstate import StateConstant

# Class 57 is "operator intervention"; these members mean the server went away
RECONNECT_SQLSTATES = (
    errorcodes.ADMIN_SHUTDOWN,
    errorcodes.CRASH_SHUTDOWN,
    errorcodes.CANNOT_CONNECT_NOW,
)


class PostgresDialect(Dialect):
    name = 'pgsql'
    drivername = 'postgresql+psycopg2'
    identifier_quote = '"'
    random_function = 'RANDOM()'

    def connect_args(self) -> Dict[str, Any]:
        args = {'client_encoding': self.options.charset}
        args.update(self.options.option)
        return args

    def last_insert_id_sql(self) -> Optional[str]:
        return 'SELECT LASTVAL()'

    def recognize(self, info: Optional[ErrorInfo]) -> StateConstant:
        if info is not None and info.sqlstate in RECONNECT_SQLSTATES:
            return StateConstant.RECONNECT
        return super().recognize(info)
