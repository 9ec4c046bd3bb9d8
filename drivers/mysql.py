"""MySQL and MariaDB dialect (PyMySQL driver)."""

import re
from typing import Dict, Optional

from core.exceptions import ErrorInfo
from drivers.base import Dialect

# Client-side error codes are 2xxx; these mean the link itself is gone
CONNECTION_LOST_CODES = (2002, 2003, 2006, 2013, 2055)

ERROR_CODE_SQLSTATES = {
    1062: '23000',   # duplicate entry
    1064: '42000',   # syntax error
    1146: '42S02',   # table does not exist
    1054: '42S22',   # unknown column
    1205: '40001',   # lock wait timeout
    1213: '40001',   # deadlock
    1040: '08004',   # too many connections
    1045: '28000',   # access denied
}


def is_connection_error(code: Optional[object]) -> bool:
    """True for any four-digit client error code starting with 2."""
    return isinstance(code, int) and 2000 <= code <= 2999


class MySQLDialect(Dialect):
    name = 'mysql'
    drivername = 'mysql+pymysql'
    identifier_quote = '`'
    random_function = 'RAND()'
    supports_full_text = True

    def url_query(self) -> Dict[str, str]:
        return {'charset': self.options.charset}

    def connect_commands(self):
        return [f"SET NAMES '{self.options.charset}'"] + list(self.options.command)

    def quote(self, string: str) -> str:
        return "'" + re.sub(r'([\\\'"])', r'\\\1', string) + "'"

    def error_info(self, error: BaseException) -> ErrorInfo:
        info = super().error_info(error)
        code = info.code
        if code in ERROR_CODE_SQLSTATES:
            return info._replace(sqlstate=ERROR_CODE_SQLSTATES[code])
        if code in CONNECTION_LOST_CODES or is_connection_error(code):
            return info._replace(sqlstate='08S01')
        return info
