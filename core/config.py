"""
=================================================
Connection options for the database access layer.
=================================================

Validates plain key/value configuration into an immutable ``Options``
object and loads connection settings from environment variables (.env file).

The configuration system ensures:
- Either a raw DSN or host/port/dbname is supplied, and a driver is always named
- Type conversion for ports, flags and command lists
- Logical database names can be resolved to master/slave configurations

Example:
    >>> from core.config import Options
    >>>
    >>> options = Options.from_mapping({
    ...     'driver': 'pgsql',
    ...     'host': 'localhost',
    ...     'port': 5432,
    ...     'dbname': 'app',
    ...     'username': 'postgres',
    ... })
    >>> options.charset
    'utf8'
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

ERROR_MODES = ('silent', 'warning', 'exception')

# Drivers whose database is addressed by a path rather than a server
FILE_DRIVERS = ('sqlite',)

DEFAULT_LOG_SIZE = 1000


def _blank(value: Any) -> bool:
    return value is None or value == '' or value == () or value == []


@dataclass(frozen=True)
class Options:
    """Immutable per-connection configuration.

    Attributes:
        driver: Dialect key (mysql, mariadb, pgsql, sqlite, odbc)
        host: Database server hostname
        port: Database server port
        dbname: Database name (file path for SQLite)
        dsn: Raw DSN; a SQLAlchemy URL or, for ODBC, an ODBC connection string
        username: Database username
        password: Database password
        charset: Client character set applied after connecting
        prefix: Prefix prepended to every quoted table name
        option: Backend-specific connection attributes (DB-API connect_args)
        command: Statements executed right after each connect
        error: Error-reporting mode (silent, warning, exception)
        debug: Compile statements without touching the backend
        log_size: Maximum number of statements kept in the execution log
    """

    driver: str
    host: Optional[str] = None
    port: Optional[int] = None
    dbname: Optional[str] = None
    dsn: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    charset: str = 'utf8'
    prefix: str = ''
    option: Dict[str, Any] = field(default_factory=dict)
    command: Tuple[str, ...] = ()
    error: str = 'silent'
    debug: bool = False
    log_size: int = DEFAULT_LOG_SIZE

    def __post_init__(self):
        if _blank(self.driver):
            raise ConfigurationError('Configuration is missing `driver`')
        if self.dsn:
            return
        if self.driver in FILE_DRIVERS:
            if _blank(self.dbname):
                raise ConfigurationError('Configuration is missing `dbname`')
            return
        for key in ('host', 'port', 'dbname'):
            if _blank(getattr(self, key)):
                raise ConfigurationError(f'Configuration is missing `{key}`')

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'Options':
        """Validate a configuration mapping into Options.

        Empty values are treated as missing, the way the configuration bag is
        usually assembled from environment variables or ini files.

        Args:
            data: Mapping with the recognised configuration keys

        Returns:
            Validated Options instance

        Raises:
            ConfigurationError: If required keys are missing or malformed
        """
        if isinstance(data, Options):
            return data
        if not isinstance(data, Mapping):
            raise ConfigurationError('Configuration must be a mapping')

        port = data.get('port')
        if not _blank(port):
            try:
                port = int(port)
            except (TypeError, ValueError):
                raise ConfigurationError(f'Invalid `port`: {port!r}')
        else:
            port = None

        error = data.get('error') or 'silent'
        if error not in ERROR_MODES:
            error = 'silent'

        command = data.get('command') or ()
        if isinstance(command, str):
            command = (command,)

        log_size = data.get('log_size') or DEFAULT_LOG_SIZE
        try:
            log_size = int(log_size)
        except (TypeError, ValueError):
            raise ConfigurationError(f'Invalid `log_size`: {log_size!r}')

        return cls(
            driver=data.get('driver') or None,
            host=data.get('host') or None,
            port=port,
            dbname=data.get('dbname') or None,
            dsn=data.get('dsn') or None,
            username=data.get('username') or None,
            password=data.get('password') or None,
            charset=data.get('charset') or 'utf8',
            prefix=data.get('prefix') or '',
            option=dict(data.get('option') or {}),
            command=tuple(command),
            error=error,
            debug=_as_bool(data.get('debug')),
            log_size=log_size,
        )

    @classmethod
    def from_env(cls, prefix: str = 'DB_', env_file: Optional[str] = None) -> 'Options':
        """Build Options from environment variables.

        Args:
            prefix: Variable prefix, e.g. 'DB_' reads DB_DRIVER, DB_HOST, ...
            env_file: Optional .env file loaded before reading the environment

        Returns:
            Validated Options instance

        Example:
            >>> # DB_DRIVER=sqlite DB_NAME=app.db
            >>> options = Options.from_env()
        """
        if env_file:
            load_dotenv(dotenv_path=env_file)
        return cls.from_mapping(_read_env(prefix))

    def with_debug(self, debug: bool = True) -> 'Options':
        """Return a copy with the debug flag changed."""
        return replace(self, debug=debug)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _read_env(prefix: str) -> Dict[str, Any]:
    """Collect the configuration bag for one variable prefix."""
    command = os.getenv(f'{prefix}COMMAND')
    return {
        'driver': os.getenv(f'{prefix}DRIVER'),
        'host': os.getenv(f'{prefix}HOST'),
        'port': os.getenv(f'{prefix}PORT'),
        'dbname': os.getenv(f'{prefix}NAME'),
        'dsn': os.getenv(f'{prefix}DSN'),
        'username': os.getenv(f'{prefix}USER'),
        'password': os.getenv(f'{prefix}PASSWORD'),
        'charset': os.getenv(f'{prefix}CHARSET'),
        'prefix': os.getenv(f'{prefix}PREFIX'),
        'error': os.getenv(f'{prefix}ERROR'),
        'debug': os.getenv(f'{prefix}DEBUG'),
        'command': [c.strip() for c in command.split(';') if c.strip()] if command else None,
    }


class EnvConfigProvider:
    """Resolve logical database names to configurations from the environment.

    For a logical name ``orders`` the master configuration is read from
    ``ORDERS_MASTER_*`` variables and the slave configuration from
    ``ORDERS_SLAVE_*``. Missing variables fall back to the shared ``DB_*``
    set so a single-server deployment needs no per-name settings.

    Example:
        >>> provider = EnvConfigProvider(env_file='.env')
        >>> provider.master_config('orders')['driver']
        'pgsql'
    """

    def __init__(self, env_file: Optional[str] = None, fallback_prefix: str = 'DB_'):
        if env_file is None:
            env_file = str(Path.cwd() / '.env')
        load_dotenv(dotenv_path=env_file)
        self.fallback_prefix = fallback_prefix

    def master_config(self, name: str) -> Dict[str, Any]:
        return self._config(name, 'MASTER')

    def slave_config(self, name: str) -> Dict[str, Any]:
        return self._config(name, 'SLAVE')

    def _config(self, name: str, role: str) -> Dict[str, Any]:
        specific = _read_env(f'{name.upper()}_{role}_')
        fallback = _read_env(self.fallback_prefix)
        return {
            key: specific[key] if not _blank(specific[key]) else fallback[key]
            for key in specific
        }
