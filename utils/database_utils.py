"""
==================================================
Native client helpers for every supported backend.
==================================================

Builds SQLAlchemy engines from ``Options`` and provides availability checks
used by the CLI and by deployment scripts that must wait for a database.

Every engine uses ``NullPool``: a Driver holds exactly one live connection
and reconnects on its own, so pooled connections would only hide failures.

Key Features:
    - Connection URL building through the dialect registry
    - Engine creation with pre-ping and backend connect_args
    - Database availability checking
    - Retry loop waiting for a database to come up

Example:
    >>> from core.config import Options
    >>> from utils.database_utils import check_database_available, wait_for_database
    >>>
    >>> options = Options(driver='pgsql', host='localhost', port=5432, dbname='app')
    >>> if check_database_available(options):
    ...     print("Database ready")
    >>>
    >>> wait_for_database(options, max_retries=5)
"""

import logging
import time
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from core.config import Options
from core.exceptions import DatabaseError
from drivers import Dialect, factory

logger = logging.getLogger(__name__)


class DatabaseConnectionError(DatabaseError):
    """Exception raised when a database never becomes available."""
    pass


def get_connection_string(options: Options, hide_password: bool = True) -> str:
    """
    Render the connection URL for ``options``.

    Args:
        options: Connection options
        hide_password: Mask the password (default True, safe for logs)

    Returns:
        SQLAlchemy URL string

    Example:
        >>> get_connection_string(Options(driver='sqlite', dbname='app.db'))
        'sqlite:///app.db'
    """
    return factory(options).url().render_as_string(hide_password=hide_password)


def create_sqlalchemy_engine(
    options: Options,
    dialect: Optional[Dialect] = None,
    echo: bool = False
) -> Engine:
    """
    Create a SQLAlchemy engine without pooling.

    Args:
        options: Connection options
        dialect: Dialect to build the URL with (looked up from options when omitted)
        echo: Enable SQLAlchemy statement logging

    Returns:
        Configured SQLAlchemy Engine

    Example:
        >>> engine = create_sqlalchemy_engine(options)
        >>> with engine.connect() as conn:
        ...     conn.execute(text("SELECT 1"))
    """
    dialect = dialect or factory(options)
    return create_engine(
        dialect.url(),
        echo=echo,
        poolclass=NullPool,
        pool_pre_ping=True,
        connect_args=dialect.connect_args()
    )


def check_database_available(options: Options) -> bool:
    """
    Check whether the database accepts connections.

    Args:
        options: Connection options

    Returns:
        True if a connection could be opened and ``SELECT 1`` ran, False otherwise
    """
    engine = create_sqlalchemy_engine(options)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.debug(f"Database not available: {e}")
        return False
    finally:
        engine.dispose()


def wait_for_database(
    options: Options,
    max_retries: int = 10,
    retry_delay: float = 2
) -> bool:
    """
    Wait for the database to become available with retries.

    Args:
        options: Connection options
        max_retries: Maximum number of attempts
        retry_delay: Delay between attempts in seconds

    Returns:
        True once the database is available

    Raises:
        DatabaseConnectionError: If the database never becomes available
    """
    target = get_connection_string(options)
    logger.info(f"Waiting for database at {target}...")

    for attempt in range(1, max_retries + 1):
        if check_database_available(options):
            logger.info(f"Database is available (attempt {attempt}/{max_retries})")
            return True

        if attempt < max_retries:
            logger.warning(
                f"Database not available yet (attempt {attempt}/{max_retries}), "
                f"retrying in {retry_delay}s..."
            )
            time.sleep(retry_delay)

    error_msg = f"Database at {target} did not become available after {max_retries} attempts"
    logger.error(error_msg)
    raise DatabaseConnectionError(error_msg)
