"""
=============================================
Logging configuration for the access layer.
=============================================

Provides consistent logging setup for drivers, connections and the CLI:
- File and console output
- Configurable log levels
- Colored console output
- Statement context attached to execution events

The driver emits one event per execute/begin/commit/rollback. Success events
are logged at DEBUG with the readable statement in ``extra['statement']``;
failures are logged at ERROR with the backend error triple in
``extra['error_info']``.

Example:
    >>> from core.logger import get_logger, setup_logging
    >>>
    >>> setup_logging(log_level='DEBUG', log_file='database.log')
    >>> logger = get_logger(__name__)
    >>> logger.debug("Database Execute Success.", extra={'statement': 'SELECT 1'})
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAMESPACE = 'database'

LINE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
STATEMENT_SUFFIX = ' %(statement)s%(error_info)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Formatter with ANSI color support for console output.

    Attributes:
        COLORS: Dict mapping log levels to ANSI color codes
    """

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class StatementContextFilter(logging.Filter):
    """Guarantee ``statement`` and ``error_info`` attributes on every record.

    Lets handler format strings reference ``%(statement)s`` even for records
    that were not produced by the driver.
    """

    def filter(self, record):
        if not hasattr(record, 'statement'):
            record.statement = ''
        if not hasattr(record, 'error_info'):
            record.error_info = ''
        return True


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return the named logger, optionally pinning its level (case-insensitive name)."""
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(getattr(logging, level.upper()))
    return logger


def setup_logging(
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    console_output: bool = True,
    use_colors: bool = True,
    show_statements: bool = False
) -> None:
    """Configure console and/or file handlers on the root logger.

    Should be called once by the application (the CLI does it in ``main``).
    Library modules never configure handlers themselves.

    Args:
        log_level: Level name applied to the root logger and every handler
        log_file: File name for a second handler (e.g., 'database.log')
        log_dir: Directory for ``log_file``; 'logs/' when omitted
        console_output: Attach a stdout handler
        use_colors: Colorize level names on the stdout handler
        show_statements: Append ``statement`` / ``error_info`` to each line
    """
    level = getattr(logging, log_level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    line_format = LINE_FORMAT + (STATEMENT_SUFFIX if show_statements else '')

    if console_output:
        formatter_class = ColoredFormatter if use_colors else logging.Formatter
        _attach(root_logger, logging.StreamHandler(sys.stdout), level, formatter_class(line_format, DATE_FORMAT))

    if log_file:
        directory = Path(log_dir or 'logs')
        directory.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(directory / log_file, encoding='utf-8')
        _attach(root_logger, handler, level, logging.Formatter(line_format, DATE_FORMAT))


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(StatementContextFilter())
    logger.addHandler(handler)


def get_driver_logger(driver_name: str) -> logging.Logger:
    """Logger used by drivers that were not given one explicitly.

    Example:
        >>> get_driver_logger('pgsql').name
        'database.pgsql'
    """
    return logging.getLogger(f'{LOGGER_NAMESPACE}.{driver_name}')
