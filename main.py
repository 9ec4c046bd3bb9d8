"""
=========================================================
Command-line entry point for the database access layer.
=========================================================

Runs one statement (or prints backend information) against a database
described on the command line or in the environment.

Usage:
    # Run a statement against a SQLite file
    python main.py --driver sqlite --dbname app.db --query "SELECT * FROM <account>"

    # Show the compiled statement without touching the backend
    python main.py --driver pgsql --host localhost --port 5432 --dbname app \
        --query "SELECT * FROM <account>" --debug

    # Options from DB_* environment variables (.env is loaded)
    python main.py --env --info

Example:
    >>> from main import DatabaseConsole
    >>>
    >>> console = DatabaseConsole({'driver': 'sqlite', 'dbname': ':memory:'})
    >>> console.run_query('SELECT 1 AS one')
    [{'one': 1}]
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from core.config import Options
from core.exceptions import DatabaseError
from core.logger import get_logger, setup_logging
from engine.driver import Driver
from utils.database_utils import DatabaseConnectionError, get_connection_string, wait_for_database

logger = get_logger(__name__)


class ConsoleError(Exception):
    """Exception raised when a console operation fails."""
    pass


class DatabaseConsole:
    """
    Thin wrapper running CLI operations through one Driver.

    Attributes:
        options: Validated connection options
        driver: Driver built on first use
    """

    def __init__(self, config: Any, debug: bool = False):
        self.options = Options.from_mapping(config)
        if debug:
            self.options = self.options.with_debug()
        self.driver: Optional[Driver] = None

    def connect(self) -> Driver:
        if self.driver is None:
            logger.info(f"Connecting to {get_connection_string(self.options)}")
            self.driver = Driver(self.options)
        return self.driver

    def wait(self, max_retries: int = 10, retry_delay: float = 2) -> None:
        try:
            wait_for_database(self.options, max_retries=max_retries, retry_delay=retry_delay)
        except DatabaseConnectionError as e:
            raise ConsoleError(str(e))

    def run_query(self, statement: str) -> Optional[List[Dict[str, Any]]]:
        """
        Execute ``statement``; ``<name>`` markers are quoted for the dialect.

        Returns:
            Fetched rows (empty for statements without a result set), or
            None in debug mode

        Raises:
            ConsoleError: If the statement failed
        """
        driver = self.connect()
        result = driver.query(statement)

        if driver.is_debug():
            logger.info(f"Compiled statement: {driver.query_string}")
            return None
        if result is None:
            raise ConsoleError(f"Statement failed: {driver.error()}")

        logger.info(f"✅ Statement executed ({result.rowcount} rows affected)")
        return result.rows

    def info(self) -> Dict[str, Any]:
        return self.connect().info()

    def close(self) -> None:
        if self.driver is not None:
            self.driver.close()
            self.driver = None


def _config_from_args(args: argparse.Namespace) -> Any:
    if args.env:
        return Options.from_env(env_file=args.env_file)
    return {
        'driver': args.driver,
        'host': args.host,
        'port': args.port,
        'dbname': args.dbname,
        'dsn': args.dsn,
        'username': args.username,
        'password': args.password,
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Multi-dialect database access layer - console",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Query a SQLite file
  python main.py --driver sqlite --dbname app.db --query "SELECT * FROM <account>"

  # Compile only
  python main.py --driver mysql --host db --port 3306 --dbname app --query "..." --debug

  # Backend information from DB_* variables
  python main.py --env --info
        """
    )

    # Connection options
    parser.add_argument('--driver', type=str, help='Dialect key (mysql, mariadb, pgsql, sqlite, odbc)')
    parser.add_argument('--host', type=str, help='Database server host')
    parser.add_argument('--port', type=int, help='Database server port')
    parser.add_argument('--dbname', type=str, help='Database name (file path for SQLite)')
    parser.add_argument('--dsn', type=str, help='Raw DSN instead of host/port/dbname')
    parser.add_argument('--username', type=str, help='Database user')
    parser.add_argument('--password', type=str, help='Database password')
    parser.add_argument(
        '--env',
        action='store_true',
        help='Read connection options from DB_* environment variables'
    )
    parser.add_argument('--env-file', type=str, default=None, help='.env file loaded with --env')

    # Operations
    parser.add_argument('--query', type=str, help='Statement to execute')
    parser.add_argument('--info', action='store_true', help='Print backend information')
    parser.add_argument(
        '--wait',
        action='store_true',
        help='Wait for the database to accept connections first'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Print the compiled statement instead of executing it'
    )

    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging (DEBUG level)')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command-line interface.

    Exit Codes:
        0: Success
        1: Error
        130: User interrupt (Ctrl+C)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(log_level='DEBUG' if args.verbose else 'INFO')

    if not args.query and not args.info:
        parser.print_help()
        logger.warning("No operation specified. Use --query or --info.")
        return 1

    console = None
    try:
        console = DatabaseConsole(_config_from_args(args), debug=args.debug)

        if args.wait and not args.debug:
            console.wait()

        if args.info:
            print(json.dumps(console.info(), indent=2, default=str))

        if args.query:
            rows = console.run_query(args.query)
            if args.debug:
                print(console.driver.query_string)
            else:
                for row in rows:
                    print(json.dumps(row, default=str))
        return 0

    except (ConsoleError, DatabaseError) as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Operation interrupted by user")
        return 130
    finally:
        if console is not None:
            console.close()


if __name__ == '__main__':
    sys.exit(main())
