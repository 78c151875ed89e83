"""
Test database connectivity.

Opens and closes a connection through ``CommandExecutor.check_connection``
and then runs a ``SELECT 1 AS ok`` query.  The connection string is
taken from ``--connection-string``, from a registered ``--alias`` or
from ``SIMPLEDB_CONNECTION_STRING``.

Exit status is ``0`` when both steps succeed, ``1`` otherwise and ``2``
on unexpected errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from ..config import config
from ..infra.db.connection_factory import connection_string_for
from ..infra.db.errors import DbOperationError
from ..services.command_executor import CommandExecutor, SUCCESS


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Check database connectivity')
    parser.add_argument('--connection-string', type=str, help='Connection string to test (defaults to SIMPLEDB_CONNECTION_STRING)')
    parser.add_argument('--alias', type=str, default='default', help='Registered connection alias to test')
    parser.add_argument('--timeout', type=int, default=config.SIMPLEDB_EXECUTION_TIMEOUT, help='Execution timeout in seconds')
    parser.add_argument('--driver', type=str, default=config.SIMPLEDB_DRIVER, choices=['pymssql', 'pyodbc', 'sqlite'])
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=config.SIMPLEDB_LOG_LEVEL)
    connection_string = args.connection_string or connection_string_for(args.alias)
    executor = CommandExecutor(connection_string, args.timeout, driver=args.driver)

    status = executor.check_connection()
    if status != SUCCESS:
        logging.error('DB CONNECTION FAIL: %s', status)
        return 1
    try:
        ok = executor.execute_scalar('SELECT 1 AS ok', 'Connectivity query failed.')
    except DbOperationError as e:
        logging.error('DB QUERY FAIL:', exc_info=e)
        return 1
    logging.info('DB OK: %s', ok)
    return 0


def run(argv: Optional[List[str]] = None) -> None:
    """Console entry point: exit with ``main``'s status, or 2 on unexpected errors."""
    try:
        status = main(argv)
    except Exception as err:
        logging.error('Error executing cli/check_db', exc_info=err)
        sys.exit(2)
    sys.exit(status)


if __name__ == '__main__':
    run()
