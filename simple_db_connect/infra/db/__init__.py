"""
Database abstractions for SQL Server connections.

This subpackage defines a small wrapper around either the ``pymssql`` or
``pyodbc`` libraries.  It exposes a ``connect`` function that returns a
``Db`` handle, the ``CommandSpec`` describing a command to run, the
connection ownership leases and the error types raised by the executor.
"""

from .command import CommandKind, CommandSpec  # noqa: F401
from .errors import (  # noqa: F401
    DbConnectionError,
    DbOperationError,
    ErrorKind,
    ExecutionError,
    RollbackError,
)
from .mssql import connect, parse_connection_string, Db  # noqa: F401
from .connection_factory import ConnectionFactory, connection_string_for, register_connection  # noqa: F401
from .ownership import BorrowedConnection, OwnedConnection, lease_for  # noqa: F401
from .transaction import Transaction, TransactionState  # noqa: F401
