"""
Thin data-access helper for SQL Server.

``CommandExecutor`` wraps a connection string and an execution timeout
and offers connection testing, non-query, scalar and tabular execution,
single-command transactions and stored procedure calls, each with the
same connection lifecycle handling and error wrapping.  See individual
modules for further details.
"""

from .infra.db import (  # noqa: F401
    CommandKind,
    CommandSpec,
    Db,
    DbConnectionError,
    DbOperationError,
    ErrorKind,
    ExecutionError,
    RollbackError,
)
from .services.command_executor import CommandExecutor, SUCCESS  # noqa: F401
