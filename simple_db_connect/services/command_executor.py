"""
Command executor.

``CommandExecutor`` is a thin façade over a SQL Server driver.  It holds
only immutable configuration (connection string and execution timeout)
and exposes one method per kind of database operation:

* ``check_connection`` – open and close a connection, report ``"Success"``
  or the failure message,
* ``execute_non_query`` – INSERT/UPDATE/DELETE, returns affected rows,
* ``execute_scalar`` – first column of the first row, ``None`` if no rows,
* ``execute_tabular`` – full result set as a list of dicts,
* ``execute_transaction`` – one command inside a transaction,
* ``execute_stored_procedure`` – a stored procedure call.

Every execution method takes an optional ``connection``.  Without it the
executor opens a connection immediately before executing and closes it
on every exit path.  With it, the caller-supplied handle is used as is
and is never opened or closed here.

Failures are raised as :class:`~simple_db_connect.infra.db.errors.DbOperationError`
subclasses whose message reads ``"<message> Details = <driver message>"``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import Config, config as default_config
from ..config.env import DEFAULT_EXECUTION_TIMEOUT
from ..infra.db.command import CommandKind, CommandSpec
from ..infra.db.connection_factory import ConnectionFactory
from ..infra.db.errors import (
    DbConnectionError,
    DbOperationError,
    ExecutionError,
    RollbackError,
    describe,
)
from ..infra.db.mssql import Db
from ..infra.db.ownership import ConnectionLease, lease_for
from ..infra.db.transaction import Transaction

SUCCESS = "Success"

Parameters = Optional[Mapping[str, Any]]
Work = Callable[[Db, CommandSpec], Any]


class CommandExecutor:
    """Execute commands against SQL Server with uniform error context.

    Args:
        connection_string: Connection string understood by
            :func:`~simple_db_connect.infra.db.mssql.connect`.
        execution_timeout: Timeout in seconds applied to every command
            issued by this instance.
        driver: Optional driver preference (``pymssql``, ``pyodbc`` or
            ``sqlite``).
        connection_factory: Callable returning a new ``Db``.  Defaults
            to a :class:`ConnectionFactory` for ``connection_string``.
    """

    def __init__(
        self,
        connection_string: str,
        execution_timeout: int = DEFAULT_EXECUTION_TIMEOUT,
        *,
        driver: Optional[str] = None,
        connection_factory: Optional[Callable[[], Db]] = None,
    ) -> None:
        if isinstance(execution_timeout, bool) or not isinstance(execution_timeout, int) or execution_timeout <= 0:
            raise ValueError(f"execution_timeout must be a positive integer, got {execution_timeout!r}")
        self._connection_string = connection_string
        self._execution_timeout = execution_timeout
        self._factory = connection_factory or ConnectionFactory(
            connection_string, timeout=execution_timeout, driver=driver
        )

    @classmethod
    def from_config(cls, cfg: Optional[Config] = None) -> "CommandExecutor":
        cfg = cfg or default_config
        return cls(
            cfg.require_connection_string(),
            cfg.SIMPLEDB_EXECUTION_TIMEOUT,
            driver=cfg.SIMPLEDB_DRIVER,
        )

    @property
    def connection_string(self) -> str:
        return self._connection_string

    @property
    def execution_timeout(self) -> int:
        return self._execution_timeout

    def check_connection(self) -> str:
        """Test the database connection.

        Returns:
            ``"Success"`` if a connection could be opened and closed,
            otherwise the underlying error message.
        """
        try:
            db = self._factory()
            db.close()
        except Exception as exc:
            logging.debug("[executor] check_connection failed", extra={"detail": describe(exc)})
            return describe(exc)
        return SUCCESS

    def open_connection(self, message: str) -> Db:
        """Open a connection the caller owns and must close.

        Raises:
            DbConnectionError: If the connection cannot be opened.
        """
        try:
            return self._factory()
        except Exception as exc:
            raise DbConnectionError.wrap(message, exc) from exc

    def execute_non_query(
        self,
        query: str,
        message: str,
        parameters: Parameters = None,
        connection: Optional[Db] = None,
    ) -> int:
        """Execute an INSERT/UPDATE/DELETE-class command.

        Returns:
            The number of rows affected, as reported by the driver.
        """
        return self._execute(query, message, parameters, connection, _non_query)

    def execute_scalar(
        self,
        query: str,
        message: str,
        parameters: Parameters = None,
        connection: Optional[Db] = None,
    ) -> Any:
        """Return the first column of the first row, or ``None`` if there are no rows."""
        return self._execute(query, message, parameters, connection, _scalar)

    def execute_tabular(
        self,
        query: str,
        message: str,
        parameters: Parameters = None,
        connection: Optional[Db] = None,
    ) -> List[Dict[str, Any]]:
        """Execute a query and return every row as a column-name mapping."""
        return self._execute(query, message, parameters, connection, _tabular)

    def execute_transaction(
        self,
        query: str,
        message: str,
        parameters: Parameters = None,
        connection: Optional[Db] = None,
    ) -> int:
        """Execute one command inside a transaction.

        The transaction is committed when the command succeeds.  Any
        failure after the transaction began triggers a rollback.

        Returns:
            The number of rows affected by the committed command.

        Raises:
            ExecutionError: The command failed and was rolled back.
            RollbackError: The command failed and the rollback failed as
                well; the message carries both failures.
            DbConnectionError: A self-managed connection could not be
                opened or closed.
        """
        return self._execute(query, message, parameters, connection, _transactional(message))

    def execute_stored_procedure(
        self,
        procedure: str,
        message: str,
        parameters: Parameters = None,
        connection: Optional[Db] = None,
    ) -> int:
        """Call a stored procedure, binding every parameter by name."""
        return self._execute(
            procedure, message, parameters, connection, _non_query, kind=CommandKind.STORED_PROCEDURE
        )

    def _execute(
        self,
        text: str,
        message: str,
        parameters: Parameters,
        connection: Optional[Db],
        work: Work,
        kind: CommandKind = CommandKind.TEXT,
    ) -> Any:
        try:
            spec = CommandSpec.build(text, parameters, kind, self._execution_timeout)
        except ValueError as exc:
            raise ExecutionError.wrap(message, exc) from exc

        lease = lease_for(self._factory, connection)
        try:
            db = lease.acquire()
        except Exception as exc:
            raise DbConnectionError.wrap(message, exc) from exc

        logging.debug(
            "[executor] execute",
            extra={"kind": spec.kind.value, "owned": lease.owns_connection, "timeout": spec.timeout},
        )
        failed = True
        try:
            result = work(db, spec)
            failed = False
        except DbOperationError:
            raise
        except Exception as exc:
            raise ExecutionError.wrap(message, exc) from exc
        finally:
            _release(lease, message, failed)
        return result


def _release(lease: ConnectionLease, message: str, failed: bool) -> None:
    """Release ``lease``; a close failure only surfaces when nothing else failed."""
    try:
        lease.release()
    except Exception as exc:
        if not failed:
            raise DbConnectionError.wrap(message, exc) from exc
        logging.warning("[executor] close failed after error", extra={"detail": describe(exc)})


def _non_query(db: Db, spec: CommandSpec) -> int:
    return db.execute_non_query(spec)


def _scalar(db: Db, spec: CommandSpec) -> Any:
    return db.execute_scalar(spec)


def _tabular(db: Db, spec: CommandSpec) -> List[Dict[str, Any]]:
    return db.execute_tabular(spec)


def _transactional(message: str) -> Work:
    def run(db: Db, spec: CommandSpec) -> int:
        transaction = Transaction(db)
        transaction.begin()
        try:
            affected = db.execute_non_query(spec)
            transaction.commit()
        except Exception as exc:
            try:
                transaction.rollback()
            except Exception as rollback_exc:
                logging.warning(
                    "[executor] rollback failed",
                    extra={"transaction": transaction.name, "detail": describe(rollback_exc)},
                )
                raise RollbackError(message, describe(exc), describe(rollback_exc)) from exc
            raise ExecutionError.wrap(message, exc) from exc
        except BaseException:
            # interrupted mid-command; roll back and let the interrupt win
            try:
                transaction.rollback()
            except Exception as rollback_exc:
                logging.warning(
                    "[executor] rollback failed after interrupt",
                    extra={"transaction": transaction.name, "detail": describe(rollback_exc)},
                )
            raise
        return affected

    return run
