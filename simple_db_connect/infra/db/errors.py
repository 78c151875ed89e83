"""
Error types raised by the command executor.

Every failure is reported with the caller-supplied context message and
the underlying driver detail, composed as
``"<context> Details = <detail>"``.  A failed rollback keeps the
execution failure that triggered it and appends
``"; Rollback error = <detail>"`` so neither message is lost.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    CONNECTION = "connection"
    EXECUTION = "execution"
    ROLLBACK = "rollback"


def describe(error: BaseException) -> str:
    """Return the most useful message for a driver exception."""
    if isinstance(error, DbOperationError):
        return error.detail
    text = str(error)
    return text if text else type(error).__name__


class DbOperationError(Exception):
    """Base class for failures surfaced by the executor.

    Attributes:
        kind: Which stage failed, see :class:`ErrorKind`.
        context: The caller-supplied message.
        detail: The underlying error message.
    """

    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(self, context: str, detail: str) -> None:
        self.context = context
        self.detail = detail
        super().__init__(self._compose())

    def _compose(self) -> str:
        return f"{self.context} Details = {self.detail}"

    @classmethod
    def wrap(cls, context: str, error: BaseException) -> "DbOperationError":
        return cls(context, describe(error))


class DbConnectionError(DbOperationError):
    """Raised when a connection cannot be opened or closed."""

    kind = ErrorKind.CONNECTION


class ExecutionError(DbOperationError):
    """Raised when a command fails (syntax, constraint violation, timeout...)."""

    kind = ErrorKind.EXECUTION


class RollbackError(ExecutionError):
    """Raised when rolling back after an execution failure also fails.

    ``detail`` holds the execution failure and ``rollback_detail`` the
    rollback failure; the message contains both.
    """

    kind = ErrorKind.ROLLBACK

    def __init__(self, context: str, detail: str, rollback_detail: Optional[str] = None) -> None:
        self.rollback_detail = rollback_detail or ""
        super().__init__(context, detail)

    def _compose(self) -> str:
        return f"{self.context} Details = {self.detail}; Rollback error = {self.rollback_detail}"
