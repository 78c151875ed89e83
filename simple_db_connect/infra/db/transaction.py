"""
Single-command transactions.

``Transaction`` tracks the lifecycle
``IDLE -> CONNECTION_OPEN -> ACTIVE -> COMMITTED | ROLLED_BACK`` over a
``Db`` handle.  It is owned by the executor call that began it and is
always committed or rolled back before that call returns.
"""

from __future__ import annotations

import enum
import logging

from .mssql import Db


class TransactionState(enum.Enum):
    IDLE = "idle"
    CONNECTION_OPEN = "connection_open"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction:
    """Commit/rollback wrapper around one ``Db`` handle."""

    def __init__(self, db: Db, name: str = "SimpleDb_Transaction") -> None:
        self._db = db
        self.name = name
        self.state = TransactionState.CONNECTION_OPEN if db.is_open else TransactionState.IDLE

    def _transition(self, target: TransactionState) -> None:
        logging.debug(
            "[transaction] state change",
            extra={"transaction": self.name, "from_state": self.state.value, "to_state": target.value},
        )
        self.state = target

    def begin(self) -> None:
        if self.state is not TransactionState.CONNECTION_OPEN:
            raise RuntimeError(f"Cannot begin transaction in state {self.state.value}")
        self._db.begin()
        self._transition(TransactionState.ACTIVE)

    def commit(self) -> None:
        if self.state is not TransactionState.ACTIVE:
            raise RuntimeError(f"Cannot commit transaction in state {self.state.value}")
        self._db.commit()
        self._transition(TransactionState.COMMITTED)

    def rollback(self) -> bool:
        """Roll back an active transaction.

        Returns:
            ``True`` if a rollback was issued, ``False`` when there was
            nothing to roll back (transaction not active or the
            connection is already closed).
        """
        if self.state is not TransactionState.ACTIVE or not self._db.is_open:
            return False
        self._db.rollback()
        self._transition(TransactionState.ROLLED_BACK)
        return True
