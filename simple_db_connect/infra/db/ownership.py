"""
Connection ownership.

A lease decides who is responsible for a connection's lifetime during
one executor call.  ``OwnedConnection`` opens a connection on
``acquire`` and closes it on ``release``; ``BorrowedConnection`` hands
back a caller-supplied handle and never closes it.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .mssql import Db


class ConnectionLease:
    owns_connection = False

    def acquire(self) -> Db:
        raise NotImplementedError

    def release(self) -> None:
        raise NotImplementedError


class OwnedConnection(ConnectionLease):
    """Opens a connection from ``factory`` and closes it on release."""

    owns_connection = True

    def __init__(self, factory: Callable[[], Db]) -> None:
        self._factory = factory
        self._db: Optional[Db] = None

    def acquire(self) -> Db:
        if self._db is not None:
            raise RuntimeError("Connection already acquired")
        self._db = self._factory()
        logging.debug("[ownership] connection opened", extra={"driver": self._db.driver})
        return self._db

    def release(self) -> None:
        db, self._db = self._db, None
        if db is None:
            return
        db.close()
        logging.debug("[ownership] connection closed", extra={"driver": db.driver})


class BorrowedConnection(ConnectionLease):
    """Wraps a caller-supplied handle; release is a no-op."""

    def __init__(self, db: Db) -> None:
        self._db = db

    def acquire(self) -> Db:
        return self._db

    def release(self) -> None:
        pass


def lease_for(factory: Callable[[], Db], connection: Optional[Db] = None) -> ConnectionLease:
    """Borrow ``connection`` when given, otherwise own a new one from ``factory``."""
    if connection is not None:
        return BorrowedConnection(connection)
    return OwnedConnection(factory)
