"""
Database connection factory.

A ``ConnectionFactory`` binds a connection string, a query timeout and
an optional driver preference, and opens a fresh ``Db`` every time it
is called.  Connection strings can also be registered under an alias
and resolved with ``connection_string_for``; the ``default`` alias is populated
from ``SIMPLEDB_CONNECTION_STRING`` when it is set.  See
``simple_db_connect.config.env.Config`` for configuration variables.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ...config import config
from .mssql import connect, Db


class ConnectionFactory:
    """Callable that opens a new ``Db`` per call."""

    def __init__(self, connection_string: str, timeout: int = 30, driver: Optional[str] = None) -> None:
        self.connection_string = connection_string
        self.timeout = timeout
        self.driver = driver

    def __call__(self) -> Db:
        db = connect(self.connection_string, timeout=self.timeout, driver=self.driver)
        logging.debug("[connection_factory] opened", extra={"driver": db.driver})
        return db


# Registry mapping aliases to connection strings.
_registry: Dict[str, str] = {}
if config.SIMPLEDB_CONNECTION_STRING:
    _registry['default'] = config.SIMPLEDB_CONNECTION_STRING


def register_connection(alias: str, connection_string: str) -> None:
    """Register (or replace) a connection string under ``alias``."""
    if not connection_string:
        raise ValueError(f"Empty connection string for alias: {alias}")
    _registry[alias] = connection_string


def connection_string_for(alias: str = 'default') -> str:
    """Return the connection string registered under ``alias``.

    Raises:
        KeyError: If the alias is not registered.
    """
    try:
        return _registry[alias]
    except KeyError:
        raise KeyError(f"No connection defined for alias: {alias}") from None
