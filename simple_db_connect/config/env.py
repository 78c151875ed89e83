"""
Environment configuration loader.

Connection settings for the command executor are read from environment
variables (optionally via a ``.env`` file) and exposed through a simple
``Config`` class. Nothing is strictly required at import time so that
the package can be imported without a database; callers that need a
connection string use :meth:`Config.require_connection_string`.

Supported variables:

* ``SIMPLEDB_CONNECTION_STRING`` – default SQL Server connection string.
* ``SIMPLEDB_EXECUTION_TIMEOUT`` – per-command timeout in seconds (default ``30``).
* ``SIMPLEDB_DRIVER`` – preferred driver: ``pymssql``, ``pyodbc`` or ``sqlite``.
* ``SIMPLEDB_ODBC_DRIVER`` – ODBC driver name used by ``pyodbc``
  (default ``'ODBC Driver 17 for SQL Server'``).
* ``SIMPLEDB_LOG_LEVEL`` – log level used by the CLI entry points (default ``INFO``).

The resulting ``config`` instance can be imported from
``simple_db_connect.config``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv
load_dotenv()

DEFAULT_EXECUTION_TIMEOUT = 30
DEFAULT_ODBC_DRIVER = "ODBC Driver 17 for SQL Server"
SUPPORTED_DRIVERS = ("pymssql", "pyodbc", "sqlite")


@dataclass
class Config:
    """Holds environment configuration for the executor."""

    SIMPLEDB_CONNECTION_STRING: Optional[str] = None
    SIMPLEDB_EXECUTION_TIMEOUT: int = DEFAULT_EXECUTION_TIMEOUT
    SIMPLEDB_DRIVER: Optional[str] = None
    SIMPLEDB_ODBC_DRIVER: str = DEFAULT_ODBC_DRIVER
    SIMPLEDB_LOG_LEVEL: str = "INFO"

    def require_connection_string(self) -> str:
        if not self.SIMPLEDB_CONNECTION_STRING:
            raise ValueError("Environment variable SIMPLEDB_CONNECTION_STRING is required")
        return self.SIMPLEDB_CONNECTION_STRING


def _load_env() -> Config:
    """Load configuration from environment variables.

    Raises:
        ValueError: If the timeout is not a positive integer or the
            driver name is not supported.

    Returns:
        Config: A populated configuration dataclass.
    """

    def _optional(name: str) -> Optional[str]:
        value = os.environ.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    raw_timeout = _optional("SIMPLEDB_EXECUTION_TIMEOUT")
    timeout = DEFAULT_EXECUTION_TIMEOUT
    if raw_timeout is not None:
        try:
            timeout = int(raw_timeout)
        except ValueError:
            raise ValueError(
                f"SIMPLEDB_EXECUTION_TIMEOUT must be an integer, got {raw_timeout!r}"
            ) from None
        if timeout <= 0:
            raise ValueError("SIMPLEDB_EXECUTION_TIMEOUT must be greater than zero")

    driver = _optional("SIMPLEDB_DRIVER")
    if driver is not None:
        driver = driver.lower()
        if driver not in SUPPORTED_DRIVERS:
            raise ValueError(
                f"SIMPLEDB_DRIVER must be one of {', '.join(SUPPORTED_DRIVERS)}, got {driver!r}"
            )

    return Config(
        SIMPLEDB_CONNECTION_STRING=_optional("SIMPLEDB_CONNECTION_STRING"),
        SIMPLEDB_EXECUTION_TIMEOUT=timeout,
        SIMPLEDB_DRIVER=driver,
        SIMPLEDB_ODBC_DRIVER=_optional("SIMPLEDB_ODBC_DRIVER") or DEFAULT_ODBC_DRIVER,
        SIMPLEDB_LOG_LEVEL=(_optional("SIMPLEDB_LOG_LEVEL") or "INFO").upper(),
    )


# Create a single configuration instance when this module is imported.
config: Config = _load_env()
