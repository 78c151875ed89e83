"""
SQL Server connection utilities.

The executor talks to SQL Server through either ``pymssql`` or
``pyodbc``; whichever is installed is used, ``pymssql`` first.  A
``sqlite://`` URL selects the standard library ``sqlite3`` driver,
which is handy for local development and tests.

The ``connect`` function returns an instance of ``Db``, the connection
handle used by :class:`~simple_db_connect.services.command_executor.CommandExecutor`.
SQL strings use SQL Server style named parameters prefixed with ``@``
(e.g. ``@idPromocion``).  Before execution they are rewritten to the
placeholder style of the active driver:

* ``pymssql`` – ``%(name)s`` with a mapping of values,
* ``pyodbc`` – ``?`` with values passed positionally in order of appearance,
* ``sqlite`` – ``:name`` with a mapping of values.

Example usage::

    from simple_db_connect.infra.db import connect, CommandSpec
    db = connect(os.environ['SIMPLEDB_CONNECTION_STRING'])
    rows = db.execute_tabular(CommandSpec.build("SELECT * FROM t WHERE id = @id", {'id': 123}))
    db.close()
"""

from __future__ import annotations

import logging
import re
import sqlite3
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from ...config import config
from .command import CommandSpec

# ``@name`` but not ``@@ROWCOUNT`` style system functions or e-mail addresses.
# Names match case-insensitively, as SQL Server variable names do.
_PARAM_TOKEN = re.compile(r"(?<![@\w])@([A-Za-z_][A-Za-z0-9_]*)")


def _substitute(sql: str, params: Dict[str, Any], placeholder: Callable[[str], str]) -> str:
    lookup = {name.lower(): name for name in params}

    def replacer(match: re.Match[str]) -> str:
        name = lookup.get(match.group(1).lower())
        if name is None:
            return match.group(0)
        return placeholder(name)

    return _PARAM_TOKEN.sub(replacer, sql)


def _bind_pymssql(sql: str, params: Dict[str, Any]) -> Tuple[str, Any]:
    if not params:
        return sql, None
    # pymssql interpolates with the % operator once parameters are supplied
    query = _substitute(sql.replace("%", "%%"), params, lambda name: f"%({name})s")
    return query, params


def _bind_pyodbc(sql: str, params: Dict[str, Any]) -> Tuple[str, Any]:
    values: List[Any] = []

    def positional(name: str) -> str:
        values.append(params[name])
        return "?"

    query = _substitute(sql, params, positional)
    return query, (values if values else None)


def _bind_sqlite(sql: str, params: Dict[str, Any]) -> Tuple[str, Any]:
    if not params:
        return sql, None
    return _substitute(sql, params, lambda name: f":{name}"), params


def _to_first_result_set(cursor: Any) -> bool:
    """Skip row-count-only results (e.g. the INSERT in ``INSERT ...; SELECT SCOPE_IDENTITY()``).

    Returns ``True`` when the cursor is positioned on a result set.
    """
    nextset = getattr(cursor, "nextset", None)
    while cursor.description is None:
        if nextset is None or not nextset():
            return False
    return True


_BINDERS: Dict[str, Callable[[str, Dict[str, Any]], Tuple[str, Any]]] = {
    "pymssql": _bind_pymssql,
    "pyodbc": _bind_pyodbc,
    "sqlite": _bind_sqlite,
}


class Db:
    """Connection handle wrapping a DB-API connection.

    Instances are returned by the ``connect`` function defined below and
    may be handed back to the executor as caller-supplied connections.
    The handle is opened in autocommit mode; ``begin`` switches
    autocommit off until the transaction is committed or rolled back.
    """

    def __init__(self, conn: Any, driver: str) -> None:
        if driver not in _BINDERS:
            raise RuntimeError(f"Unsupported driver: {driver}")
        self._conn = conn
        self._driver = driver
        self._closed = False
        self._in_transaction = False

    @property
    def driver(self) -> str:
        return self._driver

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def set_timeout(self, seconds: int) -> None:
        """Apply a query timeout to subsequent commands on this connection."""
        if self._driver == "pyodbc":
            self._conn.timeout = seconds
        elif self._driver == "pymssql":
            # pymssql only exposes the query timeout on its low-level connection
            inner = getattr(self._conn, "_conn", None)
            if inner is not None:
                inner.query_timeout = seconds

    def bind(self, spec: CommandSpec) -> Tuple[str, Any]:
        """Return the driver-specific SQL and arguments for ``spec``."""
        if spec.is_stored_procedure:
            return self._procedure_call(spec)
        return _BINDERS[self._driver](spec.text, spec.parameters)

    def _procedure_call(self, spec: CommandSpec) -> Tuple[str, Any]:
        if self._driver == "sqlite":
            raise RuntimeError("Stored procedures are not supported by the sqlite driver")
        params = spec.parameters
        if not params:
            return f"EXEC {spec.text}", None
        if self._driver == "pymssql":
            assignments = ", ".join(f"@{name} = %({name})s" for name in params)
            return f"EXEC {spec.text.replace('%', '%%')} {assignments}", params
        assignments = ", ".join(f"@{name} = ?" for name in params)
        return f"EXEC {spec.text} {assignments}", list(params.values())

    def _run(self, spec: CommandSpec, consume: Callable[[Any], Any]) -> Any:
        if self._closed:
            raise RuntimeError("Connection is closed")
        self.set_timeout(spec.timeout)
        sql, args = self.bind(spec)
        logging.debug("[mssql] execute", extra={"driver": self._driver, "sql": sql})
        cursor = self._conn.cursor()
        try:
            if args is None:
                cursor.execute(sql)
            else:
                cursor.execute(sql, args)
            return consume(cursor)
        finally:
            cursor.close()

    def execute_non_query(self, spec: CommandSpec) -> int:
        """Execute a command and return the driver-reported affected row count."""
        return self._run(spec, lambda cursor: int(cursor.rowcount))

    def execute_scalar(self, spec: CommandSpec) -> Any:
        """Return the first column of the first row, or ``None`` when no rows are returned."""

        def first_value(cursor: Any) -> Any:
            if not _to_first_result_set(cursor):
                return None
            row = cursor.fetchone()
            return None if row is None else row[0]

        return self._run(spec, first_value)

    def execute_tabular(self, spec: CommandSpec) -> List[Dict[str, Any]]:
        """Execute a query and materialise the full result set.

        Returns:
            A list of rows, each a mapping from column name to value.  A
            statement that produces no result set yields an empty list.
        """

        def materialise(cursor: Any) -> List[Dict[str, Any]]:
            if not _to_first_result_set(cursor):
                return []
            columns = [col[0] for col in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

        return self._run(spec, materialise)

    def begin(self) -> None:
        if self._closed:
            raise RuntimeError("Connection is closed")
        if self._driver == "pyodbc":
            self._conn.autocommit = False
        elif self._driver == "pymssql":
            self._conn.autocommit(False)
        else:
            self._conn.execute("BEGIN")
        self._in_transaction = True

    def commit(self) -> None:
        self._conn.commit()
        self._end_transaction()

    def rollback(self) -> None:
        self._conn.rollback()
        self._end_transaction()

    def _end_transaction(self) -> None:
        self._in_transaction = False
        if self._driver == "pyodbc":
            self._conn.autocommit = True
        elif self._driver == "pymssql":
            self._conn.autocommit(True)

    def close(self) -> None:
        if self._closed:
            return
        try:
            self._conn.close()
        finally:
            self._closed = True
            self._in_transaction = False


def parse_connection_string(input_str: str) -> Dict[str, Any]:
    """Parse a connection string into its components.

    Supports ``mssql://`` (or ``sqlserver://``) URLs, ``sqlite://`` URLs
    and semicolon-separated key/value pairs.  Key/value strings that name
    an ODBC ``Driver`` are kept verbatim under ``odbc`` so they can be
    handed to ``pyodbc`` unchanged.

    Args:
        input_str: The connection string to parse.

    Returns:
        A dictionary of connection parameters such as ``server``,
        ``port``, ``user``, ``password`` and ``database`` as well as
        ``encrypt`` and ``trustServerCertificate`` flags.  For sqlite,
        ``driver`` is ``'sqlite'`` and ``database`` the file path.

    Raises:
        ValueError: If the string is empty or no server is given.
    """
    s = (input_str or "").strip()
    if not s:
        raise ValueError("Empty connection string")
    if s.lower().startswith("sqlite://"):
        path = s[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return {"driver": "sqlite", "database": path or ":memory:"}
    # Normalise sqlserver:// prefix
    norm = re.sub(r"^sqlserver://", "mssql://", s, flags=re.IGNORECASE)
    if norm.lower().startswith("mssql://"):
        url = urlsplit(norm)
        if not url.hostname:
            raise ValueError("No server found in connection URL")
        return {
            'server': url.hostname,
            'user': unquote(url.username) if url.username else None,
            'password': unquote(url.password) if url.password else None,
            'port': url.port,
            'database': url.path.lstrip("/") or None,
            'encrypt': True,
            'trustServerCertificate': True,
        }
    parts = [p.strip() for p in norm.split(";") if p.strip()]
    kv: Dict[str, str] = {}
    for p in parts:
        if '=' not in p:
            continue
        k, v = p.split('=', 1)
        kv[k.strip().lower()] = v.strip()
    server_raw = kv.get('server') or kv.get('data source') or kv.get('address') or kv.get('addr') or kv.get('network address')
    if not server_raw:
        raise ValueError('No Server= found in connection string')
    server = server_raw
    port: Optional[int] = None
    m = re.match(r"^(.*?),(\d+)$", server_raw)
    if m:
        server = m.group(1)
        port = int(m.group(2))
    user = kv.get('uid') or kv.get('user id') or kv.get('user')
    password = kv.get('pwd') or kv.get('password')
    database = kv.get('database') or kv.get('initial catalog')
    encrypt_str = (kv.get('encrypt') or 'true').lower()
    tsc_str = (kv.get('trustservercertificate') or kv.get('trust server certificate') or 'true').lower()
    encrypt = encrypt_str in ('true', 'yes', '1')
    trust_server_certificate = tsc_str in ('true', 'yes', '1')
    cfg: Dict[str, Any] = {
        'server': server,
        'user': user,
        'password': password,
        'port': port,
        'database': database,
        'encrypt': encrypt,
        'trustServerCertificate': trust_server_certificate,
    }
    if 'driver' in kv:
        cfg['driver'] = 'pyodbc'
        cfg['odbc'] = norm
    return cfg


def _connect_sqlite(cfg: Dict[str, Any], timeout: int) -> Db:
    # isolation_level=None keeps sqlite3 in autocommit mode like the SQL Server drivers
    conn = sqlite3.connect(cfg['database'], timeout=timeout, isolation_level=None)
    return Db(conn, "sqlite")


def _connect_pymssql(cfg: Dict[str, Any], timeout: int) -> Db:
    import pymssql  # type: ignore[import]

    conn = pymssql.connect(
        server=cfg.get('server'),
        user=cfg.get('user'),
        password=cfg.get('password'),
        database=cfg.get('database') or '',
        port=str(cfg.get('port') or 1433),
        timeout=timeout,
        autocommit=True,
    )
    return Db(conn, "pymssql")


def _connect_pyodbc(cfg: Dict[str, Any], timeout: int) -> Db:
    import pyodbc  # type: ignore[import]

    conn_str = cfg.get('odbc')
    if not conn_str:
        server = cfg.get('server')
        port = cfg.get('port')
        encrypt = cfg.get('encrypt', True)
        trust = cfg.get('trustServerCertificate', True)
        server_expr = f"{server},{port}" if port else server
        conn_str = (
            f"DRIVER={{{config.SIMPLEDB_ODBC_DRIVER}}};"
            f"SERVER={server_expr};"
            f"DATABASE={cfg.get('database') or ''};"
            f"UID={cfg.get('user') or ''};PWD={cfg.get('password') or ''};"
            f"Encrypt={'yes' if encrypt else 'no'};"
            f"TrustServerCertificate={'yes' if trust else 'no'};"
        )
    conn = pyodbc.connect(conn_str, autocommit=True)
    conn.timeout = timeout
    return Db(conn, "pyodbc")


def connect(raw: str, timeout: int = 30, driver: Optional[str] = None) -> Db:
    """Connect to a database.

    The driver is chosen from, in order: the ``driver`` argument, the
    connection string itself (``sqlite://`` URLs and ODBC ``Driver=``
    strings), and ``SIMPLEDB_DRIVER``.  Without a preference ``pymssql``
    is tried first with ``pyodbc`` as fallback.  Connection pooling is
    delegated to the underlying library.

    Args:
        raw: The raw connection string.
        timeout: Query timeout in seconds applied to the new connection.
        driver: Optional explicit driver name.

    Returns:
        A ``Db`` handle in autocommit mode.

    Raises:
        ImportError: If no usable driver is installed.
        ValueError: If the connection string cannot be parsed.
    """
    cfg = parse_connection_string(raw)
    preferred = driver or cfg.get('driver') or config.SIMPLEDB_DRIVER
    logging.debug("[mssql] connect", extra={"driver": preferred or "auto", "server": cfg.get('server')})
    if preferred == "sqlite" or cfg.get('driver') == "sqlite":
        return _connect_sqlite(cfg, timeout)
    if preferred == "pymssql":
        return _connect_pymssql(cfg, timeout)
    if preferred == "pyodbc":
        return _connect_pyodbc(cfg, timeout)
    if preferred is not None:
        raise RuntimeError(f"Unsupported driver: {preferred}")
    # Try pymssql first
    try:
        return _connect_pymssql(cfg, timeout)
    except ImportError:
        pass
    # Fallback to pyodbc
    try:
        return _connect_pyodbc(cfg, timeout)
    except ImportError:
        raise ImportError(
            "Neither pymssql nor pyodbc is installed. Install one of them to connect to SQL Server."
        )
