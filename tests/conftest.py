from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from simple_db_connect.infra.db.mssql import Db
from simple_db_connect.services.command_executor import CommandExecutor


class FakeDriverError(Exception):
    """Stands in for the driver's own exception type."""


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self._conn = conn
        self.description: Optional[List[Tuple[Any, ...]]] = None
        self.rowcount = -1
        self._rows: List[Tuple[Any, ...]] = []
        self._pending: List[Tuple[Sequence[str], Sequence[Tuple[Any, ...]]]] = []
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        driver = self._conn.driver
        self._conn.executed.append((sql, params))
        if driver.interrupt_on and driver.interrupt_on in sql:
            raise KeyboardInterrupt
        for token, error in driver.failures.items():
            if token in sql:
                raise FakeDriverError(error)
        self.rowcount = driver.rowcount
        if driver.result_sets:
            self._pending = list(driver.result_sets)
            self._load(*self._pending.pop(0))
        elif driver.columns:
            self._load(driver.columns, driver.rows)

    def _load(self, columns: Sequence[str], rows: Sequence[Tuple[Any, ...]]) -> None:
        # no columns: a row-count-only result, as drivers report for DML
        self.description = [(name, None, None, None, None, None, None) for name in columns] or None
        self._rows = list(rows)

    def nextset(self) -> Optional[bool]:
        if not self._pending:
            return None
        self._load(*self._pending.pop(0))
        return True

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> List[Tuple[Any, ...]]:
        rows, self._rows = self._rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    """pyodbc-shaped connection that records everything done to it."""

    def __init__(self, driver: "FakeDriver") -> None:
        self.driver = driver
        self.autocommit = True
        self.timeout = 0
        self.closed = False
        self.close_calls = 0
        self.commits = 0
        self.rollbacks = 0
        self.executed: List[Tuple[str, Any]] = []
        self.cursors: List[FakeCursor] = []

    def cursor(self) -> FakeCursor:
        cursor = FakeCursor(self)
        self.cursors.append(cursor)
        return cursor

    def commit(self) -> None:
        if self.driver.fail_commit:
            raise FakeDriverError(self.driver.fail_commit)
        self.commits += 1

    def rollback(self) -> None:
        if self.driver.fail_rollback:
            raise FakeDriverError(self.driver.fail_rollback)
        self.rollbacks += 1

    def close(self) -> None:
        self.close_calls += 1
        if self.driver.fail_close:
            raise FakeDriverError(self.driver.fail_close)
        self.closed = True


class FakeDriver:
    """Connection factory test double counting opens and closes.

    ``failures`` maps a SQL substring to the error message raised when a
    statement containing it is executed.
    ``result_sets`` lists ``(columns, rows)`` pairs returned in order through
    ``nextset``; empty columns stand for a row-count-only result.
    ``interrupt_on`` raises ``KeyboardInterrupt`` for matching statements.
    """

    def __init__(self) -> None:
        self.connections: List[FakeConnection] = []
        self.fail_connect: Optional[str] = None
        self.fail_commit: Optional[str] = None
        self.fail_rollback: Optional[str] = None
        self.fail_close: Optional[str] = None
        self.failures: Dict[str, str] = {}
        self.rowcount = 1
        self.columns: Sequence[str] = ()
        self.rows: Sequence[Tuple[Any, ...]] = ()
        self.result_sets: Sequence[Tuple[Sequence[str], Sequence[Tuple[Any, ...]]]] = ()
        self.interrupt_on: Optional[str] = None

    def __call__(self) -> Db:
        if self.fail_connect:
            raise FakeDriverError(self.fail_connect)
        conn = FakeConnection(self)
        self.connections.append(conn)
        return Db(conn, "pyodbc")

    @property
    def opened(self) -> int:
        return len(self.connections)

    @property
    def closed(self) -> int:
        return sum(conn.close_calls for conn in self.connections)

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """
    A dedicated temp root directory for each test.
    All filesystem writes in tests should be under this root (or tmp_path directly).
    """
    root = tmp_path / "proj"
    (root / "data").mkdir(parents=True)
    return root


@pytest.fixture(autouse=True)
def chdir_to_project_root(project_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Automatically change working directory to project_root for all tests.
    Keeps stray .env files and relative sqlite paths out of the repository.
    """
    monkeypatch.chdir(project_root)


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def executor(driver: FakeDriver) -> CommandExecutor:
    return CommandExecutor("Server=fake,1433;Database=test", connection_factory=driver)


@pytest.fixture
def sqlite_path(project_root: Path) -> Path:
    """
    On-disk SQLite DB under the temp project root (more realistic than :memory:).
    """
    return project_root / "data" / "test.sqlite"


@pytest.fixture
def sqlite_url(sqlite_path: Path) -> str:
    return f"sqlite:///{sqlite_path}"


@pytest.fixture
def sqlite_executor(sqlite_url: str) -> CommandExecutor:
    """
    Executor bound to a fixture table ``t`` holding a single row ``id = 5``.
    """
    executor = CommandExecutor(sqlite_url, driver="sqlite")
    executor.execute_non_query(
        "CREATE TABLE t (id INTEGER PRIMARY KEY, x INTEGER NOT NULL DEFAULT 0, label TEXT)",
        "create failed",
    )
    executor.execute_non_query(
        "INSERT INTO t (id, x, label) VALUES (@id, @x, @label)",
        "seed failed",
        {"@id": 5, "@x": 0, "@label": "five"},
    )
    return executor
