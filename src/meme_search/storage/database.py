"""SQLite connection management for the catalog.

Each thread gets its own connection (SQLite connections must not be shared
across concurrent threads). Connections run in autocommit mode; writes go
through ``Database.transaction`` which issues ``BEGIN IMMEDIATE`` so
mutations serialize on the database write lock while WAL keeps readers
unblocked.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
from pathlib import Path
import sqlite3
import threading

from meme_search.errors import StorageError
from meme_search.storage.sqlite_pragmas import apply_connection_pragmas


logger = logging.getLogger(__name__)


class Transaction:
    """An open write transaction.

    Collaborators that keep state outside SQLite (such as the in-process
    index) register compensating callbacks with ``on_rollback``; they run in
    reverse order if the transaction does not commit.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._rollback_hooks: list[Callable[[], None]] = []

    def on_rollback(self, callback: Callable[[], None]) -> None:
        self._rollback_hooks.append(callback)

    def run_rollback_hooks(self) -> None:
        for callback in reversed(self._rollback_hooks):
            try:
                callback()
            except Exception:
                logger.exception("Rollback hook failed")
        self._rollback_hooks.clear()


class Database:
    """Thread-local SQLite connections over one database file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._registry_lock = threading.Lock()

    def connection(self) -> sqlite3.Connection:
        """Return this thread's connection, opening it on first use."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = self._create_connection()
            self._local.connection = conn
        return conn

    def _create_connection(self) -> sqlite3.Connection:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            apply_connection_pragmas(conn)
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Cannot open database {self.db_path}: {exc}") from exc
        with self._registry_lock:
            self._connections.append(conn)
        logger.debug("Opened SQLite connection to %s", self.db_path)
        return conn

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Run a write transaction; commits on success, rolls back on any error."""
        conn = self.connection()
        if conn.in_transaction:
            raise StorageError("Nested transactions are not supported")
        conn.execute("BEGIN IMMEDIATE")
        txn = Transaction(conn)
        try:
            yield txn
        except BaseException:
            conn.execute("ROLLBACK")
            txn.run_rollback_hooks()
            raise
        try:
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            txn.run_rollback_hooks()
            raise StorageError(f"Commit failed: {exc}") from exc

    def close(self) -> None:
        """Close every connection opened by this instance."""
        with self._registry_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.Error:
                pass  # Ignore errors during cleanup
        self._local = threading.local()
