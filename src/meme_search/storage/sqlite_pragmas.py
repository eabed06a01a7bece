"""Shared SQLite PRAGMA helpers for consistent connection tuning."""

from __future__ import annotations

import sqlite3


def apply_connection_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -16384,
    mmap_size_bytes: int = 67108864,
    temp_store: str = "MEMORY",
    busy_timeout_ms: int | None = 30000,
) -> None:
    """Apply PRAGMAs for a catalog connection that both reads and writes.

    WAL lets searches run while an import holds the write lock.
    """
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")


def fts5_available(conn: sqlite3.Connection) -> bool:
    """Return True when the linked SQLite library was compiled with FTS5."""
    try:
        rows = conn.execute("PRAGMA compile_options").fetchall()
    except sqlite3.Error:
        return False
    if any(row[0] == "ENABLE_FTS5" for row in rows):
        return True
    try:
        conn.execute("CREATE VIRTUAL TABLE temp._fts5_check USING fts5(x)")
        conn.execute("DROP TABLE temp._fts5_check")
    except sqlite3.OperationalError:
        return False
    return True
