"""Primary store for meme records.

Reads use the calling thread's connection; writes take an open
``Transaction`` so the caller decides the transaction boundary and can run
index maintenance inside it.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import datetime, timezone
import logging
import sqlite3
from typing import Any

import orjson

from meme_search.domain.model import UPDATABLE_FIELDS, Meme, MemeInput, utc_now
from meme_search.errors import RecordNotFoundError, StorageError
from meme_search.storage.database import Database, Transaction


logger = logging.getLogger(__name__)

_COLUMNS = "id, path, filename, category, hash, text, description, keywords, created_at"

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER on older builds
_MAX_BIND_PARAMS = 900


def _encode_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _decode_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_meme(row: sqlite3.Row) -> Meme:
    try:
        keywords = orjson.loads(row["keywords"] or "[]")
    except orjson.JSONDecodeError:
        logger.warning("Meme %s has malformed keywords, treating as empty", row["id"])
        keywords = []
    return Meme(
        id=row["id"],
        path=row["path"],
        filename=row["filename"],
        category=row["category"],
        hash=row["hash"],
        text=row["text"] or "",
        description=row["description"] or "",
        keywords=[str(keyword) for keyword in keywords] if isinstance(keywords, list) else [],
        created_at=_decode_timestamp(row["created_at"]),
    )


def _chunked(ids: Sequence[int], size: int = _MAX_BIND_PARAMS) -> Iterator[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


class MemeRepository:
    """CRUD and batched lookups over the ``memes`` table."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # ---- writes -----------------------------------------------------------

    def insert(self, txn: Transaction, meme: MemeInput) -> Meme:
        created_at = meme.created_at or utc_now()
        try:
            cursor = txn.conn.execute(
                "INSERT INTO memes (path, filename, category, hash, text, description, keywords, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    meme.path,
                    meme.filename,
                    meme.category,
                    meme.hash,
                    meme.text,
                    meme.description,
                    orjson.dumps(list(meme.keywords)).decode(),
                    _encode_timestamp(created_at),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise StorageError(f"Cannot insert meme with hash {meme.hash}: {exc}") from exc
        record_id = int(cursor.lastrowid)
        return self._fetch_one(txn.conn, record_id)

    def update_fields(self, txn: Transaction, record_id: int, fields: Mapping[str, Any]) -> tuple[Meme, Meme]:
        """Update selected fields and return ``(before, after)``.

        Raises:
            RecordNotFoundError: If no meme has ``record_id``
            ValueError: If ``fields`` names a column that cannot be updated
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        before = self._fetch_one(txn.conn, record_id)
        if not fields:
            return before, before

        assignments = []
        params: list[Any] = []
        for name in sorted(fields):
            value = fields[name]
            if name == "keywords":
                value = orjson.dumps(list(value or [])).decode()
            assignments.append(f"{name} = ?")
            params.append(value)
        params.append(record_id)
        txn.conn.execute(f"UPDATE memes SET {', '.join(assignments)} WHERE id = ?", params)
        return before, self._fetch_one(txn.conn, record_id)

    def delete(self, txn: Transaction, record_id: int) -> Meme:
        before = self._fetch_one(txn.conn, record_id)
        txn.conn.execute("DELETE FROM memes WHERE id = ?", (record_id,))
        return before

    def delete_all(self, txn: Transaction) -> int:
        cursor = txn.conn.execute("DELETE FROM memes")
        return cursor.rowcount

    # ---- reads ------------------------------------------------------------

    def get_by_id(self, record_id: int) -> Meme | None:
        row = self.database.connection().execute(f"SELECT {_COLUMNS} FROM memes WHERE id = ?", (record_id,)).fetchone()
        return _row_to_meme(row) if row is not None else None

    def get_by_hash(self, content_hash: str) -> Meme | None:
        row = (
            self.database.connection()
            .execute(f"SELECT {_COLUMNS} FROM memes WHERE hash = ?", (content_hash,))
            .fetchone()
        )
        return _row_to_meme(row) if row is not None else None

    def get_by_ids(self, ids: Iterable[int]) -> dict[int, Meme]:
        """Fetch many records at once; ids that no longer exist are absent from the result."""
        unique = list(dict.fromkeys(ids))
        found: dict[int, Meme] = {}
        conn = self.database.connection()
        for chunk in _chunked(unique):
            placeholders = ",".join("?" * len(chunk))
            for row in conn.execute(f"SELECT {_COLUMNS} FROM memes WHERE id IN ({placeholders})", list(chunk)):
                found[row["id"]] = _row_to_meme(row)
        return found

    def get_created_at(self, ids: Iterable[int]) -> dict[int, datetime]:
        unique = list(dict.fromkeys(ids))
        found: dict[int, datetime] = {}
        conn = self.database.connection()
        for chunk in _chunked(unique):
            placeholders = ",".join("?" * len(chunk))
            for row in conn.execute(f"SELECT id, created_at FROM memes WHERE id IN ({placeholders})", list(chunk)):
                found[row["id"]] = _decode_timestamp(row["created_at"])
        return found

    def get_recent(self, limit: int) -> list[Meme]:
        rows = self.database.connection().execute(
            f"SELECT {_COLUMNS} FROM memes ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
        )
        return [_row_to_meme(row) for row in rows]

    def iter_all(self, batch_size: int = 500) -> Iterator[Meme]:
        """Stream every record in id order."""
        conn = self.database.connection()
        last_id = 0
        while True:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM memes WHERE id > ? ORDER BY id LIMIT ?", (last_id, batch_size)
            ).fetchall()
            if not rows:
                return
            for row in rows:
                yield _row_to_meme(row)
            last_id = rows[-1]["id"]

    def count(self) -> int:
        return int(self.database.connection().execute("SELECT COUNT(*) FROM memes").fetchone()[0])

    @staticmethod
    def _fetch_one(conn: sqlite3.Connection, record_id: int) -> Meme:
        row = conn.execute(f"SELECT {_COLUMNS} FROM memes WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            raise RecordNotFoundError(record_id)
        return _row_to_meme(row)
