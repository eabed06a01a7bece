"""Full-text backend on SQLite FTS5.

The ``memes_fts`` virtual table holds one row per meme keyed by
``rowid = memes.id``. Writes share the primary store's transaction, so the
index commits or rolls back together with the record.
"""

from __future__ import annotations

from collections.abc import Mapping
import logging
import sqlite3

from meme_search.config import SEARCHABLE_FIELDS
from meme_search.domain.model import SearchableRecord
from meme_search.errors import BackendExecutionError, StorageError
from meme_search.query.compiler import CompiledQuery
from meme_search.search.backend import BackendHit
from meme_search.storage.database import Database, Transaction
from meme_search.storage.sqlite_pragmas import fts5_available


logger = logging.getLogger(__name__)

FTS_TABLE = "memes_fts"
DEFAULT_TOKENIZER = "unicode61 remove_diacritics 2"


class Fts5Backend:
    """``FullTextBackend`` evaluating compiled expressions with FTS5 ``MATCH``."""

    name = "sqlite"
    supports_proximity = True

    def __init__(
        self,
        database: Database,
        *,
        field_boosts: Mapping[str, float] | None = None,
        tokenizer: str = DEFAULT_TOKENIZER,
    ) -> None:
        self.database = database
        self.tokenizer = tokenizer
        boosts = field_boosts or {}
        # bm25() takes one weight per column, in declaration order
        self._weights = tuple(float(boosts.get(name, 1.0)) for name in SEARCHABLE_FIELDS)

    def ensure_schema(self) -> bool:
        """Create the FTS5 table if it is missing.

        Returns:
            True when the table was created (and therefore needs a rebuild)

        Raises:
            StorageError: If this SQLite build lacks FTS5
        """
        if not fts5_available(self.database.connection()):
            raise StorageError("SQLite was built without FTS5; use the memory search backend instead")
        if self.table_exists():
            return False
        columns = ", ".join(SEARCHABLE_FIELDS)
        with self.database.transaction() as txn:
            txn.conn.execute(f"CREATE VIRTUAL TABLE {FTS_TABLE} USING fts5({columns}, tokenize = '{self.tokenizer}')")
        logger.info("Created full-text table %s", FTS_TABLE)
        return True

    def table_exists(self) -> bool:
        row = (
            self.database.connection()
            .execute("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (FTS_TABLE,))
            .fetchone()
        )
        return row is not None

    @classmethod
    def existing(cls, database: Database, *, field_boosts: Mapping[str, float] | None = None) -> Fts5Backend | None:
        """Return a backend over a ``memes_fts`` table created earlier, or None if there is none.

        Used to keep that table current while another backend serves searches.
        """
        backend = cls(database, field_boosts=field_boosts)
        if not fts5_available(database.connection()) or not backend.table_exists():
            return None
        return backend

    def query(self, compiled: CompiledQuery, limit: int | None = None) -> list[BackendHit]:
        sql_limit = -1 if limit is None else limit
        conn = self.database.connection()
        try:
            if compiled.match_all:
                rows = conn.execute(f"SELECT rowid, 0.0 FROM {FTS_TABLE} LIMIT ?", (sql_limit,)).fetchall()
            else:
                placeholders = ", ".join("?" * len(self._weights))
                # bm25() is lower-is-better; negate so higher scores rank first everywhere
                rows = conn.execute(
                    f"SELECT rowid, -bm25({FTS_TABLE}, {placeholders}) AS score FROM {FTS_TABLE} "
                    f"WHERE {FTS_TABLE} MATCH ? ORDER BY score DESC LIMIT ?",
                    (*self._weights, compiled.expression, sql_limit),
                ).fetchall()
        except sqlite3.Error as exc:
            raise BackendExecutionError(f"Full-text query failed: {exc}", expression=compiled.expression) from exc
        return [BackendHit(int(row[0]), float(row[1])) for row in rows]

    def insert_entry(self, txn: Transaction, record: SearchableRecord) -> None:
        fields = record.fields()
        txn.conn.execute(
            f"INSERT INTO {FTS_TABLE} (rowid, {', '.join(SEARCHABLE_FIELDS)}) VALUES (?, ?, ?, ?, ?)",
            (record.id, *(fields[name] for name in SEARCHABLE_FIELDS)),
        )

    def delete_entry(self, txn: Transaction, record_id: int) -> None:
        txn.conn.execute(f"DELETE FROM {FTS_TABLE} WHERE rowid = ?", (record_id,))

    def clear(self, txn: Transaction) -> None:
        txn.conn.execute(f"DELETE FROM {FTS_TABLE}")

    def count(self) -> int:
        return int(self.database.connection().execute(f"SELECT COUNT(*) FROM {FTS_TABLE}").fetchone()[0])
