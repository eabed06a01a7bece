"""Keeps the full-text indexes in lockstep with the primary store.

Every hook runs inside the caller's transaction. A failing index write is
raised as ``IndexConsistencyError``, which aborts the transaction so the
primary mutation is rolled back with it.

Besides the backend that serves searches, a persistent ``memes_fts`` table
left by an earlier run is maintained as a replica, so switching backends
never exposes a stale index.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
import logging

from meme_search.domain.model import Meme, SearchableRecord
from meme_search.errors import IndexConsistencyError
from meme_search.observability.metrics import INDEX_MUTATIONS, INDEX_RECORD_COUNT
from meme_search.search.backend import FullTextBackend
from meme_search.storage.database import Transaction


logger = logging.getLogger(__name__)


class IndexMaintenance:
    """Create/update/delete hooks plus full rebuild for the serving backend and its replicas."""

    def __init__(self, backend: FullTextBackend, *, replicas: Sequence[FullTextBackend] = ()) -> None:
        self.backend = backend
        self.replicas = tuple(replicas)

    @property
    def backends(self) -> tuple[FullTextBackend, ...]:
        return (self.backend, *self.replicas)

    @contextmanager
    def _guard(self, backend: FullTextBackend, operation: str, record_id: int | None) -> Iterator[None]:
        try:
            yield
        except IndexConsistencyError:
            INDEX_MUTATIONS.labels(backend=backend.name, operation=operation, status="error").inc()
            raise
        except Exception as exc:
            INDEX_MUTATIONS.labels(backend=backend.name, operation=operation, status="error").inc()
            logger.error("Index %s failed on %s for meme %s: %s", operation, backend.name, record_id, exc)
            raise IndexConsistencyError(
                f"Index {operation} failed for meme {record_id}: {exc}", record_id=record_id
            ) from exc
        INDEX_MUTATIONS.labels(backend=backend.name, operation=operation, status="ok").inc()

    def on_create(self, txn: Transaction, meme: Meme) -> None:
        record = SearchableRecord.from_meme(meme)
        for backend in self.backends:
            with self._guard(backend, "create", meme.id):
                backend.insert_entry(txn, record)

    def on_update(self, txn: Transaction, meme: Meme) -> None:
        """Replace the entry wholesale: delete, then insert from the updated record."""
        record = SearchableRecord.from_meme(meme)
        for backend in self.backends:
            with self._guard(backend, "update", meme.id):
                backend.delete_entry(txn, meme.id)
                backend.insert_entry(txn, record)

    def on_delete(self, txn: Transaction, record_id: int) -> None:
        for backend in self.backends:
            with self._guard(backend, "delete", record_id):
                backend.delete_entry(txn, record_id)

    def on_clear(self, txn: Transaction) -> None:
        for backend in self.backends:
            with self._guard(backend, "clear", None):
                backend.clear(txn)

    def drifted(self, stored: int) -> list[FullTextBackend]:
        """Backends whose entry count differs from the ``stored`` record count."""
        return [backend for backend in self.backends if backend.count() != stored]

    def rebuild(self, txn: Transaction, memes: Callable[[], Iterator[Meme]]) -> int:
        """Clear every index and reinsert each record from ``memes()``.

        Returns:
            Number of records indexed
        """
        count = 0
        for backend in self.backends:
            count = 0
            with self._guard(backend, "rebuild", None):
                backend.clear(txn)
                for meme in memes():
                    backend.insert_entry(txn, SearchableRecord.from_meme(meme))
                    count += 1
            INDEX_RECORD_COUNT.labels(backend=backend.name).set(count)
            logger.info("Rebuilt %s index with %d records", backend.name, count)
        return count
