"""Full-text backend backed by the in-process inverted index.

The index lives outside SQLite, so every mutation registers a compensating
action on the surrounding transaction; a rollback restores the entries the
transaction touched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging

from meme_search.domain.model import SearchableRecord
from meme_search.query.compiler import CompiledQuery
from meme_search.search.backend import BackendHit
from meme_search.search.inverted_index import InvertedIndex
from meme_search.storage.database import Transaction


logger = logging.getLogger(__name__)


class MemoryBackend:
    """``FullTextBackend`` over an :class:`InvertedIndex`.

    Args:
        field_boosts: Per-field BM25 weights
        native_proximity: Evaluate NEAR in the index. When False the backend
            reports no proximity support and the ranker post-filters instead.
    """

    name = "memory"

    def __init__(self, *, field_boosts: Mapping[str, float] | None = None, native_proximity: bool = True) -> None:
        self.index = InvertedIndex(field_boosts=field_boosts)
        self._native_proximity = native_proximity

    @property
    def supports_proximity(self) -> bool:
        return self._native_proximity

    def query(self, compiled: CompiledQuery, limit: int | None = None) -> list[BackendHit]:
        scores = self.index.search(compiled.plan)
        hits = [BackendHit(record_id, score) for record_id, score in scores.items()]
        if limit is not None and len(hits) > limit:
            hits.sort(key=lambda hit: (-hit.score, -hit.record_id))
            hits = hits[:limit]
        return hits

    def insert_entry(self, txn: Transaction, record: SearchableRecord) -> None:
        previous = self.index.add(record)
        txn.on_rollback(lambda: self._restore(record.id, previous))

    def delete_entry(self, txn: Transaction, record_id: int) -> None:
        previous = self.index.remove(record_id)
        if previous is not None:
            txn.on_rollback(lambda: self._restore(record_id, previous))

    def clear(self, txn: Transaction) -> None:
        removed = self.index.clear()
        txn.on_rollback(lambda: self.index.bulk_load(removed.values()))

    def load(self, records: Iterable[SearchableRecord]) -> int:
        """Populate the index outside a transaction (used at startup)."""
        return self.index.bulk_load(records)

    def count(self) -> int:
        return len(self.index)

    def _restore(self, record_id: int, previous: SearchableRecord | None) -> None:
        if previous is None:
            self.index.remove(record_id)
        else:
            self.index.add(previous)
        logger.debug("Restored index entry %s after rollback", record_id)
