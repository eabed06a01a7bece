"""Deterministic ordering, capping and hydration of backend hits."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
import logging

from meme_search.domain.model import Meme, SearchableRecord
from meme_search.query.compiler import CompiledQuery
from meme_search.search.backend import BackendHit, FullTextBackend
from meme_search.search.inverted_index import InvertedIndex
from meme_search.storage.meme_repository import MemeRepository


logger = logging.getLogger(__name__)

DEFAULT_RESULT_LIMIT = 200
_MIN_VERIFY_BATCH = 50


@dataclass(frozen=True, slots=True)
class RankedHit:
    """Candidate ordered by score desc, then created_at desc, then id desc."""

    record_id: int
    score: float
    created_at: datetime

    @property
    def sort_key(self) -> tuple[float, datetime, int]:
        return (self.score, self.created_at, self.record_id)


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A hydrated result; ``score`` is None for recency listings."""

    meme: Meme
    score: float | None = None


def order_hits(hits: Sequence[BackendHit], created_at: dict[int, datetime]) -> list[RankedHit]:
    """Sort backend hits into the total result order.

    Hits whose id has no creation time (deleted since the index was read) are dropped.
    Duplicate ids keep their best score.
    """
    best: dict[int, float] = {}
    for hit in hits:
        if hit.record_id in created_at and hit.score > best.get(hit.record_id, float("-inf")):
            best[hit.record_id] = hit.score
    ranked = [RankedHit(record_id, score, created_at[record_id]) for record_id, score in best.items()]
    ranked.sort(key=lambda hit: hit.sort_key, reverse=True)
    return ranked


class Ranker:
    """Runs compiled queries and turns backend hits into ordered records."""

    def __init__(self, backend: FullTextBackend, repository: MemeRepository) -> None:
        self.backend = backend
        self.repository = repository

    def rank(self, compiled: CompiledQuery, limit: int = DEFAULT_RESULT_LIMIT) -> list[SearchHit]:
        """Execute ``compiled`` and return at most ``limit`` hydrated hits.

        Raises:
            BackendExecutionError: If the backend fails; never reported as zero matches
        """
        if compiled.match_all:
            return self.recent(limit)

        # The backend's own cut-off could split score ties arbitrarily, so order every candidate here
        hits = self.backend.query(compiled, None)
        if not hits:
            return []
        ranked = order_hits(hits, self.repository.get_created_at(hit.record_id for hit in hits))

        if compiled.needs_post_filter:
            return self._verified(ranked, compiled, limit)

        top = ranked[:limit]
        records = self.repository.get_by_ids([hit.record_id for hit in top])
        logger.debug("Ranked %d candidates, returning %d", len(ranked), len(top))
        return [SearchHit(records[hit.record_id], hit.score) for hit in top if hit.record_id in records]

    def recent(self, limit: int = DEFAULT_RESULT_LIMIT) -> list[SearchHit]:
        return [SearchHit(meme) for meme in self.repository.get_recent(limit)]

    def _verified(self, ranked: list[RankedHit], compiled: CompiledQuery, limit: int) -> list[SearchHit]:
        """Keep candidates that satisfy the original tree, in rank order, until ``limit`` is reached.

        The backend evaluated a widened plan (proximity rewritten as conjunction),
        so each candidate is re-checked against its own text.
        """
        results: list[SearchHit] = []
        batch_size = max(limit, _MIN_VERIFY_BATCH)
        checked = 0
        for start in range(0, len(ranked), batch_size):
            batch = ranked[start : start + batch_size]
            records = self.repository.get_by_ids([hit.record_id for hit in batch])
            verifier = InvertedIndex()
            verifier.bulk_load(SearchableRecord.from_meme(meme) for meme in records.values())
            accepted = verifier.evaluate(compiled.source)
            checked += len(batch)
            for hit in batch:
                if hit.record_id in accepted:
                    results.append(SearchHit(records[hit.record_id], hit.score))
                    if len(results) == limit:
                        logger.debug("Post-filter checked %d of %d candidates", checked, len(ranked))
                        return results
        logger.debug("Post-filter checked %d candidates, kept %d", checked, len(results))
        return results
