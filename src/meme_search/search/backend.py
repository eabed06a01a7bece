"""Contract between the ranker and the full-text engines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from meme_search.domain.model import SearchableRecord
from meme_search.query.compiler import CompiledQuery
from meme_search.storage.database import Transaction


@dataclass(frozen=True, slots=True)
class BackendHit:
    """A matching record id with its relevance score (higher is better)."""

    record_id: int
    score: float


@runtime_checkable
class FullTextBackend(Protocol):
    """Inverted index over ``SearchableRecord`` entries.

    ``query`` returns hits in no particular order; the ranker owns ordering.
    Mutations take the primary-store transaction they belong to so the index
    commits or rolls back together with the record.
    """

    name: str

    @property
    def supports_proximity(self) -> bool: ...

    def query(self, compiled: CompiledQuery, limit: int | None = None) -> list[BackendHit]: ...

    def insert_entry(self, txn: Transaction, record: SearchableRecord) -> None: ...

    def delete_entry(self, txn: Transaction, record_id: int) -> None: ...

    def clear(self, txn: Transaction) -> None: ...

    def count(self) -> int: ...
