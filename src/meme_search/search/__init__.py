"""Full-text search: backends, ranking and index maintenance."""

from meme_search.search.backend import BackendHit, FullTextBackend
from meme_search.search.inverted_index import InvertedIndex
from meme_search.search.maintenance import IndexMaintenance
from meme_search.search.memory_backend import MemoryBackend
from meme_search.search.ranker import DEFAULT_RESULT_LIMIT, RankedHit, Ranker, SearchHit, order_hits
from meme_search.search.sqlite_fts import Fts5Backend


__all__ = [
    "DEFAULT_RESULT_LIMIT",
    "BackendHit",
    "Fts5Backend",
    "FullTextBackend",
    "IndexMaintenance",
    "InvertedIndex",
    "MemoryBackend",
    "RankedHit",
    "Ranker",
    "SearchHit",
    "order_hits",
]
