"""Positional inverted index evaluated directly over the query tree.

Postings map ``term -> record id -> field -> positions``. Positions are token
offsets produced by the same unicode61-compatible analyzer that is applied
to query words, so a quoted word that splits into several tokens (such as
``"hello-world"``) is matched as a phrase, exactly like FTS5 does.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
import logging
import threading

from meme_search.config import SEARCHABLE_FIELDS
from meme_search.domain.model import SearchableRecord
from meme_search.query.nodes import (
    And,
    EmptyQuery,
    FieldScoped,
    Near,
    Not,
    Or,
    ParsedQuery,
    Phrase,
    Prefix,
    Term,
)
from meme_search.search.analyzers import Analyzer, Unicode61Analyzer, analyze_words
from meme_search.search.phrase import phrase_starts, within_distance
from meme_search.search.stats import bm25, calculate_idf, compute_field_length_stats


logger = logging.getLogger(__name__)

# record id -> field -> start positions of each occurrence
Occurrences = dict[int, dict[str, list[int]]]


class InvertedIndex:
    """In-memory positional index with BM25 scoring.

    All public methods are safe to call from several threads; mutations and
    reads serialize on one re-entrant lock.
    """

    def __init__(
        self,
        *,
        analyzer: Analyzer | None = None,
        field_boosts: Mapping[str, float] | None = None,
        fields: tuple[str, ...] = SEARCHABLE_FIELDS,
    ) -> None:
        self.analyzer = analyzer or Unicode61Analyzer()
        self.fields = fields
        self.field_boosts = {name: float((field_boosts or {}).get(name, 1.0)) for name in fields}
        self._postings: dict[str, dict[int, dict[str, list[int]]]] = {}
        self._field_lengths: dict[str, dict[int, int]] = {name: {} for name in fields}
        self._records: dict[int, SearchableRecord] = {}
        self._lock = threading.RLock()

    # ---- maintenance ------------------------------------------------------

    def add(self, record: SearchableRecord) -> SearchableRecord | None:
        """Index ``record``, replacing any entry with the same id.

        Returns:
            The entry that was replaced, if any
        """
        with self._lock:
            previous = self._remove_locked(record.id)
            for field_name, value in record.fields().items():
                if field_name not in self._field_lengths:
                    continue
                tokens = self.analyzer(value)
                self._field_lengths[field_name][record.id] = len(tokens)
                for token in tokens:
                    by_record = self._postings.setdefault(token.text, {})
                    by_record.setdefault(record.id, {}).setdefault(field_name, []).append(token.position)
            self._records[record.id] = record
            return previous

    def remove(self, record_id: int) -> SearchableRecord | None:
        with self._lock:
            return self._remove_locked(record_id)

    def _remove_locked(self, record_id: int) -> SearchableRecord | None:
        previous = self._records.pop(record_id, None)
        if previous is None:
            return None
        for value in previous.fields().values():
            for word in set(analyze_words(self.analyzer, value)):
                by_record = self._postings.get(word)
                if by_record is None:
                    continue
                by_record.pop(record_id, None)
                if not by_record:
                    del self._postings[word]
        for lengths in self._field_lengths.values():
            lengths.pop(record_id, None)
        return previous

    def clear(self) -> dict[int, SearchableRecord]:
        """Drop every entry and return what was removed."""
        with self._lock:
            removed = self._records
            self._postings = {}
            self._field_lengths = {name: {} for name in self.fields}
            self._records = {}
            return removed

    def bulk_load(self, records: Iterable[SearchableRecord]) -> int:
        count = 0
        with self._lock:
            for record in records:
                self.add(record)
                count += 1
        return count

    def get(self, record_id: int) -> SearchableRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records

    # ---- querying ---------------------------------------------------------

    def search(self, node: ParsedQuery) -> dict[int, float]:
        """Return ``record id -> score`` for every record matching ``node``."""
        with self._lock:
            matched = self.evaluate(node)
            if not matched:
                return {}
            return self._score(matched, node)

    def evaluate(self, node: ParsedQuery, field: str | None = None) -> set[int]:
        """Return the ids of records matching ``node`` (optionally within one field)."""
        with self._lock:
            match node:
                case EmptyQuery():
                    return set(self._records)
                case Term(word):
                    return set(self._occurrences(analyze_words(self.analyzer, word), False, field))
                case Phrase(words):
                    return set(self._occurrences(analyze_words(self.analyzer, " ".join(words)), False, field))
                case Prefix(stem):
                    return set(self._occurrences(analyze_words(self.analyzer, stem), True, field))
                case FieldScoped(field_name, expr):
                    return self.evaluate(expr, field_name)
                case And(left, right):
                    matched = self.evaluate(left, field)
                    return matched & self.evaluate(right, field) if matched else matched
                case Or(left, right):
                    return self.evaluate(left, field) | self.evaluate(right, field)
                case Not(left, right):
                    matched = self.evaluate(left, field)
                    return matched - self.evaluate(right, field) if matched else matched
                case Near(terms, distance):
                    return self._near(terms, distance)
                case _:
                    raise TypeError(f"Unsupported query node: {node!r}")

    def _near(self, terms: tuple[str, ...], distance: int) -> set[int]:
        # Terms without word characters are ignored, as FTS5 does
        analyzed = [words for words in (analyze_words(self.analyzer, term) for term in terms) if words]
        if not analyzed:
            return set()
        per_term = [self._occurrences(words, False, None) for words in analyzed]
        lengths = [len(words) for words in analyzed]
        candidates = set(per_term[0])
        for occurrences in per_term[1:]:
            candidates &= occurrences.keys()
        matched: set[int] = set()
        for record_id in candidates:
            # NEAR only matches within a single field
            shared_fields = set(per_term[0][record_id])
            for occurrences in per_term[1:]:
                shared_fields &= occurrences[record_id].keys()
            for field_name in shared_fields:
                starts = [occurrences[record_id][field_name] for occurrences in per_term]
                if within_distance(starts, distance, lengths):
                    matched.add(record_id)
                    break
        return matched

    def _expand(self, word: str, prefix: bool) -> Iterator[dict[int, dict[str, list[int]]]]:
        if not prefix:
            postings = self._postings.get(word)
            if postings:
                yield postings
            return
        for term, postings in self._postings.items():
            if term.startswith(word):
                yield postings

    def _word_positions(self, word: str, prefix: bool, field: str | None) -> Occurrences:
        merged: Occurrences = defaultdict(dict)
        for postings in self._expand(word, prefix):
            for record_id, by_field in postings.items():
                for field_name, positions in by_field.items():
                    if field is not None and field_name != field:
                        continue
                    merged[record_id].setdefault(field_name, []).extend(positions)
        return merged

    def _occurrences(self, words: tuple[str, ...], prefix_last: bool, field: str | None) -> Occurrences:
        """Find contiguous occurrences of ``words``; the last one may be a prefix."""
        if not words:
            return {}
        slots = [
            self._word_positions(word, prefix_last and idx == len(words) - 1, field)
            for idx, word in enumerate(words)
        ]
        if len(slots) == 1:
            return dict(slots[0])

        candidates = set(slots[0])
        for slot in slots[1:]:
            candidates &= slot.keys()
        found: Occurrences = {}
        for record_id in candidates:
            for field_name, first_positions in slots[0][record_id].items():
                word_positions = [first_positions]
                for slot in slots[1:]:
                    positions = slot[record_id].get(field_name)
                    if positions is None:
                        break
                    word_positions.append(positions)
                else:
                    starts = phrase_starts(word_positions)
                    if starts:
                        found.setdefault(record_id, {})[field_name] = starts
        return found

    # ---- scoring ----------------------------------------------------------

    def _scoring_units(
        self, node: ParsedQuery, field: str | None = None
    ) -> Iterator[tuple[tuple[str, ...], bool, str | None]]:
        """Yield the positive leaves of ``node``; excluded branches never add score."""
        match node:
            case Term(word):
                yield analyze_words(self.analyzer, word), False, field
            case Phrase(words):
                yield analyze_words(self.analyzer, " ".join(words)), False, field
            case Prefix(stem):
                yield analyze_words(self.analyzer, stem), True, field
            case FieldScoped(field_name, expr):
                yield from self._scoring_units(expr, field_name)
            case And(left, right) | Or(left, right):
                yield from self._scoring_units(left, field)
                yield from self._scoring_units(right, field)
            case Not(left, _):
                yield from self._scoring_units(left, field)
            case Near(terms, _):
                for term in terms:
                    yield analyze_words(self.analyzer, term), False, None
            case _:
                return

    def _score(self, matched: set[int], node: ParsedQuery) -> dict[int, float]:
        scores = dict.fromkeys(matched, 0.0)
        total_docs = len(self._records)
        stats = compute_field_length_stats(self._field_lengths)
        for words, prefix_last, field in self._scoring_units(node):
            occurrences = self._occurrences(words, prefix_last, field)
            if not occurrences:
                continue
            idf = calculate_idf(len(occurrences), total_docs)
            for record_id in matched.intersection(occurrences):
                for field_name, starts in occurrences[record_id].items():
                    weight = bm25(
                        len(starts),
                        self._field_lengths[field_name].get(record_id, 0),
                        stats[field_name].average_length,
                    )
                    scores[record_id] += idf * weight * self.field_boosts.get(field_name, 1.0)
        return scores
