"""Unit tests for analyzers, BM25 helpers and position arithmetic."""

import math

import pytest

from meme_search.search.analyzers import (
    AnalyzerPipeline,
    LowercaseFilter,
    RegexTokenizer,
    Unicode61Analyzer,
    analyze_words,
)
from meme_search.search.phrase import phrase_starts, within_distance
from meme_search.search.stats import bm25, calculate_idf, compute_field_length_stats


class TestUnicode61Analyzer:
    """The default analyzer splits like FTS5 unicode61."""

    def test_splits_on_punctuation_and_lowercases(self):
        analyzer = Unicode61Analyzer()
        assert analyze_words(analyzer, "Don't STOP-me_now!") == ("don", "t", "stop", "me", "now")

    def test_positions_are_contiguous(self):
        tokens = Unicode61Analyzer()("cat, sat... on the mat")

        assert [token.position for token in tokens] == [0, 1, 2, 3, 4]
        assert tokens[1].start_char == 5
        assert tokens[1].end_char == 8

    def test_folds_diacritics(self):
        assert analyze_words(Unicode61Analyzer(), "Café Über") == ("cafe", "uber")

    def test_empty_text(self):
        assert Unicode61Analyzer()("") == []

    def test_digits_are_words(self):
        assert analyze_words(Unicode61Analyzer(), "top 10 memes of 2024") == ("top", "10", "memes", "of", "2024")


class TestAnalyzerPipeline:
    def test_pipeline_renumbers_positions_after_filters(self):
        def drop_short(tokens):
            return (token for token in tokens if len(token.text) > 2)

        pipeline = AnalyzerPipeline(RegexTokenizer(), [LowercaseFilter(), drop_short])
        tokens = pipeline("A big RED dog")

        assert [(token.text, token.position) for token in tokens] == [("big", 0), ("red", 1), ("dog", 2)]


class TestBm25:
    def test_idf_is_positive_even_when_term_is_everywhere(self):
        assert calculate_idf(10, 10) > 0
        assert calculate_idf(1, 10) > calculate_idf(5, 10)

    def test_idf_for_empty_corpus(self):
        assert calculate_idf(0, 0) == 0.0

    def test_bm25_zero_frequency(self):
        assert bm25(0, 10, 5.0) == 0.0

    def test_bm25_saturates_with_frequency(self):
        one = bm25(1, 10, 10.0)
        two = bm25(2, 10, 10.0)
        assert two > one
        assert two < 2 * one

    def test_bm25_favours_shorter_fields(self):
        assert bm25(1, 3, 10.0) > bm25(1, 30, 10.0)

    def test_bm25_average_length_document(self):
        # With doc_length == average the length norm cancels out
        assert math.isclose(bm25(1, 10, 10.0), 1.0)

    def test_field_length_stats(self):
        stats = compute_field_length_stats({"text": {1: 4, 2: 8}, "keywords": {}})

        assert stats["text"].total_terms == 12
        assert stats["text"].average_length == 6.0
        assert stats["keywords"].average_length == 0.0


class TestWithinDistance:
    @pytest.mark.parametrize(
        ("positions", "distance", "expected"),
        [
            ([[0], [4]], 3, True),
            ([[0], [4]], 2, False),
            ([[4], [0]], 3, True),
            ([[0], [1]], 0, True),
            ([[0], [2]], 0, False),
            ([[0, 20], [10, 22]], 1, True),
            ([[0], [3], [6]], 5, True),
            ([[0], [3], [6]], 4, False),
        ],
    )
    def test_window(self, positions, distance, expected):
        assert within_distance(positions, distance) is expected

    def test_missing_term(self):
        assert within_distance([[0], []], 5) is False
        assert within_distance([], 5) is False

    def test_multi_token_terms_count_their_length(self):
        # "hello world" at 0-1, "mat" at 4: two tokens in between
        assert within_distance([[0], [4]], 2, lengths=[2, 1])
        assert not within_distance([[0], [4]], 1, lengths=[2, 1])


class TestPhraseStarts:
    def test_contiguous_words(self):
        assert phrase_starts([[0, 5], [1, 9], [2]]) == [0]

    def test_repeated_phrase(self):
        assert phrase_starts([[0, 3], [1, 4]]) == [0, 3]

    def test_no_match(self):
        assert phrase_starts([[0], [2]]) == []
        assert phrase_starts([]) == []
