"""Unit tests for the query tokenizer."""

import re

import pytest

from meme_search.errors import QuerySyntaxError, UnsupportedFieldError
from meme_search.query.lexer import TokenKind, tokenize


def _kinds(query: str) -> list[TokenKind]:
    return [token.kind for token in tokenize(query)]


class TestWordsAndOperators:
    def test_bare_words_are_lowercased_terms(self):
        tokens = tokenize("Pikachu FACE")

        assert [token.kind for token in tokens] == [TokenKind.TERM, TokenKind.TERM]
        assert [token.value for token in tokens] == ["pikachu", "face"]
        assert [token.text for token in tokens] == ["Pikachu", "FACE"]
        assert [token.position for token in tokens] == [0, 8]

    @pytest.mark.parametrize("word", ["AND", "and", "And"])
    def test_keywords_are_case_insensitive(self, word):
        assert _kinds(f"a {word} b") == [TokenKind.TERM, TokenKind.AND, TokenKind.TERM]

    def test_keywords_must_be_whole_words(self):
        assert _kinds("android oregon notable") == [TokenKind.TERM] * 3

    def test_all_operators(self):
        assert _kinds("a OR b NOT c AND d") == [
            TokenKind.TERM,
            TokenKind.OR,
            TokenKind.TERM,
            TokenKind.NOT,
            TokenKind.TERM,
            TokenKind.AND,
            TokenKind.TERM,
        ]

    def test_parentheses_split_words(self):
        tokens = tokenize("(a)b")
        assert [token.kind for token in tokens] == [
            TokenKind.LPAREN,
            TokenKind.TERM,
            TokenKind.RPAREN,
            TokenKind.TERM,
        ]

    def test_whitespace_only_yields_no_tokens(self):
        assert tokenize(" \t\n ") == []

    def test_punctuation_stays_inside_word(self):
        tokens = tokenize("don't stop-me")
        assert [token.value for token in tokens] == ["don't", "stop-me"]


class TestPhrases:
    def test_phrase_words(self):
        (token,) = tokenize('"Exact  Phrase"')

        assert token.kind is TokenKind.PHRASE
        assert token.words == ("exact", "phrase")
        assert token.text == '"Exact  Phrase"'

    def test_unterminated_quote(self):
        with pytest.raises(QuerySyntaxError) as excinfo:
            tokenize('cat "sat on')

        assert excinfo.value.reason == "Unterminated quote"
        assert excinfo.value.position == 4

    def test_empty_phrase(self):
        with pytest.raises(QuerySyntaxError, match="Empty phrase"):
            tokenize('a "  " b')

    def test_phrase_must_be_followed_by_separator(self):
        with pytest.raises(QuerySyntaxError, match="Unexpected character 'x'"):
            tokenize('"a b"x')


class TestPrefixes:
    def test_trailing_star_is_prefix(self):
        (token,) = tokenize("Pika*")
        assert token.kind is TokenKind.PREFIX
        assert token.words == ("pika",)

    def test_quoted_prefix(self):
        (token,) = tokenize('"pika"*')
        assert token.kind is TokenKind.PREFIX
        assert token.words == ("pika",)

    def test_quoted_multi_word_prefix_is_rejected(self):
        with pytest.raises(QuerySyntaxError, match="single words"):
            tokenize('"pika chu"*')

    def test_star_inside_word(self):
        with pytest.raises(QuerySyntaxError, match="end of a word") as excinfo:
            tokenize("pi*ka")
        assert excinfo.value.position == 2

    def test_lone_star(self):
        with pytest.raises(QuerySyntaxError, match="needs a word"):
            tokenize("a *")


class TestFields:
    def test_field_wraps_term(self):
        (token,) = tokenize("Keywords:Dog")

        assert token.kind is TokenKind.FIELD
        assert token.field == "keywords"
        assert token.inner.kind is TokenKind.TERM
        assert token.words == ("dog",)

    def test_field_wraps_phrase_and_prefix(self):
        phrase, prefix = tokenize('description:"burning room" filename:distract*')

        assert phrase.inner.kind is TokenKind.PHRASE
        assert phrase.words == ("burning", "room")
        assert prefix.inner.kind is TokenKind.PREFIX
        assert prefix.field == "filename"

    def test_unknown_field(self):
        with pytest.raises(UnsupportedFieldError) as excinfo:
            tokenize("pikachu category:reaction")

        assert excinfo.value.field == "category"
        assert excinfo.value.position == 8
        assert "text" in excinfo.value.supported

    def test_missing_field_name(self):
        with pytest.raises(QuerySyntaxError, match="Missing field name"):
            tokenize(":dog")

    def test_missing_field_value(self):
        with pytest.raises(QuerySyntaxError, match="Missing value after 'text:'"):
            tokenize("text: dog")


class TestNear:
    def test_near_token(self):
        (token,) = tokenize("NEAR(Cat mat, 3)")

        assert token.kind is TokenKind.NEAR
        assert token.words == ("cat", "mat")
        assert token.distance == 3

    def test_near_is_case_insensitive_and_accepts_quoted_words(self):
        (token,) = tokenize('near("cat" mat dog,10)')
        assert token.words == ("cat", "mat", "dog")
        assert token.distance == 10

    def test_near_without_paren_is_a_term(self):
        assert _kinds("near miss") == [TokenKind.TERM, TokenKind.TERM]

    @pytest.mark.parametrize(
        ("query", "message"),
        [
            ("NEAR(cat mat 3)", "Expected ',' and a distance"),
            ("NEAR(cat mat)", "Expected ',' and a distance"),
            ("NEAR(cat mat, x)", "non-negative integer"),
            ("NEAR(cat mat, -1)", "non-negative integer"),
            ("NEAR(cat, 2)", "at least two terms"),
            ("NEAR(cat mat, 2", "Missing ')' to close NEAR("),
            ('NEAR("cat sat" mat, 2)', "single words only"),
            ("NEAR(cat* mat, 2)", "Prefix wildcards are not supported"),
            ("NEAR(cat (mat), 2)", "Unexpected '('"),
            ("NEAR(cat mat, 2 3)", "Expected ')' but found '3'"),
            ("NEAR(!!! cat, 2)", "must contain a letter or digit"),
            ('NEAR("..." cat, 2)', "must contain a letter or digit"),
        ],
    )
    def test_malformed_near(self, query, message):
        with pytest.raises(QuerySyntaxError, match=re.escape(message)):
            tokenize(query)

    def test_near_term_without_word_characters_points_at_term(self):
        with pytest.raises(QuerySyntaxError) as excinfo:
            tokenize("NEAR(cat !!! mat, 2)")

        assert excinfo.value.position == 9
        assert excinfo.value.token == "!!!"
