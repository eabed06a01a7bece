"""Query string tokenizer.

Turns a raw query into a flat token list. The grammar is small enough that a
hand-written scanner is clearer than a regex alternation: quoted phrases,
``field:`` prefixes and ``NEAR(...)`` calls all need context the scanner
already has.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import re

from meme_search.config import SEARCHABLE_FIELDS
from meme_search.errors import QuerySyntaxError, UnsupportedFieldError


class TokenKind(str, Enum):
    TERM = "term"
    PHRASE = "phrase"
    PREFIX = "prefix"
    FIELD = "field"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    NEAR = "NEAR"
    LPAREN = "("
    RPAREN = ")"


OPERATOR_KINDS = frozenset({TokenKind.AND, TokenKind.OR, TokenKind.NOT})
_KEYWORDS = {"AND": TokenKind.AND, "OR": TokenKind.OR, "NOT": TokenKind.NOT}
_WORD_BREAKS = frozenset('()"')
# Characters the indexes tokenize on; anything else is a separator
_WORD_CHAR = re.compile(r"[^\W_]")


@dataclass(frozen=True, slots=True)
class QueryToken:
    """A lexed token.

    ``text`` is the slice of the raw query the token was read from, used when
    echoing errors; ``words`` holds the lowercased value(s) used for matching.
    """

    kind: TokenKind
    text: str
    position: int
    words: tuple[str, ...] = ()
    field: str | None = None
    inner: QueryToken | None = None
    distance: int | None = None

    @property
    def value(self) -> str:
        return " ".join(self.words)


@dataclass
class _Scanner:
    query: str
    index: int = 0
    tokens: list[QueryToken] = field(default_factory=list)

    def peek(self, offset: int = 0) -> str:
        at = self.index + offset
        return self.query[at] if at < len(self.query) else ""

    def at_end(self) -> bool:
        return self.index >= len(self.query)

    def skip_whitespace(self) -> None:
        while not self.at_end() and self.query[self.index].isspace():
            self.index += 1

    def read_word(self, breaks: frozenset[str] = _WORD_BREAKS) -> str:
        start = self.index
        while not self.at_end():
            char = self.query[self.index]
            if char.isspace() or char in breaks:
                break
            self.index += 1
        return self.query[start : self.index]

    def read_quoted(self) -> str:
        """Consume a quoted string starting at the opening quote and return its content."""
        start = self.index
        closing = self.query.find('"', start + 1)
        if closing < 0:
            raise QuerySyntaxError("Unterminated quote", position=start, token=self.query[start:])
        self.index = closing + 1
        return self.query[start + 1 : closing]

    def expect_separator(self) -> None:
        char = self.peek()
        if char and not char.isspace() and char not in "()":
            raise QuerySyntaxError(f"Unexpected character '{char}'", position=self.index, token=char)


def tokenize(query: str) -> list[QueryToken]:
    """Split ``query`` into tokens.

    Raises:
        QuerySyntaxError: On unterminated quotes, misplaced wildcards or malformed NEAR calls
        UnsupportedFieldError: When ``field:`` names a field that is not indexed
    """
    scanner = _Scanner(query)
    while True:
        scanner.skip_whitespace()
        if scanner.at_end():
            return scanner.tokens
        char = scanner.peek()
        start = scanner.index
        if char == "(":
            scanner.index += 1
            scanner.tokens.append(QueryToken(TokenKind.LPAREN, "(", start))
        elif char == ")":
            scanner.index += 1
            scanner.tokens.append(QueryToken(TokenKind.RPAREN, ")", start))
        elif char == '"':
            scanner.tokens.append(_read_phrase_or_prefix(scanner))
        else:
            scanner.tokens.append(_read_word_token(scanner))


def _read_phrase_or_prefix(scanner: _Scanner) -> QueryToken:
    start = scanner.index
    content = scanner.read_quoted()
    words = tuple(word.lower() for word in content.split())
    if not words:
        raise QuerySyntaxError("Empty phrase", position=start, token=scanner.query[start : scanner.index])
    if scanner.peek() == "*":
        scanner.index += 1
        if len(words) != 1:
            raise QuerySyntaxError(
                "Prefix wildcard is only supported on single words",
                position=scanner.index - 1,
                token=scanner.query[start : scanner.index],
            )
        scanner.expect_separator()
        return QueryToken(TokenKind.PREFIX, scanner.query[start : scanner.index], start, words)
    scanner.expect_separator()
    return QueryToken(TokenKind.PHRASE, scanner.query[start : scanner.index], start, words)


def _read_word_token(scanner: _Scanner) -> QueryToken:
    start = scanner.index
    word = scanner.read_word()
    if word.upper() == "NEAR" and scanner.peek() == "(":
        return _read_near(scanner, start)
    if ":" in word:
        return _read_field(scanner, start, word)
    keyword = _KEYWORDS.get(word.upper())
    if keyword is not None:
        return QueryToken(keyword, word, start)
    return _word_to_token(word, start)


def _word_to_token(word: str, start: int) -> QueryToken:
    star = word.find("*")
    if star < 0:
        return QueryToken(TokenKind.TERM, word, start, (word.lower(),))
    if star != len(word) - 1:
        raise QuerySyntaxError(
            "Wildcard '*' is only allowed at the end of a word", position=start + star, token=word
        )
    if star == 0:
        raise QuerySyntaxError("Wildcard '*' needs a word before it", position=start, token=word)
    return QueryToken(TokenKind.PREFIX, word, start, (word[:-1].lower(),))


def _read_field(scanner: _Scanner, start: int, word: str) -> QueryToken:
    name, _, rest = word.partition(":")
    if not name:
        raise QuerySyntaxError("Missing field name before ':'", position=start, token=word)
    field_name = name.lower()
    if field_name not in SEARCHABLE_FIELDS:
        raise UnsupportedFieldError(name, position=start, supported=SEARCHABLE_FIELDS)

    value_start = start + len(name) + 1
    if rest:
        inner = _word_to_token(rest, value_start)
    elif scanner.peek() == '"':
        inner = _read_phrase_or_prefix(scanner)
    else:
        raise QuerySyntaxError(f"Missing value after '{name}:'", position=start, token=word)

    return QueryToken(
        TokenKind.FIELD,
        scanner.query[start : scanner.index],
        start,
        inner.words,
        field=field_name,
        inner=inner,
    )


def _read_near(scanner: _Scanner, start: int) -> QueryToken:
    open_paren = scanner.index
    scanner.index += 1
    terms: list[str] = []

    while True:
        scanner.skip_whitespace()
        char = scanner.peek()
        if not char:
            raise QuerySyntaxError("Missing ')' to close NEAR(", position=open_paren, token="NEAR(")
        if char == ",":
            scanner.index += 1
            break
        if char == ")":
            raise QuerySyntaxError("Expected ',' and a distance in NEAR(...)", position=scanner.index, token=")")
        if char == "(":
            raise QuerySyntaxError("Unexpected '(' inside NEAR(...)", position=scanner.index, token="(")
        term_start = scanner.index
        if char == '"':
            words = scanner.read_quoted().split()
            if len(words) != 1:
                raise QuerySyntaxError(
                    "NEAR(...) accepts single words only",
                    position=term_start,
                    token=scanner.query[term_start : scanner.index],
                )
            term = words[0]
        else:
            term = scanner.read_word(_WORD_BREAKS | {","})
            if "*" in term:
                raise QuerySyntaxError(
                    "Prefix wildcards are not supported inside NEAR(...)", position=term_start, token=term
                )
        if not _WORD_CHAR.search(term):
            raise QuerySyntaxError(
                "NEAR(...) terms must contain a letter or digit",
                position=term_start,
                token=scanner.query[term_start : scanner.index],
            )
        terms.append(term.lower())

    scanner.skip_whitespace()
    digits_start = scanner.index
    while scanner.peek().isdigit() and scanner.peek().isascii():
        scanner.index += 1
    digits = scanner.query[digits_start : scanner.index]
    if not digits:
        bad = scanner.read_word(_WORD_BREAKS | {","}) or scanner.peek()
        raise QuerySyntaxError(
            "NEAR distance must be a non-negative integer", position=digits_start, token=bad
        )
    scanner.skip_whitespace()
    if scanner.peek() != ")":
        found = scanner.peek()
        if not found:
            raise QuerySyntaxError("Missing ')' to close NEAR(", position=open_paren, token="NEAR(")
        raise QuerySyntaxError(f"Expected ')' but found '{found}'", position=scanner.index, token=found)
    scanner.index += 1

    if len(terms) < 2:
        raise QuerySyntaxError(
            "NEAR(...) requires at least two terms", position=start, token=scanner.query[start : scanner.index]
        )
    scanner.expect_separator()
    return QueryToken(
        TokenKind.NEAR,
        scanner.query[start : scanner.index],
        start,
        tuple(terms),
        distance=int(digits),
    )
