"""Analyzer utilities for the in-process inverted index.

The default analyzer mirrors SQLite FTS5's ``unicode61`` tokenizer (split on
anything that is not a letter or digit, casefold, strip diacritics) so both
backends agree on what a "word" is and where it sits.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
import re
from typing import Protocol
import unicodedata


@dataclass
class Token:
    """Represents a token emitted by analyzers."""

    text: str
    position: int
    start_char: int
    end_char: int

    def copy_with(self, **updates: object) -> Token:
        return replace(self, **updates)


class Analyzer(Protocol):
    """Protocol implemented by analyzers."""

    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


Tokenizer = Callable[[str], Iterator[Token]]
TokenFilter = Callable[[Iterable[Token]], Iterator[Token]]


class RegexTokenizer:
    """Regex-based tokenizer that yields word tokens."""

    def __init__(self, pattern: str = r"[^\W_]+", flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    """Filter that lowercases token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.islower():
                yield token
            else:
                yield token.copy_with(text=token.text.lower())


class DiacriticFoldingFilter:
    """Strips combining marks so ``café`` and ``cafe`` index the same."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text.isascii():
                yield token
                continue
            decomposed = unicodedata.normalize("NFKD", token.text)
            folded = "".join(char for char in decomposed if not unicodedata.combining(char))
            yield token.copy_with(text=folded)


class AnalyzerPipeline:
    """Composable analyzer pipeline (tokenizer + filters)."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] | None = None) -> None:
        self.tokenizer = tokenizer
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        tokens = [token for token in stream if token.text]
        for idx, token in enumerate(tokens):  # normalize positions post-filtering
            token.position = idx
        return tokens


class Unicode61Analyzer:
    """Default analyzer matching FTS5's ``unicode61`` tokenizer."""

    def __init__(self) -> None:
        self.pipeline = AnalyzerPipeline(RegexTokenizer(), [LowercaseFilter(), DiacriticFoldingFilter()])

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        return self.pipeline(text)


def analyze_words(analyzer: Analyzer, text: str) -> tuple[str, ...]:
    """Return just the token texts of ``text``."""
    return tuple(token.text for token in analyzer(text))
