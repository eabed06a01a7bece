"""
Query language package.

- lexer: raw query string to tokens
- nodes: immutable expression tree variants
- parser: recursive-descent parser with precedence and safety bounds
- compiler: expression tree to FTS5 MATCH syntax
"""

from meme_search.query.compiler import CompiledQuery, compile_query, serialize
from meme_search.query.nodes import (
    EMPTY_QUERY,
    And,
    EmptyQuery,
    FieldScoped,
    Near,
    Not,
    Or,
    ParsedQuery,
    Phrase,
    Prefix,
    QueryNode,
    Term,
)
from meme_search.query.parser import QueryParser, parse_query


__all__ = [
    "EMPTY_QUERY",
    "And",
    "CompiledQuery",
    "EmptyQuery",
    "FieldScoped",
    "Near",
    "Not",
    "Or",
    "ParsedQuery",
    "Phrase",
    "Prefix",
    "QueryNode",
    "QueryParser",
    "Term",
    "compile_query",
    "parse_query",
    "serialize",
]
