"""Compile query trees into SQLite FTS5 MATCH expressions.

The output doubles as the canonical serialization of a tree: every binary
node is parenthesized and every word that FTS5 would not read as a bareword
is quoted, so ``parse_query(compile_query(tree).expression)`` rebuilds ``tree``.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import assert_never

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
    contains_near,
)


# FTS5 barewords: ASCII letters, digits, underscore, the substitute character and any non-ASCII
_BAREWORD = re.compile(r"^[A-Za-z0-9_\x1a\u0080-\U0010ffff]+$")
_RESERVED = frozenset({"and", "or", "not", "near"})


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    """Backend-ready form of a parsed query.

    Attributes:
        expression: FTS5 MATCH string (empty for match-all)
        plan: Tree the backend must evaluate; differs from ``source`` only when
            proximity had to be rewritten for a backend without NEAR support
        source: Tree as parsed from the user's query
        needs_post_filter: Candidates must be re-checked against ``source``
    """

    expression: str
    plan: ParsedQuery
    source: ParsedQuery
    needs_post_filter: bool = False

    @property
    def match_all(self) -> bool:
        return isinstance(self.source, EmptyQuery)


def quote_word(word: str) -> str:
    return '"' + word.replace('"', '""') + '"'


def _word(word: str) -> str:
    if _BAREWORD.match(word) and word.lower() not in _RESERVED:
        return word
    return quote_word(word)


def _prefix(stem: str) -> str:
    if _BAREWORD.match(stem) and stem.lower() not in _RESERVED:
        return stem + "*"
    return quote_word(stem) + "*"


def serialize(node: QueryNode) -> str:
    """Render ``node`` as an FTS5 expression."""
    match node:
        case Term(word):
            return _word(word)
        case Phrase(words):
            return quote_word(" ".join(words))
        case Prefix(stem):
            return _prefix(stem)
        case FieldScoped(field, expr):
            return f"{field}:{serialize(expr)}"
        case And(left, right):
            return f"({serialize(left)} AND {serialize(right)})"
        case Or(left, right):
            return f"({serialize(left)} OR {serialize(right)})"
        case Not(left, right):
            return f"({serialize(left)} NOT {serialize(right)})"
        case Near(terms, distance):
            return f"NEAR({' '.join(_word(term) for term in terms)}, {distance})"
        case _:
            assert_never(node)


def _without_proximity(node: QueryNode) -> QueryNode:
    """Replace every NEAR with a conjunction of its terms."""
    match node:
        case Near(terms, _):
            result: QueryNode = Term(terms[0])
            for term in terms[1:]:
                result = And(result, Term(term))
            return result
        case And(left, right):
            return And(_without_proximity(left), _without_proximity(right))
        case Or(left, right):
            return Or(_without_proximity(left), _without_proximity(right))
        case Not(left, right):
            if contains_near(right):
                # A widened exclusion would drop valid records; exclude during post-filtering instead
                return _without_proximity(left)
            return Not(_without_proximity(left), right)
        case Term() | Phrase() | Prefix() | FieldScoped():
            return node
        case _:
            assert_never(node)


def compile_query(tree: ParsedQuery, *, supports_proximity: bool = True) -> CompiledQuery:
    """Compile a parsed tree for a backend.

    Args:
        tree: Parsed query (or ``EMPTY_QUERY``)
        supports_proximity: Whether the target backend evaluates NEAR natively. When
            False, NEAR clauses are widened to conjunctions and the result is flagged
            so the ranker re-checks candidates against the original tree.

    Returns:
        CompiledQuery ready for ``FullTextBackend.query``
    """
    if isinstance(tree, EmptyQuery):
        return CompiledQuery(expression="", plan=EMPTY_QUERY, source=EMPTY_QUERY)

    if supports_proximity or not contains_near(tree):
        return CompiledQuery(expression=serialize(tree), plan=tree, source=tree)

    plan = _without_proximity(tree)
    return CompiledQuery(expression=serialize(plan), plan=plan, source=tree, needs_post_filter=True)

