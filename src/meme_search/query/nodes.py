"""Immutable query expression tree.

Every node is a frozen dataclass; ``QueryNode`` is the closed union of all
variants so ``match`` statements over it can be checked for exhaustiveness.
Word values are stored lowercased.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True, slots=True)
class Term:
    word: str


@dataclass(frozen=True, slots=True)
class Phrase:
    """Contiguous word sequence; always holds two or more words."""

    words: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Prefix:
    stem: str


@dataclass(frozen=True, slots=True)
class FieldScoped:
    field: str
    expr: Term | Phrase | Prefix


@dataclass(frozen=True, slots=True)
class And:
    left: QueryNode
    right: QueryNode


@dataclass(frozen=True, slots=True)
class Or:
    left: QueryNode
    right: QueryNode


@dataclass(frozen=True, slots=True)
class Not:
    """Binary exclusion: records matching ``left`` but not ``right``."""

    left: QueryNode
    right: QueryNode


@dataclass(frozen=True, slots=True)
class Near:
    """Two or more words within ``distance`` intervening tokens of each other."""

    terms: tuple[str, ...]
    distance: int


@dataclass(frozen=True, slots=True)
class EmptyQuery:
    """Marker for a query with no tokens; means "no filter"."""


EMPTY_QUERY = EmptyQuery()

QueryNode: TypeAlias = Term | Phrase | Prefix | FieldScoped | And | Or | Not | Near
ParsedQuery: TypeAlias = QueryNode | EmptyQuery


def iter_nodes(node: ParsedQuery):
    """Yield every node of the tree in pre-order."""
    yield node
    match node:
        case And(left, right) | Or(left, right) | Not(left, right):
            yield from iter_nodes(left)
            yield from iter_nodes(right)
        case FieldScoped(_, expr):
            yield from iter_nodes(expr)
        case _:
            return


def contains_near(node: ParsedQuery) -> bool:
    return any(isinstance(child, Near) for child in iter_nodes(node))
