"""Recursive-descent parser producing the query expression tree.

Grammar (precedence low to high)::

    query    := or_expr END
    or_expr  := and_expr ("OR" and_expr)*
    and_expr := not_expr (["AND"] not_expr)*
    not_expr := primary ("NOT" primary)*
    primary  := TERM | PHRASE | PREFIX | FIELD | NEAR | "(" or_expr ")"

``NOT`` is binary: ``a NOT b`` keeps records matching ``a`` that do not match
``b``. Chains of ``AND``/``OR`` are folded into balanced trees, so tree depth
grows logarithmically with the number of operands.
"""

from __future__ import annotations

from typing import cast

from meme_search.errors import QuerySyntaxError
from meme_search.query.lexer import QueryToken, TokenKind, tokenize
from meme_search.query.nodes import (
    EMPTY_QUERY,
    And,
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


DEFAULT_MAX_LENGTH = 1024
DEFAULT_MAX_DEPTH = 64

_PRIMARY_STARTS = frozenset(
    {TokenKind.TERM, TokenKind.PHRASE, TokenKind.PREFIX, TokenKind.FIELD, TokenKind.NEAR, TokenKind.LPAREN}
)


def _word_node(token: QueryToken) -> Term | Phrase | Prefix:
    if token.kind is TokenKind.PREFIX:
        return Prefix(token.words[0])
    if len(token.words) == 1:
        return Term(token.words[0])
    return Phrase(token.words)


def _depth(node: QueryNode) -> int:
    match node:
        case And(left, right) | Or(left, right) | Not(left, right):
            return 1 + max(_depth(left), _depth(right))
        case FieldScoped():
            return 2
        case _:
            return 1


class QueryParser:
    """Parses raw query strings with configurable safety bounds."""

    def __init__(self, *, max_length: int = DEFAULT_MAX_LENGTH, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.max_length = max_length
        self.max_depth = max_depth

    def parse(self, query: str) -> ParsedQuery:
        """Parse ``query`` into an expression tree.

        Returns:
            The root node, or ``EMPTY_QUERY`` when the query holds no tokens

        Raises:
            QuerySyntaxError: If the query is malformed or exceeds the configured bounds
        """
        if len(query) > self.max_length:
            raise QuerySyntaxError(
                f"Query exceeds the maximum length of {self.max_length} characters",
                position=self.max_length,
                token=query[self.max_length : self.max_length + 16],
            )
        tokens = tokenize(query)
        if not tokens:
            return EMPTY_QUERY
        return _Parser(query, tokens, self.max_depth).parse()


class _Parser:
    def __init__(self, query: str, tokens: list[QueryToken], max_depth: int) -> None:
        self.query = query
        self.tokens = tokens
        self.max_depth = max_depth
        self.index = 0
        self.open_groups: list[QueryToken] = []

    def parse(self) -> QueryNode:
        node = self._or_expr()
        token = self._peek()
        if token is not None:
            raise QuerySyntaxError(f"Unexpected '{token.text}'", position=token.position, token=token.text)
        return node

    def _peek(self) -> QueryToken | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _advance(self) -> QueryToken:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _fold(self, cls: type[And] | type[Or], operands: list[QueryNode], operator: QueryToken | None) -> QueryNode:
        node = self._balanced(cls, operands)
        self._check_depth(node, operator)
        return node

    def _balanced(self, cls: type[And] | type[Or], operands: list[QueryNode]) -> QueryNode:
        if len(operands) == 1:
            return operands[0]
        middle = (len(operands) + 1) // 2
        return cls(self._balanced(cls, operands[:middle]), self._balanced(cls, operands[middle:]))

    def _check_depth(self, node: QueryNode, operator: QueryToken | None) -> None:
        if _depth(node) > self.max_depth:
            position = operator.position if operator else 0
            raise QuerySyntaxError(
                f"Query nesting exceeds the maximum depth of {self.max_depth}",
                position=position,
                token=operator.text if operator else "",
            )

    def _or_expr(self) -> QueryNode:
        operands = [self._and_expr()]
        last_operator: QueryToken | None = None
        while (token := self._peek()) is not None and token.kind is TokenKind.OR:
            last_operator = self._advance()
            operands.append(self._and_expr())
        return self._fold(Or, operands, last_operator)

    def _and_expr(self) -> QueryNode:
        operands = [self._not_expr()]
        last_operator: QueryToken | None = None
        while (token := self._peek()) is not None:
            if token.kind is TokenKind.AND:
                last_operator = self._advance()
            elif token.kind not in _PRIMARY_STARTS:
                break
            operands.append(self._not_expr())
        return self._fold(And, operands, last_operator)

    def _not_expr(self) -> QueryNode:
        node = self._primary()
        while (token := self._peek()) is not None and token.kind is TokenKind.NOT:
            operator = self._advance()
            node = Not(node, self._primary())
            self._check_depth(node, operator)
        return node

    def _primary(self) -> QueryNode:
        token = self._peek()
        if token is None:
            previous = self.tokens[self.index - 1] if self.index else None
            after = f" after '{previous.text}'" if previous else ""
            if self.open_groups:
                raise QuerySyntaxError(
                    f"Missing ')' to close '(' opened at position {self.open_groups[-1].position} "
                    f"(expected a term{after})",
                    position=len(self.query),
                    token=")",
                )
            raise QuerySyntaxError(f"Unexpected end of query: expected a term{after}", position=len(self.query))

        kind = token.kind
        if kind in (TokenKind.TERM, TokenKind.PHRASE, TokenKind.PREFIX):
            self._advance()
            return _word_node(token)
        if kind is TokenKind.FIELD:
            self._advance()
            return FieldScoped(cast(str, token.field), _word_node(cast(QueryToken, token.inner)))
        if kind is TokenKind.NEAR:
            self._advance()
            return Near(token.words, cast(int, token.distance))
        if kind is TokenKind.LPAREN:
            return self._group()
        raise QuerySyntaxError(f"Unexpected '{token.text}'", position=token.position, token=token.text)

    def _group(self) -> QueryNode:
        opening = self._advance()
        self.open_groups.append(opening)
        if len(self.open_groups) > self.max_depth:
            raise QuerySyntaxError(
                f"Query nesting exceeds the maximum depth of {self.max_depth}",
                position=opening.position,
                token="(",
            )
        node = self._or_expr()
        closing = self._peek()
        if closing is None:
            raise QuerySyntaxError(
                f"Missing ')' to close '(' opened at position {opening.position}",
                position=len(self.query),
                token=")",
            )
        if closing.kind is not TokenKind.RPAREN:
            raise QuerySyntaxError(
                f"Expected ')' but found '{closing.text}'", position=closing.position, token=closing.text
            )
        self._advance()
        self.open_groups.pop()
        return node


_default_parser = QueryParser()


def parse_query(query: str) -> ParsedQuery:
    """Parse ``query`` with the default length and depth bounds."""
    return _default_parser.parse(query)
