"""Search query parser producing SQLite FTS5 match expressions.

Supported syntax:
    bug fix                      implicit AND
    bug AND fix / bug OR fix     explicit operators (case-insensitive)
    bug NOT wontfix / bug -wontfix
    "login page"                 phrase
    title:bug  tags:"needs review"
    (bug OR fix) AND title:auth

AND binds tighter than OR and both are left-associative. NOT is binary,
as in FTS5, so a query cannot start with a negation. Every leaf is written
as an FTS5 string and every boolean node is parenthesized, so the tree's
precedence survives serialization unchanged.
"""

import re
from dataclasses import dataclass, replace
from typing import Literal, Optional, Union

from quill.errors import InvalidQuery

FIELDS = ("title", "description", "content", "tags", "type")

_TOKEN_RE = re.compile(
    r"""
    (?P<neg>-)?
    (?:
        (?P<field>\w+):(?:"(?P<fquoted>[^"]*)"?|(?P<fplain>[^\s()"]+))
      | "(?P<quoted>[^"]*)"?
      | (?P<paren>[()])
      | (?P<plain>[^\s()"]+)
    )
    """,
    re.VERBOSE,
)
_WORD_RE = re.compile(r"\w")
_OPERATORS = {"AND", "OR", "NOT"}


@dataclass(frozen=True)
class Term:
    """Leaf: a word or phrase, optionally scoped to one indexed column."""

    value: str
    field: Optional[str] = None
    phrase: bool = False
    prefix: bool = False


@dataclass(frozen=True)
class BoolExpr:
    op: Literal["AND", "OR", "NOT"]
    left: "Node"
    right: "Node"


Node = Union[Term, BoolExpr]
_Token = tuple[str, Optional[Term]]


def _make_term(match: re.Match) -> Optional[Term]:
    field = match.group("field")
    if field is not None:
        quoted = match.group("fquoted")
        value = quoted if quoted is not None else match.group("fplain")
        if field.lower() in FIELDS:
            term = Term(value=value, field=field.lower(), phrase=quoted is not None)
        else:
            # Unknown column: search the literal text instead.
            term = Term(value=f"{field}:{value}")
    elif match.group("quoted") is not None:
        term = Term(value=match.group("quoted"), phrase=True)
    else:
        term = Term(value=match.group("plain"))
    value = " ".join(term.value.replace('"', "").split())
    if not _WORD_RE.search(value):
        return None
    return replace(term, value=value)


def tokenize(query: str) -> list[_Token]:
    """Split a query into TERM, AND, OR, NOT, LPAREN and RPAREN tokens."""
    tokens: list[_Token] = []
    for match in _TOKEN_RE.finditer(query):
        paren = match.group("paren")
        if paren:
            if match.group("neg"):
                tokens.append(("NOT", None))
            tokens.append(("LPAREN" if paren == "(" else "RPAREN", None))
            continue
        plain = match.group("plain")
        if plain is not None and not match.group("neg") and plain.upper() in _OPERATORS:
            tokens.append((plain.upper(), None))
            continue
        term = _make_term(match)
        if term is None:
            continue
        if match.group("neg"):
            tokens.append(("NOT", None))
        tokens.append(("TERM", term))
    return tokens


def _combine(op: Literal["AND", "OR"], left: Optional[Node], right: Optional[Node]) -> Optional[Node]:
    if left is None:
        return right
    if right is None:
        return left
    return BoolExpr(op, left, right)


class _Parser:
    """Recursive-descent parser over a token list.

    Stray operators and unmatched parentheses are skipped rather than
    rejected; only an empty result or a leading negation is an error.
    """

    def __init__(self, tokens: list[_Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> Optional[str]:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos][0]
        return None

    def parse(self) -> Optional[Node]:
        node = self._or()
        while self._pos < len(self._tokens):
            self._pos += 1  # stray ')'
            node = _combine("AND", node, self._or())
        return node

    def _or(self) -> Optional[Node]:
        left = self._and()
        while self._peek() == "OR":
            self._pos += 1
            left = _combine("OR", left, self._and())
        return left

    def _and(self) -> Optional[Node]:
        left = self._primary()
        while True:
            kind = self._peek()
            if kind == "AND":
                self._pos += 1
            elif kind == "NOT":
                self._pos += 1
                right = self._primary()
                if left is None:
                    raise InvalidQuery("NOT must follow a search term")
                if right is not None:
                    left = BoolExpr("NOT", left, right)
            elif kind in ("TERM", "LPAREN"):
                left = _combine("AND", left, self._primary())
            else:
                return left

    def _primary(self) -> Optional[Node]:
        kind = self._peek()
        if kind == "TERM":
            term = self._tokens[self._pos][1]
            self._pos += 1
            return term
        if kind == "LPAREN":
            self._pos += 1
            node = self._or()
            if self._peek() == "RPAREN":
                self._pos += 1
            return node
        if kind == "NOT":
            raise InvalidQuery("NOT must follow a search term")
        return None


def parse_query(query: str) -> Node:
    """Parse a query string into an expression tree.

    Raises:
        InvalidQuery: The query is empty, whitespace-only, contains no
            searchable terms, or starts with a negation.
    """
    if not query or not query.strip():
        raise InvalidQuery("Search query must not be empty")
    node = _Parser(tokenize(query)).parse()
    if node is None:
        raise InvalidQuery(f"Search query has no searchable terms: {query!r}")
    return node


def leaves(node: Node) -> list[Term]:
    """Leaf terms in left-to-right order."""
    if isinstance(node, Term):
        return [node]
    return leaves(node.left) + leaves(node.right)


def with_prefix(node: Node) -> Node:
    """Mark only the rightmost leaf as a prefix match."""
    if isinstance(node, Term):
        return replace(node, prefix=True)
    return replace(node, right=with_prefix(node.right))


def to_match(node: Node) -> str:
    """Serialize a tree to FTS5 MATCH syntax."""
    if isinstance(node, Term):
        text = f'"{node.value}"'
        if node.prefix:
            text += "*"
        if node.field:
            text = f"{node.field}:{text}"
        return text
    return f"({to_match(node.left)} {node.op} {to_match(node.right)})"


def build_match(query: str, prefix: bool = False) -> str:
    """Parse and serialize in one step; prefix=True gives the suggest form."""
    node = parse_query(query)
    return to_prefix_match(node) if prefix else to_match(node)


def to_prefix_match(node: Node) -> str:
    """Serialize with a prefix match on the rightmost leaf (as-you-type form)."""
    return to_match(with_prefix(node))
