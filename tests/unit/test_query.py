"""Unit tests for the search query parser."""

import pytest

from quill.core.query import (
    BoolExpr,
    Term,
    build_match,
    leaves,
    parse_query,
    to_match,
    to_prefix_match,
    tokenize,
    with_prefix,
)
from quill.errors import InvalidQuery


def test_single_word() -> None:
    assert parse_query("login") == Term("login")
    assert build_match("login") == '"login"'


def test_implicit_and_equals_explicit_and() -> None:
    assert parse_query("bug fix") == parse_query("bug AND fix")
    assert parse_query("bug fix") == BoolExpr("AND", Term("bug"), Term("fix"))


def test_operators_are_case_insensitive() -> None:
    assert parse_query("a or b") == parse_query("a OR b")
    assert parse_query("a and b") == parse_query("a AND b")


def test_and_binds_tighter_than_or() -> None:
    """a OR b c == a OR (b AND c)."""
    tree = parse_query("a OR b c")
    assert tree == BoolExpr("OR", Term("a"), BoolExpr("AND", Term("b"), Term("c")))
    assert to_match(tree) == '("a" OR ("b" AND "c"))'


def test_left_associative() -> None:
    tree = parse_query("a OR b OR c")
    assert tree == BoolExpr("OR", BoolExpr("OR", Term("a"), Term("b")), Term("c"))


def test_parentheses_override_precedence() -> None:
    tree = parse_query("(a OR b) c")
    assert tree == BoolExpr("AND", BoolExpr("OR", Term("a"), Term("b")), Term("c"))


def test_binary_not_and_minus() -> None:
    assert parse_query("bug NOT wontfix") == BoolExpr("NOT", Term("bug"), Term("wontfix"))
    assert parse_query("bug -wontfix") == parse_query("bug NOT wontfix")
    assert build_match("bug -wontfix") == '("bug" NOT "wontfix")'


@pytest.mark.parametrize("query", ["NOT bug", "-bug", "(NOT a)"])
def test_leading_negation_is_rejected(query: str) -> None:
    with pytest.raises(InvalidQuery):
        parse_query(query)


def test_phrase() -> None:
    assert parse_query('"login page"') == Term("login page", phrase=True)
    assert build_match('"login page"') == '"login page"'


def test_field_scoped_terms() -> None:
    assert build_match("title:bug") == 'title:"bug"'
    assert build_match('tags:"needs review"') == 'tags:"needs review"'
    assert build_match("TITLE:bug") == 'title:"bug"'


def test_unknown_field_is_literal_text() -> None:
    """priority is not an indexed column, so priority:high is plain text."""
    assert build_match("priority:high") == '"priority:high"'


def test_stray_quote_starts_a_phrase() -> None:
    """An unbalanced quote opens a phrase that runs to the end of input."""
    assert build_match('say"hi there') == '("say" AND "hi there")'


def test_leaves_without_word_characters_are_dropped() -> None:
    assert parse_query("login *** ???") == Term("login")


@pytest.mark.parametrize("query", ["", "   ", "AND", "OR AND", "*** ???", "()"])
def test_empty_queries_are_rejected(query: str) -> None:
    with pytest.raises(InvalidQuery):
        parse_query(query)


def test_prefix_marks_only_rightmost_leaf() -> None:
    tree = parse_query("login pa")
    assert [leaf.prefix for leaf in leaves(with_prefix(tree))] == [False, True]
    assert [leaf.prefix for leaf in leaves(tree)] == [False, False]
    assert to_prefix_match(tree) == '("login" AND "pa"*)'
    assert build_match("title:log", prefix=True) == 'title:"log"*'


def test_tokenize_recognizes_operators_and_parens() -> None:
    kinds = [kind for kind, _ in tokenize("(a OR b) -c")]
    assert kinds == ["LPAREN", "TERM", "OR", "TERM", "RPAREN", "NOT", "TERM"]
