"""Unit tests for ranked full-text search, suggestions and counts."""

import pytest

from quill.database.fulltext import FullTextSearch
from quill.database.sqlite import SqliteIndex
from quill.errors import InvalidQuery
from quill.models import Item


@pytest.fixture
def fts(index: SqliteIndex) -> FullTextSearch:
    index.sync_item(
        Item(
            type="issues",
            id="1",
            title="Login page broken",
            content="Users cannot log in with valid passwords on the login page.",
            tags=["auth"],
        )
    )
    index.sync_item(
        Item(type="issues", id="2", title="Logout button", content="Logout hangs.")
    )
    index.sync_item(
        Item(
            type="docs",
            id="1",
            title="Login guide",
            content="How the login flow works.",
            tags=["auth", "guide"],
        )
    )
    return FullTextSearch(index.path)


def test_search_finds_matches_across_types(fts: FullTextSearch) -> None:
    results = fts.search("login")
    assert {(r.type, r.id) for r in results} == {("issues", "1"), ("docs", "1")}


def test_search_restricted_to_type(fts: FullTextSearch) -> None:
    results = fts.search("Login", types=["issues"])
    assert [(r.type, r.id) for r in results] == [("issues", "1")]


def test_scores_are_positive_and_ordered(fts: FullTextSearch) -> None:
    """score = -bm25, so higher is better and results come best first."""
    results = fts.search("login")
    scores = [r.score for r in results]
    assert all(s > 0 for s in scores)
    assert scores == sorted(scores, reverse=True)


def test_snippet_marks_matches(fts: FullTextSearch) -> None:
    [result] = fts.search("passwords")
    assert "<mark>passwords</mark>" in result.snippet


def test_field_scoped_search(fts: FullTextSearch) -> None:
    assert [(r.type, r.id) for r in fts.search("tags:guide")] == [("docs", "1")]
    assert fts.search("title:hangs") == []


def test_boolean_search(fts: FullTextSearch) -> None:
    assert {r.id for r in fts.search("login NOT guide", types=["docs"])} == set()
    assert {(r.type, r.id) for r in fts.search("guide OR logout")} == {
        ("docs", "1"),
        ("issues", "2"),
    }


def test_limit_and_offset_are_clamped(fts: FullTextSearch) -> None:
    assert len(fts.search("login", limit=1)) == 1
    assert len(fts.search("login", limit=0)) == 2
    assert len(fts.search("login", limit=-5)) == 1
    assert len(fts.search("login", offset=-3)) == 2
    assert len(fts.search("login", offset=1)) == 1


def test_empty_query_raises(fts: FullTextSearch) -> None:
    with pytest.raises(InvalidQuery):
        fts.search("   ")
    with pytest.raises(InvalidQuery):
        fts.count("")


def test_count(fts: FullTextSearch) -> None:
    assert fts.count("login") == 2
    assert fts.count("login", types=["docs"]) == 1
    assert fts.count("nothing") == 0


def test_suggest_uses_prefix_on_last_term(fts: FullTextSearch) -> None:
    assert set(fts.suggest("log")) == {"Login page broken", "Logout button", "Login guide"}
    assert fts.suggest("login pa") == ["Login page broken"]


def test_suggest_distinct_titles(index: SqliteIndex, fts: FullTextSearch) -> None:
    index.sync_item(Item(type="plans", id="1", title="Login guide", content="login again"))
    assert fts.suggest("login gu").count("Login guide") == 1


def test_suggest_empty_query_returns_nothing(fts: FullTextSearch) -> None:
    assert fts.suggest("") == []
    assert fts.suggest("AND") == []


def test_suggest_limit_counts_distinct_titles(index: SqliteIndex, fts: FullTextSearch) -> None:
    index.sync_item(Item(type="plans", id="1", title="Login page broken", content="login"))
    assert fts.suggest("log", limit=2) == fts.suggest("log")[:2]
    assert len(set(fts.suggest("log", limit=2))) == 2
