"""Tests for tag list cleaning and parsing."""

from quill.core.tagging import clean_tags, parse_tag_list


class TestCleanTags:
    """Tests for tag list cleaning."""

    def test_trims_whitespace(self):
        """Surrounding whitespace is removed."""
        assert clean_tags(["  auth ", "\tui\n"]) == ["auth", "ui"]

    def test_drops_empty_entries(self):
        assert clean_tags(["", "   ", "auth"]) == ["auth"]

    def test_removes_duplicates_keeping_first(self):
        """Insertion order of first occurrences is kept."""
        assert clean_tags(["b", "a", "b", " a"]) == ["b", "a"]

    def test_case_is_preserved(self):
        assert clean_tags(["Auth", "auth"]) == ["Auth", "auth"]

    def test_none_and_non_strings(self):
        assert clean_tags(None) == []
        assert clean_tags(["ok", 3, None]) == ["ok"]


class TestParseTagList:
    """Tests for comma-separated tag input."""

    def test_simple_list(self):
        assert parse_tag_list("auth, backend") == ["auth", "backend"]

    def test_empty_input(self):
        assert parse_tag_list(None) == []
        assert parse_tag_list("") == []
        assert parse_tag_list(" , ,") == []

    def test_duplicates_removed(self):
        assert parse_tag_list("auth,auth, ui") == ["auth", "ui"]
