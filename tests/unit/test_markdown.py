"""Unit tests for the front matter codec."""

import pytest

from quill.core.markdown import generate, parse
from quill.errors import MarkdownError


def test_generate_layout() -> None:
    """Front matter, a blank line, then the body."""
    text = generate({"id": "1", "title": "Hello"}, "Body text")
    assert text == "---\nid: '1'\ntitle: Hello\n---\n\nBody text"


def test_parse_returns_metadata_and_body() -> None:
    metadata, body = parse("---\nid: '1'\ntitle: Hello\ntags:\n- a\n---\n\nBody\n")
    assert metadata == {"id": "1", "title": "Hello", "tags": ["a"]}
    assert body == "Body\n"


def test_key_order_is_preserved() -> None:
    metadata = {"title": "t", "id": "1", "priority": "high"}
    parsed, _ = parse(generate(metadata, ""))
    assert list(parsed) == ["title", "id", "priority"]


def test_round_trip_is_stable() -> None:
    """generate(parse(generate(x))) == generate(x), including awkward strings."""
    metadata = {
        "id": "007",
        "title": "yes: no # not a comment",
        "status": "In Progress",
        "tags": ["2025", "true", "a b"],
        "related": [],
        "created_at": "2025-01-15T09:30:00.123456+00:00",
        "start_date": "2025-01-15",
        "start_time": "10:30:00",
        "description": "multi\nline",
    }
    body = "\n# Heading\n\n---\n\nafter a rule\n"
    first = generate(metadata, body)
    assert generate(*parse(first)) == first
    parsed, parsed_body = parse(first)
    assert parsed == metadata
    assert parsed_body == body


def test_yaml_dates_become_iso_strings() -> None:
    """Hand-written unquoted dates load as strings, not date objects."""
    metadata, _ = parse("---\nstart_date: 2025-01-15\ncreated_at: 2025-01-15 09:30:00\n---\n")
    assert metadata["start_date"] == "2025-01-15"
    assert metadata["created_at"].startswith("2025-01-15")


def test_text_without_front_matter() -> None:
    assert parse("just text") == ({}, "just text")
    assert parse("") == ({}, "")


def test_empty_front_matter() -> None:
    assert parse("---\n---\nbody") == ({}, "body")


def test_unterminated_front_matter() -> None:
    with pytest.raises(MarkdownError):
        parse("---\ntitle: x\nno closing fence")


def test_invalid_yaml() -> None:
    with pytest.raises(MarkdownError):
        parse("---\ntitle: [unclosed\n---\n")


def test_non_mapping_front_matter() -> None:
    with pytest.raises(MarkdownError):
        parse("---\n- a\n- b\n---\n")
