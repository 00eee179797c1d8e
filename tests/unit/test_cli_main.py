"""Unit tests for the quill CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from quill.cli import app
from quill.core.store import ItemStore
from quill.main import setup_logging

runner = CliRunner()


@pytest.fixture(autouse=True)
def quill_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI's settings at a temp data directory."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("QUILL_DATA_DIR", str(data_dir))
    monkeypatch.delenv("QUILL_DB_PATH", raising=False)
    return data_dir


def _invoke(*args: str):
    return runner.invoke(app, list(args))


def test_version() -> None:
    result = _invoke("--version")
    assert result.exit_code == 0
    assert result.output.startswith("quill ")


def test_create_show_and_list(quill_env: Path) -> None:
    result = _invoke("create", "issues", "Login bug", "-c", "Login fails", "-t", "auth, ui")
    assert result.exit_code == 0, result.output
    assert "Created issues-1: Login bug" in result.output
    assert (quill_env / "issues" / "issues-1.md").is_file()

    shown = _invoke("show", "issues", "1")
    assert shown.exit_code == 0
    assert "Login fails" in shown.output
    assert "auth, ui" in shown.output

    listed = _invoke("list", "issues")
    assert listed.exit_code == 0
    assert "issues-1" in listed.output


def test_domain_errors_exit_with_one() -> None:
    result = _invoke("create", "nope", "Title", "-c", "body")
    assert result.exit_code == 1
    assert "Unknown type" in result.output

    result = _invoke("create", "issues", "Title")
    assert result.exit_code == 1
    assert "Content is required" in result.output


def test_show_missing_item() -> None:
    result = _invoke("show", "issues", "42")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_update_and_clear(quill_env: Path) -> None:
    _invoke("create", "issues", "Login bug", "-c", "body", "-d", "desc", "-t", "auth")
    result = _invoke("update", "issues", "1", "--status", "Review", "--clear", "description")
    assert result.exit_code == 0, result.output
    store = ItemStore(quill_env)
    store.initialize()
    item = store.get_by_id("issues", "1")
    assert item.status == "Review"
    assert item.description is None
    assert item.tags == ["auth"]


def test_update_requires_a_change() -> None:
    _invoke("create", "issues", "t", "-c", "c")
    assert _invoke("update", "issues", "1").exit_code == 1


def test_update_missing_item() -> None:
    result = _invoke("update", "issues", "9", "--title", "x")
    assert result.exit_code == 1
    assert "Item not found" in result.output


def test_delete_is_idempotent() -> None:
    _invoke("create", "issues", "t", "-c", "c")
    assert "Deleted issues-1" in _invoke("delete", "issues", "1").output
    second = _invoke("delete", "issues", "1")
    assert second.exit_code == 0
    assert "No such item" in second.output


def test_search_find_suggest_count() -> None:
    _invoke("create", "issues", "Login bug", "-c", "valid passwords rejected", "-t", "auth")
    _invoke("create", "docs", "Login guide", "-c", "how login works", "-t", "auth")

    search = _invoke("search", "login", "--type", "issues")
    assert search.exit_code == 0
    assert "issues-1" in search.output
    assert "docs-1" not in search.output

    by_tag = _invoke("search", "--tag", "auth")
    assert "issues-1" in by_tag.output and "docs-1" in by_tag.output

    find = _invoke("find", "passwords")
    assert find.exit_code == 0
    assert "issues-1" in find.output

    suggest = _invoke("suggest", "logi")
    assert set(suggest.output.split("\n")) >= {"Login bug", "Login guide"}

    assert _invoke("count", "login").output.strip() == "2"


def test_invalid_query_exits_with_one() -> None:
    result = _invoke("count", "NOT login")
    assert result.exit_code == 1
    assert "NOT must follow" in result.output


def test_rebuild_reports_counts() -> None:
    _invoke("create", "issues", "t", "-c", "c")
    result = _invoke("rebuild", "--clear")
    assert result.exit_code == 0, result.output
    assert "Rebuilt 1 items" in result.output


def test_types_and_statuses() -> None:
    assert "knowledge" in _invoke("types").output
    assert _invoke("type-create", "recipes", "--base", "tasks").exit_code == 0
    assert "recipes" in _invoke("types").output
    assert _invoke("type-create", "recipes").exit_code == 1
    assert _invoke("type-delete", "recipes").exit_code == 0

    statuses = _invoke("statuses").output
    assert "Open" in statuses
    assert "Completed (closed)" in statuses


def test_tags_and_tag_delete() -> None:
    _invoke("create", "issues", "t", "-c", "c", "-t", "auth,ui")
    listed = _invoke("tags")
    assert "auth (1 uses)" in listed.output
    assert _invoke("tag-delete", "auth").exit_code == 0
    assert "auth" not in _invoke("tags").output
    assert _invoke("tag-delete", "auth").exit_code == 1


def test_tag_create_and_tagged() -> None:
    assert _invoke("tag-create", "backlog").exit_code == 0
    assert _invoke("tag-create", "backlog").exit_code == 1
    assert "No items tagged backlog." in _invoke("tagged", "backlog").output
    _invoke("create", "issues", "Login bug", "-c", "c", "-t", "backlog")
    result = _invoke("tagged", "backlog")
    assert result.exit_code == 0
    assert "issues-1" in result.output
    assert _invoke("tagged", "missing").exit_code == 1


def test_dangling() -> None:
    _invoke("create", "issues", "t", "-c", "c", "-r", "docs-7")
    result = _invoke("dangling")
    assert "issues-1 -> docs-7" in result.output


def test_setup_logging_writes_next_to_data(quill_env: Path) -> None:
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging()
        logging.getLogger("quill.tests").warning("disk is fine")
        for handler in root.handlers:
            handler.flush()
        assert "disk is fine" in (quill_env / "quill.log").read_text(encoding="utf-8")
    finally:
        for handler in [h for h in root.handlers if h not in before]:
            root.removeHandler(handler)
            handler.close()
        root.setLevel(level)
