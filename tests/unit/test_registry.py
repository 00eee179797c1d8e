"""Unit tests for the status and type registries."""

import threading
from pathlib import Path

import pytest

from quill.database.registry import DEFAULT_STATUSES, StatusRegistry, TypeRegistry
from quill.errors import Conflict, InvalidItem, UnknownType


def test_statuses_seeded_in_order(statuses: StatusRegistry) -> None:
    names = [s.name for s in statuses.list_statuses()]
    assert names == [name for name, _ in DEFAULT_STATUSES]
    assert statuses.default_status().name == "Open"


def test_seeding_is_idempotent(statuses: StatusRegistry) -> None:
    statuses.init_db()
    assert len(statuses.list_statuses()) == len(DEFAULT_STATUSES)


def test_closed_statuses(statuses: StatusRegistry) -> None:
    by_id = {s.id: s.name for s in statuses.list_statuses()}
    closed = {by_id[i] for i in statuses.closed_ids()}
    assert closed == {"Completed", "Closed", "Canceled", "Rejected"}


def test_default_types(types: TypeRegistry) -> None:
    by_name = {t.type: t.base_type for t in types.list_types()}
    assert by_name == {
        "issues": "tasks",
        "plans": "tasks",
        "docs": "documents",
        "knowledge": "documents",
        "sessions": "sessions",
        "dailies": "dailies",
    }


def test_sequence_starts_at_one(types: TypeRegistry) -> None:
    assert types.next_value("issues") == 1
    assert types.next_value("issues") == 2
    assert types.next_value("docs") == 1


def test_next_value_for_unknown_type(types: TypeRegistry) -> None:
    with pytest.raises(UnknownType):
        types.next_value("nope")


def test_next_value_is_atomic_across_threads(types: TypeRegistry) -> None:
    """Concurrent increments never hand out the same value twice."""
    results: list[int] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(10):
            value = types.next_value("issues")
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(results) == list(range(1, 81))


def test_create_and_delete_type(types: TypeRegistry) -> None:
    created = types.create_type("recipes", "documents", "Cooking")
    assert types.lookup("recipes") == created
    assert types.next_value("recipes") == 1
    types.delete_type("recipes")
    assert types.lookup("recipes") is None
    with pytest.raises(UnknownType):
        types.delete_type("recipes")


def test_create_type_validation(types: TypeRegistry) -> None:
    with pytest.raises(Conflict):
        types.create_type("issues", "tasks")
    with pytest.raises(InvalidItem):
        types.create_type("Bad-Name", "tasks")
    with pytest.raises(InvalidItem):
        types.create_type("journal", "sessions")


def test_builtin_types_cannot_be_deleted(types: TypeRegistry) -> None:
    with pytest.raises(InvalidItem):
        types.delete_type("issues")


def test_lookup_reloads_on_miss(types: TypeRegistry, temp_db_path: Path) -> None:
    """A type registered through another registry instance is still found."""
    assert types.lookup("recipes") is None
    TypeRegistry(temp_db_path).create_type("recipes", "tasks")
    assert types.require("recipes").base_type == "tasks"
