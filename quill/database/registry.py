"""Status and type registries (SQLite).

Statuses are a fixed, seeded vocabulary. Types live in the sequences table,
one row per type holding its base category and the counter used to allocate
sequential ids.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Optional

from quill.core.paths import is_valid_type_name
from quill.database.connection import connect
from quill.errors import Conflict, InvalidItem, UnknownType
from quill.models import DAILIES, SESSIONS, Status, TypeDefinition

logger = logging.getLogger(__name__)

DEFAULT_STATUSES: list[tuple[str, bool]] = [
    ("Open", False),
    ("Specification", False),
    ("Waiting", False),
    ("Ready", False),
    ("In Progress", False),
    ("Review", False),
    ("Testing", False),
    ("Pending", False),
    ("Completed", True),
    ("Closed", True),
    ("Canceled", True),
    ("Rejected", True),
]

DEFAULT_TYPES: list[tuple[str, str, str]] = [
    ("issues", "tasks", "Bugs, problems and work items"),
    ("plans", "tasks", "Plans and roadmaps"),
    ("docs", "documents", "Reference documentation"),
    ("knowledge", "documents", "Notes and accumulated knowledge"),
    (SESSIONS, "sessions", "Work sessions"),
    (DAILIES, "dailies", "Daily summaries"),
]

# Base categories a user-defined type may extend.
CUSTOM_BASES = ("tasks", "documents")


class StatusRegistry:
    """Read access to the seeded statuses table."""

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)

    def init_db(self) -> None:
        """Create the statuses table and seed defaults on first use."""
        with connect(self._path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS statuses (
                    id INTEGER PRIMARY KEY,
                    name TEXT UNIQUE NOT NULL,
                    is_closed INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.executemany(
                "INSERT OR IGNORE INTO statuses (id, name, is_closed) VALUES (?, ?, ?)",
                [
                    (n, name, int(closed))
                    for n, (name, closed) in enumerate(DEFAULT_STATUSES, start=1)
                ],
            )

    def list_statuses(self) -> list[Status]:
        with connect(self._path) as conn:
            rows = conn.execute("SELECT * FROM statuses ORDER BY id").fetchall()
        return [_row_to_status(r) for r in rows]

    def default_status(self) -> Status:
        """The status with the lowest id."""
        with connect(self._path) as conn:
            row = conn.execute("SELECT * FROM statuses ORDER BY id LIMIT 1").fetchone()
        return _row_to_status(row)

    def closed_ids(self) -> list[int]:
        with connect(self._path) as conn:
            rows = conn.execute(
                "SELECT id FROM statuses WHERE is_closed = 1 ORDER BY id"
            ).fetchall()
        return [r["id"] for r in rows]


class TypeRegistry:
    """Registered types backed by the sequences table.

    Lookups go through an in-memory memo. The memo is dropped by every
    create_type/delete_type and by refresh(); a miss reloads it once so a
    type registered by another process is still found.
    """

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)
        self._cache: Optional[dict[str, TypeDefinition]] = None
        self._lock = threading.Lock()

    def init_db(self) -> None:
        """Create the sequences table and seed the default types."""
        with connect(self._path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sequences (
                    type TEXT PRIMARY KEY,
                    current_value INTEGER NOT NULL DEFAULT 0,
                    base_type TEXT NOT NULL,
                    description TEXT
                )
                """
            )
            conn.executemany(
                """
                INSERT OR IGNORE INTO sequences (type, current_value, base_type, description)
                VALUES (?, 0, ?, ?)
                """,
                DEFAULT_TYPES,
            )
        self.refresh()

    def refresh(self) -> None:
        with self._lock:
            self._cache = None

    def _load(self) -> dict[str, TypeDefinition]:
        with self._lock:
            if self._cache is None:
                with connect(self._path) as conn:
                    rows = conn.execute(
                        "SELECT type, base_type, description FROM sequences ORDER BY type"
                    ).fetchall()
                self._cache = {r["type"]: _row_to_type(r) for r in rows}
            return self._cache

    def lookup(self, name: str) -> Optional[TypeDefinition]:
        found = self._load().get(name)
        if found is None:
            self.refresh()
            found = self._load().get(name)
        return found

    def require(self, name: str) -> TypeDefinition:
        type_def = self.lookup(name)
        if type_def is None:
            raise UnknownType(name)
        return type_def

    def list_types(self) -> list[TypeDefinition]:
        return list(self._load().values())

    def create_type(
        self, name: str, base_type: str = "documents", description: Optional[str] = None
    ) -> TypeDefinition:
        """Register a new type extending tasks or documents.

        Raises:
            InvalidItem: Bad name or base category.
            Conflict: The type already exists.
        """
        if not is_valid_type_name(name):
            raise InvalidItem(
                f"Invalid type name {name!r}: use lowercase letters, digits and "
                "underscores, starting with a letter (max 50 characters)"
            )
        if base_type not in CUSTOM_BASES:
            raise InvalidItem(
                f"Base type must be one of {', '.join(CUSTOM_BASES)}, got {base_type!r}"
            )
        try:
            with connect(self._path) as conn:
                conn.execute(
                    """
                    INSERT INTO sequences (type, current_value, base_type, description)
                    VALUES (?, 0, ?, ?)
                    """,
                    (name, base_type, description),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict(f"Type {name!r} already exists") from e
        finally:
            self.refresh()
        logger.info("Registered type %s (base %s)", name, base_type)
        return TypeDefinition(type=name, base_type=base_type, description=description)

    def delete_type(self, name: str) -> None:
        """Unregister a type. Built-in types cannot be removed."""
        if name in {t for t, _, _ in DEFAULT_TYPES}:
            raise InvalidItem(f"Cannot delete built-in type {name!r}")
        with connect(self._path) as conn:
            cursor = conn.execute("DELETE FROM sequences WHERE type = ?", (name,))
        self.refresh()
        if cursor.rowcount == 0:
            raise UnknownType(name)
        logger.info("Deleted type %s", name)

    def ensure_at_least(self, name: str, value: int) -> None:
        """Raise the sequence counter to value if it is lower (never lowers it)."""
        with connect(self._path) as conn:
            conn.execute(
                "UPDATE sequences SET current_value = MAX(current_value, ?) WHERE type = ?",
                (value, name),
            )

    def next_value(self, name: str) -> int:
        """Atomically increment and return the type's sequence counter."""
        with connect(self._path) as conn:
            rows = conn.execute(
                """
                UPDATE sequences SET current_value = current_value + 1
                WHERE type = ? RETURNING current_value
                """,
                (name,),
            ).fetchall()
        if not rows:
            raise UnknownType(name)
        return rows[0]["current_value"]


def _row_to_status(row: sqlite3.Row) -> Status:
    return Status(id=row["id"], name=row["name"], is_closed=bool(row["is_closed"]))


def _row_to_type(row: sqlite3.Row) -> TypeDefinition:
    return TypeDefinition(
        type=row["type"], base_type=row["base_type"], description=row["description"]
    )
