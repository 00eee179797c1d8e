"""Tag vocabulary operations (SQLite).

Tags are registered on demand whenever an item is written; a tag row must
exist before any item_tags row references it. Deleting a tag removes its
item_tags rows but never touches the items (or files) that used it.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from quill.database.connection import connect, parse_dt
from quill.errors import Conflict, InvalidItem
from quill.models import Tag

logger = logging.getLogger(__name__)

TAGS_SCHEMA = """
CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    created_at DATETIME NOT NULL
);
CREATE TABLE IF NOT EXISTS item_tags (
    item_type TEXT NOT NULL,
    item_id TEXT NOT NULL,
    tag_id INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_item_tags_item ON item_tags(item_type, item_id);
CREATE INDEX IF NOT EXISTS idx_item_tags_tag ON item_tags(tag_id);
"""


def ensure_tags(conn: sqlite3.Connection, names: Iterable[str]) -> dict[str, int]:
    """Insert missing tags (idempotent) and return name -> tag id."""
    names = list(dict.fromkeys(names))
    if not names:
        return {}
    now = datetime.now(timezone.utc).isoformat()
    conn.executemany(
        "INSERT OR IGNORE INTO tags (name, created_at) VALUES (?, ?)",
        [(name, now) for name in names],
    )
    placeholders = ",".join("?" * len(names))
    rows = conn.execute(
        f"SELECT id, name FROM tags WHERE name IN ({placeholders})", names
    ).fetchall()
    return {row["name"]: row["id"] for row in rows}


class TagDB:
    """SQLite wrapper for the tags table and its item_tags junction."""

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)

    def init_db(self) -> None:
        """Create tags and item_tags tables if they do not exist."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with connect(self._path) as conn:
            conn.executescript(TAGS_SCHEMA)

    def create_tag(self, name: str) -> Tag:
        """Create a tag explicitly. Raises Conflict if it already exists."""
        name = name.strip()
        if not name:
            raise InvalidItem("Tag name cannot be empty")
        now = datetime.now(timezone.utc)
        try:
            with connect(self._path) as conn:
                conn.execute(
                    "INSERT INTO tags (name, created_at) VALUES (?, ?)",
                    (name, now.isoformat()),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict(f'Tag "{name}" already exists') from e
        return Tag(name=name, usage_count=0, created_at=now)

    def get_tag(self, name: str) -> Optional[Tag]:
        """Get a tag (with usage count) by name."""
        with connect(self._path) as conn:
            row = conn.execute(
                """
                SELECT t.name, t.created_at, COUNT(it.tag_id) AS usage_count
                FROM tags t LEFT JOIN item_tags it ON it.tag_id = t.id
                WHERE t.name = ?
                GROUP BY t.id
                """,
                (name,),
            ).fetchone()
        return _row_to_tag(row) if row else None

    def list_tags(self, limit: int = 1000) -> list[Tag]:
        """List tags ordered by usage count (most used first), then name."""
        with connect(self._path) as conn:
            rows = conn.execute(
                """
                SELECT t.name, t.created_at, COUNT(it.tag_id) AS usage_count
                FROM tags t LEFT JOIN item_tags it ON it.tag_id = t.id
                GROUP BY t.id
                ORDER BY usage_count DESC, t.name ASC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_row_to_tag(r) for r in rows]

    def search_tags(self, pattern: str) -> list[Tag]:
        """Tags whose name contains pattern, alphabetically."""
        with connect(self._path) as conn:
            rows = conn.execute(
                """
                SELECT t.name, t.created_at, COUNT(it.tag_id) AS usage_count
                FROM tags t LEFT JOIN item_tags it ON it.tag_id = t.id
                WHERE t.name LIKE ?
                GROUP BY t.id
                ORDER BY t.name ASC
                """,
                (f"%{pattern}%",),
            ).fetchall()
        return [_row_to_tag(r) for r in rows]

    def tagged_refs(self, name: str) -> list[tuple[str, str]]:
        """(type, id) of every indexed item carrying the tag."""
        with connect(self._path) as conn:
            rows = conn.execute(
                """
                SELECT it.item_type, it.item_id FROM item_tags it
                JOIN tags t ON t.id = it.tag_id
                WHERE t.name = ?
                ORDER BY it.item_type, it.item_id
                """,
                (name,),
            ).fetchall()
        return [(r["item_type"], r["item_id"]) for r in rows]

    def delete_tag(self, name: str) -> bool:
        """Delete a tag and every item_tags row that references it.

        Item files keep the tag in their metadata; the next write or
        rebuild of such an item registers it again.

        Returns:
            True if the tag existed.
        """
        with connect(self._path) as conn:
            row = conn.execute("SELECT id FROM tags WHERE name = ?", (name,)).fetchone()
            if not row:
                return False
            conn.execute("DELETE FROM item_tags WHERE tag_id = ?", (row["id"],))
            conn.execute("DELETE FROM tags WHERE id = ?", (row["id"],))
        logger.info("Deleted tag %s", name)
        return True


def _row_to_tag(row: sqlite3.Row) -> Tag:
    return Tag(
        name=row["name"],
        usage_count=row["usage_count"] or 0,
        created_at=parse_dt(row["created_at"]),
    )
