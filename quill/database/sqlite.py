"""Search index over item files (SQLite + FTS5).

The index is a derived cache: every row can be rebuilt from the markdown
files. sync_item() is the only write path for item rows and is shared by
normal writes and by the rebuild procedure.
"""

import json
import logging
import sqlite3
from datetime import date
from pathlib import Path
from typing import Optional

from quill.core.paths import parse_ref
from quill.database.connection import connect, iso
from quill.database.tags import TAGS_SCHEMA, ensure_tags
from quill.models import Edge, Item

logger = logging.getLogger(__name__)

NEEDS_REBUILD = "needs_rebuild"

# Columns added after the first schema; applied by _migrate_add_columns.
_ADDITIVE_COLUMNS = {
    "start_time": "TEXT",
    "related": "TEXT NOT NULL DEFAULT '[]'",
}


class SqliteIndex:
    """SQLite wrapper for the items, items_fts, edge and metadata tables."""

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)

    @property
    def path(self) -> Path:
        return self._path

    def init_db(self) -> None:
        """Create index tables if they do not exist."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with connect(self._path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    type TEXT NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    content TEXT NOT NULL DEFAULT '',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status_id INTEGER NOT NULL,
                    start_date TEXT,
                    end_date TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at DATETIME NOT NULL,
                    updated_at DATETIME NOT NULL,
                    PRIMARY KEY (type, id)
                )
                """
            )
            self._migrate_add_columns(conn)
            conn.execute(
                """
                CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
                    type, title, description, content, tags
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS related_items (
                    source_type TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    target_type TEXT NOT NULL,
                    target_id TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS db_metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_status ON items(status_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_items_start_date ON items(start_date)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_related_source "
                "ON related_items(source_type, source_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_related_target "
                "ON related_items(target_type, target_id)"
            )
        with connect(self._path) as conn:
            conn.executescript(TAGS_SCHEMA)

    def _migrate_add_columns(self, conn: sqlite3.Connection) -> None:
        """Add columns introduced after an index file was first created."""
        cursor = conn.execute("PRAGMA table_info(items)")
        columns = {row[1] for row in cursor.fetchall()}
        for name, ddl in _ADDITIVE_COLUMNS.items():
            if name not in columns:
                conn.execute(f"ALTER TABLE items ADD COLUMN {name} {ddl}")

    # ---- Sync ----

    def sync_item(self, item: Item) -> None:
        """Upsert an item's row, FTS entry, tag edges and relationship edges.

        Runs in one transaction. Tag and relationship edges are replaced
        wholesale rather than diffed.
        """
        targets = [parse_ref(ref) for ref in item.related]
        with connect(self._path) as conn:
            conn.execute(
                """
                INSERT INTO items (type, id, title, description, content, priority,
                                   status_id, start_date, end_date, start_time,
                                   tags, related, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(type, id) DO UPDATE SET
                    title=excluded.title, description=excluded.description,
                    content=excluded.content, priority=excluded.priority,
                    status_id=excluded.status_id, start_date=excluded.start_date,
                    end_date=excluded.end_date, start_time=excluded.start_time,
                    tags=excluded.tags, related=excluded.related,
                    created_at=excluded.created_at, updated_at=excluded.updated_at
                """,
                (
                    item.type,
                    item.id,
                    item.title,
                    item.description,
                    item.content,
                    item.priority,
                    item.status_id,
                    iso(item.start_date),
                    iso(item.end_date),
                    item.start_time,
                    json.dumps(item.tags),
                    json.dumps(item.related),
                    iso(item.created_at),
                    iso(item.updated_at),
                ),
            )
            rowid = conn.execute(
                "SELECT rowid FROM items WHERE type = ? AND id = ?",
                (item.type, item.id),
            ).fetchone()[0]
            conn.execute("DELETE FROM items_fts WHERE rowid = ?", (rowid,))
            conn.execute(
                """
                INSERT INTO items_fts (rowid, type, title, description, content, tags)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    rowid,
                    item.type,
                    item.title,
                    item.description or "",
                    item.content,
                    " ".join(item.tags),
                ),
            )

            tag_ids = ensure_tags(conn, item.tags)
            conn.execute(
                "DELETE FROM item_tags WHERE item_type = ? AND item_id = ?",
                (item.type, item.id),
            )
            conn.executemany(
                "INSERT INTO item_tags (item_type, item_id, tag_id) VALUES (?, ?, ?)",
                [(item.type, item.id, tag_ids[name]) for name in item.tags],
            )

            conn.execute(
                "DELETE FROM related_items WHERE source_type = ? AND source_id = ?",
                (item.type, item.id),
            )
            conn.executemany(
                """
                INSERT INTO related_items (source_type, source_id, target_type, target_id)
                VALUES (?, ?, ?, ?)
                """,
                [(item.type, item.id, t_type, t_id) for t_type, t_id in targets],
            )
        logger.debug("Synced %s to index", item.ref)

    def remove_item(self, type_name: str, item_id: str) -> bool:
        """Delete an item's row, FTS entry, tag edges and outgoing edges.

        Edges that point at this item from other items are left alone.

        Returns:
            True if a scalar row existed.
        """
        # Start with a write so the transaction holds the write lock throughout.
        with connect(self._path) as conn:
            conn.execute(
                """
                DELETE FROM items_fts WHERE rowid IN
                    (SELECT rowid FROM items WHERE type = ? AND id = ?)
                """,
                (type_name, item_id),
            )
            cursor = conn.execute(
                "DELETE FROM items WHERE type = ? AND id = ?", (type_name, item_id)
            )
            conn.execute(
                "DELETE FROM item_tags WHERE item_type = ? AND item_id = ?",
                (type_name, item_id),
            )
            conn.execute(
                "DELETE FROM related_items WHERE source_type = ? AND source_id = ?",
                (type_name, item_id),
            )
        return cursor.rowcount > 0

    def clear(self) -> None:
        """Drop every item row and edge (tags, statuses and sequences stay)."""
        with connect(self._path) as conn:
            conn.execute("DELETE FROM items_fts")
            conn.execute("DELETE FROM items")
            conn.execute("DELETE FROM item_tags")
            conn.execute("DELETE FROM related_items")

    # ---- Queries ----

    def find_refs(
        self,
        match: Optional[str] = None,
        types: Optional[list[str]] = None,
        tags: Optional[list[str]] = None,
        status_ids: Optional[list[int]] = None,
        exclude_status_ids: Optional[list[int]] = None,
        priority: Optional[str] = None,
        start_date_from: Optional[date] = None,
        start_date_to: Optional[date] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[tuple[str, str]]:
        """Return (type, id) pairs matching every given filter.

        Args:
            match: FTS5 match expression (already parsed and serialized).
            types: Restrict to these types.
            tags: Items must carry every tag (one join per tag).
            status_ids: Restrict to these statuses.
            exclude_status_ids: Exclude these statuses.
            priority: Exact priority.
            start_date_from: Inclusive lower bound on start_date.
            start_date_to: Inclusive upper bound on start_date.
            limit: Maximum rows (None for no limit).
            offset: Rows to skip.

        Returns:
            Pairs ordered by relevance when match is given, else newest first.
        """
        joins: list[str] = []
        join_params: list = []
        conditions: list[str] = []
        params: list = []

        if match:
            joins.append("JOIN items_fts ON items_fts.rowid = i.rowid")
            conditions.append("items_fts MATCH ?")
            params.append(match)

        for n, tag in enumerate(tags or []):
            joins.append(
                f"JOIN item_tags it{n} ON it{n}.item_type = i.type AND it{n}.item_id = i.id "
                f"JOIN tags t{n} ON t{n}.id = it{n}.tag_id AND t{n}.name = ?"
            )
            join_params.append(tag)

        if types:
            conditions.append(f"i.type IN ({','.join('?' * len(types))})")
            params.extend(types)
        if status_ids:
            conditions.append(f"i.status_id IN ({','.join('?' * len(status_ids))})")
            params.extend(status_ids)
        if exclude_status_ids:
            conditions.append(
                f"i.status_id NOT IN ({','.join('?' * len(exclude_status_ids))})"
            )
            params.extend(exclude_status_ids)
        if priority:
            conditions.append("i.priority = ?")
            params.append(priority)
        if start_date_from:
            conditions.append("i.start_date >= ?")
            params.append(start_date_from.isoformat())
        if start_date_to:
            conditions.append("i.start_date <= ?")
            params.append(start_date_to.isoformat())

        query = "SELECT i.type, i.id FROM items i"
        if joins:
            query += " " + " ".join(joins)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        if match:
            query += " ORDER BY bm25(items_fts), i.id"
        else:
            query += " ORDER BY i.created_at DESC, i.type, i.id"
        query += " LIMIT ? OFFSET ?"

        ordered = join_params + params + [limit if limit is not None else -1, max(0, offset)]
        with connect(self._path) as conn:
            rows = conn.execute(query, ordered).fetchall()
        return [(r["type"], r["id"]) for r in rows]

    def get_row(self, type_name: str, item_id: str) -> Optional[dict]:
        """Raw index row for an item (tags/related decoded), or None."""
        with connect(self._path) as conn:
            row = conn.execute(
                "SELECT * FROM items WHERE type = ? AND id = ?", (type_name, item_id)
            ).fetchone()
        if not row:
            return None
        data = dict(row)
        data["tags"] = _loads_list(data.get("tags"))
        data["related"] = _loads_list(data.get("related"))
        return data

    def count_by_type(self) -> dict[str, int]:
        with connect(self._path) as conn:
            rows = conn.execute(
                "SELECT type, COUNT(*) AS n FROM items GROUP BY type ORDER BY type"
            ).fetchall()
        return {r["type"]: r["n"] for r in rows}

    def count_fts(self) -> int:
        with connect(self._path) as conn:
            return conn.execute("SELECT COUNT(*) FROM items_fts").fetchone()[0]

    def count_edges(self) -> int:
        with connect(self._path) as conn:
            return conn.execute("SELECT COUNT(*) FROM related_items").fetchone()[0]

    def item_tag_names(self, type_name: str, item_id: str) -> list[str]:
        """Tag names linked to an item through item_tags."""
        with connect(self._path) as conn:
            rows = conn.execute(
                """
                SELECT t.name FROM item_tags it JOIN tags t ON t.id = it.tag_id
                WHERE it.item_type = ? AND it.item_id = ?
                ORDER BY it.rowid
                """,
                (type_name, item_id),
            ).fetchall()
        return [r["name"] for r in rows]

    def list_edges(
        self, source_type: Optional[str] = None, source_id: Optional[str] = None
    ) -> list[Edge]:
        """Relationship edges, optionally only those leaving one item."""
        query = "SELECT * FROM related_items"
        params: list = []
        if source_type is not None and source_id is not None:
            query += " WHERE source_type = ? AND source_id = ?"
            params = [source_type, source_id]
        query += " ORDER BY rowid"
        with connect(self._path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_edge(r) for r in rows]

    def incoming_edges(self, target_type: str, target_id: str) -> list[Edge]:
        """Edges from other items that point at (target_type, target_id)."""
        with connect(self._path) as conn:
            rows = conn.execute(
                "SELECT * FROM related_items WHERE target_type = ? AND target_id = ? "
                "ORDER BY rowid",
                (target_type, target_id),
            ).fetchall()
        return [_row_to_edge(r) for r in rows]

    # ---- Rebuild flag ----

    def needs_rebuild(self) -> bool:
        with connect(self._path) as conn:
            row = conn.execute(
                "SELECT value FROM db_metadata WHERE key = ?", (NEEDS_REBUILD,)
            ).fetchone()
        return bool(row) and row["value"] == "true"

    def set_needs_rebuild(self) -> None:
        with connect(self._path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO db_metadata (key, value) VALUES (?, 'true')",
                (NEEDS_REBUILD,),
            )

    def clear_needs_rebuild(self) -> None:
        with connect(self._path) as conn:
            conn.execute("DELETE FROM db_metadata WHERE key = ?", (NEEDS_REBUILD,))


def _loads_list(raw: Optional[str]) -> list:
    try:
        value = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


def _row_to_edge(row: sqlite3.Row) -> Edge:
    return Edge(
        source_type=row["source_type"],
        source_id=row["source_id"],
        target_type=row["target_type"],
        target_id=row["target_id"],
    )


