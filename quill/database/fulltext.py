"""Ranked full-text search, title suggestions and match counts over items_fts."""

import logging
from pathlib import Path
from typing import Optional

from quill.core.query import build_match
from quill.database.connection import connect
from quill.errors import InvalidQuery
from quill.models import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 1000
DEFAULT_SUGGEST_LIMIT = 10
MAX_SUGGEST_LIMIT = 100


def _clamp(limit: Optional[int], default: int, maximum: int) -> int:
    if not limit:
        return default
    return max(1, min(limit, maximum))


def _type_filter(types: Optional[list[str]]) -> tuple[str, list[str]]:
    if not types:
        return "", []
    return f" AND i.type IN ({','.join('?' * len(types))})", list(types)


class FullTextSearch:
    """Query the FTS5 shadow table. Scores are -bm25, so higher is better."""

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)

    def search(
        self,
        query: str,
        types: Optional[list[str]] = None,
        limit: Optional[int] = DEFAULT_LIMIT,
        offset: int = 0,
    ) -> list[SearchResult]:
        """Ranked matches with a highlighted content snippet.

        Raises:
            InvalidQuery: The query is empty or has no searchable terms.
        """
        match = build_match(query)
        type_sql, type_params = _type_filter(types)
        with connect(self._path) as conn:
            rows = conn.execute(
                f"""
                SELECT i.type, i.id, i.title,
                       snippet(items_fts, 3, '<mark>', '</mark>', '...', 50) AS snippet,
                       -bm25(items_fts) AS score
                FROM items_fts JOIN items i ON i.rowid = items_fts.rowid
                WHERE items_fts MATCH ?{type_sql}
                ORDER BY bm25(items_fts), i.id
                LIMIT ? OFFSET ?
                """,
                [match, *type_params, _clamp(limit, DEFAULT_LIMIT, MAX_LIMIT), max(0, offset)],
            ).fetchall()
        logger.debug("Search %r matched %d rows", query, len(rows))
        return [
            SearchResult(
                type=r["type"],
                id=r["id"],
                title=r["title"],
                snippet=r["snippet"] or "",
                score=r["score"],
            )
            for r in rows
        ]

    def suggest(
        self,
        query: str,
        types: Optional[list[str]] = None,
        limit: Optional[int] = DEFAULT_SUGGEST_LIMIT,
    ) -> list[str]:
        """Distinct titles for as-you-type completion, best match first.

        Unlike search(), an empty or operator-only query yields [].
        """
        try:
            match = build_match(query, prefix=True)
        except InvalidQuery:
            return []
        type_sql, type_params = _type_filter(types)
        with connect(self._path) as conn:
            rows = conn.execute(
                f"""
                SELECT i.title AS title
                FROM items_fts JOIN items i ON i.rowid = items_fts.rowid
                WHERE items_fts MATCH ?{type_sql}
                ORDER BY bm25(items_fts), i.title
                """,
                [match, *type_params],
            ).fetchall()
        # bm25() cannot feed an aggregate, so titles are de-duplicated here.
        titles = list(dict.fromkeys(r["title"] for r in rows))
        return titles[: _clamp(limit, DEFAULT_SUGGEST_LIMIT, MAX_SUGGEST_LIMIT)]

    def count(self, query: str, types: Optional[list[str]] = None) -> int:
        """Total number of matches, ignoring limit and offset."""
        match = build_match(query)
        type_sql, type_params = _type_filter(types)
        with connect(self._path) as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(*) FROM items_fts JOIN items i ON i.rowid = items_fts.rowid
                WHERE items_fts MATCH ?{type_sql}
                """,
                [match, *type_params],
            ).fetchone()
        return row[0]
