"""Shared SQLite connection and value helpers."""

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional, Union

# Seconds a writer waits on a locked database before failing.
SQLITE_TIMEOUT = 30.0


@contextmanager
def connect(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Open a short-lived connection: commit on success, roll back on error, always close."""
    conn = sqlite3.connect(db_path, timeout=SQLITE_TIMEOUT)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_dt(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, returning None for invalid input."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
