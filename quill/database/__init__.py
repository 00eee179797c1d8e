"""Database layer - SQLite index, registries, tags and full-text search."""

from .fulltext import FullTextSearch
from .registry import StatusRegistry, TypeRegistry
from .sqlite import SqliteIndex
from .tags import TagDB

__all__ = ["FullTextSearch", "SqliteIndex", "StatusRegistry", "TagDB", "TypeRegistry"]
