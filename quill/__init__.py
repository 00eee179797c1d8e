"""quill: markdown item store with a synchronized SQLite full-text index."""

from quill.core.store import ItemStore
from quill.errors import QuillError
from quill.models import Item, ItemPatch, SearchCriteria

__all__ = ["Item", "ItemPatch", "ItemStore", "QuillError", "SearchCriteria"]
