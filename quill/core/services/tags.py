"""Tag vocabulary service: listing, lookup and deletion."""

from __future__ import annotations

import logging

from quill.core.store import ItemStore
from quill.models import Item, Tag

logger = logging.getLogger(__name__)


class TagService:
    """Tag operations that need both the vocabulary and the item files."""

    def __init__(self, store: ItemStore) -> None:
        self._store = store

    def list_tags(self, limit: int = 1000) -> list[Tag]:
        return self._store.tags.list_tags(limit=limit)

    def search_tags(self, pattern: str) -> list[Tag]:
        pattern = pattern.strip()
        if not pattern:
            return self.list_tags()
        return self._store.tags.search_tags(pattern)

    def get_tag(self, name: str) -> Tag | None:
        return self._store.tags.get_tag(name.strip())

    def create_tag(self, name: str) -> Tag:
        return self._store.tags.create_tag(name)

    def items_with_tag(self, name: str) -> list[Item]:
        """Items carrying the tag, read back from their files."""
        items = []
        for type_name, item_id in self._store.tags.tagged_refs(name.strip()):
            item = self._store.get_by_id(type_name, item_id)
            if item is not None:
                items.append(item)
        return items

    def delete_tag(self, name: str) -> bool:
        """Remove a tag from the vocabulary and unlink it from every item.

        Item files are not rewritten; a later update or rebuild of an item
        that still lists the tag registers it again.
        """
        return self._store.tags.delete_tag(name.strip())
