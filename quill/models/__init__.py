"""Domain models."""

from .item import (
    DAILIES,
    SESSIONS,
    BaseType,
    Edge,
    Item,
    ItemPatch,
    Priority,
    RebuildReport,
    SearchCriteria,
    SearchResult,
    Status,
    Tag,
    TypeDefinition,
    utc_now,
)

__all__ = [
    "DAILIES",
    "SESSIONS",
    "BaseType",
    "Edge",
    "Item",
    "ItemPatch",
    "Priority",
    "RebuildReport",
    "SearchCriteria",
    "SearchResult",
    "Status",
    "Tag",
    "TypeDefinition",
    "utc_now",
]
