"""Repopulate the search index from the item files.

The rebuild replays the same SqliteIndex.sync_item() used by normal writes,
so an index built from scratch is identical to one maintained incrementally.
The needs_rebuild flag is set for the whole run and cleared only after every
type has been processed; a crash part-way leaves it set and the next
startup starts over.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from quill.core import markdown
from quill.core.paths import PathStrategy
from quill.database.registry import CUSTOM_BASES, TypeRegistry
from quill.database.sqlite import SqliteIndex
from quill.errors import MarkdownError
from quill.models import DAILIES, SESSIONS, Item, RebuildReport

logger = logging.getLogger(__name__)

ItemLoader = Callable[[str, str, Path], Optional[Item]]


def _discovered_base(paths: PathStrategy, type_name: str) -> str:
    """Base category for an unregistered directory: the first file's `base` key."""
    for path in paths.iter_item_files(type_name):
        try:
            metadata, _ = markdown.parse(path.read_text(encoding="utf-8"))
        except (OSError, MarkdownError) as e:
            logger.debug("Cannot read %s while probing base type: %s", path, e)
            continue
        base = metadata.get("base")
        if base in CUSTOM_BASES:
            return base
        break
    return "documents"


def register_unknown_types(paths: PathStrategy, types: TypeRegistry) -> list[str]:
    """Register type directories found on disk but missing from the registry."""
    added = []
    for name in paths.discover_type_dirs():
        if types.lookup(name) is not None:
            continue
        if not any(True for _ in paths.iter_item_files(name)):
            continue
        base = _discovered_base(paths, name)
        types.create_type(name, base, description="Discovered during rebuild")
        logger.info("Registered type %s found on disk (base %s)", name, base)
        added.append(name)
    return added


def rebuild_index(
    paths: PathStrategy,
    index: SqliteIndex,
    types: TypeRegistry,
    load_item: ItemLoader,
    clear: bool = False,
) -> RebuildReport:
    """Walk every type's files and sync each parseable item into the index.

    Args:
        paths: Layout of the data directory.
        index: Index to populate.
        types: Type registry; unknown directories are registered first.
        load_item: Reads one file into an Item, or None if it cannot be parsed.
        clear: Drop all item rows and edges before syncing.

    Returns:
        Per-type counts of synced items and the paths that were skipped.
    """
    index.set_needs_rebuild()
    if clear:
        index.clear()
        logger.info("Cleared index before rebuild")

    register_unknown_types(paths, types)
    type_names = [t.type for t in types.list_types()]
    for pseudo in (SESSIONS, DAILIES):
        if pseudo not in type_names:
            type_names.append(pseudo)

    report = RebuildReport()
    for type_name in type_names:
        synced = 0
        highest = 0
        for path in paths.iter_item_files(type_name):
            item_id = paths.id_from_path(type_name, path)
            if item_id and item_id.isdigit():
                highest = max(highest, int(item_id))
            item = load_item(type_name, item_id, path) if item_id else None
            if item is None:
                report.skipped.append(str(path))
                continue
            index.sync_item(item)
            synced += 1
        report.types[type_name] = synced
        if highest:
            # Counters restart at 0 with a fresh index; skip ids already on disk.
            types.ensure_at_least(type_name, highest)
        logger.debug("Rebuilt %d %s", synced, type_name)

    index.clear_needs_rebuild()
    logger.info(
        "Rebuild complete: %d items across %d types, %d skipped",
        report.items,
        len(report.types),
        len(report.skipped),
    )
    return report
