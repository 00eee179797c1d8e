"""Item store: markdown files as the source of truth, SQLite as the index.

Every write goes file first, then index. Reads by id go straight to the
file; searches query the index and re-hydrate each hit from its file.
"""

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from quill.config import Settings, get_settings
from quill.core import markdown
from quill.core.paths import PathStrategy, parse_ref, session_start, validate_id
from quill.core.query import build_match
from quill.core.rebuild import rebuild_index
from quill.core.tagging import clean_tags, parse_tag_list
from quill.database.fulltext import FullTextSearch
from quill.database.registry import StatusRegistry, TypeRegistry
from quill.database.sqlite import SqliteIndex
from quill.database.tags import TagDB
from quill.errors import (
    Conflict,
    InvalidId,
    InvalidItem,
    MarkdownError,
    NotFound,
    StoreNotReady,
    UnknownStatus,
)
from quill.models import (
    Edge,
    Item,
    ItemPatch,
    RebuildReport,
    SearchCriteria,
    Status,
    TypeDefinition,
    utc_now,
)

logger = logging.getLogger(__name__)

# Patch fields that may be cleared by setting them to None.
NULLABLE_FIELDS = frozenset({"description", "start_date", "end_date", "start_time"})


def _sort_key(item: Item) -> tuple:
    # Sequence ids sort numerically, everything else as text.
    return (0, int(item.id), "") if item.id.isdigit() else (1, 0, item.id)


def _coerce_time(value: Any) -> Optional[str]:
    """YAML 1.1 reads unquoted 10:30:00 as a base-60 integer; undo that."""
    if value is None:
        return None
    if isinstance(value, int):
        hours, rest = divmod(value, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return str(value)


def item_to_metadata(item: Item) -> dict[str, Any]:
    """Front matter for an item, in on-disk key order."""
    metadata: dict[str, Any] = {
        "id": item.id,
        "title": item.title,
        "priority": item.priority,
        "status": item.status,
        "tags": list(item.tags),
        "related": list(item.related),
        "created_at": item.created_at.isoformat(),
        "updated_at": item.updated_at.isoformat(),
    }
    if item.description is not None:
        metadata["description"] = item.description
    if item.start_date is not None:
        metadata["start_date"] = item.start_date.isoformat()
    if item.end_date is not None:
        metadata["end_date"] = item.end_date.isoformat()
    if item.start_time is not None:
        metadata["start_time"] = item.start_time
    return metadata


class ItemStore:
    """CRUD and search over markdown items with a synchronized SQLite index.

    Construction does no I/O. Call initialize() once before anything else;
    every other public method raises StoreNotReady until it has completed.
    """

    def __init__(self, data_dir: Path, db_path: Optional[Path] = None) -> None:
        self._data_dir = Path(data_dir)
        self._db_path = Path(db_path) if db_path else self._data_dir / "search.db"
        self._paths = PathStrategy(self._data_dir)
        self._index = SqliteIndex(self._db_path)
        self._tags = TagDB(self._db_path)
        self._statuses = StatusRegistry(self._db_path)
        self._types = TypeRegistry(self._db_path)
        self._fulltext = FullTextSearch(self._db_path)
        self._init_lock = threading.Lock()
        self._ready = False
        self._status_by_name: dict[str, Status] = {}
        self._default_status: Optional[Status] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ItemStore":
        settings = settings or get_settings()
        return cls(settings.data_dir, settings.index_path)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def paths(self) -> PathStrategy:
        return self._paths

    @property
    def is_ready(self) -> bool:
        return self._ready

    # ---- Lifecycle ----

    def initialize(self) -> None:
        """Create tables, seed registries and rebuild the index if needed.

        Safe to call repeatedly and from several threads; only the first
        call does any work.
        """
        with self._init_lock:
            if self._ready:
                return
            index_existed = self._db_path.exists()
            self._data_dir.mkdir(parents=True, exist_ok=True)
            self._index.init_db()
            self._tags.init_db()
            self._statuses.init_db()
            self._types.init_db()
            self._load_statuses()

            if not index_existed and self._paths.has_item_files(
                [t.type for t in self._types.list_types()]
            ):
                logger.info("Index %s is new but item files exist", self._db_path)
                self._index.set_needs_rebuild()
            if self._index.needs_rebuild():
                self._run_rebuild(clear=False)
            self._ready = True
        logger.debug("Item store ready at %s", self._data_dir)

    def _load_statuses(self) -> None:
        statuses = self._statuses.list_statuses()
        self._status_by_name = {s.name.lower(): s for s in statuses}
        self._default_status = self._statuses.default_status()

    def _check_ready(self) -> None:
        if not self._ready:
            raise StoreNotReady()

    def _run_rebuild(self, clear: bool) -> RebuildReport:
        return rebuild_index(
            self._paths, self._index, self._types, self._read_file, clear=clear
        )

    # ---- File I/O ----

    def _status(self, name: Optional[str]) -> Status:
        """Resolve a status name (case-insensitive); None means the default."""
        if name is None:
            if self._default_status is None:
                raise StoreNotReady()
            return self._default_status
        status = self._status_by_name.get(str(name).strip().lower())
        if status is None:
            raise UnknownStatus(str(name))
        return status

    def _to_item(
        self,
        type_name: str,
        item_id: str,
        metadata: dict[str, Any],
        body: str,
        path: Path,
        modified: datetime,
    ) -> Item:
        try:
            status = self._status(metadata.get("status"))
        except UnknownStatus:
            logger.warning(
                "Unknown status %r in %s; using %s",
                metadata.get("status"),
                path,
                self._status(None).name,
            )
            status = self._status(None)
        raw_tags = metadata.get("tags")
        if isinstance(raw_tags, str):
            tags = parse_tag_list(raw_tags)
        elif raw_tags is None or isinstance(raw_tags, list):
            tags = clean_tags(raw_tags)
        else:
            raise InvalidItem(f"tags must be a list, got {type(raw_tags).__name__}")
        raw_related = metadata.get("related")
        if raw_related is not None and not isinstance(raw_related, list):
            raise InvalidItem(f"related must be a list, got {type(raw_related).__name__}")
        return Item(
            type=type_name,
            id=item_id,
            title=str(metadata.get("title") or ""),
            description=metadata.get("description"),
            content=body,
            priority=metadata.get("priority") or "medium",
            status_id=status.id,
            status=status.name,
            start_date=metadata.get("start_date"),
            end_date=metadata.get("end_date"),
            start_time=_coerce_time(metadata.get("start_time")),
            tags=tags,
            related=self._check_related(raw_related),
            created_at=metadata.get("created_at") or modified,
            updated_at=metadata.get("updated_at") or metadata.get("created_at") or modified,
        )

    def _read_file(self, type_name: str, item_id: str, path: Path) -> Optional[Item]:
        """Parse one item file. Missing or unparseable files give None."""
        try:
            text = path.read_text(encoding="utf-8")
            modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
        except FileNotFoundError:
            logger.debug("No file for %s-%s at %s", type_name, item_id, path)
            return None
        except OSError as e:
            logger.warning("Cannot read %s: %s", path, e)
            return None
        try:
            metadata, body = markdown.parse(text)
            return self._to_item(type_name, item_id, metadata, body, path, modified)
        except (MarkdownError, InvalidItem, ValidationError) as e:
            logger.warning("Skipping unparseable file %s: %s", path, e)
            return None

    def _write_file(self, item: Item, exclusive: bool = False) -> Path:
        path = self._paths.file_path(item.type, item.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        text = markdown.generate(item_to_metadata(item), item.content)
        if exclusive:
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(text)
            except FileExistsError as e:
                raise Conflict(f"{item.ref} already exists") from e
        else:
            path.write_text(text, encoding="utf-8")
        return path

    # ---- Validation ----

    def _check_related(self, related: Optional[list[str]]) -> list[str]:
        refs = []
        for ref in related or []:
            ref = str(ref).strip()
            if not ref:
                continue
            type_name, target_id = parse_ref(ref)
            try:
                validate_id(type_name)
                validate_id(target_id)
            except InvalidId as e:
                raise InvalidItem(f"Invalid reference {ref!r}") from e
            if ref not in refs:
                refs.append(ref)
        return refs

    def _check_content(self, type_def: TypeDefinition, title: str, content: str) -> None:
        if not title or not title.strip():
            raise InvalidItem("Title is required")
        if type_def.base_type != "sessions" and not content.strip():
            raise InvalidItem(f"Content is required for {type_def.type}")

    # ---- CRUD ----

    def create(
        self,
        type: str,
        title: str,
        content: str = "",
        priority: Optional[str] = None,
        status: Optional[str] = None,
        tags: Optional[list[str]] = None,
        description: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        related: Optional[list[str]] = None,
        start_time: Optional[str] = None,
        id: Optional[str] = None,
    ) -> Item:
        """Create an item, write its file and index it.

        Raises:
            UnknownType: type is not registered.
            UnknownStatus: status is not a known status name.
            InvalidItem: Missing title/content or a malformed reference.
            Conflict: A daily already exists for the date.
        """
        self._check_ready()
        type_def = self._types.require(type)
        content = content or ""
        self._check_content(type_def, title, content)
        resolved = self._status(status)
        refs = self._check_related(related)

        item_id = self._paths.allocate_id(
            type_def, self._types.next_value, start_date=start_date, explicit_id=id
        )
        if type_def.base_type == "sessions":
            start_date, start_time = session_start(item_id)
        elif type_def.base_type == "dailies":
            start_date = date.fromisoformat(item_id)

        now = utc_now()
        try:
            item = Item(
                type=type,
                id=item_id,
                title=title.strip(),
                description=description,
                content=content,
                priority=priority or "medium",
                status_id=resolved.id,
                status=resolved.name,
                start_date=start_date,
                end_date=end_date,
                start_time=start_time,
                tags=clean_tags(tags),
                related=refs,
                created_at=now,
                updated_at=now,
            )
        except ValidationError as e:
            raise InvalidItem(str(e)) from e

        self._write_file(item, exclusive=type_def.base_type == "dailies")
        self._index.sync_item(item)
        logger.info("Created %s: %s", item.ref, item.title)
        return item

    def get_by_id(self, type: str, id: str) -> Optional[Item]:
        """Read an item from its file. Raises InvalidId for an unsafe id."""
        self._check_ready()
        path = self._paths.file_path(type, id)
        return self._read_file(type, id, path)

    def update(self, type: str, id: str, patch: ItemPatch) -> Item:
        """Apply the fields explicitly set on patch and persist.

        Raises:
            NotFound: No such item.
            InvalidItem: A non-nullable field was set to None or left empty,
                or a session/daily start_date or start_time was patched.
            UnknownStatus: The new status is not a known name.
        """
        self._check_ready()
        current = self.get_by_id(type, id)
        if current is None:
            raise NotFound(type, id)
        type_def = self._types.require(type)

        changes: dict[str, Any] = {}
        for field in sorted(patch.model_fields_set):
            value = getattr(patch, field)
            if value is None and field not in NULLABLE_FIELDS:
                raise InvalidItem(f"{field} cannot be cleared")
            changes[field] = value

        if type_def.base_type in ("sessions", "dailies"):
            derived = {"start_date", "start_time"} & changes.keys()
            if derived:
                raise InvalidItem(
                    f"{', '.join(sorted(derived))} of {type}-{id} is derived from its id"
                )

        if "title" in changes:
            changes["title"] = changes["title"].strip()
        if "status" in changes:
            resolved = self._status(changes["status"])
            changes["status"] = resolved.name
            changes["status_id"] = resolved.id
        if "tags" in changes:
            changes["tags"] = clean_tags(changes["tags"])
        if "related" in changes:
            changes["related"] = self._check_related(changes["related"])
        self._check_content(
            type_def,
            changes.get("title", current.title),
            changes.get("content", current.content),
        )

        now = utc_now()
        if now <= current.updated_at:
            now = current.updated_at + timedelta(microseconds=1)
        changes["updated_at"] = now
        updated = current.model_copy(update=changes)

        self._write_file(updated)
        self._index.sync_item(updated)
        logger.info("Updated %s (%s)", updated.ref, ", ".join(sorted(patch.model_fields_set)))
        return updated

    def delete(self, type: str, id: str) -> bool:
        """Remove an item's file and index rows. False if there was no file."""
        self._check_ready()
        path = self._paths.file_path(type, id)
        existed = path.exists()
        if existed:
            path.unlink()
        self._index.remove_item(type, id)
        if existed:
            logger.info("Deleted %s-%s", type, id)
        return existed

    # ---- Queries ----

    def search(self, criteria: Optional[SearchCriteria] = None) -> list[Item]:
        """Filter (and optionally full-text match) items via the index.

        Raises:
            UnknownType: A type filter names an unregistered type.
            UnknownStatus: The status filter is not a known name.
            InvalidQuery: The query has no searchable terms.
        """
        self._check_ready()
        criteria = criteria or SearchCriteria()
        types = list(criteria.types)
        if criteria.type and criteria.type not in types:
            types.append(criteria.type)
        for type_name in types:
            self._types.require(type_name)

        match = None
        if criteria.query and criteria.query.strip():
            match = build_match(criteria.query)

        status_ids = None
        exclude_ids = None
        if criteria.status:
            status_ids = [self._status(criteria.status).id]
        elif not criteria.include_closed:
            exclude_ids = self._statuses.closed_ids()

        refs = self._index.find_refs(
            match=match,
            types=types,
            tags=clean_tags(criteria.tags),
            status_ids=status_ids,
            exclude_status_ids=exclude_ids,
            priority=criteria.priority,
            start_date_from=criteria.start_date_from,
            start_date_to=criteria.start_date_to,
            limit=criteria.limit,
            offset=criteria.offset,
        )
        items = []
        for type_name, item_id in refs:
            item = self.get_by_id(type_name, item_id)
            if item is None:
                logger.debug("Index row %s-%s has no file; skipping", type_name, item_id)
                continue
            items.append(item)
        return items

    def get_all_by_type(self, type: str) -> list[Item]:
        """Every parseable item of one type, read from disk."""
        self._check_ready()
        self._types.require(type)
        items = []
        for path in self._paths.iter_item_files(type):
            item_id = self._paths.id_from_path(type, path)
            if item_id is None:
                continue
            item = self._read_file(type, item_id, path)
            if item is not None:
                items.append(item)
        return sorted(items, key=_sort_key)

    def get_related(self, type: str, id: str) -> list[Item]:
        """Items this item points to, in the order of its `related` list."""
        self._check_ready()
        validate_id(type)
        validate_id(id)
        items = []
        for edge in self._index.list_edges(type, id):
            try:
                item = self.get_by_id(edge.target_type, edge.target_id)
            except InvalidId:
                logger.warning("Ignoring unsafe reference %s from %s-%s", edge.target_ref, type, id)
                continue
            if item is not None:
                items.append(item)
        return items

    def dangling_references(self) -> list[Edge]:
        """Relationship edges whose target file no longer exists."""
        self._check_ready()
        dangling = []
        for edge in self._index.list_edges():
            try:
                path = self._paths.file_path(edge.target_type, edge.target_id)
            except InvalidId:
                dangling.append(edge)
                continue
            if not path.exists():
                dangling.append(edge)
        return dangling

    @property
    def fulltext(self) -> FullTextSearch:
        self._check_ready()
        return self._fulltext

    @property
    def tags(self) -> TagDB:
        self._check_ready()
        return self._tags

    # ---- Registries ----

    def list_types(self) -> list[TypeDefinition]:
        self._check_ready()
        return self._types.list_types()

    def get_type(self, name: str) -> TypeDefinition:
        self._check_ready()
        return self._types.require(name)

    def create_type(
        self, name: str, base_type: str = "documents", description: Optional[str] = None
    ) -> TypeDefinition:
        self._check_ready()
        return self._types.create_type(name, base_type, description)

    def delete_type(self, name: str) -> None:
        """Unregister a type. Refused while any of its files remain."""
        self._check_ready()
        self._types.require(name)
        if any(True for _ in self._paths.iter_item_files(name)):
            raise Conflict(f"Type {name!r} still has items; delete them first")
        self._types.delete_type(name)

    def list_statuses(self) -> list[Status]:
        self._check_ready()
        return self._statuses.list_statuses()

    def index_counts(self) -> dict[str, int]:
        """Indexed rows per type."""
        self._check_ready()
        return self._index.count_by_type()

    def rebuild(self, clear: bool = False) -> RebuildReport:
        """Re-sync the index from files (see quill.core.rebuild)."""
        self._check_ready()
        return self._run_rebuild(clear=clear)


