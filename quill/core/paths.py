"""Item identity and file layout.

Every item lives in exactly one markdown file whose path is a pure function
of (type, id):

    {data_dir}/{type}/{type}-{id}.md
    {data_dir}/sessions/{YYYY-MM-DD}/sessions-{id}.md
    {data_dir}/sessions/{id}/dailies-{id}.md

Ids are validated before any path is built so a caller-controlled id can
never escape the data directory.
"""

import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from quill.errors import Conflict, InvalidId, InvalidItem
from quill.models import DAILIES, SESSIONS, TypeDefinition

logger = logging.getLogger(__name__)

EXTENSION = ".md"

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")
_TYPE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")
_SESSION_ID_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})-(\d{2})\.(\d{2})\.(\d{2})\.(\d{3})$"
)


def validate_id(value: str) -> str:
    """Return value if it is safe to embed in a file name, else raise InvalidId."""
    if not isinstance(value, str) or not value:
        raise InvalidId(str(value))
    if value in (".", "..") or ".." in value:
        raise InvalidId(value)
    if any(ch in value for ch in ("/", "\\", "\0", "%")):
        raise InvalidId(value)
    if not _SAFE_ID_RE.match(value):
        raise InvalidId(value)
    return value


def is_valid_type_name(name: str) -> bool:
    """Type names: lowercase letter first, then lowercase letters, digits, underscores."""
    return bool(_TYPE_NAME_RE.match(name)) and len(name) <= 50


def session_id(now: Optional[datetime] = None) -> str:
    """Local date-time id with millisecond precision: YYYY-MM-DD-HH.MM.SS.mmm."""
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d-%H.%M.%S.") + f"{now.microsecond // 1000:03d}"


def session_start(item_id: str) -> tuple[date, str]:
    """Split a session id into its start date and HH:MM:SS start time."""
    match = _SESSION_ID_RE.match(item_id)
    if not match:
        raise InvalidItem(
            f"Session id must look like YYYY-MM-DD-HH.MM.SS.mmm, got {item_id!r}"
        )
    day, hh, mm, ss, _ms = match.groups()
    return date.fromisoformat(day), f"{hh}:{mm}:{ss}"


def parse_ref(ref: str) -> tuple[str, str]:
    """Split a "type-id" reference at its first hyphen.

    Type names cannot contain hyphens, so the first hyphen is always the
    separator even when the id itself contains hyphens (sessions, dailies).
    """
    type_name, sep, item_id = ref.partition("-")
    if not sep or not type_name or not item_id:
        raise InvalidItem(f"Invalid reference {ref!r}; expected 'type-id'")
    return type_name, item_id


class PathStrategy:
    """Maps (type, id) to files under a data directory and allocates ids."""

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def type_dir(self, type_name: str) -> Path:
        validate_id(type_name)
        if type_name in (SESSIONS, DAILIES):
            return self._data_dir / SESSIONS
        return self._data_dir / type_name

    def file_path(self, type_name: str, item_id: str) -> Path:
        """Return the file path for an item. Raises InvalidId before touching disk."""
        validate_id(type_name)
        validate_id(item_id)
        base = self.type_dir(type_name)
        if type_name == SESSIONS:
            match = _DATE_PREFIX_RE.match(item_id)
            if match:
                return base / match.group(1) / f"{SESSIONS}-{item_id}{EXTENSION}"
        elif type_name == DAILIES:
            return base / item_id / f"{DAILIES}-{item_id}{EXTENSION}"
        return base / f"{type_name}-{item_id}{EXTENSION}"

    def iter_item_files(self, type_name: str) -> Iterator[Path]:
        """Yield every file belonging to one type, in sorted order."""
        base = self.type_dir(type_name)
        if not base.is_dir():
            return
        pattern = f"{type_name}-*{EXTENSION}"
        if type_name in (SESSIONS, DAILIES):
            paths = list(base.glob(f"*/{pattern}"))
            if type_name == SESSIONS:
                paths.extend(base.glob(pattern))
        else:
            paths = list(base.glob(pattern))
        for path in sorted(paths):
            if path.is_file():
                yield path

    def id_from_path(self, type_name: str, path: Path) -> Optional[str]:
        """Recover the id from a file name, or None if it is not a valid item file."""
        prefix = f"{type_name}-"
        name = path.name
        if not name.startswith(prefix) or not name.endswith(EXTENSION):
            return None
        item_id = name[len(prefix) : -len(EXTENSION)]
        try:
            return validate_id(item_id)
        except InvalidId:
            logger.warning("Skipping file with unsafe id: %s", path)
            return None

    def discover_type_dirs(self) -> list[str]:
        """Names of directories under data_dir that look like item types."""
        if not self._data_dir.is_dir():
            return []
        return sorted(
            child.name
            for child in self._data_dir.iterdir()
            if child.is_dir()
            and child.name != SESSIONS
            and is_valid_type_name(child.name)
        )

    def has_item_files(self, type_names: list[str]) -> bool:
        """True if any of the given types (or discovered directories) has a file."""
        names = set(type_names) | set(self.discover_type_dirs()) | {SESSIONS, DAILIES}
        for name in names:
            for _ in self.iter_item_files(name):
                return True
        return False

    def allocate_id(
        self,
        type_def: TypeDefinition,
        next_sequence: Callable[[str], int],
        start_date: Optional[date] = None,
        explicit_id: Optional[str] = None,
    ) -> str:
        """Allocate an id according to the type's base category.

        Args:
            type_def: Registered type of the new item.
            next_sequence: Atomic fetch-and-increment for a type's counter.
            start_date: Date for dailies (defaults to today).
            explicit_id: Caller-supplied id; only accepted for sessions.

        Raises:
            Conflict: A daily already exists for the requested date.
        """
        if type_def.base_type == "sessions":
            if explicit_id is not None:
                validate_id(explicit_id)
                session_start(explicit_id)
                return explicit_id
            return session_id()
        if explicit_id is not None:
            raise InvalidItem(f"Explicit ids are not accepted for type {type_def.type!r}")
        if type_def.base_type == "dailies":
            item_id = (start_date or date.today()).isoformat()
            if self.file_path(type_def.type, item_id).exists():
                raise Conflict(
                    f"Daily summary already exists for date: {item_id}. "
                    "Update the existing item instead."
                )
            return item_id
        return str(next_sequence(type_def.type))
