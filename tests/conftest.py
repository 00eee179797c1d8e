"""Global fixtures: temp data directory, initialized store and index."""

from pathlib import Path

import pytest

from quill.core.paths import PathStrategy
from quill.core.store import ItemStore
from quill.database.registry import StatusRegistry, TypeRegistry
from quill.database.sqlite import SqliteIndex
from quill.database.tags import TagDB
from quill.models import Item


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Empty data directory (cleaned up by pytest)."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Temporary SQLite path."""
    return tmp_path / "index" / "search.db"


@pytest.fixture
def store(data_dir: Path) -> ItemStore:
    """Initialized ItemStore over an empty data directory."""
    s = ItemStore(data_dir)
    s.initialize()
    return s


@pytest.fixture
def paths(data_dir: Path) -> PathStrategy:
    return PathStrategy(data_dir)


@pytest.fixture
def index(temp_db_path: Path) -> SqliteIndex:
    """Initialized SqliteIndex with temp path."""
    idx = SqliteIndex(temp_db_path)
    idx.init_db()
    return idx


@pytest.fixture
def tag_db(index: SqliteIndex) -> TagDB:
    t = TagDB(index.path)
    t.init_db()
    return t


@pytest.fixture
def statuses(temp_db_path: Path) -> StatusRegistry:
    registry = StatusRegistry(temp_db_path)
    temp_db_path.parent.mkdir(parents=True, exist_ok=True)
    registry.init_db()
    return registry


@pytest.fixture
def types(temp_db_path: Path) -> TypeRegistry:
    registry = TypeRegistry(temp_db_path)
    temp_db_path.parent.mkdir(parents=True, exist_ok=True)
    registry.init_db()
    return registry


@pytest.fixture
def sample_item() -> Item:
    """Single issue for index tests."""
    return Item(
        type="issues",
        id="1",
        title="Login page broken",
        content="The login form rejects valid passwords.",
        tags=["auth", "ui"],
        related=["docs-2"],
    )
