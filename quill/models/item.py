"""Schema for items, type definitions, statuses, tags and search results."""

from datetime import date, datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

BaseType = Literal["tasks", "documents", "sessions", "dailies"]
Priority = Literal["low", "medium", "high"]

# Pseudo-types that always exist and use non-sequence id allocation.
SESSIONS = "sessions"
DAILIES = "dailies"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Item(BaseModel):
    """Single persisted unit of content, identified by (type, id)."""

    type: str
    id: str
    title: str = Field(min_length=1)
    description: Optional[str] = None
    content: str = ""
    priority: Priority = "medium"
    status_id: int = 1
    status: str = "Open"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    related: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def ref(self) -> str:
        """Reference string other items use in their `related` list."""
        return f"{self.type}-{self.id}"


class ItemPatch(BaseModel):
    """Partial update for an item.

    Only fields explicitly set (present in `model_fields_set`) are applied.
    Setting `description`, `start_date`, `end_date` or `start_time` to None
    clears the field; None is rejected for every other field.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[str] = None
    tags: Optional[list[str]] = None
    related: Optional[list[str]] = None


class TypeDefinition(BaseModel):
    """Registered item type and the base category that governs it."""

    type: str
    base_type: BaseType
    description: Optional[str] = None


class Status(BaseModel):
    """Workflow state from the Status Registry."""

    id: int
    name: str
    is_closed: bool = False


class Tag(BaseModel):
    """A tag in the shared vocabulary. usage_count is derived from item_tags."""

    name: str
    usage_count: int = Field(default=0, description="Number of items using this tag")
    created_at: Optional[datetime] = None


class SearchResult(BaseModel):
    """Ranked full-text hit. Higher score means a better match."""

    type: str
    id: str
    title: str
    snippet: str
    score: float


class SearchCriteria(BaseModel):
    """Filters for ItemStore.search. Multiple tags are intersected."""

    query: Optional[str] = None
    type: Optional[str] = None
    types: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: Optional[str] = None
    include_closed: bool = False
    priority: Optional[Priority] = None
    start_date_from: Optional[date] = None
    start_date_to: Optional[date] = None
    limit: Optional[int] = None
    offset: int = 0


class Edge(BaseModel):
    """Directed relationship between two items."""

    source_type: str
    source_id: str
    target_type: str
    target_id: str

    @property
    def target_ref(self) -> str:
        return f"{self.target_type}-{self.target_id}"


class RebuildReport(BaseModel):
    """Outcome of a rebuild: per-type synced counts and skipped files."""

    types: dict[str, int] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)

    @property
    def items(self) -> int:
        return sum(self.types.values())
