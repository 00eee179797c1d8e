"""Exception types raised by the item store and its collaborators."""


class QuillError(Exception):
    """Base class for all quill domain errors."""


class UnknownType(QuillError, LookupError):
    """Raised when an item type is not registered."""

    def __init__(self, type_name: str) -> None:
        super().__init__(
            f"Unknown type: '{type_name}'. Run 'quill types' to see registered types."
        )
        self.type_name = type_name


class UnknownStatus(QuillError, LookupError):
    """Raised when a status name is not in the Status Registry."""

    def __init__(self, status_name: str) -> None:
        super().__init__(
            f"Unknown status: '{status_name}'. Run 'quill statuses' to see valid statuses."
        )
        self.status_name = status_name


class NotFound(QuillError, LookupError):
    """Raised when an update targets an item whose file does not exist."""

    def __init__(self, type_name: str, item_id: str) -> None:
        super().__init__(f"Item not found: {type_name}-{item_id}")
        self.type_name = type_name
        self.item_id = item_id


class Conflict(QuillError):
    """Raised when a create would overwrite an existing identity."""


class InvalidId(QuillError, ValueError):
    """Raised for ids (or type names) that are unsafe to turn into paths."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid ID format: {value!r}")
        self.value = value


class InvalidItem(QuillError, ValueError):
    """Raised when item fields fail validation."""


class InvalidQuery(QuillError, ValueError):
    """Raised for empty or unusable search queries."""


class StoreNotReady(QuillError, RuntimeError):
    """Raised when an ItemStore is used before initialize() completed."""

    def __init__(self) -> None:
        super().__init__("ItemStore is not initialized; call initialize() first")


class MarkdownError(QuillError, ValueError):
    """Raised when an item file's front matter cannot be parsed."""
