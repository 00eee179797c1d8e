"""Tag list helpers shared by the item store and the CLI."""

from typing import Iterable, Optional


def clean_tags(tags: Optional[Iterable[str]]) -> list[str]:
    """Trim whitespace, drop empty entries and duplicates, keep first-seen order.

    Examples:
        >>> clean_tags(["  auth ", "ui", "auth", ""])
        ['auth', 'ui']
        >>> clean_tags(None)
        []
    """
    if not tags:
        return []
    seen: dict[str, None] = {}
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def parse_tag_list(user_input: Optional[str]) -> list[str]:
    """Split comma-separated input (CLI options, hand-written front matter).

    Examples:
        >>> parse_tag_list("auth, backend,,auth")
        ['auth', 'backend']
    """
    if not user_input or not user_input.strip():
        return []
    return clean_tags(user_input.split(","))
