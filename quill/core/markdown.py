"""Markdown codec: YAML front matter followed by the body text.

    ---
    id: '1'
    title: Login bug
    tags:
    - auth
    ---

    Body text.

Dates and timestamps are written as ISO-8601 strings. PyYAML quotes any
string that would otherwise load as another type, and parse() converts
YAML date/datetime scalars from hand-edited files back to strings, so
generate(parse(generate(m, b))) == generate(m, b).
"""

from datetime import date, datetime
from typing import Any

import yaml

from quill.errors import MarkdownError

FENCE = "---"


def _stringify(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return [_stringify(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _stringify(v) for k, v in value.items()}
    return value


def parse(text: str) -> tuple[dict[str, Any], str]:
    """Split a file into (metadata, body).

    Text without a leading front matter block parses to ({}, text).

    Raises:
        MarkdownError: The front matter is unterminated or not a YAML mapping.
    """
    if not text.startswith(FENCE + "\n"):
        return {}, text
    rest = text[len(FENCE) + 1 :]
    if rest.startswith(FENCE + "\n") or rest == FENCE:
        front, body = "", rest[len(FENCE) + 1 :]
    else:
        end = rest.find("\n" + FENCE + "\n")
        if end == -1:
            if rest.endswith("\n" + FENCE):
                end = len(rest) - len(FENCE) - 1
            else:
                raise MarkdownError("Unterminated front matter block")
        front, body = rest[:end], rest[end + len(FENCE) + 2 :]
    try:
        metadata = yaml.safe_load(front) if front.strip() else {}
    except yaml.YAMLError as e:
        raise MarkdownError(f"Invalid front matter: {e}") from e
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise MarkdownError("Front matter must be a mapping")
    if body.startswith("\n"):
        body = body[1:]
    return _stringify(metadata), body


def generate(metadata: dict[str, Any], body: str) -> str:
    """Render metadata (insertion order kept) and body into file text."""
    front = yaml.safe_dump(
        _stringify(metadata),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{FENCE}\n{front}{FENCE}\n\n{body}"
