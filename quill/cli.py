"""[Layer: Presentation] Typer CLI Commands."""

from contextlib import contextmanager
from datetime import date
from importlib.metadata import PackageNotFoundError, version as get_package_version
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from quill.core.services.tags import TagService
from quill.core.store import ItemStore
from quill.core.tagging import parse_tag_list
from quill.errors import QuillError
from quill.models import Item, ItemPatch, SearchCriteria

console = Console()
err_console = Console(stderr=True)

# Fields `update --clear` may reset to empty.
CLEARABLE = ("description", "start_date", "end_date", "start_time", "tags", "related")
PRIORITIES = ("low", "medium", "high")


def _get_version() -> str:
    """Get version from package metadata (single source of truth: pyproject.toml)."""
    try:
        return get_package_version("quill-store")
    except PackageNotFoundError:
        return "0.0.0-dev"


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"quill {_get_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="quill",
    help="Markdown item store with a rebuildable SQLite full-text index.",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Create, search and maintain markdown items."""


@contextmanager
def _store() -> Iterator[ItemStore]:
    """Open the configured store; domain errors exit with status 1."""
    try:
        store = ItemStore.from_settings()
        store.initialize()
        yield store
    except QuillError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _parse_date(value: Optional[str], option: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint=option)


def _check_priority(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in PRIORITIES:
        raise typer.BadParameter(
            f"expected one of {', '.join(PRIORITIES)}, got {value!r}", param_hint="--priority"
        )
    return value


def _read_content(content: Optional[str], content_file: Optional[Path]) -> Optional[str]:
    if content_file is not None:
        return content_file.read_text(encoding="utf-8")
    return content


def _items_table(items: list[Item], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Ref", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Tags", style="green")
    for item in items:
        table.add_row(item.ref, item.title, item.status, item.priority, ", ".join(item.tags))
    return table


def _print_item(item: Item) -> None:
    console.print(f"[bold]{item.ref}[/bold]  {item.title}")
    console.print(f"  status: {item.status}   priority: {item.priority}")
    if item.description:
        console.print(f"  description: {item.description}")
    if item.start_date:
        when = item.start_date.isoformat()
        if item.start_time:
            when += f" {item.start_time}"
        if item.end_date:
            when += f" .. {item.end_date.isoformat()}"
        console.print(f"  date: {when}")
    if item.tags:
        console.print(f"  tags: {', '.join(item.tags)}")
    if item.related:
        console.print(f"  related: {', '.join(item.related)}")
    console.print(f"  created: {item.created_at.isoformat()}  updated: {item.updated_at.isoformat()}")
    if item.content:
        console.print()
        console.print(item.content, markup=False, highlight=False)


# ---- Items ----


@app.command()
def create(
    type_name: str = typer.Argument(..., metavar="TYPE", help="Item type, e.g. issues"),
    title: str = typer.Argument(..., help="Item title"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="Body text"),
    content_file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Read body text from a file"
    ),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="low, medium or high"),
    status: Optional[str] = typer.Option(None, "--status", "-s"),
    tags_opt: Optional[str] = typer.Option(None, "--tags", "-t", help="Comma-separated tags"),
    related_opt: Optional[str] = typer.Option(
        None, "--related", "-r", help="Comma-separated type-id references"
    ),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="YYYY-MM-DD"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="YYYY-MM-DD"),
    start_time: Optional[str] = typer.Option(None, "--start-time", help="HH:MM:SS"),
    item_id: Optional[str] = typer.Option(
        None, "--id", help="Explicit session id (YYYY-MM-DD-HH.MM.SS.mmm)"
    ),
) -> None:
    """Create an item and print its reference."""
    body = _read_content(content, content_file)
    with _store() as store:
        item = store.create(
            type_name,
            title,
            content=body or "",
            priority=_check_priority(priority),
            status=status,
            tags=parse_tag_list(tags_opt),
            description=description,
            start_date=_parse_date(start_date, "--start-date"),
            end_date=_parse_date(end_date, "--end-date"),
            related=parse_tag_list(related_opt),
            start_time=start_time,
            id=item_id,
        )
    typer.echo(f"Created {item.ref}: {item.title}")


@app.command()
def show(
    type_name: str = typer.Argument(..., metavar="TYPE"),
    item_id: str = typer.Argument(..., metavar="ID"),
) -> None:
    """Show one item, read from its file."""
    with _store() as store:
        item = store.get_by_id(type_name, item_id)
        related = store.get_related(type_name, item_id) if item else []
    if item is None:
        err_console.print(f"[red]Error:[/red] Item not found: {type_name}-{item_id}")
        raise typer.Exit(1)
    _print_item(item)
    if related:
        console.print()
        console.print(_items_table(related, "Related"))


@app.command()
def update(
    type_name: str = typer.Argument(..., metavar="TYPE"),
    item_id: str = typer.Argument(..., metavar="ID"),
    title: Optional[str] = typer.Option(None, "--title"),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    content_file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Read body text from a file"
    ),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
    status: Optional[str] = typer.Option(None, "--status", "-s"),
    tags_opt: Optional[str] = typer.Option(
        None, "--tags", "-t", help="Comma-separated tags (replaces existing)"
    ),
    related_opt: Optional[str] = typer.Option(None, "--related", "-r"),
    start_date: Optional[str] = typer.Option(None, "--start-date"),
    end_date: Optional[str] = typer.Option(None, "--end-date"),
    start_time: Optional[str] = typer.Option(None, "--start-time"),
    clear: list[str] = typer.Option(
        [], "--clear", help=f"Field to clear; one of {', '.join(CLEARABLE)}"
    ),
) -> None:
    """Change the given fields of an item; everything else is kept."""
    changes: dict = {}
    body = _read_content(content, content_file)
    if title is not None:
        changes["title"] = title
    if body is not None:
        changes["content"] = body
    if description is not None:
        changes["description"] = description
    if priority is not None:
        changes["priority"] = _check_priority(priority)
    if status is not None:
        changes["status"] = status
    if tags_opt is not None:
        changes["tags"] = parse_tag_list(tags_opt)
    if related_opt is not None:
        changes["related"] = parse_tag_list(related_opt)
    if start_date is not None:
        changes["start_date"] = _parse_date(start_date, "--start-date")
    if end_date is not None:
        changes["end_date"] = _parse_date(end_date, "--end-date")
    if start_time is not None:
        changes["start_time"] = start_time
    for field in clear:
        if field not in CLEARABLE:
            raise typer.BadParameter(f"cannot clear {field!r}", param_hint="--clear")
        changes[field] = [] if field in ("tags", "related") else None
    if not changes:
        typer.echo("Nothing to update.")
        raise typer.Exit(1)

    with _store() as store:
        item = store.update(type_name, item_id, ItemPatch(**changes))
    typer.echo(f"Updated {item.ref}: {item.title}")


@app.command()
def delete(
    type_name: str = typer.Argument(..., metavar="TYPE"),
    item_id: str = typer.Argument(..., metavar="ID"),
) -> None:
    """Delete an item's file and index entries."""
    with _store() as store:
        deleted = store.delete(type_name, item_id)
    if deleted:
        typer.echo(f"Deleted {type_name}-{item_id}")
    else:
        typer.echo(f"No such item: {type_name}-{item_id}")


@app.command(name="list")
def list_items(
    type_name: str = typer.Argument(..., metavar="TYPE"),
) -> None:
    """List every item of one type, read from disk."""
    with _store() as store:
        items = store.get_all_by_type(type_name)
    if not items:
        typer.echo(f"No {type_name} yet.")
        return
    console.print(_items_table(items, f"{type_name} ({len(items)})"))


# ---- Search ----


@app.command()
def search(
    query: Optional[str] = typer.Argument(None, help="Full-text query (optional)"),
    types: list[str] = typer.Option([], "--type", "-T", help="Restrict to type (repeatable)"),
    tags: list[str] = typer.Option([], "--tag", "-t", help="Require tag (repeatable)"),
    status: Optional[str] = typer.Option(None, "--status", "-s"),
    include_closed: bool = typer.Option(False, "--all", "-a", help="Include closed items"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
    date_from: Optional[str] = typer.Option(None, "--from", help="start_date >= YYYY-MM-DD"),
    date_to: Optional[str] = typer.Option(None, "--to", help="start_date <= YYYY-MM-DD"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
) -> None:
    """Filter items (and optionally match text) using the index."""
    criteria = SearchCriteria(
        query=query,
        types=types,
        tags=tags,
        status=status,
        include_closed=include_closed,
        priority=_check_priority(priority),
        start_date_from=_parse_date(date_from, "--from"),
        start_date_to=_parse_date(date_to, "--to"),
        limit=limit,
        offset=offset,
    )
    with _store() as store:
        items = store.search(criteria)
    if not items:
        typer.echo("No matching items.")
        return
    console.print(_items_table(items, f"Results ({len(items)})"))


@app.command()
def find(
    query: str = typer.Argument(..., help="Full-text query"),
    types: list[str] = typer.Option([], "--type", "-T"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
) -> None:
    """Ranked full-text search with snippets."""
    with _store() as store:
        results = store.fulltext.search(query, types=types or None, limit=limit, offset=offset)
    if not results:
        typer.echo("No matches.")
        return
    table = Table(title=f"Matches for {query!r}")
    table.add_column("Ref", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Score", justify="right")
    table.add_column("Snippet")
    for r in results:
        table.add_row(f"{r.type}-{r.id}", r.title, f"{r.score:.3f}", r.snippet)
    console.print(table)


@app.command()
def suggest(
    query: str = typer.Argument(..., help="Partial text"),
    types: list[str] = typer.Option([], "--type", "-T"),
    limit: int = typer.Option(10, "--limit", "-n"),
) -> None:
    """Suggest titles for partially typed text."""
    with _store() as store:
        titles = store.fulltext.suggest(query, types=types or None, limit=limit)
    for title in titles:
        typer.echo(title)


@app.command()
def count(
    query: str = typer.Argument(..., help="Full-text query"),
    types: list[str] = typer.Option([], "--type", "-T"),
) -> None:
    """Count full-text matches."""
    with _store() as store:
        total = store.fulltext.count(query, types=types or None)
    typer.echo(str(total))


# ---- Maintenance ----


@app.command()
def rebuild(
    clear: bool = typer.Option(False, "--clear", help="Drop index rows before rebuilding"),
) -> None:
    """Rebuild the search index from the item files."""
    with _store() as store:
        report = store.rebuild(clear=clear)
    table = Table(title=f"Rebuilt {report.items} items")
    table.add_column("Type", style="cyan")
    table.add_column("Items", justify="right")
    for type_name, n in report.types.items():
        table.add_row(type_name, str(n))
    console.print(table)
    for path in report.skipped:
        err_console.print(f"[yellow]Skipped:[/yellow] {path}")


@app.command()
def dangling() -> None:
    """List relationships whose target item no longer exists."""
    with _store() as store:
        edges = store.dangling_references()
    if not edges:
        typer.echo("No dangling references.")
        return
    for edge in edges:
        typer.echo(f"{edge.source_type}-{edge.source_id} -> {edge.target_ref}")


# ---- Registries ----


@app.command()
def types() -> None:
    """List registered item types."""
    with _store() as store:
        defs = store.list_types()
    table = Table(title="Types")
    table.add_column("Type", style="cyan")
    table.add_column("Base")
    table.add_column("Description")
    for d in defs:
        table.add_row(d.type, d.base_type, d.description or "")
    console.print(table)


@app.command(name="type-create")
def type_create(
    name: str = typer.Argument(..., help="New type name"),
    base: str = typer.Option("documents", "--base", "-b", help="tasks or documents"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
) -> None:
    """Register a new item type."""
    with _store() as store:
        type_def = store.create_type(name, base, description)
    typer.echo(f"Created type {type_def.type} (base {type_def.base_type})")


@app.command(name="type-delete")
def type_delete(name: str = typer.Argument(...)) -> None:
    """Unregister a type that has no items."""
    with _store() as store:
        store.delete_type(name)
    typer.echo(f"Deleted type {name}")


@app.command()
def statuses() -> None:
    """List workflow statuses."""
    with _store() as store:
        all_statuses = store.list_statuses()
    for s in all_statuses:
        suffix = " (closed)" if s.is_closed else ""
        typer.echo(f"{s.id:>3}  {s.name}{suffix}")


@app.command(name="tags")
def list_tags(
    pattern: Optional[str] = typer.Argument(None, help="Only tags containing this text"),
) -> None:
    """List tags with usage counts."""
    with _store() as store:
        service = TagService(store)
        all_tags = service.search_tags(pattern) if pattern else service.list_tags()
    if not all_tags:
        typer.echo("No tags yet.")
        return
    typer.echo(f"\nTags ({len(all_tags)}):\n")
    for t in all_tags:
        typer.echo(f"  {t.name} ({t.usage_count} uses)")


@app.command(name="tag-create")
def tag_create(name: str = typer.Argument(...)) -> None:
    """Add a tag to the vocabulary before any item uses it."""
    with _store() as store:
        tag = TagService(store).create_tag(name)
    typer.echo(f"Created tag {tag.name}")


@app.command()
def tagged(name: str = typer.Argument(..., help="Tag name")) -> None:
    """List the items carrying a tag."""
    with _store() as store:
        service = TagService(store)
        tag = service.get_tag(name)
        items = service.items_with_tag(name) if tag else []
    if tag is None:
        err_console.print(f"[red]Error:[/red] No such tag: {name}")
        raise typer.Exit(1)
    if not items:
        typer.echo(f"No items tagged {tag.name}.")
        return
    console.print(_items_table(items, f"Tagged {tag.name} ({len(items)})"))


@app.command(name="tag-delete")
def tag_delete(name: str = typer.Argument(...)) -> None:
    """Delete a tag and unlink it from every item (files are not rewritten)."""
    with _store() as store:
        deleted = TagService(store).delete_tag(name)
    if not deleted:
        err_console.print(f"[red]Error:[/red] No such tag: {name}")
        raise typer.Exit(1)
    typer.echo(f"Deleted tag {name}")
