"""archivist add / edit / remove: object lifecycle management.

Every create or content change flags the object ``needs_embedding``; the
embedding itself happens in ``archivist index`` (or immediately with
``add --now``).

Usage:
  archivist add --type person --name "Ada Lovelace" --alias Ada --content "..."
  archivist add --type document --name "Notes" --file notes.pdf --now
  archivist edit <id> --content "..."
  archivist remove <id> --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from archivist.cli._common import DEFAULT_DB, console, load_store, open_db
from archivist.cli.errors import (
    err_invalid_type,
    err_no_content,
    err_object_not_found,
    err_unsupported_file,
)
from archivist.db.models import ObjectType
from archivist.db.repository import ObjectNotFoundError, Repository
from archivist.ingest.extract import SUPPORTED_EXTENSIONS, UnsupportedFileError, extract_text
from archivist.ingest.orchestrator import EmbeddingOrchestrator


def add_cmd(
    type: Annotated[
        str,
        typer.Option("--type", "-t", help="Object type: " + ", ".join(t.value for t in ObjectType)),
    ],
    name: Annotated[str, typer.Option("--name", "-n", help="Object name.")],
    content: Annotated[
        str | None,
        typer.Option("--content", "-c", help="Object content text."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Read content from a file (txt, md, html, pdf)."),
    ] = None,
    alias: Annotated[
        list[str] | None,
        typer.Option("--alias", "-a", help="Alternate name (repeatable)."),
    ] = None,
    date: Annotated[
        str | None,
        typer.Option("--date", help="Date (YYYY-MM-DD)."),
    ] = None,
    now: Annotated[
        bool,
        typer.Option("--now", help="Embed immediately instead of waiting for 'archivist index'."),
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
) -> None:
    """Add an object to the knowledge base."""
    obj_type = _parse_type(type)
    body = _read_content(content, file)

    store, _ = load_store(db)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        obj = repo.add_object(obj_type, name, content=body, aliases=alias or [], date=date)
        console.print(f"[green]✓[/] Added {obj.type.value} [bold]{obj.name}[/]  [dim]{obj.id}[/]")

        if now:
            orchestrator = EmbeddingOrchestrator(repo, store)
            if orchestrator.trigger_immediate(obj.id):
                chunks = repo.count_chunks(obj.id)
                console.print(f"  [green]✓[/] Embedded ({chunks} chunks)")
            else:
                console.print(
                    "  [yellow]⚠[/] Embedding failed; the object stays queued for 'archivist index'."
                )
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    finally:
        conn.close()


def edit_cmd(
    object_id: Annotated[str, typer.Argument(help="Object id.")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="New name.")] = None,
    content: Annotated[
        str | None,
        typer.Option("--content", "-c", help="New content text."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Replace content with a file's text."),
    ] = None,
    alias: Annotated[
        list[str] | None,
        typer.Option("--alias", "-a", help="Replace aliases (repeatable)."),
    ] = None,
    date: Annotated[str | None, typer.Option("--date", help="New date (YYYY-MM-DD).")] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
) -> None:
    """Edit an object; content, name or alias changes queue it for re-embedding."""
    body = _read_content(content, file) if (content is not None or file is not None) else None

    load_store(db)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        obj = repo.update_object(object_id, name=name, content=body, aliases=alias or None, date=date)
    except ObjectNotFoundError:
        console.print(err_object_not_found(object_id))
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
    finally:
        conn.close()

    state = "[yellow]queued for re-embedding[/]" if obj.needs_embedding else "[dim]unchanged[/]"
    console.print(f"[green]✓[/] Updated [bold]{obj.name}[/]  {state}")


def remove_cmd(
    object_id: Annotated[str, typer.Argument(help="Object id.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove an object with its chunks and vectors."""
    conn = open_db(db)
    try:
        repo = Repository(conn)
        obj = repo.get_object(object_id)
        if obj is None:
            console.print(err_object_not_found(object_id))
            raise typer.Exit(1)

        chunk_count = repo.count_chunks(obj.id)
        console.print(f"\nRemove {obj.type.value}: [bold]{obj.name}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Embedded: {'yes' if obj.has_embedding else 'no'}")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        repo.delete_object(obj.id)
        console.print(f"\n[green]✓[/] Removed: {obj.name} ({chunk_count} chunks deleted)")
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_type(value: str) -> ObjectType:
    try:
        return ObjectType.parse(value)
    except ValueError:
        console.print(err_invalid_type(value, [t.value for t in ObjectType]))
        raise typer.Exit(1)


def _read_content(content: str | None, file: Path | None) -> str:
    if file is not None:
        try:
            return extract_text(file)
        except UnsupportedFileError:
            console.print(err_unsupported_file(str(file), sorted(SUPPORTED_EXTENSIONS)))
            raise typer.Exit(1)
        except OSError as exc:
            console.print(f"[red]Error:[/] Cannot read '{file}': {exc}")
            raise typer.Exit(1)
    if content is None:
        console.print(err_no_content())
        raise typer.Exit(1)
    return content

