"""archivist status: knowledge base overview.

Shows database size, objects per type, embedding progress, chunk counts
and vec tables. ``--list`` adds one row per object.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from archivist.cli._common import DEFAULT_DB, console, load_store, open_db
from archivist.config import ArchivistConfig
from archivist.db.connection import sqlite_vec_version
from archivist.db.models import EmbeddingStatus, ObjectType
from archivist.db.repository import Repository


def status_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
    list_objects: Annotated[
        bool,
        typer.Option("--list", "-l", help="List every object."),
    ] = False,
) -> None:
    """Show knowledge base status: objects, embeddings and chunks."""
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  archivist init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        raise typer.Exit(1)

    _, cfg = load_store(db)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        _show_project_panel(conn, db, cfg)
        _show_knowledge_panel(conn, repo)
        if list_objects:
            _show_object_table(repo)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_project_panel(conn: sqlite3.Connection, db: Path, cfg: ArchivistConfig) -> None:
    size_mb = db.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:   {db} ({size_mb:.1f} MB)",
        f"Vectors:    sqlite-vec {sqlite_vec_version(conn)}",
        f"Embedding:  {cfg.embedding.model}",
        f"Generation: {cfg.generation.model}",
        f"Chunking:   {cfg.chunking.chunk_size} chars, {cfg.chunking.overlap} overlap"
        + ("" if cfg.chunking.enabled else " [yellow](disabled)[/]"),
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_knowledge_panel(conn: sqlite3.Connection, repo: Repository) -> None:
    by_type = repo.count_objects_by_type()
    by_status = repo.count_objects_by_status()
    total = sum(by_type.values())
    pending = len(repo.get_objects_needing_embedding())

    lines = [
        f"Objects: [bold]{total}[/]  |  "
        f"Chunks: [bold]{repo.count_chunks():,}[/]  |  "
        f"Failed chunks: [bold]{repo.count_failed_chunks()}[/]"
    ]
    for t in ObjectType:
        if by_type.get(t.value):
            lines.append(f"  {t.value:<9} {by_type[t.value]}")
    lines.append(
        f"Embedded: [green]{by_status.get(EmbeddingStatus.COMPLETED.value, 0)}[/]  "
        f"Pending: [yellow]{by_status.get(EmbeddingStatus.PENDING.value, 0)}[/]  "
        f"Failed: [red]{by_status.get(EmbeddingStatus.FAILED.value, 0)}[/]  "
        f"Queued: {pending}"
    )
    for vt in _list_vec_tables(conn):
        lines.append(f"  {vt}")
    if pending:
        lines.append("[dim]Run 'archivist index' to embed queued objects.[/]")

    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_object_table(repo: Repository) -> None:
    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Id", style="dim")
    table.add_column("Type")
    table.add_column("Name", style="bold")
    table.add_column("Chunks", justify="right")
    table.add_column("Status")
    for obj in repo.list_objects():
        status = obj.embedding_status.value
        if obj.needs_embedding:
            status += " [yellow](queued)[/]"
        table.add_row(obj.id, obj.type.value, obj.name, str(repo.count_chunks(obj.id)), status)
    console.print(table)


# ---------------------------------------------------------------------------
# DB helpers
# ---------------------------------------------------------------------------


def _list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Return descriptions of existing vec tables with their vector counts."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_%' "
        "AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name"
    ).fetchall()
    result: list[str] = []
    for (name,) in rows:
        count_row = conn.execute(f"SELECT COUNT(*) FROM [{name}]").fetchone()  # noqa: S608
        count = count_row[0] if count_row else 0
        result.append(f"[dim]{name}[/] ({count:,} vectors)")
    return result
