"""archivist context / ask: retrieval and question answering.

  archivist context "what did the committee decide about the bridge"
  archivist ask "who wrote to Ada in 1843?" --with <object-id>

Mentions in the question (``@[person:Ada Lovelace]``) are resolved to
objects, included in full, and excluded from automatic retrieval.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from archivist.cli._common import DEFAULT_DB, console, load_store, open_db
from archivist.cli.errors import (
    err_no_api_key,
    err_object_not_found,
    err_provider_failed,
    warn_not_indexed,
)
from archivist.db.repository import Repository
from archivist.ingest.mentions import resolve_mentions
from archivist.rag.assembler import RetrievalContext
from archivist.rag.chat import answer
from archivist.rag.context import build_auto_context
from archivist.rag.llm_client import provider_of, validate_api_key


def context_cmd(
    query: Annotated[str, typer.Argument(help="Query text.")],
    with_ids: Annotated[
        list[str] | None,
        typer.Option("--with", "-w", help="Object id supplied explicitly (repeatable, excluded)."),
    ] = None,
    budget: Annotated[
        int | None,
        typer.Option("--budget", help="Override retrieval token budget."),
    ] = None,
    show_text: Annotated[
        bool,
        typer.Option("--text/--no-text", help="Print the assembled context text."),
    ] = True,
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
) -> None:
    """Show the context automatic retrieval would supply for QUERY."""
    store, cfg = load_store(db)
    _require_key(cfg.embedding.model)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        explicit = _check_ids(repo, with_ids or [])
        _warn_pending(repo)
        ctx = build_auto_context(
            query,
            repo,
            store,
            explicit_context_ids=explicit,
            mention_ids=resolve_mentions(repo, query),
            overrides={"token_budget": budget} if budget is not None else None,
        )
    finally:
        conn.close()

    if show_text and ctx.context_text:
        console.print(Panel(Text(ctx.context_text), title="[bold]Retrieved Context[/]", expand=False))
    _print_citations(ctx)
    _print_metadata(ctx)


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer.")],
    with_ids: Annotated[
        list[str] | None,
        typer.Option("--with", "-w", help="Object id to include in full (repeatable)."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
) -> None:
    """Answer QUESTION from the knowledge base, with citations."""
    store, cfg = load_store(db)
    _require_key(cfg.embedding.model)
    _require_key(cfg.generation.model)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        explicit = _check_ids(repo, with_ids or [])
        _warn_pending(repo)
        try:
            result = answer(question, repo, store, explicit_context_ids=explicit)
        except Exception as exc:
            console.print(err_provider_failed(exc))
            raise typer.Exit(1)
    finally:
        conn.close()

    console.print(result.text, markup=False)
    console.print()
    _print_citations(result.context)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1)


def _check_ids(repo: Repository, ids: list[str]) -> list[str]:
    for oid in ids:
        if repo.get_object(oid) is None:
            console.print(err_object_not_found(oid))
            raise typer.Exit(1)
    return ids


def _warn_pending(repo: Repository) -> None:
    pending = len(repo.get_objects_needing_embedding())
    if pending:
        console.print(warn_not_indexed(pending))


def _print_citations(ctx: RetrievalContext) -> None:
    if not ctx.citations:
        return
    table = Table(title="Citations", show_lines=False)
    table.add_column("#", justify="right", style="bold")
    table.add_column("Object")
    table.add_column("Type", style="dim")
    table.add_column("Chunk", justify="right", style="dim")
    table.add_column("Score", justify="right")
    for c in ctx.citations:
        table.add_row(
            str(c.id),
            c.object_name,
            c.object_type,
            "full" if c.chunk_index is None else str(c.chunk_index),
            f"{c.relevance_score:.2f}",
        )
    console.print(table)


def _print_metadata(ctx: RetrievalContext) -> None:
    meta = ctx.retrieval_metadata
    console.print(
        f"[dim]strategy={meta.strategy}  candidates={meta.total_candidate_objects}  "
        f"chunks={meta.total_chunks_scanned}  tokens≈{meta.estimated_tokens:,}  "
        f"time={meta.processing_time_ms:.0f}ms[/]"
    )
