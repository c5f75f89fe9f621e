"""archivist index: bring object and chunk embeddings up to date.

  archivist index                one cycle: embed every flagged object
  archivist index --all          re-chunk and re-embed every object
  archivist index --type letter  re-chunk and re-embed every letter
  archivist index --watch        run the background worker until Ctrl-C
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from archivist.cli._common import DEFAULT_DB, console, load_store, open_db
from archivist.cli.errors import err_invalid_type, err_no_api_key
from archivist.db.models import ObjectType
from archivist.db.repository import Repository
from archivist.ingest.orchestrator import STATUS_COMPLETED, STATUS_FAILED, EmbeddingOrchestrator
from archivist.rag.llm_client import provider_of, validate_api_key


def index_cmd(
    all_objects: Annotated[
        bool,
        typer.Option("--all", help="Re-chunk and re-embed every object."),
    ] = False,
    type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="Re-chunk and re-embed every object of this type."),
    ] = None,
    watch: Annotated[
        bool,
        typer.Option("--watch", help="Keep running the background worker until interrupted."),
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .archivist.db.")] = DEFAULT_DB,
) -> None:
    """Embed new and changed objects (or rebuild all chunks with --all / --type)."""
    obj_type: ObjectType | None = None
    if type is not None:
        try:
            obj_type = ObjectType.parse(type)
        except ValueError:
            console.print(err_invalid_type(type, [t.value for t in ObjectType]))
            raise typer.Exit(1)

    store, cfg = load_store(db)
    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(cfg.embedding.model)))
        raise typer.Exit(1)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        orchestrator = EmbeddingOrchestrator(repo, store)

        if watch:
            _watch(orchestrator, cfg.worker.poll_interval)
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task(f"Embedding with {cfg.embedding.model}…", total=None)
            if all_objects or obj_type is not None:
                summary = orchestrator.rechunk_all(obj_type)
                results = summary.results
            else:
                results = orchestrator.run_cycle()

        if not results:
            console.print("[dim]Nothing to index; every object is current.[/]")
            return

        embedded = sum(1 for r in results if r.status == STATUS_COMPLETED)
        failed = sum(1 for r in results if r.status == STATUS_FAILED)
        chunks = sum(r.chunks_created for r in results)
        chunk_failures = sum(r.chunks_failed for r in results)

        console.print(f"[green]✓[/] Embedded {embedded} object(s), {chunks} chunk(s)")
        if chunk_failures:
            console.print(f"  [yellow]⚠[/] {chunk_failures} chunk(s) failed to embed")
        if failed:
            console.print(
                f"  [red]✗[/] {failed} object(s) failed; they stay queued for the next run"
            )
            raise typer.Exit(1)
    finally:
        conn.close()


def _watch(orchestrator: EmbeddingOrchestrator, poll_interval: float) -> None:
    console.print(
        f"[bold]Watching for changes[/] (every {poll_interval:g}s). Press Ctrl-C to stop."
    )
    orchestrator.start()
    try:
        while orchestrator.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping…[/]")
    finally:
        orchestrator.stop()
