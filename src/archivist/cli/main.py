"""Archivist CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from archivist.cli.index import index_cmd
from archivist.cli.init import init_cmd
from archivist.cli.objects import add_cmd, edit_cmd, remove_cmd
from archivist.cli.query import ask_cmd, context_cmd
from archivist.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("archivist")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"archivist {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="archivist",
    help=(
        "Archivist: a typed knowledge base with cited, retrieval-augmented answers.\n\n"
        "  archivist add     Add a person, document, letter, entity, issue, log or meeting.\n"
        "  archivist index   Embed new and changed objects.\n"
        "  archivist ask     Answer a question from the knowledge base."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Archivist: typed knowledge base CLI."""


app.command("init")(init_cmd)
app.command("add")(add_cmd)
app.command("edit")(edit_cmd)
app.command("remove")(remove_cmd)
app.command("index")(index_cmd)
app.command("context")(context_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Archivist version."""
    typer.echo(f"archivist {_installed_version()}")


if __name__ == "__main__":
    app()
