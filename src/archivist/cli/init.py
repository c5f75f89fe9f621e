"""archivist init: create a knowledge base in a project directory.

Creates:
  .archivist.db      empty knowledge base with schema
  archivist.yaml     project config with the default settings
  .gitignore entry   (only if a .gitignore already exists)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from archivist.cli._common import console, open_db
from archivist.config import PROJECT_CONFIG_NAME, write_project_config

_DEFAULT_PROJECT_DIR = Path(".")
_DB_NAME = ".archivist.db"


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
) -> None:
    """Initialize a new Archivist knowledge base."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / _DB_NAME
    existed = db_path.exists()
    conn = open_db(db_path, must_exist=False)
    conn.close()
    if existed:
        console.print(f"  [yellow]⚠[/] {_DB_NAME} already exists; schema checked, data preserved")
    else:
        console.print(f"  [green]✓[/] {_DB_NAME}")

    cfg_existed = (project_dir / PROJECT_CONFIG_NAME).exists()
    write_project_config(project_dir)
    if cfg_existed:
        console.print(f"  [dim]{PROJECT_CONFIG_NAME} already exists; left unchanged[/]")
    else:
        console.print(f"  [green]✓[/] {PROJECT_CONFIG_NAME}")

    _update_gitignore(project_dir)

    console.print(f"\n[bold green]✓ Knowledge base initialized in {project_dir}.[/]")
    console.print("\nNext steps:")
    console.print("  1. archivist add --type person --name 'Ada Lovelace' --content '...'")
    console.print("  2. archivist index                  (embed new and changed objects)")
    console.print("  3. archivist ask 'What did Ada write to Babbage?'")


def _update_gitignore(project_dir: Path) -> None:
    """Add the database to .gitignore if it already exists."""
    gitignore = project_dir / ".gitignore"
    if not gitignore.exists():
        return
    existing = gitignore.read_text(encoding="utf-8")
    if _DB_NAME in existing:
        return
    with gitignore.open("a", encoding="utf-8") as f:
        f.write(f"\n# Archivist\n{_DB_NAME}\n")
    console.print("  [green]✓[/] .gitignore (updated)")
