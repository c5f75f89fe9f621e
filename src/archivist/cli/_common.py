"""Shared CLI helpers: database opening and config loading."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
import yaml
from rich.console import Console

from archivist.cli.errors import err_config, err_no_db
from archivist.config import PROJECT_CONFIG_NAME, ArchivistConfig, ConfigStore, load_config
from archivist.db.connection import Database
from archivist.db.schema import initialize
from archivist.log import configure_logging

console = Console()

DEFAULT_DB = Path(".archivist.db")


def open_db(db_path: Path, *, must_exist: bool = True) -> sqlite3.Connection:
    """Open *db_path* with schema applied; exit 1 if it is missing and required."""
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def load_store(db_path: Path) -> tuple[ConfigStore, ArchivistConfig]:
    """Return the project's ConfigStore (next to *db_path*) and a validated snapshot.

    Unlike the background paths, the CLI reports a broken config file instead
    of silently falling back to defaults.
    """
    project_dir = db_path.resolve().parent
    try:
        cfg = load_config(project_dir)
        configure_logging(cfg.logging.level)
    except (ValueError, yaml.YAMLError) as exc:
        console.print(err_config(str(exc), str(project_dir / PROJECT_CONFIG_NAME)))
        raise typer.Exit(1)
    return ConfigStore(project_dir), cfg
