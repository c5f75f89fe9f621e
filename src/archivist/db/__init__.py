"""Archivist database layer: connection, schema migrations and per-model vec tables."""

from archivist.db.connection import Database, sqlite_vec_version
from archivist.db.migrations import MIGRATIONS, run_migrations
from archivist.db.schema import initialize
from archivist.db.vectors import (
    VecTables,
    ensure_vec_tables,
    model_to_slug,
    vec_table_names,
    vec_tables_exist,
)

__all__ = [
    "Database",
    "sqlite_vec_version",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "VecTables",
    "ensure_vec_tables",
    "model_to_slug",
    "vec_table_names",
    "vec_tables_exist",
]
