"""Schema entry point: every connection goes through ``initialize()`` once."""

from __future__ import annotations

import sqlite3

from archivist.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(conn: sqlite3.Connection) -> int:
    """Bring *conn* up to ``CURRENT_VERSION`` and return that version.

    Existing objects and chunks are preserved; vec tables are created
    later, by the first successful embedding.
    """
    run_migrations(conn)
    return CURRENT_VERSION
