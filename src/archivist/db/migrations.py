"""Forward-only migration runner for Archivist's database schema.

Vec tables (vec_objects_* / vec_chunks_*) are NOT migration-managed;
use ensure_vec_tables().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS objects (
    id                  TEXT PRIMARY KEY,
    type                TEXT NOT NULL,
    name                TEXT NOT NULL,
    content             TEXT NOT NULL DEFAULT '',
    aliases             TEXT NOT NULL DEFAULT '[]',
    date                TEXT,
    has_embedding       INTEGER NOT NULL DEFAULT 0,
    embedding_status    TEXT NOT NULL DEFAULT 'pending',
    needs_embedding     INTEGER NOT NULL DEFAULT 1,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_objects_type ON objects(type);
CREATE INDEX IF NOT EXISTS idx_objects_needs_embedding ON objects(needs_embedding);

CREATE TABLE IF NOT EXISTS chunks (
    object_id           TEXT NOT NULL REFERENCES objects(id) ON DELETE CASCADE,
    chunk_index         INTEGER NOT NULL,
    content             TEXT NOT NULL,
    start_position      INTEGER NOT NULL,
    end_position        INTEGER NOT NULL,
    has_embedding       INTEGER NOT NULL DEFAULT 0,
    embedding_status    TEXT NOT NULL DEFAULT 'pending',
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (object_id, chunk_index)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
