"""Knowledge base file access.

Objects and chunks live in ordinary tables; their vectors live in sqlite-vec
``vec0`` tables, so every connection loads the extension before use.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

# WAL lets `archivist status` read while `archivist index --watch` writes.
_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
)


class Database:
    """One ``.archivist.db`` file.

    Args:
        db_path: Database file; created on first connect.
        timeout: Seconds to wait on a locked database before failing.
    """

    def __init__(self, db_path: Path | str, *, timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Return a new connection with sqlite-vec loaded and ``sqlite3.Row`` rows.

        ``check_same_thread`` is off because the embedding worker thread
        shares the connection; ``Repository`` serialises access to it.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        _load_sqlite_vec(conn)
        for pragma in _PRAGMAS:
            conn.execute(pragma)
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def _load_sqlite_vec(conn: sqlite3.Connection) -> None:
    conn.enable_load_extension(True)
    try:
        sqlite_vec.load(conn)
    finally:
        conn.enable_load_extension(False)


def sqlite_vec_version(conn: sqlite3.Connection) -> str:
    """Version string of the loaded sqlite-vec extension (e.g. ``v0.1.6``)."""
    return conn.execute("SELECT vec_version()").fetchone()[0]
