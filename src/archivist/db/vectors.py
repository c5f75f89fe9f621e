"""Per-model sqlite-vec virtual table management.

Each embedding model gets two vec0 tables using cosine distance:
``vec_objects_{slug}`` (object-level vectors, rowid = objects.rowid) and
``vec_chunks_{slug}`` (chunk vectors, rowid = chunks.rowid).
"""

from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass


@dataclass(frozen=True)
class VecTables:
    objects: str
    chunks: str


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "gemini/gemini-embedding-001"   -> "gemini_gemini_embedding_001"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_names(model_slug: str) -> VecTables:
    """Return the object and chunk vec table names for a model slug."""
    return VecTables(
        objects=f"vec_objects_{model_slug}",
        chunks=f"vec_chunks_{model_slug}",
    )


def vec_tables_exist(conn: sqlite3.Connection, tables: VecTables) -> bool:
    """Return True if both vec tables in *tables* exist."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name IN (?, ?)",
        (tables.objects, tables.chunks),
    ).fetchall()
    return len(rows) == 2


def ensure_vec_tables(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> VecTables:
    """Create the vec tables for *model_slug* if they don't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The object and chunk table names.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}'; use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    tables = vec_table_names(model_slug)
    for table in (tables.objects, tables.chunks):
        existing = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ).fetchone()
        if existing is None:
            conn.execute(
                f"CREATE VIRTUAL TABLE {table} USING vec0("
                f"embedding float[{dimensions}] distance_metric=cosine)"
            )
    conn.commit()
    return tables
