"""Repository pattern for all Archivist database operations.

Single interface for: objects, chunks, vec embeddings and the
needs-embedding work list. Vec tables are model-managed
(ensure_vec_tables); the repository handles read + write.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid

from archivist.db.models import Chunk, EmbeddingStatus, KnowledgeObject, ObjectType
from archivist.db.vectors import VecTables, ensure_vec_tables, vec_tables_exist

_OBJECT_COLUMNS = (
    "rowid, id, type, name, content, aliases, date, has_embedding, "
    "embedding_status, needs_embedding, created_at, updated_at"
)
_CHUNK_COLUMNS = (
    "rowid, object_id, chunk_index, content, start_position, end_position, "
    "has_embedding, embedding_status, created_at"
)


class ObjectNotFoundError(KeyError):
    """Raised when an operation requires an object that does not exist."""


class Repository:
    """Data access layer for all Archivist database entities.

    Wraps an open sqlite3.Connection and provides typed methods for objects,
    chunks and vector search. The connection is owned by the caller and must
    be closed after use. Every method holds a re-entrant lock so the
    background embedding worker and request threads can share one
    connection.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see archivist.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def ensure_vec_tables(self, model_slug: str, dimensions: int) -> VecTables:
        """Create the vec tables for *model_slug* if missing (see db.vectors)."""
        with self._lock:
            return ensure_vec_tables(self._conn, model_slug, dimensions)

    def has_vec_tables(self, tables: VecTables) -> bool:
        """Return True if both vec tables in *tables* exist."""
        with self._lock:
            return vec_tables_exist(self._conn, tables)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def add_object(
        self,
        type: ObjectType | str,
        name: str,
        content: str = "",
        aliases: list[str] | None = None,
        date: str | None = None,
        object_id: str | None = None,
    ) -> KnowledgeObject:
        """Insert a new object flagged as needing embedding.

        Args:
            type: Object type (member or value string).
            name: Display name; must not be blank.
            content: Text body.
            aliases: Alternate names, in order.
            date: Optional ``YYYY-MM-DD`` date.
            object_id: Explicit id (a UUID4 is generated when omitted).

        Returns:
            The stored object.

        Raises:
            ValueError: On an unknown type or blank name.
        """
        obj_type = type if isinstance(type, ObjectType) else ObjectType.parse(type)
        if not name.strip():
            raise ValueError("Object name must not be blank")
        oid = object_id or str(uuid.uuid4())
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO objects (id, type, name, content, aliases, date)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (oid, obj_type.value, name.strip(), content, json.dumps(aliases or []), date),
            )
            self._conn.commit()
            stored = self.get_object(oid)
        assert stored is not None
        return stored

    def get_object(self, object_id: str) -> KnowledgeObject | None:
        """Return an object by id, or None if not found."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_OBJECT_COLUMNS} FROM objects WHERE id = ?", (object_id,)
            ).fetchone()
        return _row_to_object(row) if row else None

    def require_object(self, object_id: str) -> KnowledgeObject:
        """Return an object by id.

        Raises:
            ObjectNotFoundError: If no object has *object_id*.
        """
        obj = self.get_object(object_id)
        if obj is None:
            raise ObjectNotFoundError(object_id)
        return obj

    def list_objects(self, type: ObjectType | str | None = None) -> list[KnowledgeObject]:
        """Return all objects (optionally of one type) ordered by creation time."""
        with self._lock:
            if type is None:
                rows = self._conn.execute(
                    f"SELECT {_OBJECT_COLUMNS} FROM objects ORDER BY created_at, rowid"
                ).fetchall()
            else:
                obj_type = type if isinstance(type, ObjectType) else ObjectType.parse(type)
                rows = self._conn.execute(
                    f"SELECT {_OBJECT_COLUMNS} FROM objects WHERE type = ? "
                    "ORDER BY created_at, rowid",
                    (obj_type.value,),
                ).fetchall()
        return [_row_to_object(r) for r in rows]

    def find_objects_by_name(
        self, name: str, type: ObjectType | str | None = None
    ) -> list[KnowledgeObject]:
        """Return objects whose name or one of whose aliases equals *name* (case-insensitive)."""
        needle = name.strip().lower()
        return [
            obj
            for obj in self.list_objects(type)
            if obj.name.lower() == needle or any(a.lower() == needle for a in obj.aliases)
        ]

    def update_object(
        self,
        object_id: str,
        *,
        name: str | None = None,
        content: str | None = None,
        aliases: list[str] | None = None,
        date: str | None = None,
    ) -> KnowledgeObject:
        """Update fields of an existing object.

        Any change to name, content, aliases or date sets ``needs_embedding``
        and resets ``embedding_status`` to pending.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ValueError: If *name* is blank.
        """
        with self._lock:
            current = self.require_object(object_id)
            new_name = current.name if name is None else name.strip()
            if not new_name:
                raise ValueError("Object name must not be blank")
            new_content = current.content if content is None else content
            new_aliases = current.aliases if aliases is None else list(aliases)
            new_date = current.date if date is None else date

            changed = (
                new_name != current.name
                or new_content != current.content
                or new_aliases != current.aliases
                or new_date != current.date
            )
            needs = current.needs_embedding or changed
            status = EmbeddingStatus.PENDING if changed else current.embedding_status

            self._conn.execute(
                """
                UPDATE objects
                SET name = ?, content = ?, aliases = ?, date = ?,
                    needs_embedding = ?, embedding_status = ?,
                    updated_at = datetime('now')
                WHERE id = ?
                """,
                (
                    new_name,
                    new_content,
                    json.dumps(new_aliases),
                    new_date,
                    int(needs),
                    status.value,
                    object_id,
                ),
            )
            self._conn.commit()
            return self.require_object(object_id)

    def delete_object(self, object_id: str) -> bool:
        """Delete an object with its chunks and every stored vector.

        Returns:
            True if an object row was deleted.
        """
        with self._lock:
            obj = self.get_object(object_id)
            if obj is None:
                return False
            self.delete_chunks_by_object_id(object_id)
            for table in self._vec_tables("vec_objects_"):
                self._conn.execute(f"DELETE FROM [{table}] WHERE rowid = ?", (obj.rowid,))
            self._conn.execute("DELETE FROM objects WHERE id = ?", (object_id,))
            self._conn.commit()
        return True

    def count_objects_by_type(self) -> dict[str, int]:
        """Return ``{type: count}`` for every type with at least one object."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT type, COUNT(*) AS n FROM objects GROUP BY type ORDER BY type"
            ).fetchall()
        return {r["type"]: r["n"] for r in rows}

    def count_objects_by_status(self) -> dict[str, int]:
        """Return ``{embedding_status: count}`` over all objects."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT embedding_status, COUNT(*) AS n FROM objects GROUP BY embedding_status"
            ).fetchall()
        return {r["embedding_status"]: r["n"] for r in rows}

    def count_embedded_objects(self) -> int:
        with self._lock:
            return self._conn.execute(
                "SELECT COUNT(*) FROM objects WHERE has_embedding = 1"
            ).fetchone()[0]

    # ------------------------------------------------------------------
    # Embedding work list
    # ------------------------------------------------------------------

    def get_objects_needing_embedding(self) -> list[KnowledgeObject]:
        """Return objects flagged ``needs_embedding``, oldest update first."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_OBJECT_COLUMNS} FROM objects WHERE needs_embedding = 1 "
                "ORDER BY updated_at, rowid"
            ).fetchall()
        return [_row_to_object(r) for r in rows]

    def mark_all_for_embedding(self, type: ObjectType | str | None = None) -> int:
        """Flag every object (optionally of one type) as needing embedding.

        Returns:
            Number of objects flagged.
        """
        with self._lock:
            if type is None:
                cur = self._conn.execute(
                    "UPDATE objects SET needs_embedding = 1, embedding_status = 'pending'"
                )
            else:
                obj_type = type if isinstance(type, ObjectType) else ObjectType.parse(type)
                cur = self._conn.execute(
                    "UPDATE objects SET needs_embedding = 1, embedding_status = 'pending' "
                    "WHERE type = ?",
                    (obj_type.value,),
                )
            self._conn.commit()
            return cur.rowcount

    def set_object_embedding(
        self,
        tables: VecTables,
        object_id: str,
        embedding: list[float],
        *,
        embedded_from: KnowledgeObject | None = None,
    ) -> bool:
        """Store the object-level vector and clear ``needs_embedding``.

        When *embedded_from* is given the flag is cleared only if the row
        still holds that name, content, aliases and date. An edit made while
        the vector was being computed leaves the object flagged and pending.

        Returns:
            True if the object is now marked current.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        with self._lock:
            obj = self.require_object(object_id)
            current = embedded_from is None or (
                obj.name == embedded_from.name
                and obj.content == embedded_from.content
                and obj.aliases == embedded_from.aliases
                and obj.date == embedded_from.date
            )
            self._conn.execute(f"DELETE FROM {tables.objects} WHERE rowid = ?", (obj.rowid,))
            self._conn.execute(
                f"INSERT INTO {tables.objects}(rowid, embedding) VALUES (?, ?)",
                (obj.rowid, json.dumps(embedding)),
            )
            if current:
                self._conn.execute(
                    """
                    UPDATE objects
                    SET has_embedding = 1, embedding_status = 'completed', needs_embedding = 0
                    WHERE id = ?
                    """,
                    (object_id,),
                )
            else:
                self._conn.execute(
                    "UPDATE objects SET has_embedding = 1 WHERE id = ?", (object_id,)
                )
            self._conn.commit()
            return current

    def mark_object_embedding_failed(self, object_id: str) -> None:
        """Record a failed object-level embedding; ``needs_embedding`` stays set."""
        with self._lock:
            self._conn.execute(
                "UPDATE objects SET embedding_status = 'failed', needs_embedding = 1 WHERE id = ?",
                (object_id,),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert a chunk. Returns the new rowid."""
        with self._lock:
            cur = self._conn.execute(
                """
                INSERT INTO chunks (object_id, chunk_index, content, start_position,
                                    end_position, has_embedding, embedding_status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.object_id,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.start_position,
                    chunk.end_position,
                    int(chunk.has_embedding),
                    chunk.embedding_status.value,
                ),
            )
            self._conn.commit()
            rowid = cur.lastrowid
        chunk.rowid = rowid
        return rowid

    def set_chunk_embedding(self, tables: VecTables, rowid: int, embedding: list[float]) -> None:
        """Store a chunk vector (rowid = chunk rowid) and mark the chunk completed."""
        with self._lock:
            self._conn.execute(f"DELETE FROM {tables.chunks} WHERE rowid = ?", (rowid,))
            self._conn.execute(
                f"INSERT INTO {tables.chunks}(rowid, embedding) VALUES (?, ?)",
                (rowid, json.dumps(embedding)),
            )
            self._conn.execute(
                "UPDATE chunks SET has_embedding = 1, embedding_status = 'completed' "
                "WHERE rowid = ?",
                (rowid,),
            )
            self._conn.commit()

    def mark_chunk_embedding_failed(self, rowid: int) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE chunks SET has_embedding = 0, embedding_status = 'failed' WHERE rowid = ?",
                (rowid,),
            )
            self._conn.commit()

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        """Return a chunk by its SQLite rowid, or None if not found."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE rowid = ?", (rowid,)
            ).fetchone()
        return _row_to_chunk(row) if row else None

    def get_chunks_by_object_id(self, object_id: str) -> list[Chunk]:
        """Return the chunks of *object_id* ordered by ``chunk_index``."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE object_id = ? ORDER BY chunk_index",
                (object_id,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, object_id: str | None = None) -> int:
        """Return the number of chunks (for one object, or in total)."""
        with self._lock:
            if object_id is None:
                return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE object_id = ?", (object_id,)
            ).fetchone()[0]

    def count_failed_chunks(self) -> int:
        with self._lock:
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE embedding_status = 'failed'"
            ).fetchone()[0]

    def delete_chunks_by_object_id(self, object_id: str) -> int:
        """Delete all chunks of *object_id* and their vectors in every vec table.

        Returns:
            Number of chunk rows deleted.
        """
        with self._lock:
            rowids = [
                r[0]
                for r in self._conn.execute(
                    "SELECT rowid FROM chunks WHERE object_id = ?", (object_id,)
                ).fetchall()
            ]
            for table in self._vec_tables("vec_chunks_"):
                self._conn.executemany(
                    f"DELETE FROM [{table}] WHERE rowid = ?",  # noqa: S608
                    [(r,) for r in rowids],
                )
            self._conn.execute("DELETE FROM chunks WHERE object_id = ?", (object_id,))
            self._conn.commit()
        return len(rowids)

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_objects_vec(
        self, tables: VecTables, embedding: list[float], limit: int = 10
    ) -> list[tuple[KnowledgeObject, float]]:
        """Nearest objects to *embedding*. Returns (object, similarity), best first.

        Similarity is ``1 - cosine distance``.
        """
        with self._lock:
            vec_rows = self._conn.execute(
                f"SELECT rowid, distance FROM {tables.objects} "
                "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
                (json.dumps(embedding), limit),
            ).fetchall()

            results: list[tuple[KnowledgeObject, float]] = []
            for vec_row in vec_rows:
                row = self._conn.execute(
                    f"SELECT {_OBJECT_COLUMNS} FROM objects WHERE rowid = ?",
                    (vec_row["rowid"],),
                ).fetchone()
                if row is not None:
                    results.append((_row_to_object(row), 1.0 - vec_row["distance"]))
        return results

    def search_chunks_vec(
        self, tables: VecTables, embedding: list[float], limit: int = 10
    ) -> list[tuple[Chunk, KnowledgeObject, float]]:
        """Nearest chunks to *embedding*. Returns (chunk, owner, similarity), best first."""
        with self._lock:
            vec_rows = self._conn.execute(
                f"SELECT rowid, distance FROM {tables.chunks} "
                "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
                (json.dumps(embedding), limit),
            ).fetchall()

            results: list[tuple[Chunk, KnowledgeObject, float]] = []
            for vec_row in vec_rows:
                chunk = self.get_chunk_by_rowid(vec_row["rowid"])
                if chunk is None:
                    continue
                owner = self.get_object(chunk.object_id)
                if owner is not None:
                    results.append((chunk, owner, 1.0 - vec_row["distance"]))
        return results

    def _vec_tables(self, prefix: str) -> list[str]:
        # vec0 shadow tables share the prefix but are plain tables
        return [
            r[0]
            for r in self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE ? "
                "AND sql LIKE 'CREATE VIRTUAL TABLE%'",
                (f"{prefix}%",),
            ).fetchall()
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_object(row: sqlite3.Row) -> KnowledgeObject:
    return KnowledgeObject(
        rowid=row["rowid"],
        id=row["id"],
        type=ObjectType(row["type"]),
        name=row["name"],
        content=row["content"],
        aliases=json.loads(row["aliases"]),
        date=row["date"],
        has_embedding=bool(row["has_embedding"]),
        embedding_status=EmbeddingStatus(row["embedding_status"]),
        needs_embedding=bool(row["needs_embedding"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        object_id=row["object_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        start_position=row["start_position"],
        end_position=row["end_position"],
        has_embedding=bool(row["has_embedding"]),
        embedding_status=EmbeddingStatus(row["embedding_status"]),
        created_at=row["created_at"],
    )
