"""Document-level retriever: nearest objects to the query vector.

Over-fetches ``2 × document_top_k`` candidates in one vector search, then:
  - removes excluded ids (objects already supplied explicitly or via mention);
  - drops candidates below ``min_document_similarity``;
  - keeps the best ``document_top_k``, highest similarity first.

Also provides ``search_chunks()``, the chunk-level vector search behind
``archivist.rag.context.semantic_search``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from archivist.config import RetrievalConfig
from archivist.db.models import KnowledgeObject, ObjectType
from archivist.db.repository import Repository
from archivist.db.vectors import VecTables

_OVERFETCH = 2


@dataclass
class ScoredObject:
    """A candidate object with its cosine similarity to the query."""

    object: KnowledgeObject
    similarity: float


@dataclass
class ChunkHit:
    """One chunk-level semantic search result."""

    object_id: str
    object_name: str
    object_type: str
    content: str
    chunk_index: int
    similarity: float


def retrieve_candidate_objects(
    query_vector: list[float],
    repo: Repository,
    tables: VecTables,
    config: RetrievalConfig,
    exclude_ids: Iterable[str] = (),
) -> list[ScoredObject]:
    """Return up to ``document_top_k`` candidate objects, best first."""
    if config.document_top_k <= 0:
        return []
    excluded = set(exclude_ids)
    raw = repo.search_objects_vec(
        tables, query_vector, limit=config.document_top_k * _OVERFETCH
    )
    candidates = [
        ScoredObject(object=obj, similarity=sim)
        for obj, sim in raw
        if obj.id not in excluded and sim >= config.min_document_similarity
    ]
    candidates.sort(key=lambda c: c.similarity, reverse=True)
    return candidates[: config.document_top_k]


def search_chunks(
    query_vector: list[float],
    repo: Repository,
    tables: VecTables,
    limit: int = 10,
    type: ObjectType | str | None = None,
    object_id: str | None = None,
) -> list[ChunkHit]:
    """Nearest chunks to *query_vector*, optionally restricted to a type or object.

    Type and object filters are applied after the vector search, so fewer
    than *limit* hits may be returned.
    """
    wanted_type = None
    if type is not None:
        wanted_type = type if isinstance(type, ObjectType) else ObjectType.parse(type)

    hits: list[ChunkHit] = []
    for chunk, owner, sim in repo.search_chunks_vec(tables, query_vector, limit=limit):
        if wanted_type is not None and owner.type != wanted_type:
            continue
        if object_id is not None and owner.id != object_id:
            continue
        hits.append(
            ChunkHit(
                object_id=owner.id,
                object_name=owner.name,
                object_type=owner.type.value,
                content=chunk.content,
                chunk_index=chunk.chunk_index,
                similarity=sim,
            )
        )
    return hits
