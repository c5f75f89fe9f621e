"""Chunk-level retriever and context windower.

For each candidate object:
  - no chunks: the whole content becomes one excerpt (scored with the
    object similarity) if it is non-empty and at most
    ``full_object_max_chars`` long; otherwise the object contributes nothing.
  - chunks: each chunk gets a lexical score: for every query word longer
    than 2 characters, (case-insensitive occurrences in the chunk) × (word
    length), summed. Normalised relevance is ``score / 100``. Chunks with
    ``score <= 0`` or relevance below ``min_chunk_similarity`` are dropped.
    Survivors are widened symmetrically by ``context_window_ratio × chunk
    length / 2`` characters per side (clamped to the content) and the best
    ``per_object_chunk_cap`` are kept.
"""

from __future__ import annotations

from dataclasses import dataclass

from archivist.config import RetrievalConfig
from archivist.db.models import Chunk, KnowledgeObject
from archivist.rag.retriever import ScoredObject

_MIN_WORD_LEN = 3
_SCORE_SCALE = 100.0


@dataclass
class Excerpt:
    """A scored piece of an object's content, ready for budget allocation.

    ``chunk_index`` is None for full-object excerpts.
    """

    object: KnowledgeObject
    text: str
    relevance_score: float
    chunk_index: int | None = None


def query_terms(query: str) -> list[str]:
    """Lower-cased whitespace-separated words of *query* longer than 2 characters."""
    return [w for w in query.lower().split() if len(w) >= _MIN_WORD_LEN]


def score_text(text: str, terms: list[str]) -> int:
    """Sum of ``occurrences × len(word)`` for each term in *text* (case-insensitive)."""
    lowered = text.lower()
    return sum(lowered.count(term) * len(term) for term in terms)


def apply_context_window(
    content: str, start: int, end: int, ratio: float
) -> str:
    """Return ``content[start:end]`` grown by ``ratio × (end - start) / 2`` per side."""
    if ratio <= 0:
        return content[start:end]
    expansion = int((end - start) * ratio / 2)
    return content[max(0, start - expansion) : min(len(content), end + expansion)]


def extract_excerpts(
    candidate: ScoredObject,
    chunks: list[Chunk],
    terms: list[str],
    config: RetrievalConfig,
) -> list[Excerpt]:
    """Score and window the chunks of one candidate object."""
    obj = candidate.object

    if not chunks:
        if obj.content and len(obj.content) <= config.full_object_max_chars:
            return [Excerpt(object=obj, text=obj.content, relevance_score=candidate.similarity)]
        return []

    excerpts: list[Excerpt] = []
    for chunk in chunks:
        score = score_text(chunk.content, terms)
        if score <= 0:
            continue
        relevance = score / _SCORE_SCALE
        if relevance < config.min_chunk_similarity:
            continue
        excerpts.append(
            Excerpt(
                object=obj,
                text=apply_context_window(
                    obj.content,
                    chunk.start_position,
                    chunk.end_position,
                    config.context_window_ratio,
                ),
                relevance_score=relevance,
                chunk_index=chunk.chunk_index,
            )
        )

    excerpts.sort(key=lambda e: e.relevance_score, reverse=True)
    return excerpts[: max(0, config.per_object_chunk_cap)]
