"""Budget allocator and citation builder.

Pipeline:
  1. Rank all excerpts by relevance, descending. The sort is stable: ties
     keep the order of the previous stage (candidate order, then chunk
     rank within an object).
  2. Optionally keep only the first ``max_excerpts``.
  3. Fill the token budget greedily in rank order; each excerpt costs
     ``ceil(len(text) / 4)`` tokens and is taken whole or not at all. The
     first excerpt that does not fit ends the selection.
  4. Number accepted excerpts 1..n, append `` [#n]`` when citations are on,
     and join them under a fixed preamble.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from archivist.rag.excerpts import Excerpt

PREAMBLE = "Retrieved Context:\n\n"
SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class Citation:
    id: int
    object_id: str
    object_name: str
    object_type: str
    relevance_score: float
    chunk_index: int | None = None


@dataclass(frozen=True)
class UsedObject:
    id: str
    name: str
    type: str


@dataclass(frozen=True)
class RetrievalMetadata:
    """Counts describe what was searched, not only what fit the budget."""

    total_candidate_objects: int = 0
    total_chunks_scanned: int = 0
    estimated_tokens: int = 0
    processing_time_ms: float = 0.0
    strategy: str = ""


@dataclass(frozen=True)
class RetrievalContext:
    context_text: str = ""
    citations: list[Citation] = field(default_factory=list)
    used_objects: list[UsedObject] = field(default_factory=list)
    retrieval_metadata: RetrievalMetadata = field(default_factory=RetrievalMetadata)


def empty_context(strategy: str, processing_time_ms: float = 0.0) -> RetrievalContext:
    """Return a context with no excerpts, tagged with *strategy*."""
    return RetrievalContext(
        retrieval_metadata=RetrievalMetadata(strategy=strategy, processing_time_ms=processing_time_ms)
    )


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ``ceil(len(text) / 4)``."""
    return -(-len(text) // 4)


def rank_excerpts(excerpts: list[Excerpt]) -> list[Excerpt]:
    """Return *excerpts* sorted by relevance, descending (stable)."""
    return sorted(excerpts, key=lambda e: e.relevance_score, reverse=True)


def allocate(
    excerpts: list[Excerpt],
    token_budget: int,
    add_citations: bool = True,
    *,
    max_excerpts: int | None = None,
    total_candidate_objects: int = 0,
    total_chunks_scanned: int = 0,
    strategy: str = "balanced",
) -> RetrievalContext:
    """Rank *excerpts*, fill *token_budget* and build the cited context.

    Args:
        excerpts: Excerpts from every candidate object.
        token_budget: Maximum estimated tokens across accepted excerpts.
        add_citations: Append `` [#n]`` markers to each excerpt.
        max_excerpts: Cap on ranked excerpts offered to the budget.
        total_candidate_objects: Reported in metadata.
        total_chunks_scanned: Reported in metadata.
        strategy: Reported in metadata.
    """
    ranked = rank_excerpts(excerpts)
    if max_excerpts is not None:
        ranked = ranked[: max(0, max_excerpts)]

    selected, total_tokens = _apply_token_budget(ranked, token_budget)

    citations: list[Citation] = []
    used: list[UsedObject] = []
    seen: set[str] = set()
    parts: list[str] = []

    for i, excerpt in enumerate(selected, start=1):
        obj = excerpt.object
        citations.append(
            Citation(
                id=i,
                object_id=obj.id,
                object_name=obj.name,
                object_type=obj.type.value,
                relevance_score=excerpt.relevance_score,
                chunk_index=excerpt.chunk_index,
            )
        )
        if obj.id not in seen:
            seen.add(obj.id)
            used.append(UsedObject(id=obj.id, name=obj.name, type=obj.type.value))
        label = f" [#{i}]" if add_citations else ""
        parts.append(f"{excerpt.text}{label}")

    context_text = PREAMBLE + SEPARATOR.join(parts) if parts else ""

    return RetrievalContext(
        context_text=context_text,
        citations=citations,
        used_objects=used,
        retrieval_metadata=RetrievalMetadata(
            total_candidate_objects=total_candidate_objects,
            total_chunks_scanned=total_chunks_scanned,
            estimated_tokens=total_tokens,
            strategy=strategy,
        ),
    )


def _apply_token_budget(
    excerpts: list[Excerpt],
    budget: int,
) -> tuple[list[Excerpt], int]:
    """Select excerpts that fit within *budget* tokens. Returns (selected, total_tokens)."""
    selected: list[Excerpt] = []
    total = 0
    for excerpt in excerpts:
        tokens = estimate_tokens(excerpt.text)
        if total + tokens > budget:
            break
        selected.append(excerpt)
        total += tokens
    return selected, total
