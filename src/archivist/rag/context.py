"""Automatic retrieval entry point.

``build_auto_context()`` turns one user message into a token-budgeted,
cited ``RetrievalContext``:

  query → embed → document-level retriever → chunk scoring + windowing
        → global ranking + budget allocation → RetrievalContext

It never raises: every degenerate or failing path returns an empty context
whose ``retrieval_metadata.strategy`` says why (``disabled``,
``skipped_short``, ``no_docs_found``, ``error``). An empty store reports
``skipped_short`` like a too-short query.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Iterable
from typing import Any

from archivist.config import ArchivistConfig, ConfigStore, RetrievalConfig, snapshot
from archivist.db.models import ObjectType
from archivist.db.repository import Repository
from archivist.db.vectors import model_to_slug, vec_table_names
from archivist.log import get_logger
from archivist.rag import llm_client
from archivist.rag.assembler import (
    Citation,
    RetrievalContext,
    RetrievalMetadata,
    UsedObject,
    allocate,
    empty_context,
)
from archivist.rag.excerpts import Excerpt, extract_excerpts, query_terms
from archivist.rag.retriever import ChunkHit, retrieve_candidate_objects, search_chunks

logger = get_logger(__name__)

EmbedFn = Callable[[str], list[float]]

STRATEGY_DISABLED = "disabled"
STRATEGY_SKIPPED_SHORT = "skipped_short"
STRATEGY_NO_DOCS = "no_docs_found"
STRATEGY_ERROR = "error"

__all__ = [
    "Citation",
    "RetrievalContext",
    "RetrievalMetadata",
    "UsedObject",
    "build_auto_context",
    "semantic_search",
]


def build_auto_context(
    user_text: str,
    repo: Repository,
    config: ConfigStore | ArchivistConfig | None = None,
    *,
    explicit_context_ids: Iterable[str] = (),
    mention_ids: Iterable[str] = (),
    overrides: dict[str, Any] | None = None,
    embed_fn: EmbedFn | None = None,
) -> RetrievalContext:
    """Retrieve cited context for *user_text*.

    Args:
        user_text: The raw user message.
        repo: Object store.
        config: Config source; one snapshot is read at the start of the call.
        explicit_context_ids: Objects the caller already supplies in full.
        mention_ids: Objects referenced by explicit mentions in the message.
            Both id sets are excluded from automatic retrieval.
        overrides: Per-call ``RetrievalConfig`` field overrides
            (e.g. ``{"token_budget": 4000}``).
        embed_fn: ``text -> vector`` for the query. Defaults to LiteLLM with
            the configured ``embedding.model``.

    Returns:
        A ``RetrievalContext``; never raises.
    """
    started = time.perf_counter()
    try:
        cfg = snapshot(config)
        rcfg = cfg.retrieval
        if overrides:
            rcfg = dataclasses.replace(rcfg, **overrides)

        context = _build(
            user_text,
            repo,
            cfg,
            rcfg,
            exclude_ids=set(explicit_context_ids) | set(mention_ids),
            embed_fn=embed_fn,
        )
    except Exception:
        logger.exception("Automatic retrieval failed")
        context = empty_context(STRATEGY_ERROR)

    elapsed_ms = (time.perf_counter() - started) * 1000
    meta = dataclasses.replace(context.retrieval_metadata, processing_time_ms=elapsed_ms)
    logger.debug(
        "Retrieval strategy=%s candidates=%d chunks=%d citations=%d tokens=%d",
        meta.strategy,
        meta.total_candidate_objects,
        meta.total_chunks_scanned,
        len(context.citations),
        meta.estimated_tokens,
    )
    return dataclasses.replace(context, retrieval_metadata=meta)


def _build(
    user_text: str,
    repo: Repository,
    cfg: ArchivistConfig,
    rcfg: RetrievalConfig,
    *,
    exclude_ids: set[str],
    embed_fn: EmbedFn | None,
) -> RetrievalContext:
    if not rcfg.auto_retrieval_enabled:
        return empty_context(STRATEGY_DISABLED)

    query = user_text.strip()
    if len(query) < rcfg.min_query_length:
        return empty_context(STRATEGY_SKIPPED_SHORT)

    tables = vec_table_names(model_to_slug(cfg.embedding.model))
    if not repo.has_vec_tables(tables) or repo.count_embedded_objects() == 0:
        return empty_context(STRATEGY_SKIPPED_SHORT)

    query_vector = _embed(query, cfg, embed_fn)
    candidates = retrieve_candidate_objects(query_vector, repo, tables, rcfg, exclude_ids)
    if not candidates:
        return empty_context(STRATEGY_NO_DOCS)

    terms = query_terms(query)
    excerpts: list[Excerpt] = []
    chunks_scanned = 0
    for candidate in candidates:
        chunks = repo.get_chunks_by_object_id(candidate.object.id)
        chunks_scanned += len(chunks)
        excerpts.extend(extract_excerpts(candidate, chunks, terms, rcfg))

    return allocate(
        excerpts,
        rcfg.token_budget,
        rcfg.add_citations,
        max_excerpts=rcfg.chunk_top_k,
        total_candidate_objects=len(candidates),
        total_chunks_scanned=chunks_scanned,
        strategy=rcfg.strategy,
    )


def semantic_search(
    repo: Repository,
    query: str,
    limit: int = 10,
    type: ObjectType | str | None = None,
    *,
    config: ConfigStore | ArchivistConfig | None = None,
    embed_fn: EmbedFn | None = None,
) -> list[ChunkHit]:
    """Return the chunks nearest to *query*, best first.

    Unlike ``build_auto_context`` this propagates provider errors to the
    caller. Returns an empty list when nothing has been indexed yet.
    """
    cfg = snapshot(config)
    tables = vec_table_names(model_to_slug(cfg.embedding.model))
    if not query.strip() or not repo.has_vec_tables(tables):
        return []
    vector = _embed(query.strip(), cfg, embed_fn)
    return search_chunks(vector, repo, tables, limit=limit, type=type)


def _embed(text: str, cfg: ArchivistConfig, embed_fn: EmbedFn | None) -> list[float]:
    if embed_fn is not None:
        return embed_fn(text)
    return llm_client.embed(cfg.embedding.model, text)
