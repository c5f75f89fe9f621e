"""Tests for budget allocation and citation building."""

from __future__ import annotations

import pytest

from archivist.db.models import KnowledgeObject, ObjectType
from archivist.rag.assembler import (
    PREAMBLE,
    SEPARATOR,
    allocate,
    empty_context,
    estimate_tokens,
    rank_excerpts,
)
from archivist.rag.excerpts import Excerpt


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _obj(oid: str, type: ObjectType = ObjectType.DOCUMENT) -> KnowledgeObject:
    return KnowledgeObject(id=oid, type=type, name=f"Object {oid}")


def _ex(oid: str, text: str, score: float, chunk_index: int | None = 0) -> Excerpt:
    return Excerpt(object=_obj(oid), text=text, relevance_score=score, chunk_index=chunk_index)


# ------------------------------------------------------------------
# Basics
# ------------------------------------------------------------------


@pytest.mark.parametrize("text, tokens", [("", 0), ("a", 1), ("abcd", 1), ("abcde", 2), ("x" * 400, 100)])
def test_estimate_tokens(text, tokens):
    assert estimate_tokens(text) == tokens


def test_empty_context_carries_strategy():
    ctx = empty_context("skipped_short")
    assert ctx.context_text == ""
    assert ctx.citations == []
    assert ctx.used_objects == []
    assert ctx.retrieval_metadata.strategy == "skipped_short"


def test_no_excerpts_gives_empty_text():
    ctx = allocate([], 1000, strategy="balanced")
    assert ctx.context_text == ""
    assert ctx.retrieval_metadata.strategy == "balanced"


# ------------------------------------------------------------------
# Ranking
# ------------------------------------------------------------------


def test_rank_is_descending_and_stable_on_ties():
    excerpts = [_ex("a", "1", 0.5), _ex("b", "2", 0.9), _ex("c", "3", 0.5), _ex("d", "4", 0.9)]
    assert [e.object.id for e in rank_excerpts(excerpts)] == ["b", "d", "a", "c"]


# ------------------------------------------------------------------
# Allocation
# ------------------------------------------------------------------


def test_context_text_layout_and_citation_markers():
    ctx = allocate([_ex("a", "first", 0.4), _ex("b", "second", 0.8)], 1000)
    assert ctx.context_text == PREAMBLE + "second [#1]" + SEPARATOR + "first [#2]"
    assert [(c.id, c.object_id) for c in ctx.citations] == [(1, "b"), (2, "a")]
    assert ctx.citations[0].object_name == "Object b"
    assert ctx.citations[0].object_type == "document"


def test_citations_disabled_omits_markers():
    ctx = allocate([_ex("a", "only", 0.4)], 1000, add_citations=False)
    assert ctx.context_text == PREAMBLE + "only"
    assert len(ctx.citations) == 1


def test_budget_stops_at_first_overflow():
    excerpts = [_ex("a", "x" * 40, 0.9), _ex("b", "y" * 400, 0.8), _ex("c", "z" * 4, 0.7)]
    ctx = allocate(excerpts, 50)
    assert [c.object_id for c in ctx.citations] == ["a"]
    assert ctx.retrieval_metadata.estimated_tokens == 10


def test_estimated_tokens_never_exceed_budget():
    excerpts = [_ex(str(i), "w" * (13 * i + 7), 1.0 - i / 50) for i in range(20)]
    for budget in (0, 5, 50, 200, 1000):
        ctx = allocate(excerpts, budget)
        assert ctx.retrieval_metadata.estimated_tokens <= budget


def test_larger_budget_never_accepts_fewer_excerpts():
    excerpts = [_ex(str(i), "w" * (17 * i + 3), 1.0 - i / 50) for i in range(15)]
    counts = [len(allocate(excerpts, b).citations) for b in range(0, 600, 25)]
    assert counts == sorted(counts)


def test_max_excerpts_caps_before_budget():
    excerpts = [_ex(str(i), "t", 1.0 - i / 10) for i in range(5)]
    ctx = allocate(excerpts, 1000, max_excerpts=2)
    assert [c.object_id for c in ctx.citations] == ["0", "1"]


def test_used_objects_deduplicated_in_citation_order():
    excerpts = [_ex("a", "one", 0.9, 0), _ex("b", "two", 0.8, 0), _ex("a", "three", 0.7, 3)]
    ctx = allocate(excerpts, 1000)
    assert [u.id for u in ctx.used_objects] == ["a", "b"]
    assert [c.chunk_index for c in ctx.citations] == [0, 0, 3]


def test_metadata_reports_search_counts():
    ctx = allocate([_ex("a", "t", 0.5)], 0, total_candidate_objects=4, total_chunks_scanned=12, strategy="balanced")
    meta = ctx.retrieval_metadata
    assert ctx.citations == []
    assert meta.total_candidate_objects == 4
    assert meta.total_chunks_scanned == 12
    assert meta.estimated_tokens == 0
