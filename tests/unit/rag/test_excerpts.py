"""Tests for chunk scoring and context windowing."""

from __future__ import annotations

import pytest

from archivist.config import RetrievalConfig
from archivist.db.models import Chunk, KnowledgeObject, ObjectType
from archivist.rag.excerpts import apply_context_window, extract_excerpts, query_terms, score_text
from archivist.rag.retriever import ScoredObject


def _candidate(content: str, similarity: float = 0.8) -> ScoredObject:
    return ScoredObject(KnowledgeObject(id="o", type=ObjectType.DOCUMENT, name="Doc", content=content), similarity)


def _chunks(content: str, size: int) -> list[Chunk]:
    return [
        Chunk(object_id="o", chunk_index=i, content=content[s : s + size], start_position=s, end_position=min(s + size, len(content)))
        for i, s in enumerate(range(0, len(content), size))
    ]


# ------------------------------------------------------------------
# Scoring
# ------------------------------------------------------------------


def test_query_terms_drop_short_words():
    assert query_terms("Is the Bridge on a river") == ["the", "bridge", "river"]


def test_score_text_weights_by_length_and_count():
    assert score_text("Bridge, bridge and river", ["bridge", "river"]) == 2 * 6 + 5
    assert score_text("nothing here", ["bridge"]) == 0


# ------------------------------------------------------------------
# Context window
# ------------------------------------------------------------------


def test_window_expands_half_ratio_each_side():
    content = "0123456789" * 3
    assert apply_context_window(content, 10, 20, 1.0) == content[5:25]


def test_window_clamped_to_content():
    content = "abcdefghij"
    assert apply_context_window(content, 0, 4, 2.0) == "abcdefgh"
    assert apply_context_window(content, 6, 10, 2.0) == "cdefghij"


def test_zero_ratio_returns_exact_span():
    assert apply_context_window("abcdefghij", 2, 5, 0) == "cde"


# ------------------------------------------------------------------
# extract_excerpts
# ------------------------------------------------------------------


def test_short_unchunked_object_used_whole():
    result = extract_excerpts(_candidate("Short note.", 0.42), [], ["note"], RetrievalConfig())
    assert len(result) == 1
    assert result[0].text == "Short note."
    assert result[0].relevance_score == pytest.approx(0.42)
    assert result[0].chunk_index is None


def test_long_unchunked_object_contributes_nothing():
    cfg = RetrievalConfig(full_object_max_chars=10)
    assert extract_excerpts(_candidate("x" * 11), [], ["xxx"], cfg) == []


def test_empty_unchunked_object_contributes_nothing():
    assert extract_excerpts(_candidate(""), [], ["xxx"], RetrievalConfig()) == []


def test_non_matching_chunks_dropped():
    content = "bridge " * 10 + "filler " * 10
    cfg = RetrievalConfig(min_chunk_similarity=0.0, context_window_ratio=0)
    result = extract_excerpts(_candidate(content), _chunks(content, 70), ["bridge"], cfg)
    assert [e.chunk_index for e in result] == [0]
    assert result[0].relevance_score == pytest.approx(10 * 6 / 100)


def test_min_chunk_similarity_filters_low_scores():
    content = "bridge once. " + "bridge " * 10
    chunks = [
        Chunk(object_id="o", chunk_index=0, content="bridge once. ", start_position=0, end_position=13),
        Chunk(object_id="o", chunk_index=1, content=content[13:], start_position=13, end_position=len(content)),
    ]
    result = extract_excerpts(_candidate(content), chunks, ["bridge"], RetrievalConfig(min_chunk_similarity=0.30))
    assert [e.chunk_index for e in result] == [1]


def test_per_object_cap_keeps_best():
    content = "".join(("river " * (i + 1)).ljust(60) for i in range(8))
    cfg = RetrievalConfig(min_chunk_similarity=0.0, per_object_chunk_cap=3, context_window_ratio=0)
    result = extract_excerpts(_candidate(content), _chunks(content, 60), ["river"], cfg)
    assert [e.chunk_index for e in result] == [7, 6, 5]


def test_excerpt_text_is_windowed_original_content():
    content = "aaaaaaaaaa" + "bridge!!!!" + "cccccccccc"
    chunk = Chunk(object_id="o", chunk_index=1, content="bridge!!!!", start_position=10, end_position=20)
    cfg = RetrievalConfig(min_chunk_similarity=0.0, context_window_ratio=1.0)
    result = extract_excerpts(_candidate(content), [chunk], ["bridge"], cfg)
    assert result[0].text == content[5:25]
