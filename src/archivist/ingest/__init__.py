"""Archivist ingest pipeline: mentions, chunking, text extraction, embedding orchestrator."""

from archivist.ingest.base import BaseChunker, ChunkSpan
from archivist.ingest.chunker import ContentChunker, chunk_content
from archivist.ingest.mentions import normalize_mentions, parse_mentions

__all__ = [
    "BaseChunker",
    "ChunkSpan",
    "ContentChunker",
    "chunk_content",
    "normalize_mentions",
    "parse_mentions",
]
