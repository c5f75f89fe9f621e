"""Content chunker: character windows with overlap over object content.

Windows are laid out on the original content so ``start_position`` /
``end_position`` always index the text as stored; each window's text is then
mention-normalised for embedding. ``content[start:end]`` therefore
reproduces the raw (un-rewritten) span exactly.
"""

from __future__ import annotations

from archivist.ingest.base import BaseChunker, ChunkSpan
from archivist.ingest.mentions import normalize_mentions


class ContentChunker(BaseChunker):
    """Split object content into fixed-size character windows with overlap.

    For content longer than ``chunk_size`` the number of chunks is
    ``ceil((len(content) - overlap) / (chunk_size - overlap))``.
    """

    def chunk(self, content: str) -> list[ChunkSpan]:
        return [
            ChunkSpan(
                content=normalize_mentions(content[start:end]),
                chunk_index=i,
                start_position=start,
                end_position=end,
            )
            for i, (start, end) in enumerate(self._split_fixed_window(len(content)))
        ]


def chunk_content(content: str, chunk_size: int, overlap: int) -> list[ChunkSpan]:
    """Chunk *content* with a ``chunk_size`` window and (clamped) ``overlap``.

    Empty content yields no chunks; content no longer than ``chunk_size``
    yields exactly one chunk spanning all of it.
    """
    return ContentChunker(chunk_size=chunk_size, overlap=overlap).chunk(content)
