"""Base chunker interface for object content."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChunkSpan:
    """One chunk produced by a chunker.

    Attributes:
        content: Text to embed (may differ from the raw slice).
        chunk_index: 0-based position in the object's chunk sequence.
        start_position: Inclusive start offset into the original content.
        end_position: Exclusive end offset into the original content.
    """

    content: str
    chunk_index: int
    start_position: int
    end_position: int


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Sizes are in characters. ``overlap`` is clamped to ``chunk_size - 1`` so
    the window always advances.
    """

    def __init__(self, chunk_size: int = 2_000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.chunk_size = chunk_size
        self.overlap = max(0, min(overlap, chunk_size - 1))

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap

    @abstractmethod
    def chunk(self, content: str) -> list[ChunkSpan]:
        """Split *content* into ordered ChunkSpans with sequential ``chunk_index``."""

    def _split_fixed_window(self, length: int) -> list[tuple[int, int]]:
        """Return ``(start, end)`` windows covering ``[0, length)``.

        Windows start at 0 and advance by ``step``; the last window is the
        first one whose end reaches *length* (clamped to it). Nothing is
        dropped or merged near the end.
        """
        if length == 0:
            return []
        if length <= self.chunk_size:
            return [(0, length)]

        windows: list[tuple[int, int]] = []
        pos = 0
        while pos < length:
            end = min(pos + self.chunk_size, length)
            windows.append((pos, end))
            if end >= length:
                break
            pos += self.step
        return windows
