"""Domain models for the Archivist database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ObjectType(str, Enum):
    """Fixed record kinds stored in the knowledge base."""

    PERSON = "person"
    DOCUMENT = "document"
    LETTER = "letter"
    ENTITY = "entity"
    ISSUE = "issue"
    LOG = "log"
    MEETING = "meeting"

    @classmethod
    def parse(cls, value: str) -> ObjectType:
        """Return the member for *value* (case-insensitive).

        Raises:
            ValueError: If *value* is not a known object type.
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown object type '{value}'. Valid types: {valid}") from None


class EmbeddingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class KnowledgeObject:
    """A typed knowledge-base record.

    ``needs_embedding`` is set whenever name, content or aliases change and is
    cleared only by a successful object-level embedding write.
    """

    id: str
    type: ObjectType
    name: str
    content: str = ""
    aliases: list[str] = field(default_factory=list)
    date: str | None = None  # YYYY-MM-DD
    has_embedding: bool = False
    embedding_status: EmbeddingStatus = EmbeddingStatus.PENDING
    needs_embedding: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    rowid: int | None = None  # set after insert; vec tables are keyed by it


@dataclass
class Chunk:
    """A contiguous slice of one object's content.

    ``content`` is mention-normalised text; ``start_position`` /
    ``end_position`` are half-open offsets into the object's original content.
    """

    object_id: str
    chunk_index: int
    content: str
    start_position: int
    end_position: int
    has_embedding: bool = False
    embedding_status: EmbeddingStatus = EmbeddingStatus.PENDING
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks
