"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from archivist.config import ArchivistConfig
from archivist.db.connection import Database
from archivist.db.repository import Repository
from archivist.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".archivist.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def fast_config():
    """Default config with no inter-item delay, for orchestrator and retrieval tests."""
    cfg = ArchivistConfig()
    cfg.worker.item_delay = 0.0
    cfg.worker.poll_interval = 0.05
    return cfg


class KeywordEmbedder:
    """Deterministic fake embedding: one dimension per keyword plus a bias term.

    Texts sharing a keyword are close under cosine distance; texts with no
    keyword in common are nearly orthogonal. Every call is recorded.
    """

    def __init__(self, keywords: list[str]) -> None:
        self.keywords = [k.lower() for k in keywords]
        self.calls: list[str] = []

    def __call__(self, text: str) -> list[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(k)) for k in self.keywords] + [0.01]


@pytest.fixture
def embedder():
    return KeywordEmbedder(["bridge", "river", "garden", "engine"])
