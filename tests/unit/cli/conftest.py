"""Fixtures shared by the CLI tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from archivist.cli.main import app


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr("archivist.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml")
    for var in ("ARCHIVIST_EMBEDDING_MODEL", "ARCHIVIST_GENERATION_MODEL", "ARCHIVIST_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project(tmp_path, runner) -> Path:
    """An initialized project directory; returns the database path."""
    result = runner.invoke(app, ["init", str(tmp_path)])
    assert result.exit_code == 0, result.output
    # fast worker cadence for index runs
    (tmp_path / "archivist.yaml").write_text(
        "worker:\n  item_delay: 0\n  poll_interval: 0.05\n", encoding="utf-8"
    )
    return tmp_path / ".archivist.db"


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


@pytest.fixture
def fake_embed(monkeypatch, embedder):
    """Route provider embedding calls to the keyword embedder."""
    monkeypatch.setattr("archivist.rag.llm_client.embed", lambda model, text, num_retries=3: embedder(text))
    return embedder
