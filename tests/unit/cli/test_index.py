"""Tests for archivist index."""

from __future__ import annotations

from pathlib import Path

from archivist.cli.main import app
from archivist.db.connection import Database
from archivist.db.repository import Repository


def _repo_state(db: Path):
    conn = Database(db).connect()
    try:
        repo = Repository(conn)
        return repo.list_objects(), repo.count_chunks()
    finally:
        conn.close()


def _add(runner, db: Path, type: str, name: str, content: str) -> None:
    result = runner.invoke(app, ["add", "-t", type, "-n", name, "-c", content, "--db", str(db)])
    assert result.exit_code == 0, result.output


def test_index_requires_api_key(project: Path, runner, monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    result = runner.invoke(app, ["index", "--db", str(project)])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_index_embeds_flagged_objects(project: Path, runner, api_key, fake_embed) -> None:
    _add(runner, project, "document", "Bridges", "The bridge over the river.")
    _add(runner, project, "person", "Ada", "")

    result = runner.invoke(app, ["index", "--db", str(project)])

    assert result.exit_code == 0, result.output
    assert "Embedded 2 object(s), 1 chunk(s)" in result.output
    objects, chunks = _repo_state(project)
    assert all(o.has_embedding and not o.needs_embedding for o in objects)
    assert chunks == 1


def test_index_nothing_to_do(project: Path, runner, api_key, fake_embed) -> None:
    result = runner.invoke(app, ["index", "--db", str(project)])
    assert result.exit_code == 0
    assert "Nothing to index" in result.output


def test_index_all_rebuilds_everything(project: Path, runner, api_key, fake_embed) -> None:
    _add(runner, project, "document", "Bridges", "The bridge over the river.")
    runner.invoke(app, ["index", "--db", str(project)])
    fake_embed.calls.clear()

    result = runner.invoke(app, ["index", "--all", "--db", str(project)])

    assert result.exit_code == 0, result.output
    assert "Embedded 1 object(s)" in result.output
    assert len(fake_embed.calls) == 2


def test_index_by_type(project: Path, runner, api_key, fake_embed) -> None:
    _add(runner, project, "document", "Doc", "engine")
    _add(runner, project, "letter", "Letter", "garden")
    runner.invoke(app, ["index", "--db", str(project)])

    result = runner.invoke(app, ["index", "--type", "letter", "--db", str(project)])

    assert result.exit_code == 0, result.output
    assert "Embedded 1 object(s)" in result.output


def test_index_rejects_unknown_type(project: Path, runner, api_key) -> None:
    result = runner.invoke(app, ["index", "--type", "ship", "--db", str(project)])
    assert result.exit_code == 1
    assert "Unknown object type" in result.output


def test_index_reports_failures(project: Path, runner, api_key, monkeypatch) -> None:
    def boom(model, text, num_retries=3):
        raise RuntimeError("provider down")

    monkeypatch.setattr("archivist.rag.llm_client.embed", boom)
    _add(runner, project, "person", "Ada", "x")

    result = runner.invoke(app, ["index", "--db", str(project)])

    assert result.exit_code == 1
    assert "1 object(s) failed" in result.output
    objects, _ = _repo_state(project)
    assert objects[0].needs_embedding is True


def test_index_invalid_config(project: Path, runner, api_key) -> None:
    (project.parent / "archivist.yaml").write_text("chunking:\n  chunk_size: 0\n", encoding="utf-8")
    result = runner.invoke(app, ["index", "--db", str(project)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
