"""Tests for the archivist config loader and hot-reloading ConfigStore."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from archivist.config import (
    PROJECT_CONFIG_NAME,
    ArchivistConfig,
    ConfigError,
    ConfigStore,
    load_config,
    snapshot,
    write_project_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("ARCHIVIST_EMBEDDING_MODEL", "ARCHIVIST_GENERATION_MODEL", "ARCHIVIST_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def no_global(tmp_path: Path) -> Path:
    return tmp_path / "nonexistent" / "config.yaml"


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path, no_global: Path) -> None:
    cfg = load_config(project_dir=tmp_path, global_config_path=no_global)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.retrieval.auto_retrieval_enabled is True
    assert cfg.retrieval.document_top_k == 30
    assert cfg.retrieval.chunk_top_k == 90
    assert cfg.retrieval.per_object_chunk_cap == 6
    assert cfg.retrieval.context_window_ratio == 1.0
    assert cfg.retrieval.min_document_similarity == 0.15
    assert cfg.retrieval.min_chunk_similarity == 0.30
    assert cfg.retrieval.token_budget == 12_000
    assert cfg.retrieval.add_citations is True
    assert cfg.retrieval.strategy == "balanced"
    assert cfg.retrieval.min_query_length == 10
    assert cfg.chunking.chunk_size == 2_000
    assert cfg.chunking.overlap == 200
    assert cfg.chunking.enabled is True
    assert cfg.worker.poll_interval == 5.0
    assert cfg.worker.item_delay == 0.1


def test_load_config_empty_files(tmp_path: Path) -> None:
    global_path = tmp_path / "global.yaml"
    global_path.write_text("", encoding="utf-8")
    (tmp_path / PROJECT_CONFIG_NAME).write_text("# only a comment\n", encoding="utf-8")
    assert load_config(tmp_path, global_config_path=global_path) == ArchivistConfig()


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_project_overrides_global(tmp_path: Path) -> None:
    global_path = tmp_path / "home" / "config.yaml"
    _write_yaml(global_path, {"embedding": {"model": "gemini/text-embedding-004"}, "generation": {"model": "g/global"}})
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"generation": {"model": "g/project"}})

    cfg = load_config(tmp_path, global_config_path=global_path)
    assert cfg.embedding.model == "gemini/text-embedding-004"
    assert cfg.generation.model == "g/project"


def test_partial_retrieval_section_keeps_other_defaults(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"retrieval": {"token_budget": 500, "add_citations": "false"}})
    cfg = load_config(tmp_path, global_config_path=no_global)
    assert cfg.retrieval.token_budget == 500
    assert cfg.retrieval.add_citations is False
    assert cfg.retrieval.document_top_k == 30


def test_env_overrides_files(tmp_path: Path, no_global: Path, monkeypatch) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"embedding": {"model": "a/b"}})
    monkeypatch.setenv("ARCHIVIST_EMBEDDING_MODEL", "env/model")
    monkeypatch.setenv("ARCHIVIST_LOG_LEVEL", "DEBUG")
    cfg = load_config(tmp_path, global_config_path=no_global)
    assert cfg.embedding.model == "env/model"
    assert cfg.logging.level == "DEBUG"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def test_global_api_key_forbidden(tmp_path: Path) -> None:
    global_path = tmp_path / "config.yaml"
    _write_yaml(global_path, {"embedding": {"api_key": "sk-secret"}})
    with pytest.raises(ConfigError, match="forbidden key 'embedding.api_key'"):
        load_config(tmp_path, global_config_path=global_path)


def test_token_budget_is_not_mistaken_for_a_secret(tmp_path: Path) -> None:
    global_path = tmp_path / "config.yaml"
    _write_yaml(global_path, {"retrieval": {"token_budget": 100}, "generation": {"max_tokens": 10}})
    assert load_config(tmp_path, global_config_path=global_path).retrieval.token_budget == 100


def test_unknown_top_level_key_warns(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"mystery": {"x": 1}})
    with pytest.warns(UserWarning, match="mystery"):
        load_config(tmp_path, global_config_path=no_global)


@pytest.mark.parametrize(
    "data, match",
    [
        ({"chunking": {"chunk_size": 0}}, "chunk_size"),
        ({"chunking": {"overlap": -1}}, "overlap"),
        ({"retrieval": {"strategy": "random"}}, "strategy"),
        ({"retrieval": {"token_budget": -5}}, "token_budget"),
        ({"retrieval": 5}, "'retrieval' must be a mapping"),
        ({"retrieval": {"document_top_k": [1]}}, "Invalid config value"),
        ({"worker": {"poll_interval": "soon"}}, "Invalid config value"),
    ],
)
def test_invalid_values_raise(tmp_path: Path, no_global: Path, data: dict, match: str) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, data)
    with pytest.raises(ConfigError, match=match):
        load_config(tmp_path, global_config_path=no_global)


def test_overlap_larger_than_chunk_size_is_accepted(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"chunking": {"chunk_size": 10, "overlap": 50}})
    assert load_config(tmp_path, global_config_path=no_global).chunking.overlap == 50


def test_non_mapping_yaml_raises(tmp_path: Path, no_global: Path) -> None:
    (tmp_path / PROJECT_CONFIG_NAME).write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path, global_config_path=no_global)


# ---------------------------------------------------------------------------
# write_project_config
# ---------------------------------------------------------------------------


def test_write_project_config_round_trips(tmp_path: Path, no_global: Path) -> None:
    path = write_project_config(tmp_path)
    assert path.name == PROJECT_CONFIG_NAME
    assert "NEVER store API keys" in path.read_text(encoding="utf-8")
    assert load_config(tmp_path, global_config_path=no_global) == ArchivistConfig()


def test_write_project_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / PROJECT_CONFIG_NAME
    target.write_text("retrieval:\n  token_budget: 7\n", encoding="utf-8")
    write_project_config(tmp_path)
    assert target.read_text(encoding="utf-8") == "retrieval:\n  token_budget: 7\n"


# ---------------------------------------------------------------------------
# ConfigStore
# ---------------------------------------------------------------------------


def test_store_reloads_after_file_change(tmp_path: Path, no_global: Path) -> None:
    store = ConfigStore(tmp_path, global_config_path=no_global)
    assert store.get().retrieval.token_budget == 12_000

    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"retrieval": {"token_budget": 321}})
    assert store.get().retrieval.token_budget == 321

    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"retrieval": {"token_budget": 4321}})
    assert store.get().retrieval.token_budget == 4321


def test_store_returns_private_copies(tmp_path: Path, no_global: Path) -> None:
    store = ConfigStore(tmp_path, global_config_path=no_global)
    first = store.get()
    first.retrieval.token_budget = 1
    assert store.get().retrieval.token_budget == 12_000


def test_store_keeps_last_good_config_on_broken_file(tmp_path: Path, no_global: Path) -> None:
    store = ConfigStore(tmp_path, global_config_path=no_global)
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"retrieval": {"token_budget": 321}})
    assert store.get().retrieval.token_budget == 321

    (tmp_path / PROJECT_CONFIG_NAME).write_text("retrieval: [unclosed\n", encoding="utf-8")
    assert store.get().retrieval.token_budget == 321


@pytest.mark.parametrize("broken", ["retrieval: 5\n", "retrieval:\n  document_top_k: [1]\n"])
def test_store_keeps_last_good_config_on_malformed_section(
    tmp_path: Path, no_global: Path, broken: str
) -> None:
    store = ConfigStore(tmp_path, global_config_path=no_global)
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"retrieval": {"token_budget": 777}})
    assert snapshot(store).retrieval.token_budget == 777

    (tmp_path / PROJECT_CONFIG_NAME).write_text(broken, encoding="utf-8")
    assert snapshot(store).retrieval.token_budget == 777


def test_store_falls_back_to_defaults_when_first_read_fails(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"chunking": {"chunk_size": 0}})
    store = ConfigStore(tmp_path, global_config_path=no_global)
    assert store.get() == ArchivistConfig()


def test_store_suppresses_unknown_key_warnings(tmp_path: Path, no_global: Path) -> None:
    _write_yaml(tmp_path / PROJECT_CONFIG_NAME, {"mystery": 1})
    store = ConfigStore(tmp_path, global_config_path=no_global)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        store.get()


# ---------------------------------------------------------------------------
# snapshot
# ---------------------------------------------------------------------------


def test_snapshot_sources(tmp_path: Path, no_global: Path) -> None:
    fixed = ArchivistConfig()
    fixed.retrieval.token_budget = 9
    assert snapshot(fixed) is fixed
    assert snapshot(None) == ArchivistConfig()
    assert snapshot(ConfigStore(tmp_path, global_config_path=no_global)) == ArchivistConfig()


def test_snapshot_falls_back_on_store_error() -> None:
    class _Broken:
        def get(self):
            raise OSError("disk gone")

    assert snapshot(_Broken()) == ArchivistConfig()  # type: ignore[arg-type]
