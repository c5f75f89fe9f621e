"""Archivist configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site; not in this module)
  2. Environment variables  (ARCHIVIST_EMBEDDING_MODEL, ARCHIVIST_GENERATION_MODEL,
                             ARCHIVIST_LOG_LEVEL)
  3. Per-project archivist.yaml  (next to .archivist.db)
  4. Global ~/.archivist/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(); never yaml.load().

``ConfigStore`` adds hot reload on top of ``load_config()``: the YAML layers
are re-read whenever the project file changes, and a failed read falls back
to the last good config (or the defaults) so indexing and retrieval keep
running.
"""

from __future__ import annotations

import copy
import os
import re
import threading
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from archivist.log import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".archivist"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "archivist.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like token_budget or max_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "chunking", "worker", "logging"]
)

_STRATEGIES: frozenset[str] = frozenset(["balanced", "aggressive", "conservative"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (archivist.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


@dataclass
class GenerationCfg:
    """Chat completion configuration (archivist.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 2048


@dataclass
class RetrievalConfig:
    """Automatic retrieval parameters (archivist.yaml: retrieval:).

    Attributes:
        auto_retrieval_enabled: Master switch; when off every query returns an
            empty context tagged ``disabled``.
        document_top_k: Objects kept after the document-level vector search.
        chunk_top_k: Excerpts offered to the budget allocator after ranking.
        per_object_chunk_cap: Maximum excerpts contributed by a single object.
        context_window_ratio: Symmetric expansion around a matched chunk, as a
            fraction of the chunk length (split half per side).
        min_document_similarity: Cosine similarity floor for candidate objects.
        min_chunk_similarity: Floor for the normalised lexical chunk score.
        token_budget: Maximum estimated tokens of all accepted excerpts.
        add_citations: Append `` [#n]`` markers to excerpts.
        strategy: Tag reported in metadata on successful retrieval.
        min_query_length: Queries shorter than this (after strip) are skipped.
        full_object_max_chars: Unchunked objects up to this size are used whole.
    """

    auto_retrieval_enabled: bool = True
    document_top_k: int = 30
    chunk_top_k: int = 90
    per_object_chunk_cap: int = 6
    context_window_ratio: float = 1.0
    min_document_similarity: float = 0.15
    min_chunk_similarity: float = 0.30
    token_budget: int = 12_000
    add_citations: bool = True
    strategy: str = "balanced"
    min_query_length: int = 10
    full_object_max_chars: int = 2_000


@dataclass
class ChunkingCfg:
    """Character-window chunking (archivist.yaml: chunking:)."""

    chunk_size: int = 2_000
    overlap: int = 200
    enabled: bool = True


@dataclass
class WorkerCfg:
    """Background embedding worker cadence (archivist.yaml: worker:)."""

    poll_interval: float = 5.0
    item_delay: float = 0.1
    max_queue_size: int = 10_000


@dataclass
class LoggingCfg:
    level: str = "INFO"


@dataclass
class ArchivistConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    worker: WorkerCfg = field(default_factory=WorkerCfg)
    logging: LoggingCfg = field(default_factory=LoggingCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: ArchivistConfig) -> None:
    if cfg.chunking.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {cfg.chunking.chunk_size}")
    if cfg.chunking.overlap < 0:
        raise ConfigError(f"chunking.overlap must be >= 0, got {cfg.chunking.overlap}")
    if cfg.retrieval.strategy not in _STRATEGIES:
        raise ConfigError(
            f"retrieval.strategy must be one of {sorted(_STRATEGIES)}, "
            f"got '{cfg.retrieval.strategy}'"
        )
    if cfg.retrieval.token_budget < 0:
        raise ConfigError("retrieval.token_budget must be >= 0")
    if cfg.retrieval.context_window_ratio < 0:
        raise ConfigError("retrieval.context_window_ratio must be >= 0")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data[name] or {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Config section '{name}' must be a mapping, got {type(section).__name__}"
        )
    return section


def _cfg_from_dict(data: dict[str, Any]) -> ArchivistConfig:
    """Build an *ArchivistConfig* from a merged raw YAML dict."""
    cfg = ArchivistConfig()

    if "embedding" in data:
        e = _section(data, "embedding")
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
        )

    if "generation" in data:
        g = _section(data, "generation")
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
        )

    if "retrieval" in data:
        r = _section(data, "retrieval")
        d = cfg.retrieval
        cfg.retrieval = RetrievalConfig(
            auto_retrieval_enabled=_as_bool(
                r.get("auto_retrieval_enabled", d.auto_retrieval_enabled)
            ),
            document_top_k=int(r.get("document_top_k", d.document_top_k)),
            chunk_top_k=int(r.get("chunk_top_k", d.chunk_top_k)),
            per_object_chunk_cap=int(r.get("per_object_chunk_cap", d.per_object_chunk_cap)),
            context_window_ratio=float(r.get("context_window_ratio", d.context_window_ratio)),
            min_document_similarity=float(
                r.get("min_document_similarity", d.min_document_similarity)
            ),
            min_chunk_similarity=float(r.get("min_chunk_similarity", d.min_chunk_similarity)),
            token_budget=int(r.get("token_budget", d.token_budget)),
            add_citations=_as_bool(r.get("add_citations", d.add_citations)),
            strategy=str(r.get("strategy", d.strategy)),
            min_query_length=int(r.get("min_query_length", d.min_query_length)),
            full_object_max_chars=int(r.get("full_object_max_chars", d.full_object_max_chars)),
        )

    if "chunking" in data:
        c = _section(data, "chunking")
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
            enabled=_as_bool(c.get("enabled", cfg.chunking.enabled)),
        )

    if "worker" in data:
        w = _section(data, "worker")
        cfg.worker = WorkerCfg(
            poll_interval=float(w.get("poll_interval", cfg.worker.poll_interval)),
            item_delay=float(w.get("item_delay", cfg.worker.item_delay)),
            max_queue_size=int(w.get("max_queue_size", cfg.worker.max_queue_size)),
        )

    if "logging" in data:
        lg = _section(data, "logging")
        cfg.logging = LoggingCfg(level=str(lg.get("level", cfg.logging.level)))

    return cfg


def _apply_env_overrides(cfg: ArchivistConfig) -> ArchivistConfig:
    """Apply ARCHIVIST_* environment variable overrides."""
    if model := os.environ.get("ARCHIVIST_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("ARCHIVIST_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if level := os.environ.get("ARCHIVIST_LOG_LEVEL"):
        cfg.logging.level = level
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ArchivistConfig:
    """Load and return a merged *ArchivistConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *archivist.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *ArchivistConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields or a value
            fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-project config
    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg


class ConfigStore:
    """Hot-reloadable holder for the active configuration.

    ``get()`` returns a private copy of the current config so callers can
    read it for the duration of one operation without seeing later edits.
    The YAML layers are re-read when the project or global file's mtime
    changes. Read failures keep the last good config (defaults if none).
    """

    def __init__(
        self,
        project_dir: Path | None = None,
        *,
        global_config_path: Path | None = None,
    ) -> None:
        self._project_dir = project_dir if project_dir is not None else Path.cwd()
        self._global_path = (
            global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
        )
        self._lock = threading.Lock()
        self._cfg: ArchivistConfig | None = None
        self._stamp: tuple[object, object] | None = None

    def get(self) -> ArchivistConfig:
        with self._lock:
            stamp = self._current_stamp()
            if self._cfg is None or stamp != self._stamp:
                self._reload(stamp)
            assert self._cfg is not None
            return copy.deepcopy(self._cfg)

    def _reload(self, stamp: tuple[object, object]) -> None:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", UserWarning)
                self._cfg = load_config(
                    self._project_dir, global_config_path=self._global_path
                )
            self._stamp = stamp
            logger.debug("Configuration loaded from %s", self._project_dir)
        except (OSError, yaml.YAMLError, ValueError) as exc:
            if self._cfg is None:
                logger.warning("Config read failed (%s); using defaults", exc)
                self._cfg = ArchivistConfig()
            else:
                logger.warning("Config read failed (%s); keeping previous config", exc)

    def _current_stamp(self) -> tuple[object, object]:
        return (
            _file_stamp(self._project_dir / PROJECT_CONFIG_NAME),
            _file_stamp(self._global_path),
        )


def _file_stamp(path: Path) -> tuple[int, int] | None:
    try:
        st = path.stat()
        return st.st_mtime_ns, st.st_size
    except OSError:
        return None


def write_project_config(project_dir: Path, cfg: ArchivistConfig | None = None) -> Path:
    """Write an ``archivist.yaml`` with the (default) settings to *project_dir*.

    Existing files are left untouched.

    Returns:
        Path to the project config file.
    """
    cfg = cfg or ArchivistConfig()
    target = project_dir / PROJECT_CONFIG_NAME
    if target.exists():
        return target

    data = {
        "embedding": {"model": cfg.embedding.model, "dimensions": cfg.embedding.dimensions},
        "generation": {"model": cfg.generation.model},
        "retrieval": {
            "auto_retrieval_enabled": cfg.retrieval.auto_retrieval_enabled,
            "document_top_k": cfg.retrieval.document_top_k,
            "chunk_top_k": cfg.retrieval.chunk_top_k,
            "per_object_chunk_cap": cfg.retrieval.per_object_chunk_cap,
            "context_window_ratio": cfg.retrieval.context_window_ratio,
            "min_document_similarity": cfg.retrieval.min_document_similarity,
            "min_chunk_similarity": cfg.retrieval.min_chunk_similarity,
            "token_budget": cfg.retrieval.token_budget,
            "add_citations": cfg.retrieval.add_citations,
        },
        "chunking": {
            "chunk_size": cfg.chunking.chunk_size,
            "overlap": cfg.chunking.overlap,
            "enabled": cfg.chunking.enabled,
        },
    }
    header = (
        "# Archivist project configuration.\n"
        "# NEVER store API keys here; use environment variables:\n"
        "#   export OPENAI_API_KEY=sk-...\n\n"
    )
    target.write_text(header + yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target


def snapshot(source: ConfigStore | ArchivistConfig | None) -> ArchivistConfig:
    """Return the config to use for one operation.

    Accepts a ``ConfigStore`` (read now), a fixed ``ArchivistConfig`` or
    ``None`` (defaults). A failing store read falls back to the defaults.
    """
    if isinstance(source, ArchivistConfig):
        return source
    if source is None:
        return ArchivistConfig()
    try:
        return source.get()
    except Exception:
        logger.exception("Config read failed; using defaults")
        return ArchivistConfig()
