"""memindex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (MEMINDEX_EMBEDDING_MODEL, MEMINDEX_MEMORY_DIR, MEMINDEX_DB)
  3. Per-memory-dir memindex.yaml  (inside the memory directory)
  4. Global ~/.memindex/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".memindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_MEMORY_CONFIG_NAME: str = "memindex.yaml"
_DEFAULT_MEMORY_DIR: Path = _GLOBAL_CONFIG_DIR / "memory"
DB_FILENAME: str = ".search-index.db"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_chars or snippet_chars.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

# Known top-level sections. Unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["paths", "embedding", "chunking", "index", "retrieval", "recall"]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class PathsCfg:
    """Store locations (memindex.yaml: paths:).

    Attributes:
        memory_dir: Root of the memory files (index file + logs subtree).
        db: SQLite store; defaults to ``<memory_dir>/.search-index.db``.
    """

    memory_dir: Path = _DEFAULT_MEMORY_DIR
    db: Path | None = None

    @property
    def db_path(self) -> Path:
        return self.db if self.db is not None else self.memory_dir / DB_FILENAME


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (memindex.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"


@dataclass
class ChunkingCfg:
    max_chars: int = 1600
    include_breadcrumbs: bool = True


@dataclass
class IndexCfg:
    """What the delta indexer discovers (memindex.yaml: index:)."""

    index_file: str = "MEMORY.md"
    logs_dir: str = "sessions"
    extensions: list[str] = field(default_factory=lambda: [".md", ".markdown", ".txt"])


@dataclass
class RetrievalCfg:
    """Hybrid retrieval configuration (memindex.yaml: retrieval:)."""

    max_results: int = 10
    candidate_multiplier: int = 4
    vector_weight: float = 0.7
    text_weight: float = 0.3
    snippet_chars: int = 700


@dataclass
class RecallCfg:
    max_entries: int = 10
    max_memories: int = 5


@dataclass
class MemIndexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    paths: PathsCfg = field(default_factory=PathsCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    index: IndexCfg = field(default_factory=IndexCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    recall: RecallCfg = field(default_factory=RecallCfg)


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
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read *path* with yaml.safe_load(); an empty file is an empty mapping."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping at the top level.")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping.")
    return value


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


def _cfg_from_dict(data: dict[str, Any], memory_dir: Path) -> MemIndexConfig:
    """Build a *MemIndexConfig* from a merged raw YAML dict."""
    cfg = MemIndexConfig()
    cfg.paths = PathsCfg(memory_dir=memory_dir)

    try:
        if "paths" in data:
            db = _section(data, "paths").get("db")
            if db:
                cfg.paths.db = Path(str(db)).expanduser()

        if "embedding" in data:
            e = _section(data, "embedding")
            cfg.embedding = EmbeddingCfg(model=str(e.get("model", cfg.embedding.model)))

        if "chunking" in data:
            c = _section(data, "chunking")
            cfg.chunking = ChunkingCfg(
                max_chars=int(c.get("max_chars", cfg.chunking.max_chars)),
                include_breadcrumbs=bool(
                    c.get("include_breadcrumbs", cfg.chunking.include_breadcrumbs)
                ),
            )

        if "index" in data:
            i = _section(data, "index")
            cfg.index = IndexCfg(
                index_file=str(i.get("index_file", cfg.index.index_file)),
                logs_dir=str(i.get("logs_dir", cfg.index.logs_dir)),
                extensions=[
                    _extension(e) for e in i.get("extensions", cfg.index.extensions)
                ],
            )

        if "retrieval" in data:
            r = _section(data, "retrieval")
            cfg.retrieval = RetrievalCfg(
                max_results=int(r.get("max_results", cfg.retrieval.max_results)),
                candidate_multiplier=int(
                    r.get("candidate_multiplier", cfg.retrieval.candidate_multiplier)
                ),
                vector_weight=float(r.get("vector_weight", cfg.retrieval.vector_weight)),
                text_weight=float(r.get("text_weight", cfg.retrieval.text_weight)),
                snippet_chars=int(r.get("snippet_chars", cfg.retrieval.snippet_chars)),
            )

        if "recall" in data:
            rc = _section(data, "recall")
            cfg.recall = RecallCfg(
                max_entries=int(rc.get("max_entries", cfg.recall.max_entries)),
                max_memories=int(rc.get("max_memories", cfg.recall.max_memories)),
            )
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _extension(value: Any) -> str:
    ext = str(value).strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def _resolve_memory_dir(explicit: Path | None, global_data: dict[str, Any]) -> Path:
    if explicit is not None:
        return Path(explicit).expanduser()
    if env_dir := os.environ.get("MEMINDEX_MEMORY_DIR"):
        return Path(env_dir).expanduser()
    configured = _section(global_data, "paths").get("memory_dir")
    if configured:
        return Path(str(configured)).expanduser()
    return _DEFAULT_MEMORY_DIR


def _apply_env_overrides(cfg: MemIndexConfig) -> MemIndexConfig:
    """Apply MEMINDEX_* environment variable overrides."""
    if model := os.environ.get("MEMINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("MEMINDEX_DB"):
        cfg.paths.db = Path(db).expanduser()
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    memory_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> MemIndexConfig:
    """Load and return a merged *MemIndexConfig*.

    The memory directory is resolved first (argument, then MEMINDEX_MEMORY_DIR,
    then ``paths.memory_dir`` in the global config) because the per-directory
    ``memindex.yaml`` lives inside it.

    Args:
        memory_dir: Memory directory override (CLI flag).
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a file
            is not a valid YAML mapping.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    resolved_dir = _resolve_memory_dir(memory_dir, merged)

    # Layer 2: per-memory-dir config
    local_cfg_path = resolved_dir / _MEMORY_CONFIG_NAME
    if local_cfg_path.exists():
        raw_local = _read_yaml(local_cfg_path)
        _warn_unknown_keys(raw_local, local_cfg_path)
        merged = _deep_merge(merged, raw_local)

    cfg = _cfg_from_dict(merged, resolved_dir)

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.memindex/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).

    Args:
        global_config_path: Override path (for testing).

    Returns:
        Path to the global config file.
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# memindex global configuration — model defaults only.\n"
            "# NEVER store API keys here — use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "\n"
            "paths:\n"
            "  memory_dir: ~/.memindex/memory\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
