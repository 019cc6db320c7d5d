"""vaultrag configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (VAULTRAG_LLM, VAULTRAG_EMBEDDING, VAULTRAG_DEBUG)
  3. Per-vault vaultrag.yaml  (at the vault root)
  4. Global ~/.vaultrag/config.yaml  (model defaults only — no API keys)
  5. Hardcoded defaults

The resulting RagConfig is frozen: the indexing and retrieval core only reads it.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import dataclasses
import os
import re
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".vaultrag"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_NAME: str = "vaultrag.yaml"

# Matches api_key, api-secret, *_token, token, *_secret, secret, password, credential(s).
# Does NOT match legitimate keys like context_window or chunk_size.
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

_TRUE_STRINGS = frozenset(["1", "true", "yes", "on"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigurationError(ValueError):
    """Raised when a configuration value is invalid or forbidden.

    Always raised at load time, before any indexing attempt.
    """


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RagConfig:
    """Recognised options for the indexing, retrieval and chat pipeline.

    Attributes:
        selected_llm: LiteLLM chat model (provider/model) used for chat and summaries.
        selected_embedding: LiteLLM embedding model (provider/model).
        chunk_size: Chunk length in characters.
        chunk_overlap: Characters shared by consecutive chunks (< chunk_size).
        use_context: Prepend a whole-document summary to multi-chunk documents.
        context_window: Minimum context size (tokens) requested from the chat model.
        similar_notes_search_limit: Results returned by similarity search and re-ranking.
        similarity_threshold: Cosine *distance* cutoff for k-NN results.
        llm_folder: Vault folder holding saved chats; never indexed.
        debug: Verbose logging.
        embedding_dimensions: Embedding size; probed from the model when None.
        reconcile_interval: Seconds between background reconcile passes.
        prune_deleted: Remove index entries for notes deleted from the vault.
        db_path: Index database path, relative to the vault unless absolute.
    """

    selected_llm: str = "ollama/llama3.2"
    selected_embedding: str = "ollama/nomic-embed-text"
    chunk_size: int = 1024
    chunk_overlap: int = 256
    use_context: bool = True
    context_window: int = 8192
    similar_notes_search_limit: int = 15
    similarity_threshold: float = 0.25
    llm_folder: str = "llm-chats"
    debug: bool = False
    embedding_dimensions: int | None = None
    reconcile_interval: float = 45.0
    prune_deleted: bool = True
    db_path: str = ".vaultrag.db"

    def __post_init__(self) -> None:
        validate(self)

    def replace(self, **changes: Any) -> RagConfig:
        """Return a copy with *changes* applied (re-validated)."""
        return dataclasses.replace(self, **changes)

    def resolve_db_path(self, vault_dir: Path) -> Path:
        """Return the absolute database path for *vault_dir*."""
        path = Path(self.db_path)
        return path if path.is_absolute() else vault_dir / path


_FIELD_TYPES: dict[str, type] = {
    "selected_llm": str,
    "selected_embedding": str,
    "chunk_size": int,
    "chunk_overlap": int,
    "use_context": bool,
    "context_window": int,
    "similar_notes_search_limit": int,
    "similarity_threshold": float,
    "llm_folder": str,
    "debug": bool,
    "embedding_dimensions": int,
    "reconcile_interval": float,
    "prune_deleted": bool,
    "db_path": str,
}


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def validate(cfg: RagConfig) -> None:
    """Raise ConfigurationError if *cfg* cannot drive indexing or retrieval."""
    if cfg.chunk_size < 1:
        raise ConfigurationError(f"chunk_size must be >= 1, got {cfg.chunk_size}")
    if cfg.chunk_overlap < 0:
        raise ConfigurationError(f"chunk_overlap must be >= 0, got {cfg.chunk_overlap}")
    if cfg.chunk_overlap >= cfg.chunk_size:
        raise ConfigurationError(
            f"chunk_overlap ({cfg.chunk_overlap}) must be smaller than "
            f"chunk_size ({cfg.chunk_size})."
        )
    if cfg.similar_notes_search_limit < 1:
        raise ConfigurationError(
            f"similar_notes_search_limit must be >= 1, got {cfg.similar_notes_search_limit}"
        )
    if cfg.context_window < 1:
        raise ConfigurationError(f"context_window must be >= 1, got {cfg.context_window}")
    if not 0.0 <= cfg.similarity_threshold <= 2.0:
        raise ConfigurationError(
            "similarity_threshold is a cosine distance and must be in [0, 2], "
            f"got {cfg.similarity_threshold}"
        )
    if cfg.embedding_dimensions is not None and cfg.embedding_dimensions < 1:
        raise ConfigurationError(
            f"embedding_dimensions must be >= 1, got {cfg.embedding_dimensions}"
        )
    if cfg.reconcile_interval <= 0:
        raise ConfigurationError(
            f"reconcile_interval must be > 0, got {cfg.reconcile_interval}"
        )
    if not cfg.llm_folder.strip():
        raise ConfigurationError("llm_folder must not be empty")


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigurationError if *data* contains API-key-like key names."""
    for key in data:
        if _API_KEY_RE.search(str(key)):
            raise ConfigurationError(
                f"Global config '{source}' contains a forbidden key '{key}'.\n"
                f"  API keys must be set via environment variables, not config files.\n"
                f"  Remove '{key}' from {source.name} and use:\n"
                f"    export {str(key).upper().replace('-', '_')}=<value>"
            )


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised keys."""
    for key in data:
        if key not in _FIELD_TYPES:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _read_yaml(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file '{path}' must contain a mapping.")
    return raw


# ---------------------------------------------------------------------------
# Coercion + build
# ---------------------------------------------------------------------------


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        if key == "embedding_dimensions":
            return None
        raise ConfigurationError(f"Config key '{key}' must not be empty.")
    target = _FIELD_TYPES[key]
    if target is bool:
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)
    try:
        return target(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Config key '{key}' expects {target.__name__}, got {value!r}"
        ) from exc


def _cfg_from_dict(data: dict[str, Any]) -> RagConfig:
    """Build a RagConfig from a merged raw YAML dict (unknown keys dropped)."""
    kwargs = {k: _coerce(k, v) for k, v in data.items() if k in _FIELD_TYPES}
    return RagConfig(**kwargs)


def _env_overrides() -> dict[str, Any]:
    """Collect VAULTRAG_* environment variable overrides (layer 2)."""
    overrides: dict[str, Any] = {}
    if model := os.environ.get("VAULTRAG_LLM"):
        overrides["selected_llm"] = model
    if model := os.environ.get("VAULTRAG_EMBEDDING"):
        overrides["selected_embedding"] = model
    if debug := os.environ.get("VAULTRAG_DEBUG"):
        overrides["debug"] = debug
    return overrides


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    vault_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> RagConfig:
    """Load and return a merged, validated RagConfig.

    Applies layers in order: global → per-vault → env vars.
    CLI flag overrides must be applied by the caller (``RagConfig.replace``).

    Args:
        vault_dir: Vault root to search for *vaultrag.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigurationError: If the global config contains API-key-like fields,
            a value has the wrong type, or the combination is invalid.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = vault_dir if vault_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = _read_yaml(global_path)
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged.update(raw_global)

    project_cfg_path = search_dir / PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = _read_yaml(project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged.update(raw_project)

    merged.update(_env_overrides())
    return _cfg_from_dict(merged)


def write_project_config(vault_dir: Path, cfg: RagConfig | None = None) -> Path:
    """Write *cfg* (or defaults) to ``<vault_dir>/vaultrag.yaml``; return the path.

    Existing files are left untouched.
    """
    target = vault_dir / PROJECT_CONFIG_NAME
    if target.exists():
        return target
    data = dataclasses.asdict(cfg or RagConfig())
    header = (
        "# vaultrag configuration for this vault.\n"
        "# NEVER store API keys here — use environment variables.\n"
    )
    target.write_text(header + yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target
