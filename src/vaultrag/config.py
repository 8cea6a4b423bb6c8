"""vaultrag configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (VAULTRAG_EMBEDDING_MODEL, VAULTRAG_EMBEDDING_URL,
                             VAULTRAG_EMBEDDING_BACKEND)
  3. Per-vault vaultrag.yaml  (in the vault root)
  4. Global ~/.vaultrag/config.yaml  (model defaults only — no API keys)
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

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".vaultrag"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_VAULT_CONFIG_NAME: str = "vaultrag.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like api_key_env or max_retries.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)$"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # access_token, auth_token (suffix)
    r"|^token$"                  # exactly "token" (standalone)
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret" (standalone)
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections, unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "chunking", "retrieval", "index"])

_BACKENDS: frozenset[str] = frozenset(["litellm", "http"])


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
    """Embedding backend configuration (vaultrag.yaml: embedding:).

    Attributes:
        backend: 'litellm' (cloud providers) or 'http' (any server speaking
            the ``{input, model} → {data: [{embedding, index}]}`` contract).
        model: Model name sent to the backend.
        url: Endpoint for the 'http' backend; optional ``api_base`` for litellm.
        api_key_env: Name of the environment variable holding a bearer token
            for the 'http' backend (never the key itself).
        dimensions: Expected vector size; None means "learn from first response".
        timeout: Per-request timeout in seconds.
        max_retries: Retries for timeouts / connection failures.
        batch_size: Maximum texts per embedding request.
    """

    backend: str = "litellm"
    model: str = "openai/text-embedding-3-small"
    url: str | None = None
    api_key_env: str | None = None
    dimensions: int | None = None
    timeout: float = 30.0
    max_retries: int = 3
    batch_size: int = 64


@dataclass
class ChunkingCfg:
    """Token window configuration (vaultrag.yaml: chunking:)."""

    chunk_size: int = 500
    overlap: int = 50


@dataclass
class RetrievalCfg:
    """Retrieval configuration (vaultrag.yaml: retrieval:)."""

    top_k: int = 3


@dataclass
class IndexCfg:
    """Index maintenance and persistence (vaultrag.yaml: index:).

    Attributes:
        path: Snapshot database, relative to the vault root.
        max_age_days: Persisted snapshots older than this are rebuilt.
        save_delay: Seconds of quiet after an incremental update before the
            snapshot is written.
        workers: Maximum concurrent background re-embeddings.
        document_batch: Documents chunked and embedded together during a build.
        extensions: File suffixes treated as documents.
    """

    path: str = ".vaultrag.db"
    max_age_days: float = 7.0
    save_delay: float = 2.0
    workers: int = 4
    document_batch: int = 10
    extensions: list[str] = field(default_factory=lambda: [".md", ".txt"])


@dataclass
class VaultRagConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    index: IndexCfg = field(default_factory=IndexCfg)


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


def _validate(cfg: VaultRagConfig) -> None:
    ch = cfg.chunking
    if ch.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {ch.chunk_size}")
    if not 0 <= ch.overlap < ch.chunk_size:
        raise ConfigError(
            f"chunking.overlap must be in [0, chunk_size), got {ch.overlap} "
            f"(chunk_size={ch.chunk_size})"
        )
    if cfg.embedding.backend not in _BACKENDS:
        raise ConfigError(
            f"embedding.backend must be one of {sorted(_BACKENDS)}, "
            f"got '{cfg.embedding.backend}'"
        )
    if cfg.embedding.backend == "http" and not cfg.embedding.url:
        raise ConfigError(
            "embedding.url is required when embedding.backend is 'http'.\n"
            "  Example:  embedding.url: http://localhost:8080/v1/embeddings"
        )
    if cfg.embedding.batch_size < 1:
        raise ConfigError("embedding.batch_size must be >= 1")
    if cfg.retrieval.top_k < 1:
        raise ConfigError("retrieval.top_k must be >= 1")


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


def _cfg_from_dict(data: dict[str, Any]) -> VaultRagConfig:
    """Build a *VaultRagConfig* from a merged raw YAML dict."""
    cfg = VaultRagConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        dims = e.get("dimensions", cfg.embedding.dimensions)
        cfg.embedding = EmbeddingCfg(
            backend=str(e.get("backend", cfg.embedding.backend)),
            model=str(e.get("model", cfg.embedding.model)),
            url=e.get("url") or cfg.embedding.url,
            api_key_env=e.get("api_key_env") or cfg.embedding.api_key_env,
            dimensions=int(dims) if dims is not None else None,
            timeout=float(e.get("timeout", cfg.embedding.timeout)),
            max_retries=int(e.get("max_retries", cfg.embedding.max_retries)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(top_k=int(r.get("top_k", cfg.retrieval.top_k)))

    if "index" in data:
        i = data["index"] or {}
        cfg.index = IndexCfg(
            path=str(i.get("path", cfg.index.path)),
            max_age_days=float(i.get("max_age_days", cfg.index.max_age_days)),
            save_delay=float(i.get("save_delay", cfg.index.save_delay)),
            workers=int(i.get("workers", cfg.index.workers)),
            document_batch=int(i.get("document_batch", cfg.index.document_batch)),
            extensions=[str(x) for x in i.get("extensions", cfg.index.extensions)],
        )

    return cfg


def _apply_env_overrides(cfg: VaultRagConfig) -> VaultRagConfig:
    """Apply VAULTRAG_* environment variable overrides (layer 2)."""
    if backend := os.environ.get("VAULTRAG_EMBEDDING_BACKEND"):
        cfg.embedding.backend = backend
    if model := os.environ.get("VAULTRAG_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if url := os.environ.get("VAULTRAG_EMBEDDING_URL"):
        cfg.embedding.url = url
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    vault_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> VaultRagConfig:
    """Load and return a merged *VaultRagConfig*.

    Applies layers in order: global → per-vault → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        vault_dir: Directory to search for *vaultrag.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = vault_dir if vault_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-vault config
    vault_cfg_path = search_dir / _VAULT_CONFIG_NAME
    if vault_cfg_path.exists():
        raw_vault = yaml.safe_load(vault_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_vault, vault_cfg_path)
        merged = _deep_merge(merged, raw_vault)

    cfg = _cfg_from_dict(merged)

    # Layer 3: env var overrides
    cfg = _apply_env_overrides(cfg)

    _validate(cfg)
    return cfg
