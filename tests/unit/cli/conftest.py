"""Fixtures for CLI tests: a small on-disk vault and an in-process backend."""

from __future__ import annotations

from pathlib import Path

import pytest

from vaultrag.embed.client import EmbeddingClient

_VAULT_YAML = """\
embedding:
  backend: http
  url: http://127.0.0.1:9/v1/embeddings
  model: bow
chunking:
  chunk_size: 6
  overlap: 2
index:
  save_delay: 0.01
  document_batch: 1
"""


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """No global config file and no VAULTRAG_* overrides leak into tests."""
    monkeypatch.setattr("vaultrag.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("VAULTRAG_EMBEDDING_BACKEND", "VAULTRAG_EMBEDDING_MODEL", "VAULTRAG_EMBEDDING_URL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    notes = {
        "cooking/bread.md": "Sourdough bread needs flour water salt and a lively starter.",
        "garden/tomatoes.md": "Tomatoes need sun water and support stakes in the garden.",
        "work/meetings.md": "Weekly meetings cover project status deadlines and blockers.",
        ".obsidian/workspace.md": "editor state, never indexed",
    }
    for rel, text in notes.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    (root / "vaultrag.yaml").write_text(_VAULT_YAML, encoding="utf-8")
    return root


@pytest.fixture
def cli_backend(fake_backend_cls, monkeypatch: pytest.MonkeyPatch):
    """Route every CLI-created embedding client to one in-process backend."""
    backend = fake_backend_cls()
    backend.kind = "http"  # matches the configured backend id "http:bow"
    monkeypatch.setattr(
        "vaultrag.cli.session.create_client",
        lambda cfg: EmbeddingClient(backend, max_retries=0),
    )
    return backend
