"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import re
import threading

import pytest

from vaultrag.config import IndexCfg
from vaultrag.db.connection import Database
from vaultrag.db.schema import initialize
from vaultrag.embed.base import EmbeddingBackend
from vaultrag.embed.client import EmbeddingClient
from vaultrag.errors import BackendResponseInvalid
from vaultrag.index.manager import IndexManager
from vaultrag.ingest.plaintext import PlainTextChunker
from vaultrag.vault import InMemoryVault

_WORD_RE = re.compile(r"\w+")


def bag_of_words(text: str, dims: int) -> list[float]:
    """Deterministic toy embedding: hashed word counts."""
    vector = [0.0] * dims
    for word in _WORD_RE.findall(text.lower()):
        bucket = int(hashlib.sha1(word.encode()).hexdigest(), 16) % dims
        vector[bucket] += 1.0
    return vector


class FakeBackend(EmbeddingBackend):
    """In-process backend recording every batch it is asked to embed.

    ``fail_with`` makes every call raise; ``hold`` (an Event) makes calls
    block until it is set, with ``entered`` signalling that a call started.
    """

    kind = "fake"

    def __init__(self, model: str = "bow", dims: int = 64) -> None:
        super().__init__(model)
        self.dims = dims
        self.calls: list[list[str]] = []
        self.fail_with: Exception | None = None
        self.fail_on: str | None = None
        self.hold: threading.Event | None = None
        self.entered = threading.Event()
        self.closed = False

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.hold is not None:
            self.entered.set()
            self.hold.wait(5)
        if self.fail_with is not None:
            raise self.fail_with
        if self.fail_on is not None and any(self.fail_on in t for t in texts):
            raise BackendResponseInvalid(f"refused text containing {self.fail_on!r}")
        return [bag_of_words(t, self.dims) for t in texts]

    def close(self) -> None:
        self.closed = True

    @property
    def embedded_texts(self) -> list[str]:
        return [t for batch in self.calls for t in batch]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".vaultrag.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_backend_cls() -> type[FakeBackend]:
    """The FakeBackend class, for tests that need a second backend."""
    return FakeBackend


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def client(backend: FakeBackend) -> EmbeddingClient:
    return EmbeddingClient(backend, max_batch_size=8, max_retries=0, sleep=lambda _s: None)


@pytest.fixture
def vault() -> InMemoryVault:
    return InMemoryVault(
        {
            "cooking/bread.md": "Sourdough bread needs flour water salt and a lively starter.",
            "garden/tomatoes.md": "Tomatoes need sun water and support stakes in the garden.",
            "work/meetings.md": "Weekly meetings cover project status deadlines and blockers.",
        }
    )


@pytest.fixture
def make_manager(vault: InMemoryVault, client: EmbeddingClient):
    """Factory for managers over the shared vault; all are closed after the test."""
    created: list[IndexManager] = []

    def _make(**kwargs) -> IndexManager:
        kwargs.setdefault("vault", vault)
        kwargs.setdefault("client", client)
        kwargs.setdefault("chunker", PlainTextChunker(chunk_size=6, overlap=2))
        kwargs.setdefault("config", IndexCfg(save_delay=0.05, workers=2, document_batch=2))
        manager = IndexManager(**kwargs)
        created.append(manager)
        return manager

    yield _make
    for manager in created:
        manager.close()
