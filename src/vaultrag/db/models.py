"""Domain models shared by the chunker, vector store, retriever and index manager."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Document:
    id: str
    text: str
    fingerprint: str
    modified_at: float = 0.0


@dataclass(frozen=True)
class Chunk:
    document_id: str
    chunk_index: int
    text: str
    start_token: int = 0
    end_token: int = 0
    fingerprint: str = ""

    @property
    def chunk_id(self) -> str:
        return f"{self.document_id}#{self.chunk_index}"

    @property
    def sort_key(self) -> tuple[str, int]:
        """Deterministic ordering: document id, then position in the document."""
        return (self.document_id, self.chunk_index)


@dataclass(frozen=True)
class EmbeddingRecord:
    chunk: Chunk
    vector: tuple[float, ...]
    backend_id: str
    dimensions: int

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    @property
    def document_id(self) -> str:
        return self.chunk.document_id


@dataclass(frozen=True)
class IndexSnapshot:
    """Read-only view of every record in the store at one instant."""

    records: tuple[EmbeddingRecord, ...] = ()
    backend_id: str | None = None
    dimensions: int | None = None
    built_at: float | None = None
    fingerprints: dict[str, str] = field(default_factory=dict)

    @property
    def chunk_count(self) -> int:
        return len(self.records)

    @property
    def document_count(self) -> int:
        """Indexed documents, including those whose text produced no chunks."""
        return len(set(self.fingerprints) | {r.document_id for r in self.records})


@dataclass(frozen=True)
class SearchHit:
    document_id: str
    chunk_text: str
    score: float
    chunk_index: int = 0


@dataclass(frozen=True)
class SkippedDocument:
    document_id: str
    reason: str


@dataclass
class BuildResult:
    """Outcome of a full or reconciling build.

    Failures never abort the build; they are collected in ``skipped_documents``.
    """

    chunk_count: int = 0
    document_count: int = 0
    skipped_documents: list[SkippedDocument] = field(default_factory=list)
    reused_documents: int = 0

    @property
    def ok(self) -> bool:
        return not self.skipped_documents


@dataclass(frozen=True)
class IndexStats:
    chunk_count: int
    document_count: int
    backend_id: str | None
    state: str = "empty"
    is_built: bool = False
