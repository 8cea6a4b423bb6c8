"""In-memory vector store with atomic per-document replacement.

All state lives in one immutable ``_State`` object. Writers build a new state
under ``_lock`` and swap the reference; readers grab the reference without
locking, so a search sees either the whole old chunk set of a document or the
whole new one, never a mix.

Every document also carries the observation sequence of the content that was
applied and, when the host supplied one, that content's modification time.
A write tagged with a sequence at or below the applied one, or with an older
modification time, is stale and is dropped. This keeps out-of-order or
retried notifications from regressing a document to older content.
"""

from __future__ import annotations

import dataclasses
import threading
import time
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from vaultrag.db.models import Chunk, EmbeddingRecord, IndexSnapshot
from vaultrag.db.vectors import to_float32
from vaultrag.errors import DimensionalityMismatch


@dataclass(frozen=True)
class _State:
    records: Mapping[str, EmbeddingRecord] = field(default_factory=dict)
    by_document: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    fingerprints: Mapping[str, str] = field(default_factory=dict)
    sequences: Mapping[str, int] = field(default_factory=dict)
    # modification time of the applied content; absent when unknown
    modified: Mapping[str, float] = field(default_factory=dict)
    backend_id: str | None = None
    dimensions: int | None = None
    built_at: float | None = None


class VectorStore:
    """Thread-safe map of chunk id → EmbeddingRecord.

    Args:
        backend_id: Backend every record must come from; adopted from the first
            write when None.
        dimensions: Vector size every record must have; adopted from the first
            write when None.
    """

    def __init__(self, backend_id: str | None = None, dimensions: int | None = None) -> None:
        self._lock = threading.Lock()
        self._configured = (backend_id, dimensions)
        self._state = _State(backend_id=backend_id, dimensions=dimensions)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def backend_id(self) -> str | None:
        return self._state.backend_id

    @property
    def dimensions(self) -> int | None:
        return self._state.dimensions

    @property
    def built_at(self) -> float | None:
        return self._state.built_at

    def __len__(self) -> int:
        return len(self._state.records)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, chunk: Chunk, vector: Sequence[float], backend_id: str) -> EmbeddingRecord:
        """Insert or replace a single chunk's record (idempotent).

        A chunk carrying a different fingerprint than the one stored for its
        document starts a new version of that document: the document's other
        chunks are dropped in the same critical section.
        """
        with self._lock:
            state = self._state
            dims = self._check_compatible(state, backend_id, len(vector))
            record = EmbeddingRecord(chunk, to_float32(vector), backend_id, dims)

            document_id = chunk.document_id
            records = dict(state.records)
            by_document = dict(state.by_document)
            fingerprints = dict(state.fingerprints)
            modified = dict(state.modified)
            ids = by_document.get(document_id, ())

            stored = fingerprints.get(document_id)
            if chunk.fingerprint and stored and stored != chunk.fingerprint:
                for chunk_id in ids:
                    records.pop(chunk_id, None)
                ids = ()
                modified.pop(document_id, None)

            records[record.chunk_id] = record
            if record.chunk_id not in ids:
                ids = ids + (record.chunk_id,)
            by_document[document_id] = ids
            if chunk.fingerprint:
                fingerprints[document_id] = chunk.fingerprint
            elif stored is None:
                fingerprints[document_id] = ""

            self._state = dataclasses.replace(
                state,
                records=records,
                by_document=by_document,
                fingerprints=fingerprints,
                modified=modified,
                backend_id=backend_id,
                dimensions=dims,
            )
            return record

    def replace_document(
        self,
        document_id: str,
        fingerprint: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
        backend_id: str,
        sequence: int | None = None,
        modified_at: float = 0.0,
    ) -> bool:
        """Atomically swap every chunk of *document_id* for *chunks*.

        Remove-old and insert-new happen as one critical section. An empty
        *chunks* list records the document as indexed with no content.
        *modified_at* of 0 means the content's modification time is unknown.

        Returns:
            False if the write is stale (its *sequence* is not newer than the
            applied one, or its *modified_at* is older); nothing changed.
            True otherwise.

        Raises:
            ValueError: If *chunks* and *vectors* differ in length.
            DimensionalityMismatch: If a vector does not match the store.
        """
        if len(chunks) != len(vectors):
            raise ValueError(f"{len(chunks)} chunks but {len(vectors)} vectors")

        with self._lock:
            state = self._state
            if sequence is not None and sequence <= state.sequences.get(document_id, -1):
                return False
            if modified_at and modified_at < state.modified.get(document_id, 0.0):
                return False

            dims = state.dimensions
            store_backend = state.backend_id
            for vector in vectors:
                dims = self._check_compatible(state, backend_id, len(vector))
                store_backend = backend_id

            records = dict(state.records)
            for chunk_id in state.by_document.get(document_id, ()):
                records.pop(chunk_id, None)
            new_ids: list[str] = []
            for chunk, vector in zip(chunks, vectors):
                record = EmbeddingRecord(chunk, to_float32(vector), backend_id, dims)  # type: ignore[arg-type]
                records[record.chunk_id] = record
                new_ids.append(record.chunk_id)

            by_document = dict(state.by_document)
            by_document[document_id] = tuple(new_ids)
            fingerprints = dict(state.fingerprints)
            fingerprints[document_id] = fingerprint
            sequences = dict(state.sequences)
            if sequence is not None:
                sequences[document_id] = sequence
            modified = dict(state.modified)
            if modified_at:
                modified[document_id] = modified_at
            else:
                modified.pop(document_id, None)

            self._state = dataclasses.replace(
                state,
                records=records,
                by_document=by_document,
                fingerprints=fingerprints,
                sequences=sequences,
                modified=modified,
                backend_id=store_backend,
                dimensions=dims,
            )
            return True

    def remove_document(self, document_id: str, sequence: int | None = None) -> int:
        """Remove every chunk of *document_id*. Returns the number removed.

        Removing an unknown document is a no-op (returns 0). When *sequence*
        is given it is recorded, so older in-flight updates cannot resurrect
        the document.
        """
        with self._lock:
            state = self._state
            if sequence is not None and sequence <= state.sequences.get(document_id, -1):
                return 0

            sequences = dict(state.sequences)
            if sequence is not None:
                sequences[document_id] = sequence

            if document_id not in state.by_document and document_id not in state.fingerprints:
                if sequences != state.sequences:
                    self._state = dataclasses.replace(state, sequences=sequences)
                return 0

            chunk_ids = state.by_document.get(document_id, ())
            records = dict(state.records)
            for chunk_id in chunk_ids:
                records.pop(chunk_id, None)
            by_document = dict(state.by_document)
            by_document.pop(document_id, None)
            fingerprints = dict(state.fingerprints)
            fingerprints.pop(document_id, None)
            modified = dict(state.modified)
            modified.pop(document_id, None)

            self._state = dataclasses.replace(
                state,
                records=records,
                by_document=by_document,
                fingerprints=fingerprints,
                sequences=sequences,
                modified=modified,
            )
            return len(chunk_ids)

    def load(self, snapshot: IndexSnapshot) -> None:
        """Replace the whole store with *snapshot* (used on startup and build swap).

        Raises:
            DimensionalityMismatch: If *snapshot* belongs to another backend.
        """
        backend_id, dims = self._configured
        if snapshot.records and (
            (backend_id is not None and snapshot.backend_id != backend_id)
            or (dims is not None and snapshot.dimensions != dims)
        ):
            raise DimensionalityMismatch(backend_id, dims, snapshot.backend_id, snapshot.dimensions)

        records: dict[str, EmbeddingRecord] = {}
        by_document: dict[str, list[str]] = {}
        for record in snapshot.records:
            records[record.chunk_id] = record
            by_document.setdefault(record.document_id, []).append(record.chunk_id)
        fingerprints = dict(snapshot.fingerprints)
        for document_id in by_document:
            fingerprints.setdefault(document_id, "")

        with self._lock:
            self._state = _State(
                records=records,
                by_document={k: tuple(v) for k, v in by_document.items()},
                fingerprints=fingerprints,
                sequences=self._state.sequences,
                backend_id=snapshot.backend_id if snapshot.records else (backend_id or snapshot.backend_id),
                dimensions=snapshot.dimensions if snapshot.records else (dims or snapshot.dimensions),
                built_at=snapshot.built_at,
            )

    def adopt(self, other: VectorStore, newer_than: int) -> None:
        """Atomically take over *other*'s contents (the build swap).

        Documents written to this store with a sequence above *newer_than*
        (updates and removals that landed while *other* was being built) keep
        their current version; everything else comes from *other*.
        """
        new = other._state
        with self._lock:
            live = self._state
            records = dict(new.records)
            by_document = dict(new.by_document)
            fingerprints = dict(new.fingerprints)
            sequences = dict(new.sequences)
            modified = dict(new.modified)

            for document_id, seq in live.sequences.items():
                if seq <= newer_than or seq <= sequences.get(document_id, -1):
                    sequences[document_id] = max(seq, sequences.get(document_id, -1))
                    continue
                for chunk_id in by_document.pop(document_id, ()):
                    records.pop(chunk_id, None)
                fingerprints.pop(document_id, None)
                modified.pop(document_id, None)
                if document_id in live.fingerprints:
                    ids = live.by_document.get(document_id, ())
                    for chunk_id in ids:
                        records[chunk_id] = live.records[chunk_id]
                    by_document[document_id] = ids
                    fingerprints[document_id] = live.fingerprints[document_id]
                    if document_id in live.modified:
                        modified[document_id] = live.modified[document_id]
                sequences[document_id] = seq

            self._state = _State(
                records=records,
                by_document=by_document,
                fingerprints=fingerprints,
                sequences=sequences,
                modified=modified,
                backend_id=new.backend_id or live.backend_id,
                dimensions=new.dimensions or live.dimensions,
                built_at=new.built_at,
            )

    def empty_like(self) -> VectorStore:
        """A new, empty store with the same backend / dimensionality constraints."""
        return VectorStore(*self._configured)

    def mark_built(self, built_at: float | None = None) -> None:
        with self._lock:
            self._state = dataclasses.replace(
                self._state, built_at=built_at if built_at is not None else time.time()
            )

    def clear(self) -> None:
        backend_id, dims = self._configured
        with self._lock:
            self._state = _State(backend_id=backend_id, dimensions=dims)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all_records(self) -> IndexSnapshot:
        """Return an immutable snapshot of the whole store."""
        state = self._state
        records = tuple(
            sorted(state.records.values(), key=lambda r: r.chunk.sort_key)
        )
        return IndexSnapshot(
            records=records,
            backend_id=state.backend_id,
            dimensions=state.dimensions,
            built_at=state.built_at,
            fingerprints=dict(state.fingerprints),
        )

    def records(self) -> Sequence[EmbeddingRecord]:
        """Unordered view of the current records; cheap, for scoring."""
        return tuple(self._state.records.values())

    def records_for(self, document_id: str) -> list[EmbeddingRecord]:
        state = self._state
        return [state.records[cid] for cid in state.by_document.get(document_id, ())]

    def stats(self) -> dict[str, int]:
        """Chunk and document counts; documents with no chunks are counted."""
        state = self._state
        return {
            "chunk_count": len(state.records),
            "document_count": len(state.fingerprints),
        }

    def fingerprint(self, document_id: str) -> str | None:
        return self._state.fingerprints.get(document_id)

    def sequence(self, document_id: str) -> int:
        return self._state.sequences.get(document_id, -1)

    def modified_at(self, document_id: str) -> float:
        """Modification time of the applied content; 0.0 when unknown."""
        return self._state.modified.get(document_id, 0.0)

    def document_ids(self) -> list[str]:
        return sorted(self._state.fingerprints)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_compatible(state: _State, backend_id: str, dims: int) -> int:
        expected_backend = state.backend_id
        expected_dims = state.dimensions
        if (expected_backend is not None and expected_backend != backend_id) or (
            expected_dims is not None and expected_dims != dims
        ):
            raise DimensionalityMismatch(expected_backend, expected_dims, backend_id, dims)
        return dims
