"""Index manager — owns the vector store and keeps it consistent with the vault.

State machine:

    EMPTY ──build──▶ BUILDING ──▶ READY ◀──▶ UPDATING
                                    │
                                    └──force rebuild──▶ BUILDING (old index still served)

Builds
  - Non-forced builds start from the persisted snapshot when it is compatible
    with the configured backend: unchanged documents are reused, vanished ones
    dropped, changed or new ones re-embedded.
  - Forced builds embed everything into a staging store that replaces the
    live one only when the build completes. Cancelling leaves the live store
    untouched.
  - Per-document failures are collected in ``BuildResult.skipped_documents``
    and retried on the next maintenance pass. A skipped document keeps its
    previous chunks; only documents gone from the vault leave the index.

Incremental updates
  - Every request gets an observation sequence number when it arrives.
  - At most one re-embedding per document runs at a time; requests that
    arrive meanwhile are merged into a single pending slot (latest wins).
  - The store rejects writes whose sequence is not newer than the applied
    one, or whose content is older than the indexed version, so stale
    content can never overwrite fresh content.
  - A failed update leaves the previous chunk set in place.
"""

from __future__ import annotations

import itertools
import logging
import sqlite3
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator

from vaultrag.config import IndexCfg, VaultRagConfig
from vaultrag.db.connection import Database
from vaultrag.db.models import (
    BuildResult,
    Chunk,
    Document,
    IndexSnapshot,
    IndexStats,
    SearchHit,
    SkippedDocument,
)
from vaultrag.db.repository import SnapshotRepository
from vaultrag.db.schema import SNAPSHOT_FORMAT, initialize
from vaultrag.embed.client import EmbeddingClient
from vaultrag.errors import (
    BuildCancelled,
    ConcurrentUpdateCoalesced,
    DimensionalityMismatch,
    DocumentReadFailure,
    EmbeddingError,
)
from vaultrag.index.store import VectorStore
from vaultrag.ingest.base import BaseChunker
from vaultrag.rag import retriever
from vaultrag.rag.context import describe_style, format_context
from vaultrag.vault import Vault

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86_400


class IndexState(str, Enum):
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"
    UPDATING = "updating"


class UpdateOutcome(str, Enum):
    """Result of an incremental update, delivered through its Future."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"      # fingerprint already indexed
    SUPERSEDED = "superseded"    # newer content for the document won
    FAILED = "failed"            # previous chunks kept; queued for maintenance


class CancelToken:
    """Cooperative cancellation flag for a running build."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BuildCancelled("Index build cancelled; previous index kept")


@dataclass
class _Request:
    document_id: str
    sequence: int
    document: Document | None = None
    future: Future = field(default_factory=Future)


@dataclass
class _Slot:
    pending: _Request | None = None


class IndexManager:
    """Orchestrates chunking, embedding and storage for one vault.

    Args:
        vault:    Document collaborator supplying ids and text.
        client:   Embedding client (backend chosen by configuration).
        chunker:  Splits documents into token windows.
        store:    Vector store; a fresh one bound to the client's backend
                  when omitted.
        db_path:  Snapshot database; None disables persistence.
        config:   Index maintenance settings.
        top_k:    Default number of search results.
    """

    def __init__(
        self,
        vault: Vault,
        client: EmbeddingClient,
        chunker: BaseChunker,
        store: VectorStore | None = None,
        *,
        db_path: Path | str | None = None,
        config: IndexCfg | None = None,
        top_k: int = 3,
    ) -> None:
        self.vault = vault
        self.client = client
        self.chunker = chunker
        self.store = store if store is not None else VectorStore(backend_id=client.backend_id)
        self.db_path = Path(db_path) if db_path is not None else None
        self.config = config or IndexCfg()
        self.top_k = top_k

        self._lock = threading.RLock()
        self._sequence = itertools.count(1)
        self._slots: dict[str, _Slot] = {}
        self._retry: dict[str, str] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.workers), thread_name_prefix="vaultrag-update"
        )

        self._build_lock = threading.Lock()
        self._build_token: CancelToken | None = None
        self._built = False

        self._save_lock = threading.Lock()
        self._save_timer: threading.Timer | None = None
        self._dirty = False
        self._closed = False

    @classmethod
    def from_config(
        cls, vault_dir: Path | str, cfg: VaultRagConfig, client: EmbeddingClient | None = None
    ) -> IndexManager:
        """Wire up a manager for a directory vault from a loaded config."""
        from vaultrag.embed.factory import create_client
        from vaultrag.ingest.plaintext import PlainTextChunker
        from vaultrag.vault import FileSystemVault

        root = Path(vault_dir)
        client = client or create_client(cfg.embedding)
        return cls(
            vault=FileSystemVault(root, cfg.index.extensions),
            client=client,
            chunker=PlainTextChunker(cfg.chunking.chunk_size, cfg.chunking.overlap),
            store=VectorStore(backend_id=client.backend_id, dimensions=cfg.embedding.dimensions),
            db_path=root / cfg.index.path,
            config=cfg.index,
            top_k=cfg.retrieval.top_k,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> IndexManager:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Wait for in-flight updates, flush a pending save, release the backend."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        with self._lock:
            timer, self._save_timer = self._save_timer, None
        if timer is not None:
            timer.cancel()
        if self._dirty:
            self.save()
        self.client.close()

    @property
    def state(self) -> IndexState:
        with self._lock:
            if self._build_token is not None:
                return IndexState.BUILDING
            if not self._built:
                return IndexState.EMPTY
            if self._slots:
                return IndexState.UPDATING
            return IndexState.READY

    # ------------------------------------------------------------------
    # Builds
    # ------------------------------------------------------------------

    def build_index(self, force: bool = False, cancel: CancelToken | None = None) -> BuildResult:
        """Build (or reconcile) the index and return what happened.

        Raises:
            BuildCancelled: If *cancel* fired; the previous index is untouched.
            RuntimeError: If another build is already running.
        """
        if not self._build_lock.acquire(blocking=False):
            raise RuntimeError("An index build is already in progress")
        token = cancel or CancelToken()
        with self._lock:
            self._build_token = token
        try:
            snapshot = None if force else self._load_persisted()
            if snapshot is not None:
                result = self._reconcile(snapshot, token)
            else:
                result = self._full_build(token)
        except BuildCancelled:
            logger.info("Index build cancelled; keeping %d existing chunks", len(self.store))
            raise
        finally:
            with self._lock:
                self._build_token = None
            self._build_lock.release()

        stats = self.store.stats()
        result.chunk_count = stats["chunk_count"]
        result.document_count = stats["document_count"]
        logger.info(
            "Index ready: %d chunks from %d documents (%d skipped)",
            result.chunk_count,
            result.document_count,
            len(result.skipped_documents),
        )
        return result

    def cancel_build(self) -> bool:
        """Cancel the running build, if any. Returns True if one was signalled."""
        with self._lock:
            token = self._build_token
        if token is None:
            return False
        token.cancel()
        return True

    def _full_build(self, token: CancelToken) -> BuildResult:
        started = time.monotonic()
        start_seq = self._next_sequence()
        document_ids = self.vault.list_documents()
        logger.info("Building index from scratch: %d documents", len(document_ids))

        staging = self._seed_staging(self.store.all_records(), document_ids)
        result = BuildResult()
        done = 0
        for group in _batched(document_ids, self.config.document_batch):
            token.raise_if_cancelled()
            documents = self._read_group(group, result)
            self._embed_documents(documents, staging, start_seq, result)
            done += len(group)
            logger.debug("Indexed %d/%d documents", done, len(document_ids))
        token.raise_if_cancelled()

        self._commit_build(staging, start_seq)
        logger.info("Full build took %.1fs", time.monotonic() - started)
        return result

    def _reconcile(self, snapshot: IndexSnapshot, token: CancelToken) -> BuildResult:
        start_seq = self._next_sequence()
        document_ids = self.vault.list_documents()
        result = BuildResult()

        kept: set[str] = set()
        changed: list[Document] = []
        for group in _batched(document_ids, self.config.document_batch):
            token.raise_if_cancelled()
            for document in self._read_group(group, result):
                if snapshot.fingerprints.get(document.id) == document.fingerprint:
                    kept.add(document.id)
                else:
                    changed.append(document)

        staging = self._seed_staging(snapshot, document_ids)
        dropped = len(set(snapshot.fingerprints) - set(document_ids))
        logger.info(
            "Loaded snapshot: %d documents reused, %d to re-index, %d removed",
            len(kept),
            len(changed),
            dropped,
        )

        for group in _batched(changed, self.config.document_batch):
            token.raise_if_cancelled()
            self._embed_documents(group, staging, start_seq, result)
        token.raise_if_cancelled()

        result.reused_documents = len(kept)
        unchanged = not changed and len(kept) == len(snapshot.fingerprints)
        self._commit_build(staging, start_seq, persist=not unchanged)
        return result

    def _seed_staging(self, previous: IndexSnapshot, document_ids: Iterable[str]) -> VectorStore:
        """A staging store holding *previous* for every document still in the vault.

        Documents the build re-embeds are replaced in it; documents that fail
        to read or embed keep their previous chunks. Only documents the vault
        no longer lists drop out.
        """
        listed = set(document_ids)
        staging = self.store.empty_like()
        staging.load(
            IndexSnapshot(
                records=tuple(r for r in previous.records if r.document_id in listed),
                backend_id=previous.backend_id,
                dimensions=previous.dimensions,
                built_at=previous.built_at,
                fingerprints={d: fp for d, fp in previous.fingerprints.items() if d in listed},
            )
        )
        return staging

    def _commit_build(self, staging: VectorStore, start_seq: int, persist: bool = True) -> None:
        staging.mark_built()
        self.store.adopt(staging, newer_than=start_seq)
        with self._lock:
            self._built = True
        if persist:
            self.save()

    def _read_group(self, document_ids: Iterable[str], result: BuildResult) -> list[Document]:
        documents: list[Document] = []
        for document_id in document_ids:
            try:
                documents.append(self.vault.read(document_id))
            except DocumentReadFailure as exc:
                self._mark_failed(document_id, str(exc))
                result.skipped_documents.append(SkippedDocument(document_id, str(exc)))
        return documents

    def _embed_documents(
        self,
        documents: list[Document],
        target: VectorStore,
        sequence: int,
        result: BuildResult,
    ) -> None:
        """Chunk and embed *documents* as one batch, then replace each in *target*."""
        if not documents:
            return
        chunked: list[tuple[Document, list[Chunk]]] = [
            (doc, self.chunker.chunk_document(doc)) for doc in documents
        ]
        texts = [c.text for _, chunks in chunked for c in chunks]
        try:
            vectors = self.client.embed(texts) if texts else []
        except EmbeddingError as exc:
            logger.warning("Embedding failed for %d documents: %s", len(documents), exc)
            for doc, _ in chunked:
                self._mark_failed(doc.id, str(exc))
                result.skipped_documents.append(SkippedDocument(doc.id, str(exc)))
            return

        pos = 0
        for doc, chunks in chunked:
            doc_vectors = vectors[pos : pos + len(chunks)]
            pos += len(chunks)
            try:
                target.replace_document(
                    doc.id,
                    doc.fingerprint,
                    chunks,
                    doc_vectors,
                    self.client.backend_id,
                    sequence,
                    modified_at=doc.modified_at,
                )
            except DimensionalityMismatch as exc:
                self._mark_failed(doc.id, str(exc))
                result.skipped_documents.append(SkippedDocument(doc.id, str(exc)))
                continue
            self._clear_failed(doc.id)

    # ------------------------------------------------------------------
    # Incremental maintenance
    # ------------------------------------------------------------------

    def update_document(self, document_id: str, document: Document | None = None) -> Future:
        """Re-chunk and re-embed one document in the background.

        *document* carries the new content when the notification includes it;
        otherwise the vault is read when the update runs.

        Returns:
            Future resolving to an ``UpdateOutcome``.
        """
        if self._closed:
            raise RuntimeError("IndexManager is closed")
        request = _Request(document_id, self._next_sequence(), document)
        with self._lock:
            slot = self._slots.get(document_id)
            if slot is not None:
                if slot.pending is not None:
                    logger.debug(
                        "%s: %s",
                        document_id,
                        ConcurrentUpdateCoalesced("pending update replaced by newer request"),
                    )
                    slot.pending.future.set_result(UpdateOutcome.SUPERSEDED)
                slot.pending = request
                return request.future
            self._slots[document_id] = _Slot()
        self._executor.submit(self._drain_slot, request)
        return request.future

    def remove_document(self, document_id: str) -> int:
        """Remove every chunk of *document_id* right away. Returns chunks removed.

        Removing a document that was never indexed is a no-op. Any older
        update still in flight for the document is discarded when it finishes.
        """
        sequence = self._next_sequence()
        with self._lock:
            slot = self._slots.get(document_id)
            if slot is not None and slot.pending is not None:
                slot.pending.future.set_result(UpdateOutcome.SUPERSEDED)
                slot.pending = None
            self._retry.pop(document_id, None)
        removed = self.store.remove_document(document_id, sequence=sequence)
        if removed:
            logger.info("Removed %d chunks for %s", removed, document_id)
        self._schedule_save()
        return removed

    def rename_document(
        self, old_id: str, new_id: str, document: Document | None = None
    ) -> Future:
        """A rename is a removal of *old_id* plus a creation of *new_id*."""
        self.remove_document(old_id)
        return self.update_document(new_id, document)

    def run_maintenance(self) -> list[Future]:
        """Retry every document whose last build or update failed."""
        with self._lock:
            pending = dict(self._retry)
        if not pending:
            return []
        live = set(self.vault.list_documents())
        futures: list[Future] = []
        for document_id in sorted(pending):
            if document_id not in live:
                self._clear_failed(document_id)
                continue
            futures.append(self.update_document(document_id))
        return futures

    def failed_documents(self) -> dict[str, str]:
        with self._lock:
            return dict(self._retry)

    def _drain_slot(self, request: _Request | None) -> None:
        while request is not None:
            try:
                request.future.set_result(self._apply_update(request))
            except Exception as exc:  # delivered to the caller through the Future
                logger.exception("Unexpected error updating %s", request.document_id)
                request.future.set_exception(exc)
            document_id = request.document_id
            with self._lock:
                slot = self._slots[document_id]
                request, slot.pending = slot.pending, None
                if request is None:
                    del self._slots[document_id]

    def _apply_update(self, request: _Request) -> UpdateOutcome:
        document_id = request.document_id
        if request.sequence <= self.store.sequence(document_id):
            return UpdateOutcome.SUPERSEDED

        try:
            document = request.document or self.vault.read(document_id)
        except DocumentReadFailure as exc:
            logger.warning("Update skipped: %s", exc)
            self._mark_failed(document_id, str(exc))
            return UpdateOutcome.FAILED

        if document.modified_at and document.modified_at < self.store.modified_at(document_id):
            logger.debug("%s: content older than the indexed version", document_id)
            return UpdateOutcome.SUPERSEDED

        if self.store.fingerprint(document_id) == document.fingerprint:
            self._clear_failed(document_id)
            return UpdateOutcome.UNCHANGED

        chunks = self.chunker.chunk_document(document)
        try:
            vectors = self.client.embed([c.text for c in chunks]) if chunks else []
            applied = self.store.replace_document(
                document_id,
                document.fingerprint,
                chunks,
                vectors,
                self.client.backend_id,
                sequence=request.sequence,
                modified_at=document.modified_at,
            )
        except (EmbeddingError, DimensionalityMismatch) as exc:
            logger.warning("Update of %s failed, previous chunks kept: %s", document_id, exc)
            self._mark_failed(document_id, str(exc))
            return UpdateOutcome.FAILED

        if not applied:
            logger.debug("%s: %s", document_id, ConcurrentUpdateCoalesced("stale update dropped"))
            return UpdateOutcome.SUPERSEDED

        self._clear_failed(document_id)
        logger.info("Updated index for %s (%d chunks)", document_id, len(chunks))
        self._schedule_save()
        return UpdateOutcome.APPLIED

    def _mark_failed(self, document_id: str, reason: str) -> None:
        with self._lock:
            self._retry[document_id] = reason

    def _clear_failed(self, document_id: str) -> None:
        with self._lock:
            self._retry.pop(document_id, None)

    def _next_sequence(self) -> int:
        with self._lock:
            return next(self._sequence)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def search(self, query: str, k: int | None = None) -> list[SearchHit]:
        """Return the *k* passages most similar to *query*, best first.

        Builds the index first if nothing has been built or loaded yet.

        Raises:
            ValueError: If *k* is not a positive integer.
            EmbeddingError: If the query cannot be embedded.
        """
        k = self.top_k if k is None else k
        if not isinstance(k, int) or isinstance(k, bool) or k < 1:
            raise ValueError(f"k must be a positive integer, got {k!r}")

        if self.state is IndexState.EMPTY:
            logger.warning("Index not built yet, building now...")
            self.build_index()

        if len(self.store) == 0:
            return []

        query_vector = self.client.embed_query(query)
        return [
            SearchHit(
                document_id=sc.chunk.document_id,
                chunk_text=sc.chunk.text,
                score=sc.score,
                chunk_index=sc.chunk.chunk_index,
            )
            for sc in retriever.search(self.store, query_vector, k)
        ]

    def retrieve_context(self, query: str, k: int | None = None) -> list[str]:
        """Top passages formatted for a prompt, one per document.

        Degrades to no context when the embedding backend is unavailable.
        """
        try:
            hits = self.search(query, k)
        except EmbeddingError as exc:
            logger.warning("Context retrieval failed: %s", exc)
            return []
        return format_context(hits)

    def analyze_style(self) -> str:
        """Describe the vault's typical note style from a sample of chunks."""
        return describe_style(self.store.all_records().records)

    def snapshot(self) -> IndexSnapshot:
        return self.store.all_records()

    def stats(self) -> IndexStats:
        counts = self.store.stats()
        state = self.state
        return IndexStats(
            chunk_count=counts["chunk_count"],
            document_count=counts["document_count"],
            backend_id=self.store.backend_id or self.client.backend_id,
            state=state.value,
            is_built=self._built,
        )

    def clear_index(self) -> None:
        """Drop every chunk and the persisted snapshot; back to EMPTY."""
        with self._lock:
            timer, self._save_timer = self._save_timer, None
            self._retry.clear()
            self._built = False
            self._dirty = False
        if timer is not None:
            timer.cancel()
        self.store.clear()
        if self.db_path is not None and self.db_path.exists():
            with self._save_lock, Database(self.db_path) as conn:
                initialize(conn)
                SnapshotRepository(conn).clear()
        logger.info("Index cleared")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Serve the persisted snapshot as-is, without reading the vault.

        Returns False when there is no usable snapshot (missing, outdated,
        too old, or built with another backend).
        """
        snapshot = self._load_persisted()
        if snapshot is None:
            return False
        self.store.load(snapshot)
        with self._lock:
            self._built = True
        logger.info("Loaded snapshot: %d chunks", snapshot.chunk_count)
        return True

    def save(self) -> None:
        """Write the current store to the snapshot database now."""
        if self.db_path is None:
            return
        snapshot = self.store.all_records()
        with self._save_lock:
            with self._lock:
                self._dirty = False
            with Database(self.db_path) as conn:
                initialize(conn)
                SnapshotRepository(conn).save(snapshot)
        logger.debug("Snapshot saved: %d chunks → %s", snapshot.chunk_count, self.db_path)

    def _schedule_save(self) -> None:
        """Debounced save: write once no update has landed for ``save_delay`` seconds."""
        if self.db_path is None:
            return
        with self._lock:
            self._dirty = True
            if self._closed:
                return
            if self._save_timer is not None:
                self._save_timer.cancel()
            timer = threading.Timer(self.config.save_delay, self._timed_save)
            timer.daemon = True
            self._save_timer = timer
        timer.start()

    def _timed_save(self) -> None:
        with self._lock:
            self._save_timer = None
        try:
            self.save()
        except (sqlite3.Error, OSError):
            logger.exception("Failed to save index snapshot to %s", self.db_path)
            with self._lock:
                self._dirty = True

    def _load_persisted(self) -> IndexSnapshot | None:
        """Return the persisted snapshot if it can be trusted, else None."""
        if self.db_path is None or not self.db_path.exists():
            return None
        try:
            with Database(self.db_path) as conn:
                initialize(conn)
                repo = SnapshotRepository(conn)
                meta = repo.load_meta()
                if meta is None:
                    return None
                if meta["format_version"] != SNAPSHOT_FORMAT:
                    logger.info("Snapshot format %s is outdated, rebuilding", meta["format_version"])
                    return None
                age_days = (time.time() - meta["built_at"]) / _SECONDS_PER_DAY
                if age_days > self.config.max_age_days:
                    logger.info("Snapshot is %.1f days old, rebuilding", age_days)
                    return None
                snapshot = repo.load()
        except sqlite3.DatabaseError:
            aside = self.db_path.with_name(self.db_path.name + ".corrupt")
            logger.exception("Snapshot at %s is unreadable, moved to %s", self.db_path, aside)
            self.db_path.replace(aside)
            return None

        if snapshot is None:
            return None
        expected_dims = self.store.empty_like().dimensions
        if snapshot.backend_id and (
            snapshot.backend_id != self.client.backend_id
            or (expected_dims is not None and snapshot.dimensions != expected_dims)
        ):
            logger.warning(
                "Discarding snapshot: %s",
                DimensionalityMismatch(
                    self.client.backend_id, expected_dims, snapshot.backend_id, snapshot.dimensions
                ),
            )
            return None
        return snapshot


def _batched(items: list, size: int) -> Iterator[list]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]
