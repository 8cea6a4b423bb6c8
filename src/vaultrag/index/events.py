"""Document change events and the pump that feeds them to the index manager.

The host pushes ``DocumentEvent`` objects onto an ``EventQueue`` from whatever
thread observes the change; an ``EventPump`` worker pops them in order and
calls the matching ``IndexManager`` operation. Per-document coalescing happens
inside the manager, so the pump never blocks on an embedding call.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from vaultrag.db.models import Document

if TYPE_CHECKING:
    from vaultrag.index.manager import IndexManager

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class DocumentEvent:
    """One change notification.

    For ``RENAMED``, *document_id* is the new id and *old_id* the previous one.
    *document* optionally carries the new content so the vault is not re-read.
    """

    kind: EventKind
    document_id: str
    old_id: str | None = None
    document: Document | None = None

    def __post_init__(self) -> None:
        if self.kind is EventKind.RENAMED and not self.old_id:
            raise ValueError("A rename event needs old_id")


class EventQueue:
    """Thread-safe FIFO of document events."""

    def __init__(self) -> None:
        self._queue: queue.Queue[DocumentEvent | None] = queue.Queue()

    def put(self, event: DocumentEvent) -> None:
        self._queue.put(event)

    def created(self, document_id: str, document: Document | None = None) -> None:
        self.put(DocumentEvent(EventKind.CREATED, document_id, document=document))

    def modified(self, document_id: str, document: Document | None = None) -> None:
        self.put(DocumentEvent(EventKind.MODIFIED, document_id, document=document))

    def deleted(self, document_id: str) -> None:
        self.put(DocumentEvent(EventKind.DELETED, document_id))

    def renamed(self, old_id: str, new_id: str, document: Document | None = None) -> None:
        self.put(DocumentEvent(EventKind.RENAMED, new_id, old_id=old_id, document=document))

    def get(self, timeout: float | None = None) -> DocumentEvent | None:
        """Next event; None for the stop sentinel. Raises ``queue.Empty`` on timeout."""
        return self._queue.get(timeout=timeout)

    def task_done(self) -> None:
        self._queue.task_done()

    def join(self) -> None:
        self._queue.join()

    def stop_sentinel(self) -> None:
        self._queue.put(None)

    def __len__(self) -> int:
        return self._queue.qsize()


class EventPump:
    """Worker thread dispatching queued events to an ``IndexManager``."""

    def __init__(self, manager: IndexManager, events: EventQueue | None = None) -> None:
        self.manager = manager
        self.events = events or EventQueue()
        self._thread: threading.Thread | None = None
        self._futures: list[Future] = []
        self._futures_lock = threading.Lock()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="vaultrag-events", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Process everything already queued, then stop the worker."""
        if self._thread is None:
            return
        self.events.stop_sentinel()
        self._thread.join(timeout)
        self._thread = None

    def drain(self, timeout: float | None = None) -> None:
        """Block until every queued event has been dispatched and applied."""
        self.events.join()
        with self._futures_lock:
            futures, self._futures = self._futures, []
        for future in futures:
            future.exception(timeout=timeout)

    def dispatch(self, event: DocumentEvent) -> Future | None:
        """Apply one event to the manager. Returns the update Future, if any."""
        logger.debug("Event %s %s", event.kind.value, event.document_id)
        if event.kind is EventKind.DELETED:
            self.manager.remove_document(event.document_id)
            return None
        if event.kind is EventKind.RENAMED:
            return self.manager.rename_document(event.old_id, event.document_id, event.document)
        return self.manager.update_document(event.document_id, event.document)

    def _run(self) -> None:
        while True:
            event = self.events.get()
            try:
                if event is None:
                    return
                future = self.dispatch(event)
                if future is not None:
                    with self._futures_lock:
                        self._futures.append(future)
            except Exception:  # keep the pump alive; the failure is in the log
                logger.exception("Failed to dispatch %s", event)
            finally:
                self.events.task_done()
