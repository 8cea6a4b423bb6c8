"""Vector store and index maintenance."""

from vaultrag.index.events import DocumentEvent, EventKind, EventPump, EventQueue
from vaultrag.index.manager import CancelToken, IndexManager, IndexState, UpdateOutcome
from vaultrag.index.store import VectorStore

__all__ = [
    "CancelToken",
    "DocumentEvent",
    "EventKind",
    "EventPump",
    "EventQueue",
    "IndexManager",
    "IndexState",
    "UpdateOutcome",
    "VectorStore",
]
