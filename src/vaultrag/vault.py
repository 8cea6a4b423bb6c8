"""Document collaborators: where the index manager gets document text from.

The index never originates documents; it asks a ``Vault`` for the current
id list and for individual documents when it is notified of a change.
"""

from __future__ import annotations

import hashlib
import threading
from pathlib import Path
from typing import Iterable, Protocol

from vaultrag.db.models import Document
from vaultrag.errors import DocumentReadFailure


def compute_fingerprint(text: str) -> str:
    """SHA-256 of the UTF-8 content; changes if and only if the text changes."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class Vault(Protocol):
    """Interface the host's document store must provide."""

    def list_documents(self) -> list[str]:
        """Return the ids of every tracked document."""
        ...

    def read(self, document_id: str) -> Document:
        """Return the current content of *document_id*.

        Raises:
            DocumentReadFailure: If the text cannot be supplied.
        """
        ...


class FileSystemVault:
    """A directory of text notes; document ids are POSIX paths relative to *root*.

    Hidden files and directories (``.obsidian``, ``.git``, ...) are skipped.
    """

    def __init__(self, root: Path | str, extensions: Iterable[str] = (".md", ".txt")) -> None:
        self.root = Path(root)
        self.extensions = frozenset(e.lower() for e in extensions)

    def list_documents(self) -> list[str]:
        if not self.root.is_dir():
            return []
        ids: list[str] = []
        for path in self.root.rglob("*"):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if path.is_file() and path.suffix.lower() in self.extensions:
                ids.append(rel.as_posix())
        return sorted(ids)

    def read(self, document_id: str) -> Document:
        path = self._resolve(document_id)
        try:
            text = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadFailure(document_id, str(exc)) from exc
        return Document(
            id=document_id,
            text=text,
            fingerprint=compute_fingerprint(text),
            modified_at=mtime,
        )

    def _resolve(self, document_id: str) -> Path:
        path = (self.root / document_id).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise DocumentReadFailure(document_id, "path escapes the vault root")
        return path


class InMemoryVault:
    """Dict-backed vault for hosts that push text directly (and for tests)."""

    def __init__(self, documents: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._docs: dict[str, str] = dict(documents or {})

    def put(self, document_id: str, text: str) -> Document:
        with self._lock:
            self._docs[document_id] = text
        return Document(document_id, text, compute_fingerprint(text))

    def delete(self, document_id: str) -> None:
        with self._lock:
            self._docs.pop(document_id, None)

    def list_documents(self) -> list[str]:
        with self._lock:
            return sorted(self._docs)

    def read(self, document_id: str) -> Document:
        with self._lock:
            text = self._docs.get(document_id)
        if text is None:
            raise DocumentReadFailure(document_id, "no such document")
        return Document(document_id, text, compute_fingerprint(text))
