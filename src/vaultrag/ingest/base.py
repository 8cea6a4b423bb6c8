"""Base chunker interface for vault documents."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from vaultrag.db.models import Chunk, Document

_TOKEN_RE = re.compile(r"\S+")


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``split()``. Token windows are measured in
    whitespace-delimited tokens; no external tokenizer dependency is required.
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 50) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        if overlap >= chunk_size:
            raise ValueError("overlap must be smaller than chunk_size")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def split(self, text: str, document_id: str = "", fingerprint: str = "") -> list[Chunk]:
        """Split *text* into Chunk objects.

        Args:
            text: Full text of the document.
            document_id: Identifier of the parent document.
            fingerprint: Content fingerprint the chunks are derived from.

        Returns:
            Ordered list of Chunk objects with sequential ``chunk_index``.
        """

    def chunk_document(self, document: Document) -> list[Chunk]:
        """Split a Document, stamping every chunk with its id and fingerprint."""
        return self.split(document.text, document.id, document.fingerprint)

    @staticmethod
    def count_tokens(text: str) -> int:
        """Whitespace token count, consistent with the window boundaries."""
        return len(_TOKEN_RE.findall(text))

    def _token_windows(self, n_tokens: int) -> list[tuple[int, int]]:
        """Return ``[start, end)`` token offsets for every window.

        Step = ``chunk_size - overlap``. The last window ends at *n_tokens*
        and may be shorter than ``chunk_size``.
        """
        if n_tokens == 0:
            return []

        step = self.chunk_size - self.overlap
        windows: list[tuple[int, int]] = []
        start = 0
        while True:
            end = min(start + self.chunk_size, n_tokens)
            windows.append((start, end))
            if end >= n_tokens:
                break
            start += step
        return windows
