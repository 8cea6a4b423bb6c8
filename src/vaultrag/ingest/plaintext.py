"""Plain text chunker — fixed token window with overlap."""

from __future__ import annotations

from vaultrag.db.models import Chunk
from vaultrag.ingest.base import _TOKEN_RE, BaseChunker


class PlainTextChunker(BaseChunker):
    """Split text into fixed-size whitespace-token windows with overlap.

    Default: 500 tokens / 50 token overlap. Chunk text is sliced from the
    original document so interior whitespace and line breaks survive.
    Deterministic: the same input always yields the same boundaries.
    """

    def split(self, text: str, document_id: str = "", fingerprint: str = "") -> list[Chunk]:
        spans = [m.span() for m in _TOKEN_RE.finditer(text)]
        chunks: list[Chunk] = []
        for i, (start, end) in enumerate(self._token_windows(len(spans))):
            char_start = spans[start][0]
            char_end = spans[end - 1][1]
            chunks.append(
                Chunk(
                    document_id=document_id,
                    chunk_index=i,
                    text=text[char_start:char_end],
                    start_token=start,
                    end_token=end,
                    fingerprint=fingerprint,
                )
            )
        return chunks
