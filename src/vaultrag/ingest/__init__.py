"""vaultrag ingest pipeline — document chunkers."""

from vaultrag.ingest.base import BaseChunker
from vaultrag.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "PlainTextChunker",
]
