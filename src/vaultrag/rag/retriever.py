"""Dense retriever: exact cosine-similarity scan over the vector store.

score(chunk) = dot(q, v) / (|q| * |v|)      (0.0 when either magnitude is 0)

Results are ordered by score descending; ties are broken by chunk id
(document id, then chunk index) so identical inputs always rank identically.
The scan reads one immutable store snapshot and never mutates the store.
"""

from __future__ import annotations

import heapq
import math
from dataclasses import dataclass
from operator import mul
from typing import TYPE_CHECKING, Iterable, Sequence

from vaultrag.db.models import Chunk, EmbeddingRecord
from vaultrag.errors import DimensionalityMismatch

if TYPE_CHECKING:
    from vaultrag.index.store import VectorStore


@dataclass(frozen=True)
class ScoredChunk:
    """A retrieved chunk together with its cosine similarity to the query."""

    chunk: Chunk
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; zero-magnitude vectors score 0.0.

    Raises:
        ValueError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector dimension mismatch: {len(a)} vs {len(b)}")
    norm_a = _magnitude(a)
    norm_b = _magnitude(b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return sum(map(mul, a, b)) / (norm_a * norm_b)


def _magnitude(v: Sequence[float]) -> float:
    return math.sqrt(sum(map(mul, v, v)))


def top_k(
    query: Sequence[float],
    records: Iterable[EmbeddingRecord],
    k: int,
) -> list[ScoredChunk]:
    """Score every record against *query* and return the best *k*, best-first."""
    if k < 1:
        raise ValueError(f"k must be a positive integer, got {k}")

    query_norm = _magnitude(query)
    scored: list[tuple[float, str, int, Chunk]] = []
    for record in records:
        if len(record.vector) != len(query):
            raise DimensionalityMismatch(
                record.backend_id, record.dimensions, None, len(query)
            )
        norm = _magnitude(record.vector)
        if query_norm == 0.0 or norm == 0.0:
            score = 0.0
        else:
            score = sum(map(mul, query, record.vector)) / (query_norm * norm)
        chunk = record.chunk
        scored.append((score, chunk.document_id, chunk.chunk_index, chunk))

    best = heapq.nsmallest(k, scored, key=lambda s: (-s[0], s[1], s[2]))
    return [ScoredChunk(chunk=s[3], score=s[0]) for s in best]


def search(store: VectorStore, query_vector: Sequence[float], k: int) -> list[ScoredChunk]:
    """Return up to *k* chunks from *store* most similar to *query_vector*.

    If the store holds fewer than *k* chunks, all of them are returned, ranked.

    Raises:
        ValueError: If *k* is not a positive integer.
        DimensionalityMismatch: If *query_vector* does not match the stored vectors.
    """
    if not isinstance(k, int) or isinstance(k, bool):
        raise ValueError(f"k must be a positive integer, got {k!r}")
    return top_k(query_vector, store.records(), k)
