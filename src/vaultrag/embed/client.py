"""Batching embedding client with retry and exponential backoff.

``embed()`` is all-or-nothing: a batch that fails after its retries aborts the
whole call, because callers correlate vectors with chunks by position.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from vaultrag.embed.base import EmbeddingBackend
from vaultrag.errors import BackendResponseInvalid, EmbeddingError, ResponseLengthMismatch

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Split texts into bounded batches and embed them through *backend*.

    Args:
        backend:        Strategy that performs one request per batch.
        max_batch_size: Upper bound on texts per request.
        max_retries:    Retries per batch for retryable failures.
        backoff_base:   First backoff delay in seconds; doubles per attempt.
        backoff_max:    Cap on a single backoff delay.
        sleep:          Injected for tests.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        max_batch_size: int = 64,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.backend = backend
        self.max_batch_size = max_batch_size
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

    @property
    def backend_id(self) -> str:
        return self.backend.backend_id

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*; output has the same length and order as the input."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.max_batch_size):
            batch = texts[start : start + self.max_batch_size]
            result = self._embed_with_retry(batch)
            if len(result) != len(batch):
                raise ResponseLengthMismatch(len(batch), len(result))
            vectors.extend(result)

        if vectors and len({len(v) for v in vectors}) > 1:
            raise BackendResponseInvalid("Embedding batches returned different dimensionalities")
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        return self.embed([text])[0]

    def close(self) -> None:
        self.backend.close()

    # ------------------------------------------------------------------
    # Retry loop
    # ------------------------------------------------------------------

    def _embed_with_retry(self, batch: list[str]) -> list[list[float]]:
        attempt = 0
        while True:
            try:
                return self.backend.embed_batch(batch)
            except EmbeddingError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    "Embedding batch of %d failed (%s); retry %d/%d in %.1fs",
                    len(batch),
                    exc,
                    attempt + 1,
                    self.max_retries,
                    delay,
                )
                self._sleep(delay)
                attempt += 1

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_base * (2**attempt), self.backoff_max)
