"""Error kinds raised by the vaultrag index engine.

Embedding failures are split so callers can decide what to retry:
  BackendUnavailable      network / timeout, retried with backoff
  BackendStatusError      non-success HTTP status (429 and 5xx are retryable)
  BackendResponseInvalid  malformed body, never retried
  ResponseLengthMismatch  body valid but vector count != input count
"""

from __future__ import annotations

_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class VaultRagError(Exception):
    """Base class for all vaultrag errors."""


# ---------------------------------------------------------------------------
# Embedding backend
# ---------------------------------------------------------------------------


class EmbeddingError(VaultRagError):
    """An embedding request failed. The whole batch is considered lost."""

    retryable: bool = False


class BackendUnavailable(EmbeddingError):
    """Connection failure or timeout talking to the embedding backend."""

    retryable = True


class BackendStatusError(EmbeddingError):
    """The embedding backend answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        detail = f": {message}" if message else ""
        super().__init__(f"Embedding backend returned HTTP {status_code}{detail}")

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code in _RETRYABLE_STATUS


class BackendResponseInvalid(EmbeddingError):
    """The response body is missing, malformed, or inconsistent."""


class ResponseLengthMismatch(BackendResponseInvalid):
    """The backend returned a different number of vectors than texts sent."""

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(
            f"Embedding backend returned {received} vectors for {expected} inputs"
        )


# ---------------------------------------------------------------------------
# Documents and index state
# ---------------------------------------------------------------------------


class DocumentReadFailure(VaultRagError):
    """The document collaborator could not supply a document's text."""

    def __init__(self, document_id: str, reason: str = "") -> None:
        self.document_id = document_id
        detail = f": {reason}" if reason else ""
        super().__init__(f"Could not read document '{document_id}'{detail}")


class DimensionalityMismatch(VaultRagError):
    """Vectors from a different backend or dimensionality cannot be mixed."""

    def __init__(
        self,
        expected_backend: str | None,
        expected_dims: int | None,
        actual_backend: str | None,
        actual_dims: int | None,
    ) -> None:
        self.expected_backend = expected_backend
        self.expected_dims = expected_dims
        self.actual_backend = actual_backend
        self.actual_dims = actual_dims
        super().__init__(
            f"Index holds {expected_backend} ({expected_dims} dims), "
            f"got {actual_backend} ({actual_dims} dims). A full rebuild is required."
        )


class BuildCancelled(VaultRagError):
    """A full index build was cancelled; the previous snapshot is untouched."""


class ConcurrentUpdateCoalesced(VaultRagError):
    """Informational: an update was superseded by newer content for the same document.

    Never raised to callers. Used as the logged reason when a stale update is dropped.
    """
