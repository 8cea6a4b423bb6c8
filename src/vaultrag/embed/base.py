"""Embedding backend interface + shared response validation.

A backend performs exactly one request per ``embed_batch()`` call; batching,
retries and backoff belong to ``EmbeddingClient``.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any, Sequence

from vaultrag.errors import BackendResponseInvalid, ResponseLengthMismatch


class EmbeddingBackend(ABC):
    """One capability: turn a batch of texts into a batch of vectors."""

    kind: str = "backend"

    def __init__(self, model: str) -> None:
        self.model = model

    @property
    def backend_id(self) -> str:
        """Stable identifier recorded alongside every stored vector."""
        return f"{self.kind}:{self.model}"

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in a single request, preserving order.

        Raises:
            BackendUnavailable: Connection failure or timeout.
            BackendStatusError: Non-success HTTP status.
            BackendResponseInvalid: Malformed body or wrong vector count.
        """

    def close(self) -> None:
        """Release network resources. Default: nothing to release."""


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def vectors_from_items(items: Any, expected: int) -> list[list[float]]:
    """Validate the ``data`` array of an embedding response.

    Items are re-ordered by their ``index`` field (position is used when the
    field is absent). Every vector must be a non-empty list of finite numbers
    and all vectors must share one length.

    Raises:
        BackendResponseInvalid: On any malformed item.
        ResponseLengthMismatch: If the item count differs from *expected*.
    """
    if not isinstance(items, Sequence) or isinstance(items, (str, bytes)):
        raise BackendResponseInvalid("Embedding response has no 'data' list")
    if len(items) != expected:
        raise ResponseLengthMismatch(expected, len(items))

    ordered: list[list[float] | None] = [None] * expected
    for position, item in enumerate(items):
        index = _field(item, "index")
        if index is None:
            index = position
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < expected:
            raise BackendResponseInvalid(f"Embedding item has invalid index {index!r}")
        if ordered[index] is not None:
            raise BackendResponseInvalid(f"Embedding index {index} appears twice")
        ordered[index] = _to_vector(_field(item, "embedding"), index)

    vectors = [v for v in ordered if v is not None]
    dims = {len(v) for v in vectors}
    if len(dims) > 1:
        raise BackendResponseInvalid(f"Embedding response mixes dimensions {sorted(dims)}")
    return vectors


def _to_vector(raw: Any, index: int) -> list[float]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise BackendResponseInvalid(f"Embedding item {index} has no vector")
    try:
        vector = [float(x) for x in raw]
    except (TypeError, ValueError) as exc:
        raise BackendResponseInvalid(f"Embedding item {index} is not numeric") from exc
    if not all(math.isfinite(x) for x in vector):
        raise BackendResponseInvalid(f"Embedding item {index} contains non-finite values")
    return vector
