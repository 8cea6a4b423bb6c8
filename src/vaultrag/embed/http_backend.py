"""HTTP embedding backend for local / self-hosted servers.

Speaks the OpenAI-compatible embedding contract::

    POST <url>
    {"input": ["text1", ...], "model": "<model>"}
    → 200 {"data": [{"embedding": [...], "index": 0}, ...], "model": "...", "usage": {...}}

Works with text-embeddings-inference, llama.cpp, LM Studio, Ollama's
``/v1/embeddings`` and similar servers, including air-gapped deployments.
"""

from __future__ import annotations

import json
import os

import httpx

from vaultrag.embed.base import EmbeddingBackend, vectors_from_items
from vaultrag.errors import BackendResponseInvalid, BackendStatusError, BackendUnavailable


class HttpBackend(EmbeddingBackend):
    """POST text batches to a configured endpoint with ``httpx``.

    Args:
        url:         Full endpoint URL.
        model:       Model name sent in every request.
        timeout:     Per-request timeout in seconds.
        api_key_env: Environment variable holding an optional bearer token.
        transport:   Custom httpx transport (tests use ``httpx.MockTransport``).
    """

    kind = "http"

    def __init__(
        self,
        url: str,
        model: str,
        timeout: float = 30.0,
        api_key_env: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(model)
        self.url = url
        self.timeout = timeout
        self._api_key = os.getenv(api_key_env, "") if api_key_env else ""
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def _get_auth_header(self) -> dict[str, str]:
        # Only add Authorization if a key is configured; local servers rarely need one.
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"input": texts, "model": self.model}

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            response = self._client.post(
                self.url,
                json=self.get_embed_payload(texts),
                headers=self._get_auth_header(),
            )
        except httpx.TimeoutException as exc:
            raise BackendUnavailable(f"Timed out after {self.timeout}s calling {self.url}") from exc
        except httpx.TransportError as exc:
            raise BackendUnavailable(f"Could not reach {self.url}: {exc}") from exc

        if response.status_code != 200:
            raise BackendStatusError(response.status_code, response.text[:200])

        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise BackendResponseInvalid(f"{self.url} returned a non-JSON body") from exc

        if not isinstance(body, dict) or "data" not in body:
            raise BackendResponseInvalid(f"{self.url} response is missing 'data'")
        return vectors_from_items(body["data"], len(texts))

    def close(self) -> None:
        self._client.close()
