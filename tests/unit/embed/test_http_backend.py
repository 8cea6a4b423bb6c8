"""Tests for the httpx-based embedding backend (httpx.MockTransport, no network)."""

from __future__ import annotations

import json

import httpx
import pytest

from vaultrag.embed.http_backend import HttpBackend
from vaultrag.errors import (
    BackendResponseInvalid,
    BackendStatusError,
    BackendUnavailable,
    ResponseLengthMismatch,
)

_URL = "http://localhost:8080/v1/embeddings"


def _backend(handler, **kwargs) -> HttpBackend:
    return HttpBackend(_URL, "nomic-embed-text", transport=httpx.MockTransport(handler), **kwargs)


def _ok(texts: list[str], reverse: bool = False) -> httpx.Response:
    data = [{"embedding": [float(i), 1.0], "index": i} for i in range(len(texts))]
    if reverse:
        data.reverse()
    return httpx.Response(200, json={"data": data, "model": "nomic-embed-text"})


def test_posts_input_and_model():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        return _ok(body["input"])

    vectors = _backend(handler).embed_batch(["a", "b"])
    assert seen == [{"input": ["a", "b"], "model": "nomic-embed-text"}]
    assert vectors == [[0.0, 1.0], [1.0, 1.0]]


def test_out_of_order_items_are_reordered():
    def handler(request: httpx.Request) -> httpx.Response:
        return _ok(json.loads(request.content)["input"], reverse=True)

    assert _backend(handler).embed_batch(["a", "b", "c"]) == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]


def test_backend_id():
    backend = _backend(lambda r: _ok([]))
    assert backend.backend_id == "http:nomic-embed-text"


def test_bearer_token_from_env(monkeypatch):
    monkeypatch.setenv("EMBED_TOKEN", "secret-123")
    headers: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        headers.append(request.headers.get("Authorization"))
        return _ok(["x"])

    _backend(handler, api_key_env="EMBED_TOKEN").embed_batch(["x"])
    assert headers == ["Bearer secret-123"]


def test_no_auth_header_without_key():
    headers: list[str | None] = []

    def handler(request: httpx.Request) -> httpx.Response:
        headers.append(request.headers.get("Authorization"))
        return _ok(["x"])

    _backend(handler).embed_batch(["x"])
    assert headers == [None]


# ------------------------------------------------------------------
# Error mapping
# ------------------------------------------------------------------


def test_connect_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(BackendUnavailable) as exc_info:
        _backend(handler).embed_batch(["x"])
    assert exc_info.value.retryable


def test_timeout_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(BackendUnavailable):
        _backend(handler).embed_batch(["x"])


@pytest.mark.parametrize(("status", "retryable"), [(429, True), (503, True), (400, False)])
def test_non_200_is_status_error(status: int, retryable: bool):
    backend = _backend(lambda r: httpx.Response(status, text="nope"))
    with pytest.raises(BackendStatusError) as exc_info:
        backend.embed_batch(["x"])
    assert exc_info.value.status_code == status
    assert exc_info.value.retryable is retryable


def test_non_json_body_is_invalid():
    backend = _backend(lambda r: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(BackendResponseInvalid):
        backend.embed_batch(["x"])


def test_missing_data_is_invalid():
    backend = _backend(lambda r: httpx.Response(200, json={"error": "no"}))
    with pytest.raises(BackendResponseInvalid):
        backend.embed_batch(["x"])


def test_fewer_vectors_than_inputs_is_length_mismatch():
    backend = _backend(lambda r: _ok(["only-one"]))
    with pytest.raises(ResponseLengthMismatch):
        backend.embed_batch(["a", "b"])


def test_close_closes_http_client():
    backend = _backend(lambda r: _ok(["x"]))
    backend.close()
    assert backend._client.is_closed
