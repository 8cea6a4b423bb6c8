"""Tests for the LiteLLM backend and backend selection (litellm mocked)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from vaultrag.config import EmbeddingCfg
from vaultrag.embed.client import EmbeddingClient
from vaultrag.embed.factory import create_backend, create_client
from vaultrag.embed.http_backend import HttpBackend
from vaultrag.embed.litellm_backend import LiteLLMBackend, validate_api_key
from vaultrag.errors import (
    BackendResponseInvalid,
    BackendStatusError,
    BackendUnavailable,
)

_MODEL = "openai/text-embedding-3-small"


class _Timeout(Exception):
    pass


class _ConnectionError(Exception):
    pass


class _RateLimit(Exception):
    status_code = 429


def _fake_litellm(**embedding_kwargs) -> MagicMock:
    fake = MagicMock()
    fake.Timeout = _Timeout
    fake.APIConnectionError = _ConnectionError
    fake.embedding = MagicMock(**embedding_kwargs)
    return fake


def _response(*vectors: list[float]) -> SimpleNamespace:
    return SimpleNamespace(data=[{"embedding": v, "index": i} for i, v in enumerate(vectors)])


# ------------------------------------------------------------------
# embed_batch
# ------------------------------------------------------------------


def test_embed_batch_calls_litellm_without_its_retries():
    fake = _fake_litellm(return_value=_response([0.1, 0.2], [0.3, 0.4]))
    with patch("vaultrag.embed.litellm_backend.litellm", fake):
        vectors = LiteLLMBackend(_MODEL, timeout=5.0).embed_batch(["a", "b"])

    assert vectors == [[0.1, 0.2], [0.3, 0.4]]
    kwargs = fake.embedding.call_args.kwargs
    assert kwargs["model"] == _MODEL
    assert kwargs["input"] == ["a", "b"]
    assert kwargs["timeout"] == 5.0
    assert kwargs["num_retries"] == 0
    assert "api_base" not in kwargs


def test_api_base_is_forwarded():
    fake = _fake_litellm(return_value=_response([1.0]))
    with patch("vaultrag.embed.litellm_backend.litellm", fake):
        LiteLLMBackend("ollama/nomic-embed-text", api_base="http://gpu:11434").embed_batch(["a"])
    assert fake.embedding.call_args.kwargs["api_base"] == "http://gpu:11434"


@pytest.mark.parametrize("exc", [_Timeout("slow"), _ConnectionError("refused")])
def test_transport_failures_map_to_unavailable(exc: Exception):
    fake = _fake_litellm(side_effect=exc)
    with patch("vaultrag.embed.litellm_backend.litellm", fake):
        with pytest.raises(BackendUnavailable):
            LiteLLMBackend(_MODEL).embed_batch(["a"])


def test_status_errors_map_to_status_error():
    fake = _fake_litellm(side_effect=_RateLimit("slow down"))
    with patch("vaultrag.embed.litellm_backend.litellm", fake):
        with pytest.raises(BackendStatusError) as exc_info:
            LiteLLMBackend(_MODEL).embed_batch(["a"])
    assert exc_info.value.status_code == 429
    assert exc_info.value.retryable


def test_unrelated_exceptions_propagate():
    fake = _fake_litellm(side_effect=KeyError("bug"))
    with patch("vaultrag.embed.litellm_backend.litellm", fake):
        with pytest.raises(KeyError):
            LiteLLMBackend(_MODEL).embed_batch(["a"])


def test_response_without_data_is_invalid():
    fake = _fake_litellm(return_value=SimpleNamespace(data=None))
    with patch("vaultrag.embed.litellm_backend.litellm", fake):
        with pytest.raises(BackendResponseInvalid):
            LiteLLMBackend(_MODEL).embed_batch(["a"])


def test_backend_id():
    assert LiteLLMBackend(_MODEL).backend_id == f"litellm:{_MODEL}"


# ------------------------------------------------------------------
# API key validation
# ------------------------------------------------------------------


def test_validate_api_key_missing_raises(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key(_MODEL)


def test_validate_api_key_present_passes(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    validate_api_key(_MODEL)


def test_validate_api_key_bare_model_defaults_to_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        validate_api_key("text-embedding-3-small")


def test_validate_api_key_local_provider_needs_no_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    validate_api_key("ollama/nomic-embed-text")


# ------------------------------------------------------------------
# Backend selection
# ------------------------------------------------------------------


def test_factory_selects_http_backend():
    backend = create_backend(EmbeddingCfg(backend="http", model="bge", url="http://x/embed"))
    assert isinstance(backend, HttpBackend)
    assert backend.backend_id == "http:bge"
    backend.close()


def test_factory_http_without_url_raises():
    with pytest.raises(ValueError, match="url"):
        create_backend(EmbeddingCfg(backend="http", model="bge"))


def test_factory_selects_litellm_backend(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    backend = create_backend(EmbeddingCfg(backend="litellm", model=_MODEL))
    assert isinstance(backend, LiteLLMBackend)


def test_factory_litellm_with_url_skips_key_check(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    backend = create_backend(EmbeddingCfg(backend="litellm", model=_MODEL, url="http://gw"))
    assert backend.api_base == "http://gw"


def test_factory_unknown_backend_raises():
    with pytest.raises(ValueError, match="Unknown"):
        create_backend(EmbeddingCfg(backend="carrier-pigeon"))


def test_create_client_applies_batch_and_retry_settings():
    cfg = EmbeddingCfg(backend="http", model="bge", url="http://x", batch_size=7, max_retries=1)
    client = create_client(cfg)
    assert isinstance(client, EmbeddingClient)
    assert (client.max_batch_size, client.max_retries) == (7, 1)
    client.close()
