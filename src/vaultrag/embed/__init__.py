"""Embedding backends and the batching client."""

from vaultrag.embed.base import EmbeddingBackend
from vaultrag.embed.client import EmbeddingClient
from vaultrag.embed.factory import create_backend, create_client
from vaultrag.embed.http_backend import HttpBackend
from vaultrag.embed.litellm_backend import LiteLLMBackend

__all__ = [
    "EmbeddingBackend",
    "EmbeddingClient",
    "HttpBackend",
    "LiteLLMBackend",
    "create_backend",
    "create_client",
]
