"""Select the embedding backend from configuration."""

from __future__ import annotations

from vaultrag.config import EmbeddingCfg
from vaultrag.embed.base import EmbeddingBackend
from vaultrag.embed.client import EmbeddingClient
from vaultrag.embed.http_backend import HttpBackend
from vaultrag.embed.litellm_backend import LiteLLMBackend, validate_api_key


def create_backend(cfg: EmbeddingCfg) -> EmbeddingBackend:
    """Build the backend named by ``cfg.backend``.

    Raises:
        ValueError: For an unknown backend name.
        EnvironmentError: If a cloud provider's API key is missing.
    """
    if cfg.backend == "http":
        if not cfg.url:
            raise ValueError("embedding.url is required for the 'http' backend")
        return HttpBackend(
            url=cfg.url,
            model=cfg.model,
            timeout=cfg.timeout,
            api_key_env=cfg.api_key_env,
        )
    if cfg.backend == "litellm":
        if not cfg.url:
            validate_api_key(cfg.model)
        return LiteLLMBackend(model=cfg.model, timeout=cfg.timeout, api_base=cfg.url)
    raise ValueError(f"Unknown embedding backend '{cfg.backend}'")


def create_client(cfg: EmbeddingCfg) -> EmbeddingClient:
    return EmbeddingClient(
        create_backend(cfg),
        max_batch_size=cfg.batch_size,
        max_retries=cfg.max_retries,
    )
