"""LiteLLM embedding backend for cloud providers.

Routes ``litellm.embedding()`` calls and maps LiteLLM's exception zoo onto the
three embedding error kinds. LiteLLM's built-in retry is disabled here
(``num_retries=0``); ``EmbeddingClient`` owns retry and backoff.
"""

from __future__ import annotations

import os

import litellm

from vaultrag.embed.base import EmbeddingBackend, vectors_from_items
from vaultrag.errors import BackendResponseInvalid, BackendStatusError, BackendUnavailable

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "huggingface": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama) or unknown provider

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class LiteLLMBackend(EmbeddingBackend):
    """Embed via any provider LiteLLM supports (OpenAI, Cohere, Ollama, ...).

    Args:
        model:    LiteLLM model string (provider/model format).
        timeout:  Per-request timeout in seconds.
        api_base: Optional base URL override (OpenAI-compatible gateways).
    """

    kind = "litellm"

    def __init__(self, model: str, timeout: float = 30.0, api_base: str | None = None) -> None:
        super().__init__(model)
        self.timeout = timeout
        self.api_base = api_base

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        kwargs: dict = {"model": self.model, "input": texts, "timeout": self.timeout, "num_retries": 0}
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = litellm.embedding(**kwargs)
        except (litellm.Timeout, litellm.APIConnectionError) as exc:
            raise BackendUnavailable(f"{self.backend_id}: {exc}") from exc
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            if not isinstance(status, int):
                raise
            raise BackendStatusError(status, str(exc)) from exc

        data = getattr(response, "data", None)
        if data is None:
            raise BackendResponseInvalid(f"{self.backend_id}: response has no 'data'")
        return vectors_from_items(data, len(texts))
