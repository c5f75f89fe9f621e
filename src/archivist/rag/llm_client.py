"""Thin LiteLLM wrapper: object, chunk and query embeddings plus answer completion.

Every provider call in archivist goes through ``embed()`` or ``complete()``;
LiteLLM retries transient failures itself (``num_retries``, exponential backoff).
Models are LiteLLM ``provider/model`` strings; a bare name means OpenAI.
"""

from __future__ import annotations

import os

import litellm

litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

DEFAULT_PROVIDER = "openai"

# None: local provider, no key needed
KEY_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,
    "ollama_chat": None,
}


def provider_of(model: str) -> str:
    """``"gemini/text-embedding-004"`` → ``"gemini"``; bare names → ``"openai"``."""
    prefix, sep, _ = model.partition("/")
    return prefix.lower() if sep else DEFAULT_PROVIDER


def key_env_for(provider: str) -> str | None:
    """Env var holding the API key for *provider*; unknown providers get ``<NAME>_API_KEY``."""
    provider = provider.lower()
    if provider in KEY_ENV:
        return KEY_ENV[provider]
    return f"{provider.upper()}_API_KEY"


def validate_api_key(model: str) -> None:
    """Fail fast, before any provider call, when *model* has no API key configured.

    Raises:
        EnvironmentError: If the provider's key variable is unset or empty.
    """
    provider = provider_of(model)
    env_var = key_env_for(provider)
    if env_var is not None and not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Embed one text (object summary, chunk or query) and return its vector.

    Raises:
        Provider errors after LiteLLM's retries are exhausted.
    """
    response = litellm.embedding(model=model, input=[text], num_retries=num_retries)
    return response.data[0]["embedding"]


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.0,
    num_retries: int = 3,
) -> str:
    """Run one chat completion over *messages* and return the answer text ("" when empty)."""
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
    )
    return response.choices[0].message.content or ""
