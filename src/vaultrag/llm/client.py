"""LiteLLM-backed embedding and chat models.

All model calls in the indexing and chat pipeline route through this module.
LiteLLM's built-in retry is used (num_retries, exponential backoff); once it
gives up, transport failures surface as ConnectivityError.
"""

from __future__ import annotations

import logging
import os
from typing import Iterator, Protocol

import litellm

from vaultrag.exceptions import ConnectivityError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

# Errors that mean "the service is not reachable", as opposed to a bad request.
_CONNECTIVITY_ERRORS: tuple[type[BaseException], ...] = (
    litellm.exceptions.APIConnectionError,
    litellm.exceptions.ServiceUnavailableError,
    litellm.exceptions.Timeout,
    litellm.exceptions.InternalServerError,
    ConnectionError,
    TimeoutError,
)


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}

# Providers that take the context size as ``num_ctx``.
_NUM_CTX_PROVIDERS = frozenset(["ollama", "ollama_chat"])


def provider_of(model: str) -> str:
    """Return the provider prefix of a LiteLLM model string ('openai' when absent)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def _context_kwargs(model: str, context_size: int | None) -> dict:
    if context_size is None or provider_of(model) not in _NUM_CTX_PROVIDERS:
        return {}
    return {"num_ctx": int(context_size)}


# ------------------------------------------------------------------
# Collaborator contracts
# ------------------------------------------------------------------


class EmbeddingModel(Protocol):
    """Turns text into a fixed-dimension vector."""

    model: str

    def embed(self, text: str, context_size: int | None = None) -> list[float]: ...


class ChatModel(Protocol):
    """Turns a message sequence into text, whole or as a stream of fragments."""

    model: str

    def complete(
        self,
        messages: list[dict],
        context_size: int | None = None,
        temperature: float = 0.0,
        seed: int | None = None,
    ) -> str: ...

    def stream(
        self,
        messages: list[dict],
        context_size: int | None = None,
        temperature: float = 0.0,
        seed: int | None = None,
    ) -> Iterator[str]: ...


# ------------------------------------------------------------------
# LiteLLM implementations
# ------------------------------------------------------------------


class LiteLLMEmbeddingModel:
    """EmbeddingModel backed by ``litellm.embedding()``.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        num_retries: Retries on transient errors before giving up.
    """

    def __init__(self, model: str, num_retries: int = 3) -> None:
        self.model = model
        self._num_retries = num_retries

    def embed(self, text: str, context_size: int | None = None) -> list[float]:
        """Embed *text* and return the vector.

        Raises:
            ConnectivityError: If the provider cannot be reached.
        """
        try:
            response = litellm.embedding(
                model=self.model,
                input=[text],
                num_retries=self._num_retries,
                **_context_kwargs(self.model, context_size),
            )
        except _CONNECTIVITY_ERRORS as exc:
            raise ConnectivityError(
                f"Embedding model '{self.model}' is unreachable: {exc}"
            ) from exc
        return list(response.data[0]["embedding"])


class LiteLLMChatModel:
    """ChatModel backed by ``litellm.completion()``.

    Args:
        model: LiteLLM chat model string (provider/model format).
        num_retries: Retries on transient errors before giving up.
    """

    def __init__(self, model: str, num_retries: int = 3) -> None:
        self.model = model
        self._num_retries = num_retries

    def _call(self, messages: list[dict], stream: bool, context_size, temperature, seed):
        kwargs = _context_kwargs(self.model, context_size)
        if seed is not None:
            kwargs["seed"] = seed
        try:
            return litellm.completion(
                model=self.model,
                messages=messages,
                temperature=temperature,
                stream=stream,
                num_retries=self._num_retries,
                **kwargs,
            )
        except _CONNECTIVITY_ERRORS as exc:
            raise ConnectivityError(f"Chat model '{self.model}' is unreachable: {exc}") from exc

    def complete(
        self,
        messages: list[dict],
        context_size: int | None = None,
        temperature: float = 0.0,
        seed: int | None = None,
    ) -> str:
        """Return the text content of the first choice."""
        response = self._call(messages, False, context_size, temperature, seed)
        return response.choices[0].message.content or ""

    def stream(
        self,
        messages: list[dict],
        context_size: int | None = None,
        temperature: float = 0.0,
        seed: int | None = None,
    ) -> Iterator[str]:
        """Yield response text fragments in order; the iterator ends with the reply.

        Empty deltas (role announcements, final usage chunks) are skipped.
        """
        response = self._call(messages, True, context_size, temperature, seed)
        try:
            for part in response:
                if not part.choices:
                    continue
                fragment = part.choices[0].delta.content
                if fragment:
                    yield fragment
        except _CONNECTIVITY_ERRORS as exc:
            raise ConnectivityError(
                f"Chat model '{self.model}' dropped the stream: {exc}"
            ) from exc


def get_context_window(model: str, default: int = 8192) -> int:
    """Return the model's input context size in tokens, or *default* if unknown."""
    try:
        info = litellm.get_model_info(model)
    except Exception:
        logger.debug("No model info for %s; using %d", model, default)
        return default
    return info.get("max_input_tokens") or info.get("max_tokens") or default
