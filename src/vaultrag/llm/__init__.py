"""Embedding and chat model adapters."""

from vaultrag.llm.client import (
    ChatModel,
    EmbeddingModel,
    LiteLLMChatModel,
    LiteLLMEmbeddingModel,
    validate_api_key,
)

__all__ = [
    "ChatModel",
    "EmbeddingModel",
    "LiteLLMChatModel",
    "LiteLLMEmbeddingModel",
    "validate_api_key",
]
