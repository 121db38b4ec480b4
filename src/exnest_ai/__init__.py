"""exnest-ai — async Python SDK for the Exnest multi-provider AI API.

Usage:
    from exnest_ai import ExnestClient, ChatOptions

    client = ExnestClient(api_key="sk-...")  # or set EXNEST_API_KEY
    resp = await client.chat(
        "openai:gpt-4o-mini",
        [{"role": "user", "content": "Hello"}],
        ChatOptions(max_tokens=100),
    )
"""

from __future__ import annotations

from exnest_ai.client import ExnestClient
from exnest_ai.config import ConfigSnapshot, ExnestSettings
from exnest_ai.exceptions import (
    ApiError,
    ExnestError,
    StreamError,
    TransportError,
    ValidationError,
)
from exnest_ai.request import SDK_VERSION as __version__
from exnest_ai.streaming import ChunkStream
from exnest_ai.types import (
    AttemptEvent,
    CatalogResponse,
    ChatOptions,
    ChatResponse,
    CompletionOptions,
    CompletionResponse,
    ErrorDetail,
    ErrorResponse,
    ExnestMessage,
    ExnestResponse,
    HealthStatus,
    StreamChunk,
    Usage,
)
from exnest_ai.wrapper import ExnestWrapper

__all__ = [
    "__version__",
    # Clients
    "ExnestClient",
    "ExnestWrapper",
    "ExnestSettings",
    "ConfigSnapshot",
    # Types
    "ExnestMessage",
    "ChatOptions",
    "CompletionOptions",
    "ExnestResponse",
    "ChatResponse",
    "CompletionResponse",
    "CatalogResponse",
    "ErrorResponse",
    "ErrorDetail",
    "Usage",
    "StreamChunk",
    "ChunkStream",
    "AttemptEvent",
    "HealthStatus",
    # Exceptions
    "ExnestError",
    "ValidationError",
    "TransportError",
    "StreamError",
    "ApiError",
]
