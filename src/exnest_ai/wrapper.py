"""ExnestWrapper — minimal surface for quick scripts.

One attempt per call, no timeout, no tuning knobs. Failures still come back
as ``ErrorResponse`` values, exactly like ``ExnestClient``.
"""

from __future__ import annotations

from collections.abc import Sequence

import httpx

from exnest_ai.config import ExnestSettings, apply_updates, mask_api_key
from exnest_ai.executor import RequestExecutor
from exnest_ai.request import build_catalog_request, build_chat_request, build_completion_request
from exnest_ai.streaming import ChunkStream
from exnest_ai.types import ChatOptions, ExnestMessage, ExnestResponse
from exnest_ai.validation import validate_chat_inputs, validate_model, validate_prompt


def _max_tokens(max_tokens: int | None) -> ChatOptions:
    return ChatOptions() if max_tokens is None else ChatOptions(max_tokens=max_tokens)


class ExnestWrapper:
    """Thin Exnest API wrapper.

    Usage:
        exnest = ExnestWrapper("sk-...")
        resp = await exnest.response("openai:gpt-4o-mini", "What is Python?")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = apply_updates(ExnestSettings(), {"api_key": api_key, "base_url": base_url})
        self._settings = apply_updates(settings, {"retries": 0, "timeout_ms": 0})
        self._settings.get_api_key()
        self._executor = RequestExecutor(transport)

    async def completion(
        self, model: str, prompt: str, max_tokens: int | None = None
    ) -> ExnestResponse:
        validate_prompt(model, prompt)
        request = build_completion_request(
            model, prompt, self._settings.get_api_key(), _max_tokens(max_tokens)
        )
        return await self._executor.execute(request, self._settings)

    async def chat(
        self, model: str, messages: Sequence[ExnestMessage], max_tokens: int | None = None
    ) -> ExnestResponse:
        validate_chat_inputs(model, messages)
        request = build_chat_request(
            model, messages, self._settings.get_api_key(), _max_tokens(max_tokens)
        )
        return await self._executor.execute(request, self._settings)

    async def response(self, model: str, input: str, max_tokens: int | None = None) -> ExnestResponse:
        """Single user message in, one chat response out."""
        validate_prompt(model, input)
        return await self.chat(model, [{"role": "user", "content": input}], max_tokens)

    def stream(
        self, model: str, messages: Sequence[ExnestMessage], max_tokens: int | None = None
    ) -> ChunkStream:
        validate_chat_inputs(model, messages)
        request = build_chat_request(
            model, messages, self._settings.get_api_key(), _max_tokens(max_tokens), stream=True
        )
        return self._executor.stream(request, self._settings)

    def stream_completion(
        self, model: str, prompt: str, max_tokens: int | None = None
    ) -> ChunkStream:
        validate_prompt(model, prompt)
        request = build_completion_request(
            model, prompt, self._settings.get_api_key(), _max_tokens(max_tokens), stream=True
        )
        return self._executor.stream(request, self._settings)

    async def get_models(self) -> ExnestResponse:
        return await self._executor.execute(build_catalog_request(), self._settings)

    async def get_model(self, model_name: str) -> ExnestResponse:
        validate_model(model_name)
        return await self._executor.execute(build_catalog_request(model_name), self._settings)

    def get_api_key_info(self) -> str:
        """Masked API key, safe to print."""
        return mask_api_key(self._settings.api_key)

    @property
    def base_url(self) -> str:
        return self._settings.base_url

    @base_url.setter
    def base_url(self, value: str) -> None:
        self._settings = apply_updates(self._settings, {"base_url": value})

    def set_api_key(self, api_key: str) -> None:
        self._settings = apply_updates(self._settings, {"api_key": api_key})
