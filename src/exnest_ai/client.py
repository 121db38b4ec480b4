"""ExnestClient — the configurable client most consumers should use."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import httpx

from exnest_ai.config import ConfigSnapshot, ExnestSettings, apply_updates, mask_api_key
from exnest_ai.errors import build_error_response
from exnest_ai.exceptions import ValidationError
from exnest_ai.executor import DebugHook, RequestExecutor, Sleep
from exnest_ai.observability.logging import configure_logging
from exnest_ai.observability.tracing import configure_tracing
from exnest_ai.request import (
    COMPLETIONS_PATH,
    build_catalog_request,
    build_chat_request,
    build_completion_request,
)
from exnest_ai.streaming import ChunkStream
from exnest_ai.types import ChatOptions, ExnestMessage, ExnestResponse, HealthStatus
from exnest_ai.validation import validate_chat_inputs, validate_model, validate_prompt

logger = logging.getLogger(__name__)

CONNECTION_TEST_MODEL = "openai:gpt-3.5-turbo"

Options = ChatOptions | Mapping[str, Any] | None


class ExnestClient:
    """Exnest API client with retries, timeouts and streaming.

    Usage:
        # Reads EXNEST_* env vars for anything not passed explicitly
        client = ExnestClient(api_key="sk-...")

        resp = await client.chat(
            "openai:gpt-4o-mini",
            [{"role": "user", "content": "Hello"}],
            ChatOptions(temperature=0.7, max_tokens=200),
        )
        if resp.error:
            print(resp.error.code, resp.error.message)
        else:
            print(resp.content)

        async with client.stream("openai:gpt-4o-mini", messages) as chunks:
            async for chunk in chunks:
                print(chunk.content, end="")

    Non-streaming calls never raise for network or API failures; they return
    an ``ErrorResponse``. Malformed input raises ``ValidationError`` before
    anything is sent.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout_ms: int | None = None,
        retries: int | None = None,
        retry_delay_ms: int | None = None,
        debug: bool | None = None,
        settings: ExnestSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        debug_hook: DebugHook | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        overrides = {
            "api_key": api_key,
            "base_url": base_url,
            "timeout_ms": timeout_ms,
            "retries": retries,
            "retry_delay_ms": retry_delay_ms,
            "debug": debug,
        }
        self._settings = apply_updates(settings or ExnestSettings(), overrides)
        self._settings.get_api_key()
        self._executor = RequestExecutor(transport, sleep=sleep, debug_hook=debug_hook)

        configure_logging(
            level=self._settings.log_level,
            fmt=self._settings.log_format,
            debug=self._settings.debug,
        )
        if self._settings.trace_enabled:
            configure_tracing(
                exporter=self._settings.trace_exporter,
                endpoint=self._settings.trace_endpoint,
                service_name=self._settings.trace_service_name,
            )

    # ── Completions ─────────────────────────────────────────────

    async def chat(
        self,
        model: str,
        messages: Sequence[ExnestMessage],
        options: Options = None,
    ) -> ExnestResponse:
        """Chat completion over a message list.

        Args:
            model: Model identifier, e.g. "openai:gpt-4o-mini" or "anthropic:claude-3".
            messages: Conversation messages.
            options: ``ChatOptions`` or a mapping of its fields.

        Returns:
            ``ChatResponse`` on success, ``ErrorResponse`` otherwise.

        Raises:
            ValidationError: If the model, messages or options are malformed.
        """
        validate_chat_inputs(model, messages)
        settings = self._settings
        request = build_chat_request(model, messages, settings.get_api_key(), options)
        return await self._executor.execute(request, settings)

    async def completion(self, model: str, prompt: str, options: Options = None) -> ExnestResponse:
        """Text completion for a single prompt."""
        validate_prompt(model, prompt)
        settings = self._settings
        request = build_completion_request(model, prompt, settings.get_api_key(), options)
        return await self._executor.execute(request, settings)

    async def responses(self, model: str, input: str, max_tokens: int = 200) -> ExnestResponse:
        """Single-turn convenience call: one user message, legacy endpoint."""
        validate_prompt(model, input)
        settings = self._settings
        request = build_chat_request(
            model,
            [{"role": "user", "content": input}],
            settings.get_api_key(),
            ChatOptions(max_tokens=max_tokens),
            path=COMPLETIONS_PATH,
        )
        return await self._executor.execute(request, settings)

    # ── Streaming ───────────────────────────────────────────────

    def stream(
        self,
        model: str,
        messages: Sequence[ExnestMessage],
        options: Options = None,
    ) -> ChunkStream:
        """Stream a chat completion.

        Input is validated immediately; the connection opens on first
        iteration. Streams are not retried.

        Raises:
            ValidationError: Immediately, for malformed input.
            StreamError: While iterating, on a failed or non-stream response.
        """
        validate_chat_inputs(model, messages)
        settings = self._settings
        request = build_chat_request(
            model, messages, settings.get_api_key(), options, stream=True
        )
        return self._executor.stream(request, settings)

    def stream_completion(self, model: str, prompt: str, options: Options = None) -> ChunkStream:
        """Stream a text completion for a single prompt."""
        validate_prompt(model, prompt)
        settings = self._settings
        request = build_completion_request(
            model, prompt, settings.get_api_key(), options, stream=True
        )
        return self._executor.stream(request, settings)

    # ── Model catalog ───────────────────────────────────────────

    async def get_models(
        self, *, openai_compatible: bool = False, timeout_ms: int | None = None
    ) -> ExnestResponse:
        """List every available model."""
        request = build_catalog_request(openai_compatible=openai_compatible, timeout_ms=timeout_ms)
        return await self._executor.execute(request, self._settings)

    async def get_model(
        self, model_name: str, *, openai_compatible: bool = False, timeout_ms: int | None = None
    ) -> ExnestResponse:
        """Look up a single model by name."""
        validate_model(model_name)
        request = build_catalog_request(
            model_name, openai_compatible=openai_compatible, timeout_ms=timeout_ms
        )
        return await self._executor.execute(request, self._settings)

    async def get_models_by_provider(
        self, provider: str, *, openai_compatible: bool = False, timeout_ms: int | None = None
    ) -> ExnestResponse:
        """List the models served by one provider, e.g. "openai"."""
        if not provider or not isinstance(provider, str):
            raise ValidationError("Provider must be a non-empty string")
        request = build_catalog_request(
            "provider", provider, openai_compatible=openai_compatible, timeout_ms=timeout_ms
        )
        return await self._executor.execute(request, self._settings)

    # ── Configuration ───────────────────────────────────────────

    def get_config(self) -> ConfigSnapshot:
        """Current configuration, with the API key masked."""
        return ConfigSnapshot.from_settings(self._settings)

    def get_api_key_info(self) -> str:
        """The API key with everything but the last four characters masked."""
        return mask_api_key(self._settings.api_key)

    def update_config(self, **changes: Any) -> None:
        """Change any of api_key, base_url, timeout_ms, retries, retry_delay_ms, debug.

        Falsy values are applied (``debug=False``, ``timeout_ms=0``); only
        ``None`` means "leave unchanged". Calls already in flight keep the
        configuration they started with.

        Raises:
            ValidationError: On an unknown key or an invalid value.
        """
        self._settings = apply_updates(self._settings, changes)
        logger.debug("Exnest client configuration updated", extra={"fields": sorted(changes)})

    # ── Diagnostics ─────────────────────────────────────────────

    async def test_connection(self) -> ExnestResponse:
        """Send a tiny canned request; failures come back as ``ErrorResponse``."""
        try:
            return await self.responses(CONNECTION_TEST_MODEL, "Hello", 5)
        except Exception as exc:
            logger.warning("Connection test raised: %s", exc)
            return build_error_response(exc)

    async def health_check(self) -> HealthStatus:
        """Run ``test_connection`` and report the outcome with the current config."""
        result = await self.test_connection()
        return HealthStatus(
            status="unhealthy" if result.error is not None else "healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            config=self.get_config(),
        )
