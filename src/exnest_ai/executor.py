"""Request execution: the retry loop for buffered calls, one-shot streaming.

Buffered calls retry transport failures only. Any response whose body
decodes as JSON is returned as-is, whatever its HTTP status, because the
server already encodes success or failure in the payload.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from exnest_ai.config import ExnestSettings
from exnest_ai.errors import build_error_response, is_timeout
from exnest_ai.exceptions import TransportError
from exnest_ai.observability.tracing import traced_request
from exnest_ai.request import RequestEnvelope, build_headers
from exnest_ai.streaming import ChunkStream, stream_chunks
from exnest_ai.types import AttemptEvent, ExnestResponse, parse_response

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
DebugHook = Callable[[AttemptEvent], None]


def resolve_timeout(override_ms: int | None, default_ms: int) -> float | None:
    """Per-attempt timeout in seconds, or None for no limit.

    The smaller of the per-call override and the client default wins.
    A value of 0 means "no limit" and never wins over a real limit.
    """
    limits = [ms for ms in (override_ms, default_ms) if ms]
    if not limits:
        return None
    return min(limits) / 1000


class RequestExecutor:
    """Issues HTTP exchanges for ``ExnestClient`` and ``ExnestWrapper``.

    Holds no connection state: every attempt opens and closes its own
    ``httpx.AsyncClient``. ``transport`` lets tests (and
    ``exnest_ai.testing.FakeExnestServer``) replace the network, ``sleep``
    replaces the backoff timer.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        debug_hook: DebugHook | None = None,
    ) -> None:
        self._transport = transport
        self._sleep = sleep
        self._debug_hook = debug_hook

    def http_client(self) -> httpx.AsyncClient:
        """A fresh client; timeouts are enforced by the executor, not httpx."""
        return httpx.AsyncClient(transport=self._transport, timeout=None)

    async def execute(self, request: RequestEnvelope, settings: ExnestSettings) -> ExnestResponse:
        """Run ``request`` with retries and always return an envelope.

        ``settings`` is the caller's snapshot; it is read once here and never
        again during the loop.
        """
        api_key = settings.get_api_key()
        url = settings.base_url + request.path
        headers = build_headers(api_key)
        timeout = resolve_timeout(request.timeout_ms, settings.timeout_ms)
        delay = settings.retry_delay_ms / 1000
        max_attempts = settings.max_retries + 1
        debug = settings.debug

        def _before_sleep(retry_state: RetryCallState) -> None:
            wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self._log(
                debug,
                "Retrying Exnest request",
                path=request.path,
                attempt=retry_state.attempt_number,
                wait_seconds=wait,
            )

        attempts = 0
        async with traced_request(request.method, request.path, request.model) as span_data:
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(max_attempts),
                    wait=wait_incrementing(start=delay, increment=delay),
                    retry=retry_if_exception_type(TransportError),
                    sleep=self._sleep,
                    before_sleep=_before_sleep,
                    reraise=True,
                ):
                    with attempt:
                        attempts = attempt.retry_state.attempt_number
                        response = await self._attempt(
                            request, url, headers, timeout, attempts, max_attempts, debug
                        )
            except TransportError as exc:
                logger.warning(
                    "Exnest request failed after %d attempt(s): %s",
                    attempts,
                    exc,
                    extra={"path": request.path, "timeout": is_timeout(exc)},
                )
                response = build_error_response(exc)

            span_data["attempts"] = attempts
            span_data["response"] = response

        return response

    async def _attempt(
        self,
        request: RequestEnvelope,
        url: str,
        headers: dict[str, str],
        timeout: float | None,
        attempt: int,
        max_attempts: int,
        debug: bool,
    ) -> ExnestResponse:
        """One HTTP exchange, bounded by ``timeout``.

        Raises:
            TransportError: On connection failure, timeout, or a body that
                is not JSON.
        """
        event: dict[str, Any] = {
            "method": request.method,
            "path": request.path,
            "attempt": attempt,
            "max_attempts": max_attempts,
        }
        self._observe(AttemptEvent(**event, outcome="start"), debug)
        try:
            async with self.http_client() as client, asyncio.timeout(timeout):
                http_response = await client.request(
                    request.method,
                    url,
                    headers=headers,
                    params=request.params,
                    json=request.body,
                )
            body = http_response.json()
        except (httpx.HTTPError, httpx.InvalidURL, TimeoutError, ValueError) as exc:
            timed_out = is_timeout(exc)
            error = "timeout" if timed_out else str(exc) or type(exc).__name__
            self._observe(AttemptEvent(**event, outcome="failure", error=error), debug)
            raise TransportError(exc, timeout=timed_out) from exc

        self._observe(
            AttemptEvent(**event, outcome="response", status_code=http_response.status_code),
            debug,
        )
        return parse_response(body, request.kind)

    def stream(self, request: RequestEnvelope, settings: ExnestSettings) -> ChunkStream:
        """Open a lazily started stream. No retries."""
        api_key = settings.get_api_key()
        self._log(settings.debug, "Opening Exnest stream", path=request.path)
        return ChunkStream(
            stream_chunks(
                self.http_client,
                request,
                url=settings.base_url + request.path,
                headers=build_headers(api_key, stream=True),
                timeout=resolve_timeout(request.timeout_ms, settings.timeout_ms),
            )
        )

    def _observe(self, event: AttemptEvent, debug: bool) -> None:
        """Log an attempt event and, in debug mode, hand it to the hook."""
        self._log(debug, f"Exnest attempt {event.outcome}", **asdict(event))
        if not debug or self._debug_hook is None:
            return
        try:
            self._debug_hook(event)
        except Exception:
            logger.exception("debug_hook raised; ignoring", extra={"path": event.path})

    @staticmethod
    def _log(debug: bool, message: str, **fields: Any) -> None:
        logger.log(logging.INFO if debug else logging.DEBUG, message, extra=fields)
