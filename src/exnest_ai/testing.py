"""Testing utilities shipped with exnest-ai.

Provides ``FakeExnestServer``, a scripted stand-in for the Exnest API that
plugs into ``ExnestClient`` / ``ExnestWrapper`` through an
``httpx.MockTransport``, so consumers can test their code without a network.

Usage::

    from exnest_ai.testing import FakeExnestServer

    server = FakeExnestServer()
    server.queue_failure()                       # first attempt: connection error
    server.queue_json({"choices": [{"message": {"role": "assistant", "content": "42"}}]})

    client = server.client()
    resp = await client.chat("openai:gpt-4o-mini", [{"role": "user", "content": "6*7?"}])
    assert resp.content == "42"
    assert server.call_count == 2
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from exnest_ai.client import ExnestClient
from exnest_ai.streaming import DONE_SENTINEL
from exnest_ai.wrapper import ExnestWrapper

FAKE_BASE_URL = "https://fake.exnest.test/v1"

Handler = Callable[[httpx.Request], Awaitable[httpx.Response]]


def sse_body(events: Iterable[Mapping[str, Any] | str], *, done: bool = True) -> bytes:
    """Frame ``events`` the way the Exnest API does.

    Mappings are JSON-encoded; strings are sent verbatim as the payload,
    which makes it easy to inject malformed events.
    """
    lines = [
        f"data: {event if isinstance(event, str) else json.dumps(event)}\n\n" for event in events
    ]
    if done:
        lines.append(f"data: {DONE_SENTINEL}\n\n")
    return "".join(lines).encode()


def chat_body(content: str = "Hello there", *, model: str = "fake-model") -> dict[str, Any]:
    """A successful ``chat.completion`` body whose single choice says ``content``."""
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1_700_000_000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5},
    }


def stream_event(content: str, *, id: str = "chunk-1", finish_reason: str | None = None) -> dict[str, Any]:
    """A single ``chat.completion.chunk`` event carrying ``content``."""
    return {
        "id": id,
        "object": "chat.completion.chunk",
        "created": 1_700_000_000,
        "model": "fake-model",
        "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": finish_reason}],
    }


@dataclass
class RecordedRequest:
    """One request received by ``FakeExnestServer``."""

    method: str
    path: str
    headers: dict[str, str]
    params: dict[str, str]
    body: Any = None


@dataclass
class SleepRecorder:
    """Async ``sleep`` replacement that records backoff waits instead of waiting."""

    waits: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class FakeExnestServer:
    """Scripted fake of the Exnest HTTP API.

    Each incoming request consumes the next queued reply, in order. When the
    queue is empty the default reply (``set_default_json``) is used; without
    one the request fails the test loudly.
    """

    def __init__(self, base_url: str = FAKE_BASE_URL) -> None:
        self.base_url = base_url
        self.requests: list[RecordedRequest] = []
        self._replies: deque[Handler] = deque()
        self._default: Handler | None = None

    # ── Scripting ───────────────────────────────────────────────

    def queue_json(
        self, body: Any, status_code: int = 200, *, delay: float = 0.0
    ) -> FakeExnestServer:
        """Reply with a JSON body, optionally after ``delay`` seconds."""
        self._replies.append(self._json_reply(body, status_code, delay))
        return self

    def queue_text(
        self, text: str, status_code: int = 200, content_type: str = "text/plain"
    ) -> FakeExnestServer:
        """Reply with a non-JSON body (e.g. an HTML error page)."""

        async def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, headers={"content-type": content_type}, text=text)

        self._replies.append(reply)
        return self

    def queue_failure(self, exc: Exception | None = None) -> FakeExnestServer:
        """Fail the exchange at the transport level (default: connection refused)."""
        error = exc or httpx.ConnectError("Connection refused")

        async def reply(request: httpx.Request) -> httpx.Response:
            raise error

        self._replies.append(reply)
        return self

    def queue_stream(
        self,
        events: Iterable[Mapping[str, Any] | str],
        *,
        done: bool = True,
        parts: int = 1,
        fail_with: Exception | None = None,
    ) -> FakeExnestServer:
        """Reply with a ``text/event-stream`` body.

        Args:
            events: Chunk payloads; see ``sse_body``.
            done: Append the ``[DONE]`` sentinel.
            parts: Split the body into this many network chunks, cutting
                through lines (and characters) to exercise buffering.
            fail_with: Raise this after the last part instead of ending cleanly.
        """
        return self.queue_stream_bytes(
            _split(sse_body(events, done=done), parts), fail_with=fail_with
        )

    def queue_stream_bytes(
        self, parts: Iterable[bytes], *, fail_with: Exception | None = None
    ) -> FakeExnestServer:
        """Reply with an event stream made of exactly these byte parts."""
        chunks = list(parts)

        async def body() -> AsyncIterator[bytes]:
            for chunk in chunks:
                yield chunk
            if fail_with is not None:
                raise fail_with

        async def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, headers={"content-type": "text/event-stream"}, content=body()
            )

        self._replies.append(reply)
        return self

    def set_default_json(self, body: Any, status_code: int = 200) -> FakeExnestServer:
        """Reply used once the queue is exhausted."""
        self._default = self._json_reply(body, status_code, 0.0)
        return self

    # ── Wiring ──────────────────────────────────────────────────

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def client(self, api_key: str = "test-key-1234", **kwargs: Any) -> ExnestClient:
        """An ``ExnestClient`` talking to this fake, without backoff delays."""
        kwargs.setdefault("base_url", self.base_url)
        kwargs.setdefault("retry_delay_ms", 0)
        return ExnestClient(api_key, transport=self.transport, **kwargs)

    def wrapper(self, api_key: str = "test-key-1234") -> ExnestWrapper:
        """An ``ExnestWrapper`` talking to this fake."""
        return ExnestWrapper(api_key, self.base_url, transport=self.transport)

    @property
    def call_count(self) -> int:
        """Number of requests received, failed ones included."""
        return len(self.requests)

    @property
    def last_request(self) -> RecordedRequest:
        return self.requests[-1]

    # ── Internals ───────────────────────────────────────────────

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(self._record(request))
        if self._replies:
            reply = self._replies.popleft()
        elif self._default is not None:
            reply = self._default
        else:
            raise AssertionError(
                f"FakeExnestServer: no reply queued for {request.method} {request.url.path}"
            )
        return await reply(request)

    def _record(self, request: httpx.Request) -> RecordedRequest:
        base_path = httpx.URL(self.base_url).path.rstrip("/")
        path = request.url.path
        if path.startswith(base_path):
            path = path[len(base_path):]
        content = request.content
        return RecordedRequest(
            method=request.method,
            path=path,
            headers=dict(request.headers),
            params=dict(request.url.params),
            body=json.loads(content) if content else None,
        )

    @staticmethod
    def _json_reply(body: Any, status_code: int, delay: float) -> Handler:
        async def reply(request: httpx.Request) -> httpx.Response:
            if delay:
                await asyncio.sleep(delay)
            return httpx.Response(status_code, json=body)

        return reply


def _split(data: bytes, parts: int) -> list[bytes]:
    """Cut ``data`` into ``parts`` roughly equal pieces."""
    if parts <= 1:
        return [data]
    size = max(1, -(-len(data) // parts))
    return [data[i : i + size] for i in range(0, len(data), size)]
