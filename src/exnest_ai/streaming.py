"""Server-Sent-Events streaming for completions.

The server frames each chunk as ``data: {json}`` followed by a blank line
and ends the stream with ``data: [DONE]``. Streams are never retried: a
failure mid-stream ends the sequence with ``StreamError``.
"""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncGenerator, Callable, Iterable
from typing import Any

import httpx

from exnest_ai.exceptions import StreamError
from exnest_ai.request import EVENT_STREAM, RequestEnvelope
from exnest_ai.types import ErrorResponse, StreamChunk, parse_response, validate_leniently

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
_DEFAULT_FAILURE = "Streaming request failed"


class EventStreamDecoder:
    """Turns raw byte chunks into complete text lines.

    Multi-byte characters split across network chunks are reassembled, and
    a partial trailing line is held back until more data (or ``flush``).
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[str]:
        self._buffer += self._decoder.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return whatever is left once the body has ended."""
        tail = (self._buffer + self._decoder.decode(b"", final=True)).rstrip("\r")
        self._buffer = ""
        return [tail] if tail else []


def extract_payload(line: str) -> str | None:
    """Payload of a ``data:`` line, or None for any other line."""
    if not line.startswith(DATA_PREFIX):
        return None
    return line[len(DATA_PREFIX):].strip()


def parse_chunk(payload: str) -> StreamChunk | None:
    """Parse one event payload; malformed events are logged and skipped."""
    try:
        data = json.loads(payload)
    except ValueError:
        data = None
    if not isinstance(data, dict):
        logger.debug("Skipping malformed stream event", extra={"payload": payload[:200]})
        return None
    return validate_leniently(StreamChunk, data)


def decode_events(lines: Iterable[str]) -> tuple[list[StreamChunk], bool]:
    """Parse a batch of lines.

    Returns:
        The chunks found, and whether the end-of-stream sentinel was seen.
        Lines after the sentinel are ignored.
    """
    chunks: list[StreamChunk] = []
    for line in lines:
        payload = extract_payload(line)
        if payload is None:
            continue
        if payload == DONE_SENTINEL:
            return chunks, True
        chunk = parse_chunk(payload)
        if chunk is not None:
            chunks.append(chunk)
    return chunks, False


def _non_stream_failure(raw: bytes) -> StreamError:
    """Build the error for a response that did not come back as a stream."""
    response: ErrorResponse | None = None
    message = _DEFAULT_FAILURE
    try:
        body: Any = json.loads(raw)
    except ValueError:
        body = None

    if isinstance(body, dict):
        if body.get("error"):
            parsed = parse_response(body, "error")
            if isinstance(parsed, ErrorResponse):
                response = parsed
                message = parsed.error.message or message
        elif body.get("message"):
            message = str(body["message"])

    return StreamError(f"Streaming failed: {message}", response=response)


async def stream_chunks(
    client_factory: Callable[[], httpx.AsyncClient],
    request: RequestEnvelope,
    *,
    url: str,
    headers: dict[str, str],
    timeout: float | None,
) -> AsyncGenerator[StreamChunk, None]:
    """Yield chunks of one streamed exchange.

    ``timeout`` (seconds) bounds the whole stream, not each read. The
    response and the HTTP client are closed on every exit path, including
    the consumer closing the generator early.

    Raises:
        StreamError: On a non-stream response, a transport failure, or the
            deadline expiring.
    """
    deadline = None if timeout is None else asyncio.get_running_loop().time() + timeout

    try:
        async with client_factory() as client:
            http_request = client.build_request(
                request.method, url, headers=headers, params=request.params, json=request.body
            )
            async with asyncio.timeout_at(deadline):
                response = await client.send(http_request, stream=True)

            try:
                if EVENT_STREAM not in response.headers.get("content-type", ""):
                    async with asyncio.timeout_at(deadline):
                        raw = await response.aread()
                    raise _non_stream_failure(raw)

                decoder = EventStreamDecoder()
                body = response.aiter_bytes()
                while True:
                    try:
                        async with asyncio.timeout_at(deadline):
                            data = await anext(body)
                    except StopAsyncIteration:
                        break

                    chunks, done = decode_events(decoder.feed(data))
                    for chunk in chunks:
                        yield chunk
                    if done:
                        return

                chunks, _ = decode_events(decoder.flush())
                for chunk in chunks:
                    yield chunk
            finally:
                await response.aclose()
    except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, TimeoutError) as exc:
        if isinstance(exc, TimeoutError):
            reason = "Request timeout"
        else:
            reason = str(exc) or type(exc).__name__
        logger.warning("Exnest stream failed: %s", reason, extra={"path": request.path})
        raise StreamError(f"Streaming failed: {reason}", original=exc) from exc


class ChunkStream:
    """Lazy, single-use sequence of ``StreamChunk``.

    Iterate with ``async for``. The connection opens on the first pull and
    is released when the sequence ends, fails, or ``aclose()`` is called.
    Prefer ``async with`` when the consumer may stop early::

        async with client.stream(model, messages) as chunks:
            async for chunk in chunks:
                print(chunk.content, end="")
    """

    def __init__(self, chunks: AsyncGenerator[StreamChunk, None]) -> None:
        self._chunks = chunks

    def __aiter__(self) -> ChunkStream:
        return self

    async def __anext__(self) -> StreamChunk:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        await self._chunks.aclose()

    async def __aenter__(self) -> ChunkStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def collect_text(self) -> str:
        """Consume the rest of the stream and join its content fragments."""
        parts: list[str] = []
        async with self:
            async for chunk in self:
                parts.append(chunk.content)
        return "".join(parts)
