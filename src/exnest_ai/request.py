"""Request envelope construction.

Every call builds a fresh ``RequestEnvelope``. Optional fields only reach
the wire when the caller explicitly set them; see ``ChatOptions.to_payload``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from exnest_ai.exceptions import ValidationError
from exnest_ai.types import ChatOptions, ResponseKind
from exnest_ai.validation import copy_messages

SDK_VERSION = "0.1.0"
USER_AGENT = f"exnest-ai-python/{SDK_VERSION}"

CHAT_PATH = "/chat/completions"
COMPLETIONS_PATH = "/completions"
MODELS_PATH = "/models"

EVENT_STREAM = "text/event-stream"


@dataclass(frozen=True)
class RequestEnvelope:
    """Everything the executors need to issue one logical call."""

    method: Literal["GET", "POST"]
    path: str
    kind: ResponseKind
    body: dict[str, Any] | None = None
    params: dict[str, str] = field(default_factory=dict)
    timeout_ms: int | None = None

    @property
    def model(self) -> str | None:
        if self.body is None:
            return None
        return self.body.get("model")


def coerce_options(options: ChatOptions | Mapping[str, Any] | None) -> ChatOptions:
    """Accept ``ChatOptions``, a plain mapping of option fields, or None."""
    if options is None:
        return ChatOptions()
    if isinstance(options, ChatOptions):
        return options
    try:
        return ChatOptions.model_validate(dict(options))
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid options: {exc.errors()[0]['msg']}") from exc


def build_chat_request(
    model: str,
    messages: Sequence[Mapping[str, Any]],
    api_key: str,
    options: ChatOptions | Mapping[str, Any] | None = None,
    *,
    path: str = CHAT_PATH,
    stream: bool = False,
) -> RequestEnvelope:
    """Build a chat request over ``messages``.

    ``path`` defaults to the chat endpoint; the legacy single-turn flow posts
    the same body to ``/completions``.
    """
    opts = coerce_options(options)
    body: dict[str, Any] = {
        "model": model,
        "messages": copy_messages(messages),
        "api_key": api_key,
    }
    body.update(opts.to_payload())
    if stream:
        body["stream"] = True
    return RequestEnvelope(
        method="POST",
        path=path,
        kind="chat",
        body=body,
        timeout_ms=opts.timeout_ms,
    )


def build_completion_request(
    model: str,
    prompt: str,
    api_key: str,
    options: ChatOptions | Mapping[str, Any] | None = None,
    *,
    stream: bool = False,
) -> RequestEnvelope:
    """Build a text completion request for a single prompt."""
    opts = coerce_options(options)
    body: dict[str, Any] = {"model": model, "prompt": prompt, "api_key": api_key}
    body.update(opts.to_payload())
    if stream:
        body["stream"] = True
    return RequestEnvelope(
        method="POST",
        path=COMPLETIONS_PATH,
        kind="completion",
        body=body,
        timeout_ms=opts.timeout_ms,
    )


def build_catalog_request(
    *segments: str,
    openai_compatible: bool = False,
    timeout_ms: int | None = None,
) -> RequestEnvelope:
    """Build a GET against ``/models``, optionally extended by path segments.

    ``build_catalog_request("provider", "openai")`` targets
    ``/models/provider/openai``.
    """
    path = MODELS_PATH + "".join(f"/{quote(segment, safe=':@')}" for segment in segments)
    params = {"openai_compatible": "true"} if openai_compatible else {}
    return RequestEnvelope(
        method="GET",
        path=path,
        kind="catalog",
        params=params,
        timeout_ms=timeout_ms,
    )


def build_headers(api_key: str, *, stream: bool = False) -> dict[str, str]:
    """Headers sent with every request. The credential also goes in the JSON body."""
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "Authorization": f"Bearer {api_key}",
    }
    if stream:
        headers["Accept"] = EVENT_STREAM
    return headers
