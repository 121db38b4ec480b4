"""Core data types for exnest-ai."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Literal,
    TypedDict,
    TypeVar,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from exnest_ai.exceptions import ApiError

if TYPE_CHECKING:
    from exnest_ai.config import ConfigSnapshot

logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)

Role = Literal["system", "user", "assistant"]
VALID_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})

ResponseKind = Literal["chat", "completion", "catalog", "error"]


class ExnestMessage(TypedDict):
    """A single message in the conversation (OpenAI message format)."""

    role: Role
    content: str


class ChatOptions(BaseModel):
    """Optional per-call settings.

    Only fields the caller explicitly sets are sent to the server, so
    ``ChatOptions(temperature=0)`` sends ``"temperature": 0`` while
    ``ChatOptions()`` sends nothing and lets the server pick its defaults.
    """

    model_config = ConfigDict(extra="forbid")

    temperature: float | None = Field(default=None, ge=0.0)
    max_tokens: int | None = Field(default=None, ge=0)
    timeout_ms: int | None = Field(
        default=None,
        ge=0,
        description="Per-call timeout override. Client-side only, never sent.",
    )
    openai_compatible: bool | None = None
    exnest_metadata: bool | None = None
    stream: bool | None = Field(
        default=None,
        description="Set by the streaming methods; buffered calls never send it.",
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize the explicitly set options for the request body."""
        return self.model_dump(
            exclude_unset=True, exclude_none=True, exclude={"timeout_ms", "stream"}
        )


CompletionOptions = ChatOptions


# ── Response envelopes ──────────────────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")


def _text(content: Any) -> str:
    """Flatten a content slot: a string, or a list of strings / ``{"text": ...}`` blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            _text(part.get("text") if isinstance(part, dict) else part) for part in content
        )
    return ""


def _first(items: Any) -> Any:
    return items[0] if isinstance(items, list) and items else None


class Usage(_Payload):
    """Token counts reported by the server."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ErrorDetail(_Payload):
    """The ``error`` slot of a response envelope."""

    message: str = ""
    type: str | None = None
    code: str | None = None
    exnest: Any = None


class ChatMessage(_Payload):
    role: str = "assistant"
    content: str | list[Any] | None = None


class ChatChoice(_Payload):
    index: int = 0
    message: ChatMessage | None = None
    finish_reason: str | None = None


class CompletionChoice(_Payload):
    index: int = 0
    text: str | None = None
    finish_reason: str | None = None


class _ResponseBase(_Payload):
    id: str | int | None = None
    object: str | None = None
    created: int | float | None = None
    model: str | None = None
    usage: Usage | None = None
    exnest: Any = None
    error: ErrorDetail | None = None

    _raw: Any = PrivateAttr(default=None)

    @property
    def raw(self) -> Any:
        """The response body exactly as the server sent it."""
        return self._raw

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def raise_for_error(self) -> None:
        """Raise ``ApiError`` if this response carries an error payload."""
        if self.error is not None:
            raise ApiError(self)  # type: ignore[arg-type]


class ChatResponse(_ResponseBase):
    """Successful ``chat.completion`` result."""

    kind: Literal["chat"] = "chat"
    choices: list[ChatChoice] = Field(default_factory=list)

    @property
    def content(self) -> str:
        """Content of the first choice, or an empty string."""
        message = getattr(_first(self.choices), "message", None)
        return _text(getattr(message, "content", None))


class CompletionResponse(_ResponseBase):
    """Successful ``text_completion`` result."""

    kind: Literal["completion"] = "completion"
    choices: list[CompletionChoice] = Field(default_factory=list)

    @property
    def content(self) -> str:
        """Text of the first choice, or an empty string."""
        return _text(getattr(_first(self.choices), "text", None))


class CatalogResponse(_ResponseBase):
    """Model catalog lookup. The payload is passed through untouched."""

    kind: Literal["catalog"] = "catalog"
    data: Any = None


class ErrorResponse(_ResponseBase):
    """A server-side or client-synthesized failure."""

    kind: Literal["error"] = "error"
    error: ErrorDetail


ExnestResponse = Annotated[
    Union[ChatResponse, CompletionResponse, CatalogResponse, ErrorResponse],
    Field(discriminator="kind"),
]

_RESPONSE_TYPES: dict[str, type[_ResponseBase]] = {
    "chat": ChatResponse,
    "completion": CompletionResponse,
    "catalog": CatalogResponse,
    "error": ErrorResponse,
}


def _coerce_error(body: dict[str, Any]) -> dict[str, Any]:
    """Normalize the ``error`` slot into the ``ErrorDetail`` shape."""
    err = body["error"]
    detail: dict[str, Any] = dict(err) if isinstance(err, dict) else {"message": err}
    message = detail.get("message") or detail.get("details") or body.get("message") or ""
    detail["message"] = str(message)
    for key in ("type", "code"):
        if detail.get(key) is not None:
            detail[key] = str(detail[key])
    return {**body, "error": detail}


@lru_cache(maxsize=None)
def _adapter(annotation: Any) -> TypeAdapter[Any]:
    return TypeAdapter(annotation)


def _nested_model(annotation: Any) -> type[BaseModel] | None:
    for candidate in (annotation, *get_args(annotation)):
        if get_origin(candidate) is not None or not isinstance(candidate, type):
            continue
        if issubclass(candidate, BaseModel):
            return candidate
    return None


def _salvage(annotation: Any, value: Any) -> Any:
    """Best typed form of one field value; the raw value when nothing fits."""
    try:
        return _adapter(annotation).validate_python(value)
    except PydanticValidationError:
        pass
    if get_origin(annotation) is list and isinstance(value, list):
        item_model = _nested_model(get_args(annotation)[0])
        if item_model is not None:
            return [validate_leniently(item_model, v) if isinstance(v, dict) else v for v in value]
        return value
    model_cls = _nested_model(annotation)
    if model_cls is not None and isinstance(value, dict):
        return validate_leniently(model_cls, value)
    return value


def validate_leniently(model_cls: type[_M], data: dict[str, Any]) -> _M:
    """Validate ``data``; on failure keep every field that does validate.

    Fields that do not fit their type are kept as sent, and nested models
    are salvaged the same way, so one off-schema value never hides the
    rest of the payload.
    """
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        logger.warning(
            "Payload does not match %s, keeping the fields that do",
            model_cls.__name__,
            extra={"errors": exc.error_count()},
        )
    values = dict(data)
    for name, info in model_cls.model_fields.items():
        if name in data:
            values[name] = _salvage(info.annotation, data[name])
    return model_cls.model_construct(**values)


def parse_response(body: Any, kind: ResponseKind) -> ExnestResponse:
    """Wrap a decoded response body in the matching envelope type.

    A body carrying an ``error`` field is always an ``ErrorResponse`` whose
    ``error`` is a proper ``ErrorDetail``. Bodies whose shape does not fit
    the typed fields are still returned, since the server's answer is
    authoritative; see ``validate_leniently``.
    """
    data: dict[str, Any] = body if isinstance(body, dict) else {"data": body}
    if data.get("error"):
        kind = "error"
        data = _coerce_error(data)

    response = validate_leniently(_RESPONSE_TYPES[kind], {**data, "kind": kind})
    response._raw = body
    return response  # type: ignore[return-value]


# ── Streaming ───────────────────────────────────────────────────


class StreamDelta(_Payload):
    role: str | None = None
    content: str | list[Any] | None = None


class StreamChoice(_Payload):
    index: int = 0
    delta: StreamDelta = Field(default_factory=StreamDelta)
    finish_reason: str | None = None


class StreamChunk(_Payload):
    """One incremental unit of a streamed completion."""

    id: str | int | None = None
    object: str | None = None
    created: int | float | None = None
    model: str | None = None
    choices: list[StreamChoice] = Field(default_factory=list)

    @property
    def content(self) -> str:
        """Concatenated content fragments of every choice in this chunk."""
        if not isinstance(self.choices, list):
            return ""
        return "".join(
            _text(getattr(getattr(choice, "delta", None), "content", None))
            for choice in self.choices
        )


# ── Diagnostics ─────────────────────────────────────────────────


@dataclass(frozen=True)
class AttemptEvent:
    """One observation of the retry loop, delivered to ``debug_hook``."""

    method: str
    path: str
    attempt: int
    max_attempts: int
    outcome: Literal["start", "response", "failure"]
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class HealthStatus:
    """Result of ``ExnestClient.health_check()``."""

    status: Literal["healthy", "unhealthy"]
    timestamp: str
    config: ConfigSnapshot
