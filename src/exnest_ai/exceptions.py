"""Exception hierarchy for exnest-ai."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from exnest_ai.types import ErrorResponse


class ExnestError(Exception):
    """Base exception for all exnest-ai errors."""


class ValidationError(ExnestError, ValueError):
    """Raised when caller-supplied input is malformed.

    Always raised before any network activity and never retried.
    """


class TransportError(ExnestError):
    """Raised when no structurally valid payload could be obtained.

    Covers connection failures, timeouts and unparseable response bodies.
    Retried by the non-streaming executor, never surfaced from it.
    """

    def __init__(self, original: BaseException, *, timeout: bool = False) -> None:
        self.original = original
        self.timeout = timeout
        super().__init__(str(original) or type(original).__name__)


class StreamError(ExnestError):
    """Raised as the terminal failure of a streaming sequence."""

    def __init__(
        self,
        message: str,
        original: BaseException | None = None,
        response: ErrorResponse | None = None,
    ) -> None:
        self.original = original
        self.response = response
        super().__init__(message)


class ApiError(ExnestError):
    """A well-formed server answer that reports a failure.

    Responses are returned to the caller untouched; this exception is only
    raised when the caller opts in through ``ErrorResponse.raise_for_error()``.
    """

    def __init__(self, response: ErrorResponse) -> None:
        self.response = response
        self.code = response.error.code
        self.type = response.error.type
        super().__init__(f"Exnest API error [{self.code or 'unknown'}]: {response.error.message}")
