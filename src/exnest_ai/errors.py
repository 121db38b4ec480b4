"""Turns transport failures into response-shaped error envelopes."""

from __future__ import annotations

import asyncio
from typing import Any, cast

import httpx

from exnest_ai.exceptions import TransportError
from exnest_ai.types import ErrorResponse, parse_response

TIMEOUT_MESSAGE = "Request timeout"
NETWORK_MESSAGE = "Network error occurred"


def is_timeout(exc: BaseException | None) -> bool:
    """True for any flavour of per-attempt timeout."""
    if isinstance(exc, TransportError):
        return exc.timeout or is_timeout(exc.original)
    return isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException))


def build_error_body(exc: BaseException | None) -> dict[str, Any]:
    """Build the ``{"error": {...}}`` body a server would send for ``exc``."""
    original = exc.original if isinstance(exc, TransportError) else exc
    details = str(original) if original is not None else ""

    if is_timeout(exc):
        message, code, category = TIMEOUT_MESSAGE, "timeout", "timeout_error"
    else:
        message, code, category = details or NETWORK_MESSAGE, "network_error", "client_error"

    return {
        "error": {
            "message": message,
            "type": category,
            "code": code,
            "exnest": {
                "details": details or message,
                "original_error": type(original).__name__ if original is not None else None,
            },
        }
    }


def build_error_response(exc: BaseException | None) -> ErrorResponse:
    """Normalize the last failure into an ``ErrorResponse``.

    The result goes through the same parsing path as a real server payload,
    so callers handle both with one code path.
    """
    return cast(ErrorResponse, parse_response(build_error_body(exc), "error"))
