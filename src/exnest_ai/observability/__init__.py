"""Observability sub-package — tracing and logging."""

from exnest_ai.observability.logging import configure_logging, reset_logging
from exnest_ai.observability.tracing import (
    configure_tracing,
    disable_tracing,
    get_tracer,
    traced_request,
)

__all__ = [
    "configure_logging",
    "configure_tracing",
    "disable_tracing",
    "get_tracer",
    "reset_logging",
    "traced_request",
]
