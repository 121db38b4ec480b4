"""OpenTelemetry tracing for Exnest API calls."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)

PACKAGE_TRACER = "exnest_ai"

# ── Optional OTEL imports ───────────────────────────────────────
try:
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    HAS_OTEL = True
except ImportError:
    HAS_OTEL = False

try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter,
    )

    HAS_OTLP = True
except ImportError:
    HAS_OTLP = False


# Module-level tracer (None when tracing is disabled)
_tracer: Any = None


def _span_exporter(exporter: str, endpoint: str) -> Any:
    """Exporter instance for ``exporter``, or None when it cannot be built."""
    if exporter == "console":
        return ConsoleSpanExporter()
    if exporter == "otlp":
        if not HAS_OTLP:
            logger.warning("OTLP exporter requested but opentelemetry-exporter-otlp not installed")
            return None
        return OTLPSpanExporter(endpoint=endpoint, insecure=True)
    logger.warning("Unknown trace exporter %r; tracing stays disabled", exporter)
    return None


def configure_tracing(
    exporter: str = "none",
    endpoint: str = "http://localhost:4317",
    service_name: str = "exnest-ai",
) -> bool:
    """Route Exnest request spans to ``exporter``.

    Args:
        exporter: One of "none", "console", "otlp".
        endpoint: OTLP collector endpoint (only used when exporter="otlp").
        service_name: ``service.name`` resource attribute.

    Returns:
        True when a tracer is active afterwards.
    """
    global _tracer
    _tracer = None

    if exporter == "none" or not HAS_OTEL:
        return False

    span_exporter = _span_exporter(exporter, endpoint)
    if span_exporter is None:
        return False

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(PACKAGE_TRACER)
    logger.info("Exnest tracing enabled", extra={"exporter": exporter, "service": service_name})
    return True


def get_tracer() -> Any:
    """Return the configured tracer, or None if tracing is disabled."""
    return _tracer


def disable_tracing() -> None:
    """Disable tracing (useful for tests)."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def traced_request(
    method: str,
    path: str,
    model: str | None = None,
    operation: str = "exnest.request",
) -> AsyncGenerator[dict[str, Any], None]:
    """Wrap one logical API call (all of its attempts) in a span.

    Usage:
        async with traced_request("POST", "/chat/completions", model) as span_data:
            ...
            span_data["attempts"] = 2
            span_data["response"] = response

    Recognised ``span_data`` keys: ``attempts`` (int) and ``response``
    (an envelope; its kind and error code become span attributes).
    """
    span_data: dict[str, Any] = {}

    if _tracer is None:
        yield span_data
        return

    with _tracer.start_as_current_span(operation) as span:
        span.set_attribute("http.method", method)
        span.set_attribute("exnest.path", path)
        span.set_attribute("exnest.model", model or "none")

        try:
            yield span_data
        except Exception as exc:
            span.set_status(trace.StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise
        else:
            if "attempts" in span_data:
                span.set_attribute("exnest.attempts", span_data["attempts"])
            response = span_data.get("response")
            if response is not None:
                span.set_attribute("exnest.kind", response.kind)
                if response.error is not None:
                    span.set_attribute("exnest.error_code", response.error.code or "unknown")
