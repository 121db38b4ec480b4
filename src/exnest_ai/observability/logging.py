"""Structured logging configuration for exnest-ai."""

from __future__ import annotations

import logging
from typing import Any

PACKAGE_LOGGER = "exnest_ai"

_CONFIGURED = False

# ── Optional structlog import ───────────────────────────────────
try:
    import structlog
    from structlog.contextvars import merge_contextvars

    HAS_STRUCTLOG = True
except ImportError:
    HAS_STRUCTLOG = False


def configure_logging(
    level: str = "INFO",
    fmt: str = "json",
    debug: bool = False,
) -> None:
    """Attach a handler to the ``exnest_ai`` logger.

    Only the package logger is touched, never the root logger, so the host
    application's logging setup is left alone. Runs once per process.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR).
        fmt: Output format, "json" or "console".
        debug: Force DEBUG level regardless of ``level``.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    numeric_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    if HAS_STRUCTLOG:
        handler.setFormatter(_structlog_formatter(fmt))
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(numeric_level)
    package_logger.propagate = False


def _structlog_formatter(fmt: str) -> logging.Formatter:
    """Render stdlib records (including ``extra=`` fields) through structlog."""
    shared_processors: list[Any] = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )


def reset_logging() -> None:
    """Drop the package handler and allow reconfiguration (useful for tests)."""
    global _CONFIGURED
    _CONFIGURED = False
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
