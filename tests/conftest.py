"""Shared test fixtures for exnest-ai."""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from exnest_ai.client import ExnestClient
from exnest_ai.observability.logging import reset_logging
from exnest_ai.observability.tracing import disable_tracing
from exnest_ai.testing import FakeExnestServer, SleepRecorder


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep EXNEST_* variables from the developer's shell out of the tests."""
    for name in list(os.environ):
        if name.startswith("EXNEST_"):
            monkeypatch.delenv(name, raising=False)
    disable_tracing()
    yield
    reset_logging()
    disable_tracing()


@pytest.fixture
def server() -> FakeExnestServer:
    """Return a fresh FakeExnestServer."""
    return FakeExnestServer()


@pytest.fixture
def sleeper() -> SleepRecorder:
    """Backoff sleep that records waits instead of waiting."""
    return SleepRecorder()


@pytest.fixture
def client(server: FakeExnestServer, sleeper: SleepRecorder) -> ExnestClient:
    """ExnestClient wired to the fake server, 3 retries, 1s base delay."""
    return server.client(retries=3, retry_delay_ms=1000, sleep=sleeper)
