"""Tests for the retry loop in RequestExecutor."""

from __future__ import annotations

import httpx
import pytest

from exnest_ai.executor import resolve_timeout
from exnest_ai.testing import FakeExnestServer, SleepRecorder, chat_body
from exnest_ai.types import AttemptEvent, ChatOptions, ChatResponse, ErrorResponse

MODEL = "openai:gpt-4o-mini"
USER_HI = [{"role": "user", "content": "hi"}]
CHAT_BODY = chat_body()


@pytest.mark.unit
class TestResolveTimeout:
    @pytest.mark.parametrize(
        ("override", "default", "expected"),
        [
            (None, 30_000, 30.0),
            (5_000, 30_000, 5.0),
            (60_000, 30_000, 30.0),
            (None, 0, None),
            (0, 0, None),
            (2_000, 0, 2.0),
            (0, 1_500, 1.5),
        ],
    )
    def test_smaller_nonzero_limit_wins(
        self, override: int | None, default: int, expected: float | None
    ) -> None:
        assert resolve_timeout(override, default) == expected


@pytest.mark.unit
class TestRetries:
    async def test_success_first_try(self, client, server: FakeExnestServer, sleeper) -> None:
        server.queue_json(CHAT_BODY)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ChatResponse)
        assert resp.content == "Hello there"
        assert server.call_count == 1
        assert sleeper.waits == []

    async def test_recovers_after_two_failures(
        self, client, server: FakeExnestServer, sleeper: SleepRecorder
    ) -> None:
        server.queue_failure().queue_failure().queue_json(CHAT_BODY)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ChatResponse)
        assert server.call_count == 3
        assert sleeper.waits == [1.0, 2.0]

    async def test_exhausted_retries_return_error(
        self, client, server: FakeExnestServer, sleeper: SleepRecorder
    ) -> None:
        """Linear backoff: delay * 1, delay * 2, delay * 3, then give up."""
        for _ in range(4):
            server.queue_failure(httpx.ConnectError("Connection refused"))
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ErrorResponse)
        assert resp.error.code == "network_error"
        assert resp.error.type == "client_error"
        assert resp.error.message == "Connection refused"
        assert server.call_count == 4
        assert sleeper.waits == [1.0, 2.0, 3.0]

    @pytest.mark.parametrize("retries", [0, 1, 2])
    async def test_attempt_count(self, server: FakeExnestServer, retries: int) -> None:
        for _ in range(5):
            server.queue_failure()
        client = server.client(retries=retries, sleep=SleepRecorder())
        await client.chat(MODEL, USER_HI)
        assert server.call_count == retries + 1

    async def test_error_payload_is_not_retried(
        self, client, server: FakeExnestServer, sleeper: SleepRecorder
    ) -> None:
        body = {"error": {"message": "Insufficient balance", "type": "billing_error", "code": 402}}
        server.queue_json(body, status_code=402)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ErrorResponse)
        assert resp.error.message == "Insufficient balance"
        assert resp.error.code == "402"
        assert server.call_count == 1
        assert sleeper.waits == []

    async def test_non_json_body_is_retried(
        self, client, server: FakeExnestServer, sleeper: SleepRecorder
    ) -> None:
        server.queue_text("<html>Bad Gateway</html>", status_code=502).queue_json(CHAT_BODY)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ChatResponse)
        assert server.call_count == 2
        assert sleeper.waits == [1.0]

    async def test_zero_delay_still_retries(self, server: FakeExnestServer) -> None:
        server.queue_failure().queue_json(CHAT_BODY)
        sleeper = SleepRecorder()
        client = server.client(retries=1, retry_delay_ms=0, sleep=sleeper)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ChatResponse)
        assert sleeper.waits == [0.0]


@pytest.mark.unit
class TestTimeouts:
    async def test_slow_attempt_times_out(self, server: FakeExnestServer) -> None:
        server.queue_json(CHAT_BODY, delay=1.0)
        client = server.client(retries=0, timeout_ms=20)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ErrorResponse)
        assert resp.error.code == "timeout"
        assert resp.error.type == "timeout_error"
        assert resp.error.message == "Request timeout"

    async def test_timeout_is_retried(self, server: FakeExnestServer) -> None:
        server.queue_json(CHAT_BODY, delay=1.0).queue_json(CHAT_BODY)
        client = server.client(retries=1, timeout_ms=20, sleep=SleepRecorder())
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ChatResponse)
        assert server.call_count == 2

    async def test_per_call_override_shortens_timeout(self, server: FakeExnestServer) -> None:
        server.queue_json(CHAT_BODY, delay=1.0)
        client = server.client(retries=0, timeout_ms=30_000)
        resp = await client.chat(MODEL, USER_HI, ChatOptions(timeout_ms=20))
        assert isinstance(resp, ErrorResponse)
        assert resp.error.code == "timeout"

    async def test_timeout_is_not_sent_upstream(self, server: FakeExnestServer) -> None:
        server.queue_json(CHAT_BODY)
        client = server.client(retries=0)
        await client.chat(MODEL, USER_HI, {"timeout_ms": 5_000, "temperature": 0})
        assert server.last_request.body["temperature"] == 0
        assert "timeout_ms" not in server.last_request.body


@pytest.mark.unit
class TestDebugHook:
    async def test_events_in_debug_mode(self, server: FakeExnestServer) -> None:
        events: list[AttemptEvent] = []
        server.queue_failure().queue_json(CHAT_BODY)
        client = server.client(
            retries=2, debug=True, debug_hook=events.append, sleep=SleepRecorder()
        )
        await client.chat(MODEL, USER_HI)

        assert [e.outcome for e in events] == ["start", "failure", "start", "response"]
        assert [e.attempt for e in events] == [1, 1, 2, 2]
        assert all(e.max_attempts == 3 for e in events)
        assert events[1].error == "Connection refused"
        assert events[3].status_code == 200
        assert events[3].path == "/chat/completions"

    async def test_hook_silent_without_debug(self, server: FakeExnestServer) -> None:
        events: list[AttemptEvent] = []
        server.queue_json(CHAT_BODY)
        client = server.client(debug=False, debug_hook=events.append)
        await client.chat(MODEL, USER_HI)
        assert events == []

    async def test_failing_hook_does_not_break_the_call(self, server: FakeExnestServer) -> None:
        def broken_hook(event: AttemptEvent) -> None:
            raise RuntimeError("hook exploded")

        server.queue_json(CHAT_BODY)
        client = server.client(debug=True, debug_hook=broken_hook)
        resp = await client.chat(MODEL, USER_HI)
        assert isinstance(resp, ChatResponse)

    async def test_update_config_disables_hook(self, server: FakeExnestServer) -> None:
        events: list[AttemptEvent] = []
        server.set_default_json(CHAT_BODY)
        client = server.client(debug=True, debug_hook=events.append)
        client.update_config(debug=False)
        await client.chat(MODEL, USER_HI)
        assert events == []
