"""Tests for core types."""

from __future__ import annotations

import pytest

from exnest_ai.exceptions import ApiError
from exnest_ai.testing import chat_body
from exnest_ai.types import (
    CatalogResponse,
    ChatOptions,
    ChatResponse,
    CompletionResponse,
    ErrorResponse,
    StreamChunk,
    parse_response,
    validate_leniently,
)


@pytest.mark.unit
class TestChatOptions:
    def test_empty_payload(self) -> None:
        assert ChatOptions().to_payload() == {}

    def test_explicit_none_is_not_sent(self) -> None:
        assert ChatOptions(temperature=None).to_payload() == {}

    def test_negative_values_rejected(self) -> None:
        with pytest.raises(ValueError):
            ChatOptions(max_tokens=-1)

    def test_stream_flag_is_not_part_of_payload(self) -> None:
        assert ChatOptions(stream=True, max_tokens=5).to_payload() == {"max_tokens": 5}


@pytest.mark.unit
class TestParseResponse:
    def test_chat_response(self) -> None:
        body = {
            "model": "m",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "hey"}}],
            "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3},
        }
        resp = parse_response(body, "chat")
        assert isinstance(resp, ChatResponse)
        assert resp.kind == "chat"
        assert resp.content == "hey"
        assert resp.usage is not None
        assert resp.usage.total_tokens == 3
        assert resp.error is None
        assert resp.raw is body

    def test_completion_response(self) -> None:
        resp = parse_response({"object": "text_completion", "choices": [{"text": "abc"}]}, "completion")
        assert isinstance(resp, CompletionResponse)
        assert resp.content == "abc"

    def test_error_field_wins_over_kind(self) -> None:
        body = {"error": {"message": "Insufficient balance", "type": "billing_error", "code": "402"}}
        resp = parse_response(body, "chat")
        assert isinstance(resp, ErrorResponse)
        assert resp.is_error
        assert resp.error.message == "Insufficient balance"
        assert resp.error.code == "402"
        assert resp.raw == body

    def test_string_error(self) -> None:
        resp = parse_response({"error": "Unauthorized"}, "chat")
        assert isinstance(resp, ErrorResponse)
        assert resp.error.message == "Unauthorized"

    def test_legacy_error_shape(self) -> None:
        body = {
            "success": False,
            "message": "Invalid API key",
            "error": {"details": "key revoked", "code": "AUTH"},
        }
        resp = parse_response(body, "chat")
        assert isinstance(resp, ErrorResponse)
        assert resp.error.message == "key revoked"
        assert resp.error.code == "AUTH"

    def test_success_false_without_error_is_not_an_error(self) -> None:
        resp = parse_response({"success": False, "message": "odd"}, "chat")
        assert resp.error is None

    def test_null_error_is_ignored(self) -> None:
        resp = parse_response({"error": None, "choices": []}, "chat")
        assert isinstance(resp, ChatResponse)

    def test_unexpected_shape_passes_through(self) -> None:
        body = {"choices": "not-a-list", "model": "m"}
        resp = parse_response(body, "chat")
        assert isinstance(resp, ChatResponse)
        assert resp.raw == body
        assert resp.model == "m"

    def test_off_schema_scalars_keep_typed_fields(self) -> None:
        body = {**chat_body("Hello"), "model": 5, "created": "yesterday"}
        resp = parse_response(body, "chat")
        assert isinstance(resp, ChatResponse)
        assert resp.content == "Hello"
        assert resp.usage is not None and resp.usage.total_tokens == 5
        assert resp.model == 5
        assert resp.raw is body

    def test_content_blocks_are_joined(self) -> None:
        blocks = [{"type": "text", "text": "Hel"}, {"type": "text", "text": "lo"}]
        body = {"choices": [{"message": {"role": "assistant", "content": blocks}}]}
        resp = parse_response(body, "chat")
        assert isinstance(resp, ChatResponse)
        assert resp.content == "Hello"

    def test_off_schema_choice_keeps_its_siblings(self) -> None:
        body = {
            "choices": [
                {"index": "first", "message": {"content": "kept"}},
                {"index": 1, "message": {"content": "second"}},
            ]
        }
        resp = parse_response(body, "chat")
        assert isinstance(resp, ChatResponse)
        assert resp.content == "kept"
        assert resp.choices[1].message is not None
        assert resp.choices[1].message.content == "second"

    def test_off_schema_error_body_has_typed_error(self) -> None:
        resp = parse_response({"error": {"message": "bad"}, "model": 5}, "chat")
        assert isinstance(resp, ErrorResponse)
        assert resp.error.message == "bad"
        with pytest.raises(ApiError, match="bad"):
            resp.raise_for_error()

    def test_extra_fields_are_kept(self) -> None:
        resp = parse_response({"choices": [], "exnest": {"processing_time_ms": 12}, "foo": 1}, "chat")
        assert resp.exnest == {"processing_time_ms": 12}
        assert resp.model_extra == {"foo": 1}

    def test_catalog_list_body(self) -> None:
        body = [{"id": "openai:gpt-4"}]
        resp = parse_response(body, "catalog")
        assert isinstance(resp, CatalogResponse)
        assert resp.data == body
        assert resp.raw is body

    def test_catalog_object_body(self) -> None:
        resp = parse_response({"object": "list", "data": [{"id": "m"}]}, "catalog")
        assert isinstance(resp, CatalogResponse)
        assert resp.data == [{"id": "m"}]


@pytest.mark.unit
class TestRaiseForError:
    def test_raises_on_error(self) -> None:
        resp = parse_response({"error": {"message": "nope", "code": "bad_request"}}, "chat")
        with pytest.raises(ApiError, match="nope") as exc_info:
            resp.raise_for_error()
        assert exc_info.value.code == "bad_request"
        assert exc_info.value.response is resp

    def test_noop_on_success(self) -> None:
        parse_response({"choices": []}, "chat").raise_for_error()


@pytest.mark.unit
class TestStreamChunk:
    def test_content_joins_choices(self) -> None:
        chunk = StreamChunk.model_validate(
            {
                "id": "1",
                "created": 1,
                "model": "m",
                "choices": [
                    {"index": 0, "delta": {"content": "Hi"}, "finish_reason": None},
                    {"index": 1, "delta": {"role": "assistant"}},
                ],
            }
        )
        assert chunk.content == "Hi"
        assert chunk.choices[0].finish_reason is None
        assert chunk.choices[1].delta.role == "assistant"

    def test_lenient_defaults(self) -> None:
        chunk = StreamChunk.model_validate({"choices": [{"delta": {"content": "x"}}]})
        assert chunk.id is None
        assert chunk.content == "x"

    def test_mistyped_scalars_keep_content(self) -> None:
        chunk = validate_leniently(
            StreamChunk, {"id": 1, "created": 1.5, "choices": [{"delta": {"content": "Hi"}}]}
        )
        assert chunk.content == "Hi"
        assert chunk.id == 1

    def test_block_delta_content(self) -> None:
        chunk = StreamChunk.model_validate(
            {"choices": [{"delta": {"content": [{"type": "text", "text": "Hi"}]}}]}
        )
        assert chunk.content == "Hi"
