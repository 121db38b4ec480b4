"""Input validation performed before any request is built."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from exnest_ai.exceptions import ValidationError
from exnest_ai.types import VALID_ROLES


def validate_model(model: Any) -> None:
    """Reject an empty or non-string model identifier."""
    if not model or not isinstance(model, str):
        raise ValidationError("Model must be a non-empty string")


def validate_chat_inputs(model: Any, messages: Any) -> None:
    """Check the model id and message list shape.

    Raises:
        ValidationError: On the first malformed field found.
    """
    validate_model(model)

    if not isinstance(messages, (list, tuple)) or len(messages) == 0:
        raise ValidationError("Messages must be a non-empty array")

    for message in messages:
        _validate_message(message)


def _validate_message(message: Any) -> None:
    role = message.get("role") if isinstance(message, Mapping) else None
    if not isinstance(role, str) or role not in VALID_ROLES:
        raise ValidationError(
            "Each message must have a valid role (system, user, or assistant)"
        )
    content = message.get("content")
    if not content or not isinstance(content, str):
        raise ValidationError("Each message must have non-empty content")


def validate_prompt(model: Any, prompt: Any) -> None:
    """Check the model id and a single prompt / input string."""
    validate_model(model)
    if not prompt or not isinstance(prompt, str):
        raise ValidationError("Input must be a non-empty string")


def copy_messages(messages: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Return plain-dict copies so the caller's messages are never mutated."""
    return [dict(message) for message in messages]
