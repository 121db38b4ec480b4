"""Client configuration via constructor arguments and environment variables."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import Field, SecretStr
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from exnest_ai.exceptions import ValidationError

DEFAULT_BASE_URL = "https://api.exnest.app/v1"

NO_API_KEY = "No API key set"
_MASK = "****"
_VISIBLE_CHARS = 4


class ExnestSettings(BaseSettings):
    """Exnest client configuration.

    Fields are read from environment variables with the ``EXNEST_`` prefix
    when not passed explicitly. Example: ``EXNEST_API_URL`` overrides the
    default base URL, ``EXNEST_API_KEY`` supplies the credential.
    """

    model_config = {
        "env_prefix": "EXNEST_",
        "env_file": ".env",
        "extra": "ignore",
        "validate_assignment": True,
    }

    # ── Endpoint ────────────────────────────────────────────────
    api_key: SecretStr | None = Field(default=None, description="Exnest API key.")
    api_url: str = Field(
        default=DEFAULT_BASE_URL,
        description="Base URL of the Exnest API, without a trailing slash.",
    )

    # ── Request defaults ────────────────────────────────────────
    timeout_ms: int = Field(default=30_000, ge=0, description="0 disables the timeout.")
    max_retries: int = Field(default=3, ge=0)
    retry_delay_ms: int = Field(default=1_000, ge=0)
    debug: bool = Field(default=False)

    # ── Observability ───────────────────────────────────────────
    trace_enabled: bool = Field(default=False)
    trace_exporter: str = Field(
        default="none",
        description="Trace exporter: 'none', 'console', 'otlp'.",
    )
    trace_endpoint: str = Field(default="http://localhost:4317")
    trace_service_name: str = Field(default="exnest-ai")

    log_level: str = Field(default="INFO")
    log_format: str = Field(
        default="json",
        description="Log format: 'json' or 'console'.",
    )

    def get_api_key(self) -> str:
        """Return the credential as a plain string.

        Raises:
            ValidationError: If no credential is configured.
        """
        if self.api_key is None or not self.api_key.get_secret_value():
            raise ValidationError("API key is required")
        return self.api_key.get_secret_value()

    @property
    def base_url(self) -> str:
        return self.api_url.rstrip("/")


def mask_api_key(api_key: SecretStr | str | None) -> str:
    """Show only the last four characters of the credential."""
    if isinstance(api_key, SecretStr):
        api_key = api_key.get_secret_value()
    if not api_key:
        return NO_API_KEY
    return f"{_MASK}{api_key[-_VISIBLE_CHARS:]}"


@dataclass(frozen=True)
class ConfigSnapshot:
    """Read-only view of the client configuration with the key masked."""

    base_url: str
    timeout_ms: int
    retries: int
    retry_delay_ms: int
    debug: bool
    api_key: str

    @classmethod
    def from_settings(cls, settings: ExnestSettings) -> ConfigSnapshot:
        return cls(
            base_url=settings.base_url,
            timeout_ms=settings.timeout_ms,
            retries=settings.max_retries,
            retry_delay_ms=settings.retry_delay_ms,
            debug=settings.debug,
            api_key=mask_api_key(settings.api_key),
        )


# Public update keys → settings field names.
_UPDATABLE_FIELDS: dict[str, str] = {
    "api_key": "api_key",
    "base_url": "api_url",
    "timeout_ms": "timeout_ms",
    "retries": "max_retries",
    "retry_delay_ms": "retry_delay_ms",
    "debug": "debug",
}

# Ignored when empty, as an empty credential or URL is never meaningful.
_SKIP_IF_EMPTY = frozenset({"api_key", "base_url"})


def apply_updates(settings: ExnestSettings, changes: Mapping[str, Any]) -> ExnestSettings:
    """Return a copy of ``settings`` with ``changes`` applied.

    A key counts as present whenever its value is not None, so falsy values
    such as ``debug=False`` or ``timeout_ms=0`` are applied. The original
    object is left untouched; callers swap the returned copy in.

    Raises:
        ValidationError: On an unknown key or a value the field rejects.
    """
    unknown = set(changes) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    updated = settings.model_copy()
    for key, value in changes.items():
        if value is None or (key in _SKIP_IF_EMPTY and not value):
            continue
        try:
            setattr(updated, _UPDATABLE_FIELDS[key], value)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid value for '{key}': {exc.errors()[0]['msg']}") from exc
    return updated
