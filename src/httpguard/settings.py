"""Client settings with typed configuration and fail-fast validation.

:class:`HttpClientSettings` is a ``pydantic_settings.BaseSettings`` model read
from ``HTTPGUARD_*`` environment variables. Validation failures surface as
:class:`~httpguard.errors.SettingsError`.

Examples
--------
>>> from httpguard.settings import load_settings
>>> settings = load_settings(base_url="https://api.example.com", max_retries=2)
>>> settings.timeout_s
15.0
"""

from __future__ import annotations

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from httpguard.errors import SettingsError
from httpguard.logging import get_logger

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_S",
    "HttpClientSettings",
    "load_settings",
]

logger = get_logger(__name__)

DEFAULT_TIMEOUT_S = 15.0
DEFAULT_MAX_RETRIES = 3


class HttpClientSettings(BaseSettings):
    """Outbound client configuration (``HTTPGUARD_*`` namespace)."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPGUARD_",
        extra="forbid",
        case_sensitive=False,
        frozen=True,
    )

    service: str = Field(default="httpguard", description="Service name used in log records")
    base_url: str | None = Field(
        default=None, description="Base URL joined to relative request URLs"
    )
    timeout_s: float = Field(
        default=DEFAULT_TIMEOUT_S, gt=0, description="Per-attempt exchange timeout in seconds"
    )
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES, ge=0, description="Retries after the first attempt"
    )
    backoff_initial_s: float = Field(
        default=0.1, ge=0, description="Backoff factor; first retry waits initial * base"
    )
    backoff_base: float = Field(default=2.0, ge=1, description="Exponential backoff base")
    backoff_jitter: float = Field(
        default=0.2, ge=0, le=1, description="Upper bound of random extra delay, as a fraction"
    )
    backoff_max_s: float | None = Field(
        default=None, ge=0, description="Optional cap on a single backoff delay"
    )
    respect_retry_after: bool = Field(
        default=True, description="Honour Retry-After headers on 429 and 503 responses"
    )
    retry_keyed_posts: bool = Field(
        default=False, description="Retry POST requests that carry an Idempotency-Key header"
    )
    default_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers merged into every request"
    )


def load_settings(**overrides: object) -> HttpClientSettings:
    """Load :class:`HttpClientSettings` with optional overrides.

    Parameters
    ----------
    **overrides : object
        Field values taking precedence over the environment.

    Returns
    -------
    HttpClientSettings
        Validated settings.

    Raises
    ------
    SettingsError
        If the environment or overrides fail validation.
    """
    try:
        return HttpClientSettings(**overrides)  # type: ignore[arg-type]  # BaseSettings accepts arbitrary kwargs
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc.error_count()} error(s)"
        logger.exception(
            "Settings validation failed",
            extra={"operation": "settings.load", "error_type": type(exc).__name__},
        )
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "issue": err["msg"]}
            for err in exc.errors()
        ]
        raise SettingsError(msg, errors=errors, cause=exc) from exc
