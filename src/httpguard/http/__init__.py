"""Typed outbound HTTP requests with retry and response validation.

The package exposes :class:`HttpClient` plus the pieces it is assembled from: the
request/outcome data model, :class:`RetryPolicy`, :class:`HttpxTransport` and the
shape :func:`validate` function. :func:`make_client` and :func:`make_client_with_policy`
cover the common wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from httpguard.http.client import CORRELATION_HEADER, HttpClient
from httpguard.http.policy import IDEMPOTENT_METHODS, PolicyRegistry, RetryPolicy, load_policy
from httpguard.http.transport import HttpxTransport
from httpguard.http.types import (
    AbortSignal,
    AttemptOutcome,
    FailureKind,
    HttpMethod,
    Invalid,
    RequestConfig,
    RetryDecision,
    ShapeValidator,
    Success,
    Transport,
    TransportFailure,
    Valid,
    ValidationResult,
)
from httpguard.http.validation import validate
from httpguard.settings import HttpClientSettings, load_settings

if TYPE_CHECKING:
    from pathlib import Path

__all__ = [
    "CORRELATION_HEADER",
    "IDEMPOTENT_METHODS",
    "AbortSignal",
    "AttemptOutcome",
    "FailureKind",
    "HttpClient",
    "HttpMethod",
    "HttpxTransport",
    "Invalid",
    "PolicyRegistry",
    "RequestConfig",
    "RetryDecision",
    "RetryPolicy",
    "ShapeValidator",
    "Success",
    "Transport",
    "TransportFailure",
    "Valid",
    "ValidationResult",
    "load_policy",
    "make_client",
    "make_client_with_policy",
    "validate",
]


def make_client(
    settings: HttpClientSettings | None = None,
    *,
    transport: Transport | None = None,
    validator: ShapeValidator = validate,
) -> HttpClient:
    """Build a client from settings (environment driven when omitted).

    Parameters
    ----------
    settings : HttpClientSettings | None, optional
        Client settings. Defaults to :func:`~httpguard.settings.load_settings`.
    transport : Transport | None, optional
        Exchange implementation. Defaults to :class:`HttpxTransport`.
    validator : ShapeValidator, optional
        Response shape check. Defaults to :func:`validate`.

    Returns
    -------
    HttpClient
        Client whose retry policy is derived from ``settings``.
    """
    return HttpClient(settings or load_settings(), transport=transport, validator=validator)


def make_client_with_policy(
    service: str, base_url: str, policy_name: str, policies_root: Path | None = None
) -> HttpClient:
    """Build a client whose retry policy comes from a YAML policy file.

    Parameters
    ----------
    service : str
        Service name stamped on log records.
    base_url : str
        Base URL joined to relative request URLs.
    policy_name : str
        Policy file stem (``<policy_name>.yaml``).
    policies_root : Path | None, optional
        Directory of policy files. Defaults to the bundled policies.

    Returns
    -------
    HttpClient
        Configured client.

    Raises
    ------
    FileNotFoundError
        If the policy file does not exist.
    ConfigurationError
        If the policy file is invalid.
    """
    registry = PolicyRegistry(policies_root) if policies_root else PolicyRegistry.bundled()
    settings = load_settings(service=service, base_url=base_url)
    return HttpClient(settings, retry_policy=registry.get(policy_name))
