"""httpguard: typed HTTP requests that retry safely and fail uniformly.

Every outbound call either yields a value that matches the caller's declared response
shape or raises :class:`~httpguard.errors.HttpError`. Idempotent requests are retried
with exponential backoff on transient failures.

Examples
--------
>>> from httpguard import HttpClient, HttpError
>>> client = HttpClient()
"""

from __future__ import annotations

from httpguard import errors, http, logging, settings
from httpguard.errors import HttpError, HttpErrorKind
from httpguard.http import HttpClient, RequestConfig, RetryPolicy, make_client

__all__ = [
    "HttpClient",
    "HttpError",
    "HttpErrorKind",
    "RequestConfig",
    "RetryPolicy",
    "errors",
    "http",
    "logging",
    "make_client",
    "settings",
]

__version__ = "0.1.0"
