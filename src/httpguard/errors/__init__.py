"""Exception hierarchy and Problem Details support.

Examples
--------
>>> from httpguard.errors import HttpError, HttpErrorKind
>>> try:
...     raise HttpError("upstream timed out", error_kind=HttpErrorKind.TIMEOUT)
... except HttpError as e:
...     details = e.to_problem_details(instance="/api/status")
...     assert details["type"] == "https://httpguard.dev/problems/timeout"
"""

from __future__ import annotations

from httpguard.errors.codes import BASE_TYPE_URI, ErrorCode, HttpErrorKind, get_type_uri
from httpguard.errors.exceptions import (
    ConfigurationError,
    HttpError,
    HttpGuardError,
    SettingsError,
)

__all__ = [
    "BASE_TYPE_URI",
    "ConfigurationError",
    "ErrorCode",
    "HttpError",
    "HttpErrorKind",
    "HttpGuardError",
    "SettingsError",
    "get_type_uri",
]
