"""Error code registry and type URIs for Problem Details.

Codes are stable kebab-case identifiers used in RFC 9457 Problem Details
payloads; :class:`HttpErrorKind` is the failure taxonomy carried by
:class:`~httpguard.errors.HttpError`.

Examples
--------
>>> from httpguard.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.HTTP_STATUS)
'https://httpguard.dev/problems/http-status'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "HttpErrorKind",
    "get_type_uri",
]


BASE_TYPE_URI: Final[str] = "https://httpguard.dev/problems"


class ErrorCode(StrEnum):
    """Stable error codes for httpguard exceptions.

    Attributes
    ----------
    TRANSPORT_ERROR
        Connection-level failure (DNS, refused, reset).
    TIMEOUT
        Exchange exceeded its deadline.
    HTTP_STATUS
        Server answered with a non-success status.
    VALIDATION_ERROR
        Response body did not match its declared shape.
    REQUEST_ABORTED
        Request was cancelled through its abort signal.
    CONFIGURATION_ERROR
        Invalid client, policy or shape configuration.
    RUNTIME_ERROR
        Unclassified failure.
    """

    # Outbound request failures
    TRANSPORT_ERROR = "transport-error"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http-status"
    VALIDATION_ERROR = "validation-error"
    REQUEST_ABORTED = "request-aborted"

    # Configuration & runtime
    CONFIGURATION_ERROR = "configuration-error"
    RUNTIME_ERROR = "runtime-error"

    def __str__(self) -> str:
        return self.value


class HttpErrorKind(StrEnum):
    """Failure taxonomy surfaced on :class:`~httpguard.errors.HttpError`."""

    TRANSPORT = "TRANSPORT"
    TIMEOUT = "TIMEOUT"
    HTTP_STATUS = "HTTP_STATUS"
    VALIDATION = "VALIDATION"
    ABORTED = "ABORTED"

    @property
    def code(self) -> ErrorCode:
        """Return the Problem Details code for this kind."""
        return _KIND_CODES[self]


_KIND_CODES: Final[dict[HttpErrorKind, ErrorCode]] = {
    HttpErrorKind.TRANSPORT: ErrorCode.TRANSPORT_ERROR,
    HttpErrorKind.TIMEOUT: ErrorCode.TIMEOUT,
    HttpErrorKind.HTTP_STATUS: ErrorCode.HTTP_STATUS,
    HttpErrorKind.VALIDATION: ErrorCode.VALIDATION_ERROR,
    HttpErrorKind.ABORTED: ErrorCode.REQUEST_ABORTED,
}


def get_type_uri(code: ErrorCode) -> str:
    """Return the RFC 9457 type URI for ``code``.

    Parameters
    ----------
    code : ErrorCode
        Error code enum value.

    Returns
    -------
    str
        Complete type URI (e.g., ``"https://httpguard.dev/problems/timeout"``).
    """
    return f"{BASE_TYPE_URI}/{code.value}"
