"""Typed exception hierarchy with Problem Details support.

All httpguard exceptions inherit from :class:`HttpGuardError`, which carries a
stable :class:`~httpguard.errors.codes.ErrorCode`, an HTTP status for protocol
responses, and RFC 9457 Problem Details mapping. :class:`HttpError` is the only
error type that crosses the :class:`~httpguard.http.client.HttpClient` boundary.

Examples
--------
>>> from httpguard.errors import HttpError, HttpErrorKind
>>> err = HttpError("GET /users/7 returned 404", error_kind=HttpErrorKind.HTTP_STATUS, status_code=404)
>>> err.to_problem_details()["status"]
404
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final, cast

from httpguard.errors.codes import ErrorCode, HttpErrorKind, get_type_uri
from httpguard.problem_details import build_problem_details

if TYPE_CHECKING:
    from collections.abc import Mapping

    from httpguard.problem_details import ProblemDetails
    from httpguard.types import JsonValue

__all__ = [
    "ConfigurationError",
    "HttpError",
    "HttpGuardError",
    "SettingsError",
]

# Protocol status used when a failure has no upstream status of its own.
_KIND_HTTP_STATUS: Final[dict[HttpErrorKind, int]] = {
    HttpErrorKind.TRANSPORT: 502,
    HttpErrorKind.TIMEOUT: 504,
    HttpErrorKind.HTTP_STATUS: 502,
    HttpErrorKind.VALIDATION: 500,
    HttpErrorKind.ABORTED: 499,
}


def _jsonable(value: object) -> JsonValue:
    """Coerce ``value`` into something the Problem Details schema accepts."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


class HttpGuardError(Exception):
    """Base exception for all httpguard errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode, optional
        Stable error code. Defaults to ``ErrorCode.RUNTIME_ERROR``.
    http_status : int, optional
        Status for Problem Details responses. Defaults to 500.
    log_level : int, optional
        Level callers should log this error at. Defaults to ``logging.ERROR``.
    cause : BaseException | None, optional
        Underlying exception, chained as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional structured context. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.RUNTIME_ERROR,
        http_status: int = 500,
        log_level: int = logging.ERROR,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.log_level = log_level
        self.context: dict[str, object] = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def _extensions(self) -> dict[str, object]:
        return dict(self.context)

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> ProblemDetails:
        """Convert to an RFC 9457 Problem Details payload.

        Parameters
        ----------
        instance : str | None, optional
            URI identifying the occurrence. Defaults to ``"urn:httpguard:error"``.
        title : str | None, optional
            Short summary. Defaults to the exception class name.

        Returns
        -------
        ProblemDetails
            Validated payload with ``code`` and any context as extensions.
        """
        extensions = self._extensions()
        return build_problem_details(
            problem_type=get_type_uri(self.code),
            title=title or self.__class__.__name__,
            status=self.http_status,
            detail=self.message,
            instance=instance or "urn:httpguard:error",
            code=self.code.value,
            extensions=cast("Mapping[str, JsonValue] | None", _jsonable(extensions) or None),
        )

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


class HttpError(HttpGuardError):
    """Uniform failure of an outbound request.

    Parameters
    ----------
    message : str
        Human-readable error message.
    error_kind : HttpErrorKind
        Failure class (transport, timeout, HTTP status, validation, aborted).
    status_code : int | None, optional
        Upstream status. None when no response was received; 500 for
        validation failures. Defaults to None.
    details : object, optional
        Structured detail (validation reason, body excerpt, ...). Defaults to None.
    attempts : int | None, optional
        Number of exchanges made before giving up. Defaults to None.
    cause : BaseException | None, optional
        Underlying exception. Defaults to None.

    Attributes
    ----------
    status_code : int | None
        Upstream status code, if any.
    error_kind : HttpErrorKind
        Failure class.
    details : object
        Structured detail.
    attempts : int | None
        Exchanges made.
    """

    def __init__(
        self,
        message: str,
        *,
        error_kind: HttpErrorKind,
        status_code: int | None = None,
        details: object = None,
        attempts: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        http_status = _KIND_HTTP_STATUS[error_kind]
        if error_kind is HttpErrorKind.HTTP_STATUS and status_code is not None and 400 <= status_code <= 599:
            http_status = status_code
        super().__init__(
            message,
            code=error_kind.code,
            http_status=http_status,
            log_level=logging.WARNING if error_kind is HttpErrorKind.ABORTED else logging.ERROR,
            cause=cause,
        )
        self.error_kind = error_kind
        self.status_code = status_code
        self.details = details
        self.attempts = attempts

    def _extensions(self) -> dict[str, object]:
        extensions: dict[str, object] = {"error_kind": self.error_kind.value}
        if self.status_code is not None:
            extensions["status_code"] = self.status_code
        if self.attempts is not None:
            extensions["attempts"] = self.attempts
        if self.details is not None:
            extensions["details"] = self.details
        extensions.update(self.context)
        return extensions


class ConfigurationError(HttpGuardError):
    """Invalid client, policy or shape configuration.

    Parameters
    ----------
    message : str
        Human-readable error message.
    cause : BaseException | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context. Defaults to None.

    Examples
    --------
    >>> raise ConfigurationError("Unsupported HTTP method: TRACE")
    Traceback (most recent call last):
        ...
    httpguard.errors.exceptions.ConfigurationError: ConfigurationError[configuration-error]: Unsupported HTTP method: TRACE
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            http_status=500,
            log_level=logging.CRITICAL,
            cause=cause,
            context=context,
        )


class SettingsError(ConfigurationError):
    """Raised when client settings fail validation.

    Parameters
    ----------
    message : str
        Human-readable error message.
    errors : list[dict[str, object]] | None, optional
        Per-field validation errors. Defaults to None.
    cause : BaseException | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, object]] | None = None,
        cause: BaseException | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        combined_context: dict[str, object] = dict(context or {})
        if errors:
            combined_context.setdefault("validation_errors", [dict(error) for error in errors])
        super().__init__(message, cause=cause, context=combined_context)
