"""Typed HTTP client with retry and response validation.

:class:`HttpClient` drives a :class:`~httpguard.http.types.Transport` through a
:class:`~httpguard.http.policy.RetryPolicy`, decodes the terminal response and checks
it against the request's shape descriptor. Callers get a conforming value or an
:class:`~httpguard.errors.HttpError`; nothing else escapes.
"""

from __future__ import annotations

import asyncio
import time
from email.message import Message
from typing import TYPE_CHECKING, Any, Final, Self

import msgspec

from httpguard.errors import HttpError, HttpErrorKind
from httpguard.http.policy import RetryPolicy
from httpguard.http.tenacity_retry import Sleep, TenacityRetryStrategy
from httpguard.http.transport import HttpxTransport, race_abort
from httpguard.http.types import (
    AbortSignal,
    AttemptOutcome,
    FailureKind,
    HttpMethod,
    Invalid,
    RequestConfig,
    ShapeValidator,
    Success,
    Transport,
    TransportFailure,
)
from httpguard.http.validation import validate
from httpguard.logging import get_correlation_id, get_logger
from httpguard.settings import HttpClientSettings

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["CORRELATION_HEADER", "HttpClient"]

logger = get_logger(__name__)

CORRELATION_HEADER: Final[str] = "X-Correlation-ID"
_IDEMPOTENCY_HEADER: Final[str] = "Idempotency-Key"
_BODY_EXCERPT_CHARS: Final[int] = 500

_FAILURE_KINDS: Final[dict[FailureKind, HttpErrorKind]] = {
    FailureKind.NETWORK: HttpErrorKind.TRANSPORT,
    FailureKind.TIMEOUT: HttpErrorKind.TIMEOUT,
    FailureKind.ABORTED: HttpErrorKind.ABORTED,
}


class _UndecodableBody(Exception):
    """Body claimed to be JSON but did not parse."""


def _charset(success: Success) -> str:
    content_type = success.header("Content-Type")
    if not content_type:
        return "utf-8"
    msg = Message()
    msg["Content-Type"] = content_type
    return msg.get_content_charset() or "utf-8"


def _is_json(success: Success) -> bool:
    content_type = (success.header("Content-Type") or "").lower()
    return "json" in content_type


def decode_body(success: Success) -> object:
    """Decode a response body.

    Empty bodies decode to None, JSON content types (``application/json``,
    ``application/problem+json``, ...) via :mod:`msgspec`, and anything else to
    text unless it happens to parse as JSON.

    Raises
    ------
    _UndecodableBody
        If a JSON content type carries malformed JSON.
    """
    if not success.body:
        return None
    if _is_json(success):
        try:
            return msgspec.json.decode(success.body)
        except msgspec.DecodeError as exc:
            raise _UndecodableBody(str(exc)) from exc
    text = success.body.decode(_charset(success), errors="replace")
    try:
        return msgspec.json.decode(success.body)
    except msgspec.DecodeError:
        return text


def _excerpt(success: Success) -> str:
    return success.body[:_BODY_EXCERPT_CHARS].decode(_charset(success), errors="replace")


class HttpClient:
    """Outbound HTTP client with retries and response validation.

    The client holds only immutable configuration and its collaborators, so one
    instance serves any number of concurrent requests.

    Parameters
    ----------
    settings : HttpClientSettings | None, optional
        Base URL, default headers, timeout and backoff knobs. Defaults to
        ``HttpClientSettings()`` (environment driven).
    transport : Transport | None, optional
        Exchange implementation. Defaults to an :class:`HttpxTransport` using
        the settings timeout.
    retry_policy : RetryPolicy | None, optional
        Retry rules. Defaults to ``RetryPolicy.from_settings(settings)``.
    validator : ShapeValidator, optional
        Response shape check. Defaults to :func:`httpguard.http.validation.validate`.
    sleep : Sleep | None, optional
        Backoff sleep coroutine. Defaults to :func:`asyncio.sleep`.

    Examples
    --------
    >>> import asyncio
    >>> from httpguard.http import HttpClient
    >>> async def main() -> None:
    ...     async with HttpClient() as client:
    ...         user = await client.get(
    ...             "https://api.example.com/users/7",
    ...             response_shape={"type": "object", "required": ["id"]},
    ...         )
    """

    def __init__(
        self,
        settings: HttpClientSettings | None = None,
        *,
        transport: Transport | None = None,
        retry_policy: RetryPolicy | None = None,
        validator: ShapeValidator = validate,
        sleep: Sleep | None = None,
    ) -> None:
        self.s = settings or HttpClientSettings()
        self.transport: Transport = transport or HttpxTransport(
            default_timeout_s=self.s.timeout_s
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings(self.s)
        self.retry_strategy = TenacityRetryStrategy(self.retry_policy, sleep=sleep)
        self.validator = validator

    async def request(self, config: RequestConfig) -> Any:
        """Send ``config`` with retries and return the validated body.

        Parameters
        ----------
        config : RequestConfig
            Request to send. Relative URLs are joined to ``settings.base_url``.

        Returns
        -------
        Any
            The decoded body, or the value produced by validating it against
            ``config.response_shape``.

        Raises
        ------
        HttpError
            On transport failure, timeout, abort, a non-2xx terminal status, or
            a body that does not match its shape.
        """
        prepared = self._prepare(config)
        attempts = 0

        async def _attempt() -> AttemptOutcome:
            nonlocal attempts
            if prepared.abort is not None and prepared.abort.aborted:
                return TransportFailure(FailureKind.ABORTED)
            attempts += 1
            return await self.transport.send(prepared)

        fields: dict[str, object] = {
            "service": self.s.service,
            "method": prepared.method.value,
            "url": prepared.url,
        }
        started = time.monotonic()
        outcome = await self.retry_strategy.run(
            _attempt,
            method=prepared.method,
            idempotency_key=prepared.header(_IDEMPOTENCY_HEADER) is not None,
            sleep=self._sleeper(prepared.abort),
            log_fields=fields,
        )
        fields["attempt"] = attempts
        fields["duration_ms"] = round((time.monotonic() - started) * 1000, 3)
        try:
            value = self._finish(prepared, outcome, attempts)
        except HttpError as exc:
            logger.log_failure(
                "Request failed",
                exception=exc,
                operation="http.request",
                level=exc.log_level,
                error_kind=exc.error_kind.value,
                status_code=exc.status_code,
                **fields,
            )
            raise
        logger.debug(
            "Request completed",
            extra={"operation": "http.request", "status": "success", **fields},
        )
        return value

    async def get(self, url: str, **options: Any) -> Any:
        """Send a ``GET``; see :meth:`request`."""
        return await self.request(RequestConfig(method=HttpMethod.GET, url=url, **options))

    async def post(self, url: str, **options: Any) -> Any:
        """Send a ``POST``; see :meth:`request`."""
        return await self.request(RequestConfig(method=HttpMethod.POST, url=url, **options))

    async def put(self, url: str, **options: Any) -> Any:
        """Send a ``PUT``; see :meth:`request`."""
        return await self.request(RequestConfig(method=HttpMethod.PUT, url=url, **options))

    async def patch(self, url: str, **options: Any) -> Any:
        """Send a ``PATCH``; see :meth:`request`."""
        return await self.request(RequestConfig(method=HttpMethod.PATCH, url=url, **options))

    async def delete(self, url: str, **options: Any) -> Any:
        """Send a ``DELETE``; see :meth:`request`."""
        return await self.request(RequestConfig(method=HttpMethod.DELETE, url=url, **options))

    def _prepare(self, config: RequestConfig) -> RequestConfig:
        """Resolve URL, headers and timeout before the first attempt."""
        overridden = {name.lower() for name in config.headers}
        headers = {
            name: value
            for name, value in self.s.default_headers.items()
            if name.lower() not in overridden
        }
        headers.update(config.headers)
        correlation_id = get_correlation_id()
        if correlation_id and CORRELATION_HEADER.lower() not in {k.lower() for k in headers}:
            headers[CORRELATION_HEADER] = correlation_id
        return config.with_overrides(
            url=self._build_url(config.url),
            headers=headers,
            timeout_s=config.timeout_s or self.s.timeout_s,
        )

    def _build_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")) or not self.s.base_url:
            return url
        return f"{self.s.base_url.rstrip('/')}/{url.lstrip('/')}"

    def _sleeper(self, signal: AbortSignal | None) -> Sleep:
        """Return a backoff sleep that ends early when ``signal`` fires."""
        base_sleep = self.retry_strategy.sleep
        if signal is None:
            return base_sleep

        async def _sleep(seconds: float) -> None:
            await race_abort(asyncio.ensure_future(base_sleep(seconds)), signal)

        return _sleep

    def _finish(self, config: RequestConfig, outcome: AttemptOutcome, attempts: int) -> Any:
        """Turn the terminal outcome into a value or an :class:`HttpError`."""
        target = f"{config.method.value} {config.url}"
        if isinstance(outcome, TransportFailure):
            raise self._failure_error(target, config, outcome, attempts)

        if not outcome.ok:
            msg = f"{target} returned {outcome.status}"
            raise HttpError(
                msg,
                error_kind=HttpErrorKind.HTTP_STATUS,
                status_code=outcome.status,
                details={"body_excerpt": _excerpt(outcome)},
                attempts=attempts,
            )

        try:
            body = decode_body(outcome)
        except _UndecodableBody as exc:
            msg = f"Response from {config.url} was not valid JSON"
            raise HttpError(
                msg,
                error_kind=HttpErrorKind.VALIDATION,
                status_code=500,
                details=f"$: expected JSON, got malformed body ({exc})",
                attempts=attempts,
                cause=exc,
            ) from exc

        result = self.validator(body, config.response_shape)
        if isinstance(result, Invalid):
            msg = f"Response from {config.url} was not in the expected shape"
            err = HttpError(
                msg,
                error_kind=HttpErrorKind.VALIDATION,
                status_code=500,
                details=result.reason,
                attempts=attempts,
            )
            err.context["validation_errors"] = list(result.errors)
            raise err
        return result.value

    @staticmethod
    def _failure_error(
        target: str, config: RequestConfig, outcome: TransportFailure, attempts: int
    ) -> HttpError:
        kind = _FAILURE_KINDS[outcome.kind]
        if outcome.kind is FailureKind.TIMEOUT:
            msg = f"{target} timed out after {config.timeout_s}s"
        elif outcome.kind is FailureKind.ABORTED:
            reason = config.abort.reason if config.abort is not None else None
            msg = f"{target} was aborted: {reason or 'aborted'}"
        else:
            msg = f"{target} failed: {outcome.underlying or 'network error'}"
        details = None
        if outcome.underlying is not None:
            details = {"error_type": type(outcome.underlying).__name__, "error": str(outcome.underlying)}
        return HttpError(
            msg,
            error_kind=kind,
            status_code=None,
            details=details,
            attempts=attempts,
            cause=outcome.underlying,
        )

    async def aclose(self) -> None:
        """Release transport resources."""
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
