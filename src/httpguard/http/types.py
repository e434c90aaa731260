"""Data model for outbound requests and their outcomes.

This module defines the request description handed to the client, the per-attempt
outcome produced by a transport, the retry decision computed from it, and the
collaborator protocols (:class:`Transport`, :class:`ShapeValidator`) the client is
built from.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, TypeAlias

from httpguard.errors import ConfigurationError

if TYPE_CHECKING:
    from typing import Self

__all__ = [
    "AbortSignal",
    "AttemptOutcome",
    "FailureKind",
    "HttpMethod",
    "Invalid",
    "RequestConfig",
    "STOP",
    "RetryDecision",
    "ShapeValidator",
    "Success",
    "Transport",
    "TransportFailure",
    "Valid",
    "ValidationResult",
]


class HttpMethod(StrEnum):
    """Closed set of HTTP methods the client issues."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: str | HttpMethod) -> HttpMethod:
        """Return the member for ``value`` (case-insensitive).

        Raises
        ------
        ConfigurationError
            If ``value`` names an unsupported method.
        """
        if isinstance(value, HttpMethod):
            return value
        try:
            return cls(value.upper())
        except ValueError as exc:
            msg = f"Unsupported HTTP method: {value}"
            raise ConfigurationError(msg, cause=exc, context={"method": value}) from exc


class FailureKind(StrEnum):
    """Reason a transport attempt produced no response."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    ABORTED = "aborted"


class AbortSignal:
    """Cancellation signal for an in-flight request.

    Aborting stops the current exchange or backoff sleep; the request then
    fails with ``HttpErrorKind.ABORTED`` and is not retried. A signal is
    single-use and must be created inside a running event loop when armed
    with :meth:`after`.

    Examples
    --------
    >>> signal = AbortSignal()
    >>> signal.abort("user navigated away")
    >>> signal.aborted
    True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @classmethod
    def after(cls, seconds: float) -> Self:
        """Return a signal that aborts itself after ``seconds``."""
        signal = cls()
        loop = asyncio.get_running_loop()
        signal._timer = loop.call_later(seconds, signal.abort, f"deadline of {seconds}s exceeded")
        return signal

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str | None = None) -> None:
        """Fire the signal; later calls are no-ops."""
        if self._event.is_set():
            return
        self.reason = reason or "aborted"
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()


@dataclass(frozen=True, slots=True)
class RequestConfig:
    """Immutable description of one outbound call.

    Attributes
    ----------
    method : HttpMethod
        Request method.
    url : str
        Absolute URL, or a path joined to the client's base URL.
    headers : Mapping[str, str]
        Request headers.
    params : Mapping[str, str] | None
        Query parameters.
    body : object
        ``bytes``/``str`` are sent as-is; any other non-None value is JSON encoded.
    timeout_s : float | None
        Per-attempt timeout; None uses the client default.
    response_shape : object
        Shape descriptor for the decoded body (JSON Schema mapping or a type
        understood by pydantic); None accepts any decodable body.
    abort : AbortSignal | None
        Optional cancellation signal.
    """

    method: HttpMethod
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, str] | None = None
    body: object = None
    timeout_s: float | None = None
    response_shape: object = None
    abort: AbortSignal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", HttpMethod.parse(self.method))
        object.__setattr__(self, "headers", dict(self.headers))
        if self.timeout_s is not None and self.timeout_s <= 0:
            msg = f"timeout_s must be positive, got {self.timeout_s}"
            raise ConfigurationError(msg, context={"timeout_s": self.timeout_s})

    def with_overrides(self, **changes: object) -> RequestConfig:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)  # type: ignore[arg-type]  # dataclass field names checked at runtime

    def header(self, name: str) -> str | None:
        """Return header ``name`` (case-insensitive) or None."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True, slots=True)
class Success:
    """A response was received (any status)."""

    status: int
    headers: Mapping[str, str]
    body: bytes

    def header(self, name: str) -> str | None:
        """Return header ``name`` (case-insensitive) or None."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True, slots=True)
class TransportFailure:
    """No response was received."""

    kind: FailureKind
    underlying: BaseException | None = None


AttemptOutcome: TypeAlias = Success | TransportFailure


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Whether to attempt again, and after how long."""

    should_retry: bool
    delay_s: float = 0.0


STOP: RetryDecision = RetryDecision(should_retry=False)


@dataclass(frozen=True, slots=True)
class Valid:
    """Body conforms; ``value`` is the (possibly parsed) result."""

    value: object


@dataclass(frozen=True, slots=True)
class Invalid:
    """Body does not conform.

    Attributes
    ----------
    reason : str
        Human-readable summary of the first mismatch.
    errors : tuple[str, ...]
        One entry per mismatch (``"$.path: expected X, got Y"``).
    """

    reason: str
    errors: tuple[str, ...] = ()


ValidationResult: TypeAlias = Valid | Invalid


class Transport(Protocol):
    """Performs exactly one HTTP exchange per call; never retries."""

    async def send(self, config: RequestConfig) -> AttemptOutcome:
        """Send ``config`` once and report what happened."""
        ...


class ShapeValidator(Protocol):
    """Checks a decoded body against a shape descriptor without raising on mismatch."""

    def __call__(self, body: object, shape: object) -> ValidationResult: ...
