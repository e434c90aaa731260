"""Structured logging helpers with correlation IDs.

Every httpguard record carries an ``operation`` and a ``status``, plus the request
fields the client knows about (method, url, attempt, status_code, duration_ms). The
correlation id bound with :class:`CorrelationContext` lands on every record and is
forwarded to upstream services in the ``X-Correlation-ID`` header.

Library loggers carry a NullHandler; applications opt in to output via
:func:`setup_logging`.

Examples
--------
>>> from httpguard.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Policy loaded", extra={"operation": "policy.load"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Final, Self

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, MutableMapping
    from types import TracebackType

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    "with_fields",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "httpguard_correlation_id", default=None
)
# Tokens of the CorrelationContext blocks open in the current context, innermost last.
_open_tokens: contextvars.ContextVar[tuple[contextvars.Token[str | None], ...]] = contextvars.ContextVar(
    "httpguard_correlation_tokens", default=()
)

# Rendered first, in this order, when present.
_STRUCTURED_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "operation",
    "status",
    "method",
    "url",
    "attempt",
    "status_code",
    "duration_ms",
)

_RESERVED: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

_JSON_SCALARS = (str, int, float, bool)


def _status_for(level: int) -> str:
    if level >= logging.ERROR:
        return "error"
    if level >= logging.WARNING:
        return "warning"
    return "success"


class JsonFormatter(logging.Formatter):
    """Render each record as one JSON object per line.

    Keys are ``ts``, ``level``, ``name`` and ``message``, then the structured
    request fields, then any other JSON-friendly ``extra`` values.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Record to render.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        payload: dict[str, object] = {
            "ts": f"{self.formatTime(record, '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        fields = record.__dict__
        payload.update(
            (key, fields[key]) for key in _STRUCTURED_FIELDS if fields.get(key) is not None
        )
        payload.setdefault("correlation_id", _correlation_id.get())
        if payload["correlation_id"] is None:
            del payload["correlation_id"]
        for key, value in fields.items():
            if key in _RESERVED or key in payload or key.startswith("_"):
                continue
            if isinstance(value, (*_JSON_SCALARS, list, dict)):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Adapter that stamps structured fields onto every record.

    Per-call ``extra`` wins over fields bound at construction; the context
    correlation id fills in when none is given; ``operation`` defaults to
    ``"unknown"`` and ``status`` is derived from the level.

    Parameters
    ----------
    logger : logging.Logger
        Logger to wrap.
    extra : Mapping[str, object] | None, optional
        Fields bound to every record. Defaults to None.
    """

    def __init__(self, logger: logging.Logger, extra: Mapping[str, object] | None = None) -> None:
        super().__init__(logger, dict(extra or {}))

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        merged = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        if merged.get("correlation_id") is None and _correlation_id.get() is not None:
            merged["correlation_id"] = _correlation_id.get()
        merged.setdefault("operation", "unknown")
        kwargs["extra"] = merged
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Log ``msg`` at ``level`` with structured fields."""
        if not self.isEnabledFor(level):
            return
        msg, kwargs = self.process(msg, kwargs)
        kwargs["extra"].setdefault("status", _status_for(level))
        self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: object, *args: object, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: object, *args: object, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: object, *args: object, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: object, *args: object, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: object, *args: object, exc_info: Any = True, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def critical(self, msg: object, *args: object, **kwargs: Any) -> None:
        self.log(logging.CRITICAL, msg, *args, **kwargs)

    def log_failure(
        self,
        message: str,
        *,
        exception: BaseException | None = None,
        operation: str | None = None,
        level: int = logging.ERROR,
        **fields: object,
    ) -> None:
        """Log a failed operation.

        The record gets ``status="error"`` whatever the level, plus
        ``error_type``/``error_detail`` when ``exception`` is given.

        Parameters
        ----------
        message : str
            Log message.
        exception : BaseException | None, optional
            Exception behind the failure. Defaults to None.
        operation : str | None, optional
            Operation name. Defaults to None.
        level : int, optional
            Level to log at. Defaults to ``logging.ERROR``.
        **fields : object
            Extra structured fields (method, url, attempt, ...).
        """
        extra: dict[str, object] = {**fields, "status": "error"}
        if operation is not None:
            extra["operation"] = operation
        if exception is not None:
            extra.update(error_type=type(exception).__name__, error_detail=str(exception))
        self.log(level, message, extra=extra)


def get_logger(name: str) -> LoggerAdapter:
    """Return a structured logger adapter for ``name``.

    A NullHandler is attached on first use so library logging stays silent
    until the application configures handlers.
    """
    base = logging.getLogger(name)
    if not base.handlers:
        base.addHandler(logging.NullHandler())
    return LoggerAdapter(base)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Send JSON lines to stdout from the root logger.

    Parameters
    ----------
    level : int | str, optional
        Threshold as a number or a level name (``"debug"``, ``"WARNING"``).
        Defaults to ``logging.INFO``.
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[stream], force=True)


def set_correlation_id(correlation_id: str | None) -> None:
    """Bind ``correlation_id`` to the current context (None clears it)."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Return the correlation id bound to the current context, if any."""
    return _correlation_id.get()


class CorrelationContext:
    """Bind a correlation id for the duration of a ``with`` block.

    Requests sent inside the block forward the id as ``X-Correlation-ID``;
    the previous id is restored on exit. One instance may be entered from
    several tasks at once; each task restores its own previous id.

    Examples
    --------
    >>> from httpguard.logging import CorrelationContext, get_correlation_id
    >>> with CorrelationContext("req-123"):
    ...     assert get_correlation_id() == "req-123"
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id

    def __enter__(self) -> Self:
        token = _correlation_id.set(self.correlation_id)
        _open_tokens.set((*_open_tokens.get(), token))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        *outer, token = _open_tokens.get()
        _open_tokens.set(tuple(outer))
        _correlation_id.reset(token)


@contextmanager
def with_fields(logger: logging.Logger | LoggerAdapter, **fields: object) -> Iterator[LoggerAdapter]:
    """Yield an adapter with ``fields`` bound to every record.

    Fields already bound on an adapter are kept. A ``correlation_id`` field is
    also bound to the context for the duration of the block.

    Examples
    --------
    >>> from httpguard.logging import get_logger, with_fields
    >>> with with_fields(get_logger(__name__), operation="http.request") as log:
    ...     log.debug("Sending")
    """
    if isinstance(logger, LoggerAdapter):
        base, bound = logger.logger, {**(logger.extra or {}), **fields}
    else:
        base, bound = logger, dict(fields)
    correlation_id = bound.get("correlation_id")
    if not isinstance(correlation_id, str):
        yield LoggerAdapter(base, bound)
        return
    with CorrelationContext(correlation_id):
        yield LoggerAdapter(base, bound)
