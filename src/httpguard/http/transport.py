"""Single-exchange HTTP transport backed by :mod:`httpx`.

:class:`HttpxTransport` performs exactly one exchange per :meth:`~HttpxTransport.send`
and reports it as an :data:`~httpguard.http.types.AttemptOutcome`. It never retries and
never raises for network trouble: timeouts, connection failures and aborts become
:class:`~httpguard.http.types.TransportFailure` values.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Self, TypeVar

import httpx
import msgspec
from pydantic import BaseModel

from httpguard.errors import ConfigurationError
from httpguard.http.types import (
    AbortSignal,
    AttemptOutcome,
    FailureKind,
    RequestConfig,
    Success,
    TransportFailure,
)
from httpguard.logging import get_logger
from httpguard.settings import DEFAULT_TIMEOUT_S

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["HttpxTransport", "encode_body", "race_abort"]

logger = get_logger(__name__)

T = TypeVar("T")

_JSON_CONTENT_TYPE = "application/json"


def _encode_hook(obj: object) -> object:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    msg = f"Objects of type {type(obj).__name__} are not JSON encodable"
    raise TypeError(msg)


def encode_body(config: RequestConfig) -> tuple[bytes | None, dict[str, str]]:
    """Encode ``config.body`` and return it with any implied headers.

    ``bytes`` go out unchanged, ``str`` as UTF-8, anything else as JSON via
    :mod:`msgspec` (with a JSON content type unless one is already set). Pydantic
    models are encoded through ``model_dump(mode="json")``.

    Returns
    -------
    tuple[bytes | None, dict[str, str]]
        Encoded body (None when there is none) and extra headers.

    Raises
    ------
    ConfigurationError
        If the body cannot be encoded as JSON.
    """
    body = config.body
    if body is None:
        return None, {}
    if isinstance(body, (bytes, bytearray)):
        return bytes(body), {}
    if isinstance(body, str):
        return body.encode("utf-8"), {}
    extra = {} if config.header("Content-Type") else {"Content-Type": _JSON_CONTENT_TYPE}
    try:
        content = msgspec.json.encode(body, enc_hook=_encode_hook)
    except (TypeError, ValueError, msgspec.EncodeError) as exc:
        msg = f"Request body for {config.method.value} {config.url} is not JSON encodable: {exc}"
        raise ConfigurationError(msg, cause=exc) from exc
    return content, extra


async def race_abort(
    work: asyncio.Future[T] | asyncio.Task[T], signal: AbortSignal | None
) -> T | None:
    """Await ``work`` unless ``signal`` fires first.

    Returns
    -------
    T | None
        The result of ``work``, or None if the signal won (``work`` is then
        cancelled and awaited).
    """
    if signal is None:
        return await work
    watcher = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        watcher.cancel()
    if work in done:
        return work.result()
    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    return None


class HttpxTransport:
    """Transport that sends each request once through ``httpx.AsyncClient``.

    Parameters
    ----------
    client : httpx.AsyncClient | None, optional
        Client to use. When omitted one is created and owned (closed by
        :meth:`aclose`). Defaults to None.
    default_timeout_s : float, optional
        Timeout for requests whose config leaves ``timeout_s`` unset.
        Defaults to 15 seconds.

    Examples
    --------
    >>> import httpx
    >>> transport = HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(
    ...     lambda request: httpx.Response(200, json={"ok": True})
    ... )))
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        default_timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self.default_timeout_s = default_timeout_s

    async def send(self, config: RequestConfig) -> AttemptOutcome:
        """Perform one exchange for ``config``.

        Parameters
        ----------
        config : RequestConfig
            Request to send. ``timeout_s`` bounds the whole exchange.

        Returns
        -------
        AttemptOutcome
            ``Success`` for any received response, ``TransportFailure`` otherwise.
        """
        if config.abort is not None and config.abort.aborted:
            return TransportFailure(FailureKind.ABORTED)

        timeout_s = config.timeout_s or self.default_timeout_s
        content, implied_headers = encode_body(config)
        headers = {**implied_headers, **config.headers}
        exchange = asyncio.ensure_future(
            self._exchange(config, headers=headers, content=content, timeout_s=timeout_s)
        )
        try:
            outcome = await race_abort(exchange, config.abort)
        except (httpx.TimeoutException, TimeoutError) as exc:
            return TransportFailure(FailureKind.TIMEOUT, exc)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            return TransportFailure(FailureKind.NETWORK, exc)
        if outcome is None:
            logger.debug(
                "Exchange abandoned",
                extra={
                    "operation": "http.send",
                    "status": "aborted",
                    "method": config.method.value,
                    "url": config.url,
                },
            )
            return TransportFailure(FailureKind.ABORTED)
        return outcome

    async def _exchange(
        self,
        config: RequestConfig,
        *,
        headers: dict[str, str],
        content: bytes | None,
        timeout_s: float,
    ) -> Success:
        async with asyncio.timeout(timeout_s):
            response = await self._client.request(
                config.method.value,
                config.url,
                headers=headers,
                params=dict(config.params) if config.params else None,
                content=content,
                timeout=timeout_s,
            )
        return Success(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()
