"""Shared pytest fixtures for httpguard tests.

This module provides reusable fixtures for:
- Scripted transports that replay a fixed sequence of attempt outcomes
- A recording no-op sleep so retry backoff never waits
- Client factories wired to both of the above
- Correlation id isolation between tests
"""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

import pytest

from httpguard.http import HttpClient, RequestConfig, RetryPolicy
from httpguard.http.types import AttemptOutcome
from httpguard.logging import set_correlation_id
from httpguard.settings import HttpClientSettings

if TYPE_CHECKING:
    from collections.abc import Iterator


class ScriptedTransport:
    """Transport that replays ``outcomes`` in order and records every config sent.

    The last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes: Sequence[AttemptOutcome]) -> None:
        self.outcomes = list(outcomes)
        self.sent: list[RequestConfig] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.sent)

    async def send(self, config: RequestConfig) -> AttemptOutcome:
        index = min(len(self.sent), len(self.outcomes) - 1)
        self.sent.append(config)
        return self.outcomes[index]

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    """Async sleep replacement that returns immediately and records delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    """Provide a sleep that never waits."""
    return RecordingSleep()


@pytest.fixture
def zero_jitter_policy() -> RetryPolicy:
    """Provide the default policy with jitter pinned to zero."""
    return RetryPolicy(rand=lambda: 0.0)


@pytest.fixture
def client_factory(
    no_sleep: RecordingSleep, zero_jitter_policy: RetryPolicy
) -> Callable[..., tuple[HttpClient, ScriptedTransport]]:
    """Provide a factory building a client over a scripted transport.

    Returns
    -------
    Callable[..., tuple[HttpClient, ScriptedTransport]]
        ``factory(outcomes, *, settings=None, policy=None)``.
    """

    def _factory(
        outcomes: Sequence[AttemptOutcome],
        *,
        settings: HttpClientSettings | None = None,
        policy: RetryPolicy | None = None,
    ) -> tuple[HttpClient, ScriptedTransport]:
        transport = ScriptedTransport(outcomes)
        client = HttpClient(
            settings or HttpClientSettings(),
            transport=transport,
            retry_policy=policy or zero_jitter_policy,
            sleep=no_sleep,
        )
        return client, transport

    return _factory


@pytest.fixture(autouse=True)
def _clear_correlation_id() -> Iterator[None]:
    set_correlation_id(None)
    yield
    set_correlation_id(None)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop any HTTPGUARD_* variables leaking in from the outer environment."""
    for key in list(os.environ):
        if key.startswith("HTTPGUARD_"):
            monkeypatch.delenv(key, raising=False)
