"""Tests for httpguard.http.tenacity_retry."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import pytest

from httpguard.http.policy import RetryPolicy
from httpguard.http.tenacity_retry import TenacityRetryStrategy
from httpguard.http.types import AttemptOutcome, FailureKind, HttpMethod, Success, TransportFailure

if TYPE_CHECKING:
    from conftest import RecordingSleep


def _scripted(
    *outcomes: AttemptOutcome,
) -> tuple[list[int], Callable[[], Awaitable[AttemptOutcome]]]:
    calls: list[int] = []

    async def attempt() -> AttemptOutcome:
        calls.append(len(calls))
        return outcomes[min(len(calls) - 1, len(outcomes) - 1)]

    return calls, attempt


class TestTenacityRetryStrategy:
    """Tests for TenacityRetryStrategy.run."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self, no_sleep: RecordingSleep) -> None:
        strategy = TenacityRetryStrategy(RetryPolicy(), sleep=no_sleep)
        calls, attempt = _scripted(Success(200, {}, b"ok"))
        outcome = await strategy.run(attempt, method=HttpMethod.GET)
        assert outcome == Success(200, {}, b"ok")
        assert len(calls) == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_sleeps_policy_delays(self, no_sleep: RecordingSleep) -> None:
        """Each wait uses the delay the policy decided for that attempt."""
        strategy = TenacityRetryStrategy(RetryPolicy(rand=lambda: 0.0), sleep=no_sleep)
        calls, attempt = _scripted(
            TransportFailure(FailureKind.TIMEOUT), Success(502, {}, b""), Success(200, {}, b"")
        )
        outcome = await strategy.run(attempt, method=HttpMethod.GET)
        assert isinstance(outcome, Success)
        assert outcome.status == 200
        assert len(calls) == 3
        assert no_sleep.delays == pytest.approx([0.2, 0.4])

    @pytest.mark.asyncio
    async def test_returns_last_outcome_when_exhausted(self, no_sleep: RecordingSleep) -> None:
        strategy = TenacityRetryStrategy(RetryPolicy(max_retries=2, rand=lambda: 0.0), sleep=no_sleep)
        calls, attempt = _scripted(Success(503, {}, b"busy"))
        outcome = await strategy.run(attempt, method=HttpMethod.PATCH)
        assert outcome == Success(503, {}, b"busy")
        assert len(calls) == 3
        assert len(no_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_per_run_sleep_override(self, no_sleep: RecordingSleep) -> None:
        overridden: list[float] = []

        async def other_sleep(seconds: float) -> None:
            overridden.append(seconds)

        strategy = TenacityRetryStrategy(RetryPolicy(rand=lambda: 0.0), sleep=no_sleep)
        _, attempt = _scripted(Success(500, {}, b""), Success(200, {}, b""))
        await strategy.run(attempt, method=HttpMethod.GET, sleep=other_sleep)
        assert overridden == pytest.approx([0.2])
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_attempt_exceptions_propagate(self, no_sleep: RecordingSleep) -> None:
        """Exceptions raised by the attempt are not retried."""
        calls: list[int] = []

        async def attempt() -> AttemptOutcome:
            calls.append(1)
            raise RuntimeError("bug in attempt")

        strategy = TenacityRetryStrategy(RetryPolicy(), sleep=no_sleep)
        with pytest.raises(RuntimeError, match="bug in attempt"):
            await strategy.run(attempt, method=HttpMethod.GET)
        assert calls == [1]
