"""Tenacity-based retry loop driven by a :class:`~httpguard.http.policy.RetryPolicy`.

Attempts return outcomes instead of raising, so the policy plugs into tenacity as a
result predicate (``retry``) and a wait function (``wait``). The decision computed by
the predicate is reused by the wait so each attempt is judged exactly once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeAlias

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from httpguard.http.types import STOP, AttemptOutcome, HttpMethod, RetryDecision, Success
from httpguard.logging import get_logger

if TYPE_CHECKING:
    from httpguard.http.policy import RetryPolicy

__all__ = ["Sleep", "TenacityRetryStrategy"]

logger = get_logger(__name__)

Sleep: TypeAlias = Callable[[float], Awaitable[None]]


def _describe(outcome: AttemptOutcome) -> dict[str, object]:
    if isinstance(outcome, Success):
        return {"status_code": outcome.status}
    return {"failure": outcome.kind.value}


class TenacityRetryStrategy:
    """Run attempts until the policy says stop.

    Parameters
    ----------
    policy : RetryPolicy
        Decides retry eligibility and backoff.
    sleep : Sleep | None, optional
        Coroutine used for backoff waits. Defaults to :func:`asyncio.sleep`.
    """

    def __init__(self, policy: RetryPolicy, *, sleep: Sleep | None = None) -> None:
        self.policy = policy
        self.sleep: Sleep = sleep or asyncio.sleep

    async def run(
        self,
        attempt: Callable[[], Awaitable[AttemptOutcome]],
        *,
        method: HttpMethod,
        idempotency_key: bool = False,
        sleep: Sleep | None = None,
        log_fields: dict[str, object] | None = None,
    ) -> AttemptOutcome:
        """Call ``attempt`` until the policy stops retrying; return the last outcome.

        Parameters
        ----------
        attempt : Callable[[], Awaitable[AttemptOutcome]]
            Performs one exchange. Exceptions it raises are not retried and
            propagate unchanged.
        method : HttpMethod
            Request method, for eligibility.
        idempotency_key : bool, optional
            Whether the request carries an ``Idempotency-Key`` header.
        sleep : Sleep | None, optional
            Overrides the strategy's sleep for this run (e.g. an abortable one).
        log_fields : dict[str, object] | None, optional
            Structured fields added to retry log records.

        Returns
        -------
        AttemptOutcome
            The terminal outcome.
        """
        decision: RetryDecision = STOP
        fields = dict(log_fields or {})

        def _should_retry(state: RetryCallState) -> bool:
            nonlocal decision
            if state.outcome is None or state.outcome.failed:
                decision = STOP
                return False
            decision = self.policy.decide(
                state.outcome.result(),
                state.attempt_number - 1,
                method,
                idempotency_key=idempotency_key,
            )
            return decision.should_retry

        def _wait(state: RetryCallState) -> float:
            del state
            return decision.delay_s

        def _before_sleep(state: RetryCallState) -> None:
            described = _describe(state.outcome.result()) if state.outcome else {}
            logger.warning(
                "Retrying request",
                extra={
                    **fields,
                    **described,
                    "operation": "http.retry",
                    "status": "retrying",
                    "attempt": state.attempt_number,
                    "delay_s": round(decision.delay_s, 3),
                },
            )

        def _last_outcome(state: RetryCallState) -> AttemptOutcome:
            # only reached if the attempt ceiling trips before the policy stops
            return state.outcome.result()  # type: ignore[union-attr]  # set once an attempt ran

        retrying = AsyncRetrying(
            retry=_should_retry,
            wait=_wait,
            stop=stop_after_attempt(self.policy.max_retries + 1),
            sleep=sleep or self.sleep,
            before_sleep=_before_sleep,
            retry_error_callback=_last_outcome,
        )
        return await retrying(attempt)
