"""Retry policy configuration, loading and decisions.

:class:`RetryPolicy` is a pure decision function: given the outcome of one attempt,
the attempt number and the request method it returns a
:class:`~httpguard.http.types.RetryDecision`. Policies are built from settings or
loaded from YAML documents validated against ``policy.schema.json``.
"""

from __future__ import annotations

import json
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final, Self

import yaml

from httpguard.errors import ConfigurationError
from httpguard.http.types import (
    STOP,
    AttemptOutcome,
    FailureKind,
    HttpMethod,
    RetryDecision,
    Success,
)
from httpguard.jsonschema_utils import ValidationError
from httpguard.jsonschema_utils import validate as jsonschema_validate

if TYPE_CHECKING:
    from httpguard.settings import HttpClientSettings

__all__ = [
    "IDEMPOTENT_METHODS",
    "PolicyRegistry",
    "RetryPolicy",
    "load_policy",
]

IDEMPOTENT_METHODS: Final[frozenset[HttpMethod]] = frozenset(
    {HttpMethod.GET, HttpMethod.PUT, HttpMethod.PATCH, HttpMethod.DELETE}
)
_RETRYABLE_FAILURES: Final[frozenset[FailureKind]] = frozenset(
    {FailureKind.NETWORK, FailureKind.TIMEOUT}
)
_RETRY_AFTER_STATUSES: Final[frozenset[int]] = frozenset({429, 503})
_SCHEMA_PATH: Final[Path] = Path(__file__).with_name("policy.schema.json")
_BUNDLED_POLICIES: Final[Path] = Path(__file__).with_name("policies")


def _parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP-date).

    Parameters
    ----------
    value : str | None
        Header value.
    now : datetime | None, optional
        Reference time for HTTP-dates. Defaults to the current UTC time.

    Returns
    -------
    float | None
        Non-negative seconds to wait, or None if absent or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    reference = now or datetime.now(UTC)
    return max(0.0, (when - reference).total_seconds())


@dataclass(frozen=True)
class RetryPolicy:
    """Retry eligibility and exponential backoff for outbound requests.

    Attributes
    ----------
    name : str
        Policy name identifier.
    description : str | None
        Human-readable description.
    methods : frozenset[HttpMethod]
        Methods eligible for retry. Defaults to the idempotent methods
        (GET, PUT, PATCH, DELETE); POST is never retried by default.
    max_retries : int
        Retry budget; ``max_retries + 1`` attempts in total.
    wait_initial_s : float
        Backoff factor. Retry ``n`` (zero-based) waits
        ``wait_initial_s * wait_base ** (n + 1)`` seconds.
    wait_base : float
        Exponential base.
    wait_jitter : float
        Upper bound of random extra delay as a fraction of the backoff.
    wait_max_s : float | None
        Optional cap on a single delay.
    respect_retry_after : bool
        Honour ``Retry-After`` on 429/503 responses when it asks for longer.
    retry_keyed_posts : bool
        Treat a POST carrying an ``Idempotency-Key`` header as retryable.
    rand : Callable[[], float]
        Source of uniform ``[0, 1)`` values for jitter.
    """

    name: str = "default"
    description: str | None = None
    methods: frozenset[HttpMethod] = IDEMPOTENT_METHODS
    max_retries: int = 3
    wait_initial_s: float = 0.1
    wait_base: float = 2.0
    wait_jitter: float = 0.2
    wait_max_s: float | None = None
    respect_retry_after: bool = True
    retry_keyed_posts: bool = False
    rand: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ConfigurationError(msg, context={"policy": self.name})
        if not 0.0 <= self.wait_jitter <= 1.0:
            msg = f"wait_jitter must be within [0, 1], got {self.wait_jitter}"
            raise ConfigurationError(msg, context={"policy": self.name})

    @classmethod
    def from_settings(cls, settings: HttpClientSettings) -> Self:
        """Build the policy described by client ``settings``."""
        return cls(
            name=f"{settings.service}-settings",
            max_retries=settings.max_retries,
            wait_initial_s=settings.backoff_initial_s,
            wait_base=settings.backoff_base,
            wait_jitter=settings.backoff_jitter,
            wait_max_s=settings.backoff_max_s,
            respect_retry_after=settings.respect_retry_after,
            retry_keyed_posts=settings.retry_keyed_posts,
        )

    def is_eligible(self, method: HttpMethod | str, *, idempotency_key: bool = False) -> bool:
        """Return True when ``method`` may be retried at all.

        Parameters
        ----------
        method : HttpMethod | str
            Request method.
        idempotency_key : bool, optional
            Whether the request carries an ``Idempotency-Key`` header.
            Defaults to False.

        Returns
        -------
        bool
            Eligibility under this policy.
        """
        method = HttpMethod.parse(method)
        if method in self.methods:
            return True
        return method is HttpMethod.POST and self.retry_keyed_posts and idempotency_key

    @staticmethod
    def is_retryable(outcome: AttemptOutcome) -> bool:
        """Classify ``outcome`` ignoring method and budget.

        Network failures and timeouts (no status at all) are retryable, aborts
        are not. Responses retry on 429 and on any 5xx; other 4xx and every
        1xx/2xx/3xx status are terminal.
        """
        if not isinstance(outcome, Success):
            return outcome.kind in _RETRYABLE_FAILURES
        status = outcome.status
        if 400 <= status < 500 and status != 429:
            return False
        if status == 429:
            return True
        return status >= 500

    def backoff_s(self, attempt: int, outcome: AttemptOutcome | None = None) -> float:
        """Return the delay before retrying after zero-based ``attempt``.

        Parameters
        ----------
        attempt : int
            Zero-based index of the attempt that just failed.
        outcome : AttemptOutcome | None, optional
            The failed outcome; consulted for ``Retry-After``. Defaults to None.

        Returns
        -------
        float
            Seconds to sleep.
        """
        delay = self.wait_initial_s * (self.wait_base ** (attempt + 1))
        delay += delay * self.wait_jitter * self.rand()
        if (
            self.respect_retry_after
            and isinstance(outcome, Success)
            and outcome.status in _RETRY_AFTER_STATUSES
        ):
            retry_after = _parse_retry_after(outcome.header("Retry-After"))
            if retry_after is not None:
                delay = max(delay, retry_after)
        if self.wait_max_s is not None:
            delay = min(delay, self.wait_max_s)
        return delay

    def decide(
        self,
        outcome: AttemptOutcome,
        attempt: int,
        method: HttpMethod | str,
        *,
        idempotency_key: bool = False,
    ) -> RetryDecision:
        """Decide whether to retry after ``outcome``.

        Parameters
        ----------
        outcome : AttemptOutcome
            Result of the attempt just made.
        attempt : int
            Zero-based index of that attempt (number of retries already made).
        method : HttpMethod | str
            Request method.
        idempotency_key : bool, optional
            Whether the request carries an ``Idempotency-Key`` header.
            Defaults to False.

        Returns
        -------
        RetryDecision
            ``should_retry`` plus the delay to wait first.
        """
        if not self.is_eligible(method, idempotency_key=idempotency_key):
            return STOP
        if not self.is_retryable(outcome):
            return STOP
        if attempt >= self.max_retries:
            return STOP
        return RetryDecision(should_retry=True, delay_s=self.backoff_s(attempt, outcome))


def load_policy(path: Path, schema_path: Path | None = _SCHEMA_PATH) -> RetryPolicy:
    """Load a retry policy from a YAML document.

    Parameters
    ----------
    path : Path
        Policy YAML file.
    schema_path : Path | None, optional
        JSON Schema the document must satisfy. Defaults to the bundled
        ``policy.schema.json``; None skips validation.

    Returns
    -------
    RetryPolicy
        Loaded policy.

    Raises
    ------
    ConfigurationError
        If the file is unreadable, not YAML, or does not match the schema.
    """
    try:
        obj = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Failed to read retry policy {path}: {exc}"
        raise ConfigurationError(msg, cause=exc, context={"path": str(path)}) from exc
    if schema_path is not None and schema_path.exists():
        try:
            jsonschema_validate(obj, json.loads(schema_path.read_text(encoding="utf-8")))
        except ValidationError as exc:
            msg = f"Retry policy {path} does not match schema: {exc}"
            raise ConfigurationError(msg, cause=exc, context={"path": str(path)}) from exc
    if not isinstance(obj, dict):
        msg = f"Retry policy {path} must be a mapping"
        raise ConfigurationError(msg, context={"path": str(path)})

    wait = obj["wait"]
    max_s = wait.get("max_s")
    return RetryPolicy(
        name=obj["name"],
        description=obj.get("description"),
        methods=frozenset(HttpMethod.parse(m) for m in obj["methods"]),
        max_retries=int(obj["stop"]["max_retries"]),
        wait_initial_s=float(wait["initial_s"]),
        wait_base=float(wait.get("base", 2.0)),
        wait_jitter=float(wait.get("jitter", 0.0)),
        wait_max_s=float(max_s) if max_s is not None else None,
        respect_retry_after=bool(obj.get("respect_retry_after", True)),
        retry_keyed_posts=bool(obj.get("retry_keyed_posts", False)),
    )


class PolicyRegistry:
    """Registry for loading retry policies from a directory.

    Parameters
    ----------
    root : Path
        Directory containing ``<name>.yaml`` policy files.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def bundled(cls) -> PolicyRegistry:
        """Return a registry over the policies shipped with httpguard."""
        return cls(_BUNDLED_POLICIES)

    def names(self) -> list[str]:
        """Return the available policy names, sorted."""
        return sorted(p.stem for p in self.root.glob("*.yaml"))

    def get(self, name: str) -> RetryPolicy:
        """Load policy ``name``.

        Raises
        ------
        FileNotFoundError
            If no ``<name>.yaml`` exists under the registry root.
        """
        p = self.root / f"{name}.yaml"
        if not p.exists():
            raise FileNotFoundError(p)
        return load_policy(p)
