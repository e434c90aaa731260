"""RFC 9457 Problem Details helpers with schema validation.

Route handlers that consume the client map an :class:`~httpguard.errors.HttpError`
to a protocol response; these helpers build the canonical payload for that mapping.
Every payload is validated against the bundled ``schemas/problem_details.json``.

Examples
--------
>>> from httpguard.problem_details import build_problem_details, render_problem
>>> problem = build_problem_details(
...     problem_type="https://httpguard.dev/problems/http-status",
...     title="HttpError",
...     status=404,
...     detail="GET https://api.example.com/users/7 returned 404",
...     instance="urn:httpguard:request",
...     code="http-status",
... )
>>> assert "http-status" in render_problem(problem)
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, TypedDict, cast

from httpguard.jsonschema_utils import SchemaError, create_draft202012_validator

if TYPE_CHECKING:
    from collections.abc import Mapping

    from httpguard.jsonschema_utils import ValidationErrorProtocol
    from httpguard.types import JsonValue

__all__ = [
    "ProblemDetails",
    "ProblemDetailsValidationError",
    "build_problem_details",
    "render_problem",
    "validate_problem_details",
]


_SCHEMA_PATH = Path(__file__).parent / "schemas" / "problem_details.json"


class ProblemDetails(TypedDict, total=False):
    """TypedDict for RFC 9457 Problem Details payloads."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str
    extensions: dict[str, JsonValue]


class ProblemDetailsValidationError(Exception):
    """Raised when a Problem Details payload fails schema validation.

    Parameters
    ----------
    message : str
        Human-readable error message.
    validation_errors : list[str] | None, optional
        Individual validation messages. Defaults to None.
    """

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.validation_errors = validation_errors or []


@lru_cache(maxsize=1)
def _load_schema() -> dict[str, object]:
    try:
        return cast("dict[str, object]", json.loads(_SCHEMA_PATH.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"Failed to load Problem Details schema: {exc}"
        raise ProblemDetailsValidationError(msg) from exc


def _describe(error: ValidationErrorProtocol) -> list[str]:
    where = "/".join(str(part) for part in error.absolute_path)
    return [error.message, f"at /{where}"] if where else [error.message]


def validate_problem_details(payload: Mapping[str, JsonValue]) -> None:
    """Check ``payload`` against the bundled Problem Details schema.

    Raises
    ------
    ProblemDetailsValidationError
        If the payload does not conform, or the bundled schema is unusable.
    """
    try:
        validator = create_draft202012_validator(_load_schema())
    except SchemaError as exc:
        msg = f"Invalid Problem Details schema: {exc}"
        raise ProblemDetailsValidationError(msg) from exc
    errors = [line for error in validator.iter_errors(payload) for line in _describe(error)]
    if errors:
        msg = f"Problem Details validation failed: {'; '.join(errors)}"
        raise ProblemDetailsValidationError(msg, validation_errors=errors)


def build_problem_details(
    problem_type: str,
    title: str,
    status: int,
    detail: str,
    instance: str,
    *,
    code: str | None = None,
    extensions: Mapping[str, JsonValue] | None = None,
) -> ProblemDetails:
    """Build and validate an RFC 9457 Problem Details payload.

    Parameters
    ----------
    problem_type : str
        Type URI identifying the problem.
    title : str
        Short summary.
    status : int
        HTTP status code for the protocol response.
    detail : str
        Human-readable explanation.
    instance : str
        URI identifying this occurrence.
    code : str | None, optional
        Stable kebab-case error code. Defaults to None.
    extensions : Mapping[str, JsonValue] | None, optional
        Extra members. Defaults to None.

    Returns
    -------
    ProblemDetails
        Validated payload.
    """
    payload: dict[str, object] = {
        "type": problem_type,
        "title": title,
        "status": status,
        "detail": detail,
        "instance": instance,
    }
    if code is not None:
        payload["code"] = code
    if extensions:
        payload["extensions"] = dict(extensions)

    validate_problem_details(cast("Mapping[str, JsonValue]", payload))
    return cast("ProblemDetails", payload)


def render_problem(problem: ProblemDetails | Mapping[str, object]) -> str:
    """Render ``problem`` as minified JSON (non-ASCII preserved)."""
    return json.dumps(problem, ensure_ascii=False, separators=(",", ":"), default=str)
