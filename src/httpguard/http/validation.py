"""Structural validation of decoded response bodies.

:func:`validate` is the default :class:`~httpguard.http.types.ShapeValidator`. It accepts
two kinds of shape descriptor:

- a JSON Schema mapping (Draft 2020-12, checked with :mod:`jsonschema`); the body is
  returned unchanged when it conforms;
- any type pydantic can build a ``TypeAdapter`` for (models, dataclasses, ``TypedDict``,
  ``list[int]``, ...); the body is checked in strict JSON mode, so ``"7"`` is not an
  integer but an ISO string still becomes a ``datetime``. The parsed instance is returned.

Mismatches are reported as :class:`~httpguard.http.types.Invalid` values, never raised.

Examples
--------
>>> from httpguard.http.validation import validate
>>> validate({"id": "7"}, {"type": "object", "properties": {"id": {"type": "integer"}}})
Invalid(reason='$.id: expected integer, got string', errors=('$.id: expected integer, got string',))
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import msgspec
from pydantic import PydanticUserError, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from httpguard.errors import ConfigurationError
from httpguard.http.types import Invalid, Valid, ValidationResult
from httpguard.jsonschema_utils import SchemaError, create_draft202012_validator

if TYPE_CHECKING:
    from httpguard.jsonschema_utils import ValidationErrorProtocol

__all__ = ["describe_kind", "format_path", "validate"]


def describe_kind(value: object) -> str:
    """Return the JSON kind name of ``value`` (``"integer"``, ``"array"``, ...)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return "array"
    return type(value).__name__


def format_path(segments: Sequence[object]) -> str:
    """Render ``segments`` as a JSONPath-like string rooted at ``$``."""
    path = "$"
    for segment in segments:
        if isinstance(segment, int):
            path += f"[{segment}]"
        else:
            path += f".{segment}"
    return path


def _summarise(errors: list[str]) -> Invalid:
    reason = errors[0]
    if len(errors) > 1:
        reason += f" (+{len(errors) - 1} more)"
    return Invalid(reason=reason, errors=tuple(errors))


def _describe_schema_error(error: ValidationErrorProtocol) -> str:
    path = format_path(list(error.absolute_path))
    if error.validator == "type":
        expected = error.validator_value
        if isinstance(expected, list):
            expected = " or ".join(str(e) for e in expected)
        return f"{path}: expected {expected}, got {describe_kind(error.instance)}"
    if error.validator == "required" and isinstance(error.instance, Mapping):
        required = error.validator_value if isinstance(error.validator_value, list) else []
        missing = [name for name in required if name not in error.instance]
        if missing:
            return f"{format_path([*error.absolute_path, missing[0]])}: expected a value, got nothing"
    return f"{path}: {error.message}"


def _validate_json_schema(body: object, schema: Mapping[str, object]) -> ValidationResult:
    try:
        validator = create_draft202012_validator(schema)
    except SchemaError as exc:
        msg = f"Invalid JSON Schema shape descriptor: {exc}"
        raise ConfigurationError(msg, cause=exc) from exc
    errors = sorted(validator.iter_errors(body), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return Valid(body)
    return _summarise([_describe_schema_error(error) for error in errors])


@lru_cache(maxsize=256)
def _adapter_for(shape: Any) -> TypeAdapter[Any]:
    return TypeAdapter(shape)


def _describe_pydantic_error(error: Mapping[str, Any]) -> str:
    path = format_path(list(error.get("loc", ())))
    if error.get("type") == "missing":
        return f"{path}: expected a value, got nothing"
    return f"{path}: {error.get('msg', 'invalid value')}, got {describe_kind(error.get('input'))}"


def _build_adapter(shape: object) -> TypeAdapter[Any]:
    try:
        hash(shape)
    except TypeError:
        # unhashable descriptors (e.g. Annotated with dict metadata) skip the cache
        return TypeAdapter(shape)
    return _adapter_for(shape)


def _strict_validate(adapter: TypeAdapter[Any], body: object) -> Any:
    try:
        raw = msgspec.json.encode(body)
    except (TypeError, msgspec.EncodeError):
        # not a decoded JSON value
        return adapter.validate_python(body, strict=True)
    return adapter.validate_json(raw, strict=True)


def _validate_type(body: object, shape: object) -> ValidationResult:
    try:
        adapter = _build_adapter(shape)
    except (PydanticUserError, TypeError) as exc:
        msg = f"Unsupported shape descriptor: {shape!r}"
        raise ConfigurationError(msg, cause=exc) from exc
    try:
        value = _strict_validate(adapter, body)
    except PydanticValidationError as exc:
        return _summarise([_describe_pydantic_error(err) for err in exc.errors()])
    return Valid(value)


def validate(body: object, shape: object) -> ValidationResult:
    """Check ``body`` against ``shape``.

    Parameters
    ----------
    body : object
        Decoded response body. Never mutated.
    shape : object
        None (accept anything), a JSON Schema mapping, or a type pydantic
        can validate.

    Returns
    -------
    ValidationResult
        ``Valid`` carrying the conforming value, or ``Invalid`` with a
        field path plus expected versus actual kind.

    Raises
    ------
    ConfigurationError
        If ``shape`` itself is malformed (bad schema, unsupported type).
    """
    if shape is None:
        return Valid(body)
    if isinstance(shape, Mapping):
        return _validate_json_schema(body, shape)
    return _validate_type(body, shape)
