"""Typed access to :mod:`jsonschema` for shapes, policies and Problem Details.

All Draft 2020-12 validation in httpguard goes through here. Validators are compiled
once per distinct schema, so a response shape used on every request is checked
against the meta-schema only the first time.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import TYPE_CHECKING, Protocol, cast

from jsonschema.exceptions import SchemaError as _SchemaError
from jsonschema.exceptions import ValidationError as _ValidationError
from jsonschema.validators import Draft202012Validator as _Draft202012Validator

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

__all__ = [
    "Draft202012Validator",
    "SchemaError",
    "SchemaValidator",
    "ValidationError",
    "ValidationErrorProtocol",
    "create_draft202012_validator",
    "validate",
]


class ValidationErrorProtocol(Protocol):
    """The parts of ``jsonschema.exceptions.ValidationError`` httpguard reads."""

    message: str
    validator: str
    validator_value: object
    instance: object
    absolute_path: Sequence[object]


class SchemaValidator(Protocol):
    """A compiled Draft 2020-12 validator."""

    def iter_errors(self, instance: object) -> Iterable[ValidationErrorProtocol]: ...

    def validate(self, instance: object) -> None: ...


Draft202012Validator = _Draft202012Validator
SchemaError = cast("type[Exception]", _SchemaError)
ValidationError = cast("type[Exception]", _ValidationError)


@lru_cache(maxsize=128)
def _compiled(schema_json: str) -> SchemaValidator:
    schema = json.loads(schema_json)
    _Draft202012Validator.check_schema(schema)
    return cast("SchemaValidator", _Draft202012Validator(schema))


def create_draft202012_validator(schema: Mapping[str, object]) -> SchemaValidator:
    """Return a compiled validator for ``schema``.

    Parameters
    ----------
    schema : Mapping[str, object]
        JSON Schema document.

    Returns
    -------
    SchemaValidator
        Validator, shared between calls with an equal schema.

    Raises
    ------
    SchemaError
        If ``schema`` is not a valid Draft 2020-12 schema.
    """
    return _compiled(json.dumps(schema, sort_keys=True, default=str))


def validate(instance: object, schema: Mapping[str, object]) -> None:
    """Validate ``instance`` against ``schema``.

    Raises
    ------
    ValidationError
        On the first violation.
    SchemaError
        If ``schema`` itself is invalid.
    """
    create_draft202012_validator(schema).validate(instance)
