"""Tests for httpguard.http.validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypedDict

import pytest
from pydantic import BaseModel

from httpguard.errors import ConfigurationError
from httpguard.http.types import Invalid, Valid
from httpguard.http.validation import describe_kind, format_path, validate

USER_SCHEMA: dict[str, object] = {
    "type": "object",
    "required": ["id", "name"],
    "properties": {
        "id": {"type": "integer"},
        "name": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
    },
}


class User(BaseModel):
    id: int
    name: str


class UserDict(TypedDict):
    id: int
    name: str


class Flag(BaseModel):
    id: int
    active: bool


class Event(BaseModel):
    at: datetime


@dataclass
class Point:
    x: float
    y: float


class TestDescribeKind:
    """Tests for describe_kind."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "null"),
            (True, "boolean"),
            (3, "integer"),
            (1.5, "number"),
            ("s", "string"),
            ({}, "object"),
            ([], "array"),
        ],
    )
    def test_json_kinds(self, value: object, expected: str) -> None:
        assert describe_kind(value) == expected


class TestFormatPath:
    """Tests for format_path."""

    def test_root(self) -> None:
        assert format_path([]) == "$"

    def test_mixed_segments(self) -> None:
        assert format_path(["items", 2, "id"]) == "$.items[2].id"


class TestJsonSchemaShapes:
    """Tests for JSON Schema shape descriptors."""

    def test_none_shape_accepts_anything(self) -> None:
        """A None descriptor returns the body unchanged."""
        body = {"anything": [1, 2]}
        result = validate(body, None)
        assert isinstance(result, Valid)
        assert result.value is body

    def test_conforming_body_returned_unchanged(self) -> None:
        body = {"id": 7, "name": "Ada", "tags": ["admin"]}
        result = validate(body, USER_SCHEMA)
        assert result == Valid(body)

    def test_wrong_type_reports_path_and_kinds(self) -> None:
        """Mismatches name the field path, expected type and actual kind."""
        result = validate({"id": "7", "name": "Ada"}, USER_SCHEMA)
        assert isinstance(result, Invalid)
        assert result.reason == "$.id: expected integer, got string"

    def test_missing_required_field(self) -> None:
        result = validate({"id": 7}, USER_SCHEMA)
        assert isinstance(result, Invalid)
        assert result.reason == "$.name: expected a value, got nothing"

    def test_nested_array_item(self) -> None:
        result = validate({"id": 7, "name": "Ada", "tags": ["ok", 3]}, USER_SCHEMA)
        assert isinstance(result, Invalid)
        assert result.reason == "$.tags[1]: expected string, got integer"

    def test_multiple_errors_summarised(self) -> None:
        """All mismatches are kept; the reason counts the extras."""
        result = validate({"id": "7", "name": 1}, USER_SCHEMA)
        assert isinstance(result, Invalid)
        assert len(result.errors) == 2
        assert result.reason.endswith("(+1 more)")

    def test_root_type_mismatch(self) -> None:
        result = validate([1, 2], USER_SCHEMA)
        assert isinstance(result, Invalid)
        assert result.reason == "$: expected object, got array"

    def test_body_not_mutated(self) -> None:
        body = {"id": "7", "name": "Ada"}
        validate(body, USER_SCHEMA)
        assert body == {"id": "7", "name": "Ada"}

    def test_malformed_schema_raises(self) -> None:
        """A broken schema is a configuration error, not a mismatch."""
        with pytest.raises(ConfigurationError, match="Invalid JSON Schema"):
            validate({}, {"type": "not-a-type"})


class TestTypeShapes:
    """Tests for pydantic-backed shape descriptors."""

    def test_model_parsed(self) -> None:
        result = validate({"id": 7, "name": "Ada"}, User)
        assert isinstance(result, Valid)
        assert result.value == User(id=7, name="Ada")

    def test_model_mismatch(self) -> None:
        result = validate({"id": "seven", "name": "Ada"}, User)
        assert isinstance(result, Invalid)
        assert result.reason.startswith("$.id: ")
        assert result.reason.endswith("got string")

    def test_model_missing_field(self) -> None:
        result = validate({"id": 7}, User)
        assert isinstance(result, Invalid)
        assert result.reason == "$.name: expected a value, got nothing"

    def test_typed_dict(self) -> None:
        result = validate({"id": 1, "name": "x"}, UserDict)
        assert result == Valid({"id": 1, "name": "x"})

    def test_dataclass(self) -> None:
        result = validate({"x": 1.0, "y": 2.5}, Point)
        assert result == Valid(Point(1.0, 2.5))

    def test_generic_list(self) -> None:
        result = validate([1, 2, "three"], list[int])
        assert isinstance(result, Invalid)
        assert result.reason.startswith("$[2]: ")

    def test_numeric_string_not_coerced(self) -> None:
        """Strings that look like numbers or flags do not satisfy int or bool fields."""
        result = validate({"id": "7", "active": "yes"}, Flag)
        assert isinstance(result, Invalid)
        assert len(result.errors) == 2
        assert result.errors[0].startswith("$.id: ")
        assert result.errors[0].endswith("got string")
        assert result.errors[1].startswith("$.active: ")
        assert result.errors[1].endswith("got string")

    def test_typed_dict_rejects_numeric_string(self) -> None:
        result = validate({"id": "1", "name": "x"}, UserDict)
        assert isinstance(result, Invalid)
        assert result.reason.startswith("$.id: ")

    def test_iso_string_parses_to_datetime(self) -> None:
        """JSON-native encodings of richer types still parse."""
        result = validate({"at": "2024-05-01T12:00:00Z"}, Event)
        assert result == Valid(Event(at=datetime(2024, 5, 1, 12, tzinfo=UTC)))

    def test_int_accepted_for_float_field(self) -> None:
        assert validate({"x": 1, "y": 2}, Point) == Valid(Point(1.0, 2.0))

    def test_unsupported_shape_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Unsupported shape descriptor"):
            validate({}, object())
