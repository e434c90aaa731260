"""Type aliases shared across httpguard.

Kept free of intra-package imports so every module can depend on it.
"""

from __future__ import annotations

from typing import TypeAlias

__all__ = [
    "JsonPrimitive",
    "JsonValue",
]


# Primitive JSON types (leaf values)
JsonPrimitive: TypeAlias = str | int | float | bool | None

# JSON value can be primitive or nested (dict/list)
JsonValue: TypeAlias = JsonPrimitive | dict[str, "JsonValue"] | list["JsonValue"]
