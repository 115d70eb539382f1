"""Helpers for reading untyped TOML tables.

Each accessor distinguishes "missing" (None) from "present with the wrong
type" (WrongType), so the config loader can fall back to defaults for the
former and report the latter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, TypeGuard, cast

StrDict = dict[str, object]


@dataclass(frozen=True, slots=True)
class WrongType:
    """A key is present but holds a value of the wrong type."""

    key: str
    expected: str
    actual: str

    def describe(self) -> str:
        return f"'{self.key}' must be {self.expected}, got {self.actual}"


def is_str_dict(obj: object) -> TypeGuard[StrDict]:
    """Return True if obj is a dict with string keys."""
    if not isinstance(obj, dict):
        return False
    d = cast(dict[object, object], obj)
    return all(isinstance(k, str) for k in d.keys())


def as_str_dict(obj: object) -> StrDict | None:
    if is_str_dict(obj):
        return obj
    return None


def _wrong(key: str, expected: str, value: object) -> WrongType:
    return WrongType(key=key, expected=expected, actual=type(value).__name__)


def get_str(table: Mapping[str, object], key: str) -> str | WrongType | None:
    """Get a string value, stripped. Empty strings count as missing."""
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        return _wrong(key, "a string", value)
    s = value.strip()
    return s or None


def get_bool(table: Mapping[str, object], key: str) -> bool | WrongType | None:
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        return _wrong(key, "a boolean", value)
    return value


def get_str_list(table: Mapping[str, object], key: str) -> tuple[str, ...] | WrongType | None:
    """Get a list of non-empty strings as a tuple."""
    value = table.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        return _wrong(key, "a list of strings", value)
    items = cast(list[object], value)
    out: list[str] = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            return _wrong(key, "a list of strings", item)
        out.append(item.strip())
    return tuple(out)

