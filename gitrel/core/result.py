"""Result type for explicit error handling.

Every step of a release either produces a value or a typed error. Returning
a Result instead of raising keeps the rollback paths visible at each call
site: a caller that ignores an Err has to do so on purpose.

Usage:
    def read_build_number(raw: str) -> Result[int, str]:
        if not raw.strip().isdigit():
            return Err(f"not a build number: {raw!r}")
        return Ok(int(raw))

    match read_build_number("41"):
        case Ok(value):
            print(f"next build: {value + 1}")
        case Err(error):
            print(f"error: {error}")
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")
F = TypeVar("F")


@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Successful result carrying a value."""

    value: T

    def map(self, f: Callable[[T], U]) -> Ok[U]:
        """Apply f to the value, keeping the Ok wrapper."""
        return Ok(f(self.value))

    def map_err(self, f: Callable[[E], F]) -> Ok[T]:
        return self

    def flat_map(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain a step that can itself fail."""
        return f(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err[E]:
    """Failed result carrying an error."""

    error: E

    def map(self, f: Callable[[T], U]) -> Err[E]:
        return self

    def map_err(self, f: Callable[[E], F]) -> Err[F]:
        """Apply f to the error, keeping the Err wrapper."""
        return Err(f(self.error))

    def flat_map(self, f: Callable[[T], Result[U, E]]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


type Result[T, E] = Ok[T] | Err[E]
