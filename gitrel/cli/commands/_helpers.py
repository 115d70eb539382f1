"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import NoReturn, TypeVar

import typer

from gitrel.core.errors import ErrorCode
from gitrel.core.result import Err, Result
from gitrel.output.console import ConsoleProtocol, Style

T = TypeVar("T")
E = TypeVar("E")


def exit_on_error[T, E](
    result: Result[T, E],
    console: ConsoleProtocol,
    error_code: ErrorCode = ErrorCode.FAILURE,
) -> T:
    """Exit with error if result is Err, otherwise return its value.

    This helper reduces boilerplate for the common pattern:
        match result:
            case Err(e):
                console.error(e.message)
                if e.hint:
                    console.print(f"hint: {e.hint}", Style.DIM)
                raise typer.Exit(code=int(ErrorCode.FAILURE))
            case Ok(value):
                ...

    Expects error objects to have 'message' and optional 'hint' and
    'diagnostic' attributes; the diagnostic is shown as a tail.
    """
    if isinstance(result, Err):
        error = result.error
        message: str = getattr(error, "message", str(error))
        hint: str | None = getattr(error, "hint", None)
        diagnostic: str | None = getattr(error, "diagnostic", None)
        console.error(message)
        if diagnostic:
            console.diagnostic(diagnostic)
        if hint:
            console.print(f"hint: {hint}", Style.DIM)
        raise typer.Exit(code=int(error_code))
    return result.value


def exit_with_code(code: int) -> NoReturn:
    """Exit with given code. Explicit helper for clarity."""
    raise typer.Exit(code=code)
