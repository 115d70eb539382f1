from __future__ import annotations

from pathlib import Path

import typer

from gitrel import __version__
from gitrel.cli.commands._helpers import exit_on_error, exit_with_code
from gitrel.cli.context import build_context
from gitrel.core.errors import ErrorCode
from gitrel.git.repository import find_repo_root
from gitrel.output.console import ConsoleProtocol, RichConsole
from gitrel.services.release.hooks import discover_hooks
from gitrel.services.release.model import ModeFlag, ReleaseFlags
from gitrel.services.release.service import bless, build_needed, print_report, run_release

RELEASE_CONTEXT_SETTINGS = {"allow_extra_args": True, "ignore_unknown_options": True}

# Common typo of --branch2 that would otherwise end up as an extra arg.
_MISSPELLED = {"--build2": "--branch2"}


def _console() -> ConsoleProtocol:
    return RichConsole()


def _mode_flag(
    console: ConsoleProtocol, *, tag: bool, branch: bool, branch1: bool, branch2: bool
) -> ModeFlag | None:
    selected: list[ModeFlag] = [
        flag
        for flag, on in (("tag", tag), ("branch", branch), ("branch1", branch1), ("branch2", branch2))
        if on
    ]
    if len(selected) > 1:
        names = ", ".join(f"--{f}" for f in selected)
        console.error(f"{names} are mutually exclusive")
        exit_with_code(int(ErrorCode.FAILURE))
    return selected[0] if selected else None


def _check_extra_args(extra: list[str], console: ConsoleProtocol) -> None:
    for arg in extra:
        if arg in _MISSPELLED:
            console.error(f"did you mean '{_MISSPELLED[arg]}'?")
            exit_with_code(int(ErrorCode.FAILURE))


def _build_needed(repo: Path | None, console: ConsoleProtocol) -> None:
    start = repo if repo is not None else Path.cwd()
    if find_repo_root(start) is None:
        # Without history there is no way to tell, so always build.
        console.warning("no git repository, so --build-needed is always true")
        typer.echo("TRUE")
        exit_with_code(int(ErrorCode.OK))

    ctx = build_context(repo, console=console)
    needed = exit_on_error(build_needed(ctx.repo, ctx.config), ctx.console)
    typer.echo("TRUE" if needed else "FALSE")
    exit_with_code(int(ErrorCode.OK if needed else ErrorCode.FAILURE))


def release(
    extra: list[str] | None = typer.Argument(
        None,
        help="Extra words: recorded in the commit message and the extra-args file.",
        show_default=False,
    ),
    tag: bool = typer.Option(False, "--tag", help="Tag the next version on this branch."),
    branch: bool = typer.Option(
        False, "--branch", help="Branch off a new version line (configured policy)."
    ),
    branch1: bool = typer.Option(
        False, "--branch1", help="Branch off; switch to the new branch (conventional policy)."
    ),
    branch2: bool = typer.Option(
        False, "--branch2", help="Branch off; stay on this branch (sliding window policy)."
    ),
    push: bool = typer.Option(
        True, "--push/--no-push", help="Publish to the remote (--no-push keeps everything local)."
    ),
    build_only: bool = typer.Option(
        False, "--build-only", help="Tag the next build number only (mainline)."
    ),
    build_needed_flag: bool = typer.Option(
        False,
        "--build-needed",
        help="Print TRUE (exit 0) unless the last commit touched a release file.",
    ),
    bless_flag: bool = typer.Option(
        False, "--bless", help="Make this branch track its namesake on origin, then exit."
    ),
    repo: Path | None = typer.Option(
        None, "--repo", help="Repository root (defaults to the working tree of the cwd)."
    ),
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    """Tag a release of the current branch, or branch off a new version line."""
    if version:
        typer.echo(__version__)
        exit_with_code(int(ErrorCode.OK))

    console = _console()

    if build_needed_flag:
        _build_needed(repo, console)

    if bless_flag:
        ctx = build_context(repo, console=console)
        blessed = exit_on_error(bless(ctx.repo, ctx.console), ctx.console)
        ctx.console.success(f"{blessed} blessed")
        return

    extra_args = list(extra or [])
    _check_extra_args(extra_args, console)
    flags = ReleaseFlags(
        mode_flag=_mode_flag(
            console, tag=tag, branch=branch, branch1=branch1, branch2=branch2
        ),
        build_only=build_only,
        push=push,
        extra_args=tuple(extra_args),
    )

    ctx = build_context(repo, console=console)
    report = exit_on_error(
        run_release(
            git=ctx.repo,
            config=ctx.config,
            flags=flags,
            console=ctx.console,
            hooks=discover_hooks(ctx.root, ctx.console),
        ),
        ctx.console,
    )
    print_report(report, ctx.console)
