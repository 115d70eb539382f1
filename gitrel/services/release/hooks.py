"""Lifecycle hooks.

Repositories can ship executables that run at fixed points of a release,
e.g. to regenerate a changelog before the version commit. For a point such
as `post-tag`, two locations are checked at the repository root:

    .version.post-tag
    version/post-tag.sh

Each one that exists and is executable runs with no arguments, inherited
stdio and the repository root as cwd, dotfile first. A hook's exit status
never stops a release.

The transaction only sees a HookDispatcher built from a registry of
callables; probing the filesystem is the job of discover_hooks.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from pathlib import Path

from gitrel.core.result import Err
from gitrel.output.console import ConsoleProtocol, Style
from gitrel.platform.process import run_silent

Hook = Callable[[], None]


class LifecyclePoint(Enum):
    PRE_BRANCH = "pre-branch"
    NEW_BRANCH = "new-branch"
    POST_BRANCH = "post-branch"
    PRE_TAG = "pre-tag"
    POST_TAG = "post-tag"
    PRE_RELEASE = "pre-release"
    POST_RELEASE = "post-release"
    PRE_BUILD = "pre-build"
    POST_BUILD = "post-build"

    def __str__(self) -> str:
        return self.value


class HookDispatcher:
    """Runs the hooks registered for a lifecycle point, in order."""

    def __init__(self, registry: Mapping[LifecyclePoint, Sequence[Hook]] | None = None) -> None:
        self._registry: dict[LifecyclePoint, tuple[Hook, ...]] = {
            point: tuple(hooks) for point, hooks in (registry or {}).items()
        }

    def fire(self, point: LifecyclePoint) -> None:
        for hook in self._registry.get(point, ()):
            hook()


def hook_candidates(root: Path, point: LifecyclePoint) -> tuple[Path, Path]:
    return (root / f".version.{point}", root / "version" / f"{point}.sh")


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def _command_for(path: Path) -> list[str]:
    # Hook scripts without a shebang still run, through the POSIX shell.
    with path.open("rb") as handle:
        has_shebang = handle.read(2) == b"#!"
    return [str(path)] if has_shebang else ["/bin/sh", str(path)]


def program_hook(path: Path, *, root: Path, console: ConsoleProtocol) -> Hook:
    """Wrap an executable file as a Hook."""
    rel = path.relative_to(root) if path.is_relative_to(root) else path

    def hook() -> None:
        console.print(f"hook: {rel}", Style.DIM)
        result = run_silent(_command_for(path), cwd=root)
        if isinstance(result, Err):
            e = result.error
            detail = e.stderr or f"exit {e.returncode}"
            console.warning(f"hook {rel} failed ({detail}); continuing")

    return hook


def discover_hooks(root: Path, console: ConsoleProtocol) -> HookDispatcher:
    """Build a dispatcher from the hook files present under root."""
    registry: dict[LifecyclePoint, list[Hook]] = {}
    for point in LifecyclePoint:
        for candidate in hook_candidates(root, point):
            if _is_executable(candidate):
                registry.setdefault(point, []).append(
                    program_hook(candidate, root=root, console=console)
                )
    return HookDispatcher(registry)
