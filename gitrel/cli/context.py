from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from gitrel.cli.commands._helpers import exit_on_error
from gitrel.core.config import ReleaseConfig, load_config_or_default
from gitrel.core.errors import ErrorCode
from gitrel.git.repository import Repository, find_repo_root
from gitrel.output.console import ConsoleProtocol, RichConsole
from gitrel.services.release.errors import from_config_error


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    repo: Repository
    config: ReleaseConfig
    console: ConsoleProtocol


def build_context(repo: Path | None = None, *, console: ConsoleProtocol | None = None) -> CLIContext:
    console = console if console is not None else RichConsole()
    start = repo if repo is not None else Path.cwd()

    root = find_repo_root(start)
    if root is None:
        console.error(f"no git repository at {start}")
        raise typer.Exit(code=int(ErrorCode.FAILURE))

    config = exit_on_error(load_config_or_default(root).map_err(from_config_error), console)

    return CLIContext(root=root, repo=Repository(root), config=config, console=console)
