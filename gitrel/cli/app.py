from __future__ import annotations

import typer

from gitrel.cli.commands.release_cmd import RELEASE_CONTEXT_SETTINGS, release

app = typer.Typer(
    add_completion=False,
    no_args_is_help=False,
    rich_markup_mode="rich",
)

# Single command: `git-release [OPTIONS] [EXTRA]...`
app.command(context_settings=RELEASE_CONTEXT_SETTINGS)(release)


def main() -> None:
    app()
