from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from gitrel.core.config import CONFIG_FILE_NAME, ConfigError
from gitrel.git.facade import GitError

ReleaseErrorKind = Literal[
    "precondition",
    "malformed_version",
    "invalid_version",
    "config_invalid",
    "rolled_back",
    "manual_reconciliation",
    "git_failed",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Why a release stopped, and in which state it left the repository.

    `precondition`, `malformed_version`, `invalid_version` and
    `config_invalid` happen before any mutation. `rolled_back` means the
    repository was restored to its pre-invocation state. `manual_reconciliation`
    means part of the release is already public and the operator has to finish
    the job. `diagnostic` carries raw git output, shown as a tail.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
    diagnostic: str | None = None


def precondition(message: str, *, hint: str | None = None) -> ReleaseError:
    return ReleaseError(kind="precondition", message=message, hint=hint)


def from_git_error(error: GitError, message: str) -> ReleaseError:
    return ReleaseError(
        kind="git_failed",
        message=f"{message} (git {error.command}, exit {error.returncode})",
        diagnostic=error.message,
    )


def from_config_error(error: ConfigError) -> ReleaseError:
    return ReleaseError(
        kind="config_invalid",
        message=error.message,
        hint=f"fix or remove {error.path or CONFIG_FILE_NAME}",
    )
