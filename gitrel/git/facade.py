"""The git operations a release needs, as an interface.

ReleaseTransaction only talks to git through GitFacade. Repository is the
subprocess-backed implementation; tests substitute an in-memory fake.

Push results are tri-state. A server may refuse a push while announcing
that the update was queued for asynchronous acceptance (review gates,
mirrored remotes). Such a refusal is DEFERRED, not REJECTED, and the release
carries on as if it had been accepted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Literal, Protocol

from gitrel.core.result import Result

__all__ = [
    "GitError",
    "GitFacade",
    "PushOutcome",
    "PushResult",
    "ResetMode",
    "classify_push_outcome",
]

# Known fragility: servers have no structured way to report a deferred push,
# so the wording of their refusal message is the contract.
_DEFERRED_RE = re.compile(r"later|defer", re.IGNORECASE)

ResetMode = Literal["soft", "mixed", "hard"]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed (e.g. "commit").
        message: Raw diagnostic output of git, or a fallback description.
        returncode: Process return code.
    """

    command: str
    message: str
    returncode: int = 1


class PushOutcome(Enum):
    ACCEPTED = "accepted"
    DEFERRED = "deferred"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class PushResult:
    """Outcome of one push plus everything git printed while doing it."""

    outcome: PushOutcome
    raw: str = ""

    @property
    def rejected(self) -> bool:
        return self.outcome is PushOutcome.REJECTED

    @property
    def deferred(self) -> bool:
        return self.outcome is PushOutcome.DEFERRED


def classify_push_outcome(succeeded: bool, raw: str) -> PushOutcome:
    """Map a push exit status and its output to a PushOutcome.

    A failed push whose output mentions "later" or "defer" (any case) is
    DEFERRED; any other failure is REJECTED.
    """
    if succeeded:
        return PushOutcome.ACCEPTED
    if _DEFERRED_RE.search(raw):
        return PushOutcome.DEFERRED
    return PushOutcome.REJECTED


class GitFacade(Protocol):
    """Minimal git surface used by the release transaction."""

    @property
    def root(self) -> Path: ...

    def current_branch(self) -> str | None: ...

    def config_get(self, key: str) -> str | None: ...

    def config_set(self, key: str, value: str) -> Result[None, GitError]: ...

    def rev_parse(self, ref: str) -> Result[str, GitError]: ...

    def ref_exists(self, ref: str) -> bool: ...

    def path_exists_at(self, ref: str, path: str) -> bool: ...

    def is_clean(self) -> bool: ...

    def stash_push(self, message: str) -> Result[bool, GitError]:
        """Stash working-tree changes; Ok(False) when there was nothing to stash."""
        ...

    def stash_pop(self) -> Result[None, GitError]: ...

    def create_branch(self, name: str, start: str) -> Result[None, GitError]: ...

    def force_branch(self, name: str, target: str) -> Result[None, GitError]: ...

    def delete_branch(self, name: str) -> Result[None, GitError]: ...

    def checkout(self, ref: str, *, force: bool = False) -> Result[None, GitError]: ...

    def checkout_new_branch(self, name: str, start: str) -> Result[None, GitError]: ...

    def checkout_paths(self, ref: str, paths: list[str]) -> Result[None, GitError]: ...

    def commit_paths(self, message: str, paths: list[str]) -> Result[str, GitError]:
        """Stage and commit exactly `paths`; Ok(new head sha)."""
        ...

    def reset(self, ref: str, *, mode: ResetMode) -> Result[None, GitError]: ...

    def unstage(self, ref: str, paths: list[str]) -> Result[None, GitError]:
        """Reset the index entries of `paths` to `ref`, working tree untouched."""
        ...

    def tag_create(self, name: str, message: str) -> Result[None, GitError]: ...

    def tag_delete(self, name: str) -> Result[None, GitError]: ...

    def fetch(self) -> Result[str, GitError]: ...

    def push(self, remote: str, refspec: str) -> PushResult: ...

    def last_commit_paths(self) -> Result[tuple[str, ...], GitError]: ...
