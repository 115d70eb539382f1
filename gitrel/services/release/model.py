from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal


ModeFlag = Literal["tag", "branch", "branch1", "branch2"]


class ReleaseMode(Enum):
    """What one invocation does. Decided once, never changed mid-run."""

    TAG = "tag"
    BRANCH = "branch"
    BRANCH2 = "branch2"
    BUILD_ONLY = "build-only"

    @property
    def is_branch(self) -> bool:
        return self in (ReleaseMode.BRANCH, ReleaseMode.BRANCH2)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ReleaseFlags:
    """Command-line intent, before any repository state is consulted."""

    mode_flag: ModeFlag | None = None
    build_only: bool = False
    push: bool = True
    extra_args: tuple[str, ...] = ()

    @property
    def extra_text(self) -> str:
        return " ".join(self.extra_args)


@dataclass(frozen=True, slots=True)
class TrackingInfo:
    """Where the current branch publishes to.

    Attributes:
        branch: Local branch name (e.g. "master", "version-3").
        remote: Remote name from branch.<b>.remote.
        merge_ref: Full remote ref from branch.<b>.merge.
        remote_url: URL of the remote.
        is_mainline: The tracked remote branch is a mainline branch.
    """

    branch: str
    remote: str
    merge_ref: str
    remote_url: str
    is_mainline: bool

    @property
    def remote_branch(self) -> str:
        return self.merge_ref.removeprefix("refs/heads/")


@dataclass(frozen=True, slots=True)
class ArtifactChanges:
    """Scalar file updates for one commit.

    None/False fields leave the corresponding file untouched.
    """

    version: str | None = None
    build_number: int | None = None
    drop_build: bool = False
    args: str | None = None
    drop_args: bool = False

    @property
    def is_empty(self) -> bool:
        return (
            self.version is None
            and self.build_number is None
            and not self.drop_build
            and self.args is None
            and not self.drop_args
        )


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    """Everything a transaction will do, computed without side effects.

    Attributes:
        mode: Release mode.
        tracking: Tracking info of the current branch.
        current_version: Version read from the version file.
        next_version: Version committed on the current branch (None for
            build-only tags, which leave the version alone).
        changes: Scalar file updates committed on the current branch.
        commit_message: Message of that commit.
        new_branch: Name of the branch to create (branch modes).
        new_branch_changes: Scalar updates committed on the new branch.
        new_branch_message: Message of that commit.
        tag_name: Tag to create (tag and build-only modes).
        build_number: Next build number, when a build file is in play.
        push: Whether remote operations run at all.
    """

    mode: ReleaseMode
    tracking: TrackingInfo
    current_version: str
    next_version: str | None
    changes: ArtifactChanges
    commit_message: str
    new_branch: str | None = None
    new_branch_changes: ArtifactChanges | None = None
    new_branch_message: str | None = None
    tag_name: str | None = None
    build_number: int | None = None
    push: bool = True


@dataclass(frozen=True, slots=True)
class ReleaseReport:
    """Successful outcome of a transaction."""

    mode: ReleaseMode
    branch: str
    next_version: str | None
    tag_name: str | None
    new_branch: str | None
    final_branch: str
    deferred: tuple[str, ...] = ()
    pushed: bool = True
