"""Release decisions: which mode, which version, which names.

Everything here reads repository state and never writes it, so a plan can
be shown (or computed for `--no-push`) before the transaction starts.

Mode decision, first match wins:

1. `--build-only` -> build-only tag (mainline and build file required)
2. `--tag`, `--branch`, `--branch1`, `--branch2` -> as requested
   (`--branch` follows the configured default branch policy)
3. tracking a mainline branch and `tag_mainline = false` -> branch
4. otherwise -> tag
"""

from __future__ import annotations

from gitrel.core.config import ReleaseConfig
from gitrel.core.result import Err, Ok, Result
from gitrel.git.facade import GitFacade
from gitrel.services.release.artifacts import ArtifactFiles
from gitrel.services.release.errors import ReleaseError, precondition
from gitrel.services.release.model import (
    ArtifactChanges,
    ReleaseFlags,
    ReleaseMode,
    ReleasePlan,
    TrackingInfo,
)
from gitrel.services.release.version import (
    IncrementPolicy,
    Version,
    increment,
    prerelease_marker,
)

_HEADS_PREFIX = "refs/heads/"


def resolve_tracking(git: GitFacade, config: ReleaseConfig) -> Result[TrackingInfo, ReleaseError]:
    """Read the current branch and where it publishes to.

    Every piece is mandatory: releasing without a known destination could
    push to the wrong place.
    """
    branch = git.current_branch()
    if branch is None:
        return Err(precondition("not in a local branch?"))

    remote = git.config_get(f"branch.{branch}.remote")
    if remote is None:
        return Err(
            precondition(
                f"please set 'branch.{branch}.remote'",
                hint="or run '--bless' to guard against accidentally pushing the wrong branches",
            )
        )

    merge_ref = git.config_get(f"branch.{branch}.merge")
    if merge_ref is None:
        return Err(precondition(f"branch.{branch}.merge config item is not set"))
    if not merge_ref.startswith(_HEADS_PREFIX) or merge_ref == _HEADS_PREFIX:
        return Err(
            precondition(
                f"malformed tracking ref for {branch}: {merge_ref}",
                hint=f"expected 'refs/heads/<name>' in branch.{branch}.merge",
            )
        )

    remote_url = git.config_get(f"remote.{remote}.url")
    if remote_url is None:
        return Err(precondition(f"remote.{remote}.url config item is not set"))

    if config.release_machine and config.release_machine not in remote_url:
        return Err(precondition(f"{branch} does not track to {config.release_machine}"))

    return Ok(
        TrackingInfo(
            branch=branch,
            remote=remote,
            merge_ref=merge_ref,
            remote_url=remote_url,
            is_mainline=config.is_mainline(merge_ref.removeprefix(_HEADS_PREFIX)),
        )
    )


def decide_mode(
    flags: ReleaseFlags,
    tracking: TrackingInfo,
    config: ReleaseConfig,
    *,
    has_build_file: bool,
) -> Result[ReleaseMode, ReleaseError]:
    default_branch = ReleaseMode.BRANCH2 if config.branch2 else ReleaseMode.BRANCH

    if flags.build_only:
        if flags.mode_flag is not None and flags.mode_flag != "tag":
            return Err(precondition(f"--build-only cannot be combined with --{flags.mode_flag}"))
        if not has_build_file:
            return Err(
                precondition(
                    "this project does not seem to require or support monotonic build numbers",
                    hint=f"create {config.build_file} containing 0 to start counting builds",
                )
            )
        if not tracking.is_mainline:
            return Err(precondition("build numbers are only for the mainline branch"))
        return Ok(ReleaseMode.BUILD_ONLY)

    match flags.mode_flag:
        case "tag":
            return Ok(ReleaseMode.TAG)
        case "branch":
            return Ok(default_branch)
        case "branch1":
            return Ok(ReleaseMode.BRANCH)
        case "branch2":
            return Ok(ReleaseMode.BRANCH2)
        case None:
            if tracking.is_mainline and not config.tag_mainline:
                return Ok(default_branch)
            return Ok(ReleaseMode.TAG)
        case other:
            return Err(precondition(f"unknown release mode: {other}"))


def _args_changes(flags: ReleaseFlags, artifacts: ArtifactFiles) -> tuple[str | None, bool]:
    if flags.extra_args:
        return flags.extra_text, False
    return None, artifacts.has_args_file()


def _message_extra(flags: ReleaseFlags) -> str:
    return f" {flags.extra_text}" if flags.extra_args else ""


def plan_release(
    *,
    git: GitFacade,
    config: ReleaseConfig,
    flags: ReleaseFlags,
    tracking: TrackingInfo,
    artifacts: ArtifactFiles,
) -> Result[ReleasePlan, ReleaseError]:
    """Decide mode, next version and names, checking every precondition."""
    build = artifacts.read_build_number()
    if isinstance(build, Err):
        return build
    last_build = build.value

    mode = decide_mode(flags, tracking, config, has_build_file=last_build is not None)
    if isinstance(mode, Err):
        return mode

    version = artifacts.read_version()
    if isinstance(version, Err):
        return version

    args, drop_args = _args_changes(flags, artifacts)
    extra = _message_extra(flags)

    if mode.value is ReleaseMode.BUILD_ONLY:
        assert last_build is not None
        return _plan_build_only(
            git=git,
            config=config,
            flags=flags,
            tracking=tracking,
            current=version.value,
            next_build=last_build + 1,
            args=args,
            drop_args=drop_args,
            extra=extra,
        )

    # Build numbers advance on the mainline and never leave it.
    next_build: int | None = None
    drop_build = False
    if last_build is not None:
        if tracking.is_mainline:
            next_build = last_build + 1
        else:
            drop_build = True

    if mode.value.is_branch:
        return _plan_branch(
            git=git,
            config=config,
            flags=flags,
            tracking=tracking,
            mode=mode.value,
            current=version.value,
            next_build=next_build,
            drop_build=drop_build,
            has_build_file=last_build is not None,
            args=args,
            drop_args=drop_args,
            extra=extra,
        )

    step = increment(version.value, IncrementPolicy.CONVENTIONAL)
    if isinstance(step, Err):
        return step

    tag_name = f"{config.release_prefix}{step.value.next}"
    if git.ref_exists(f"refs/tags/{tag_name}"):
        return Err(precondition(f"tag '{tag_name}' already exists"))

    return Ok(
        ReleasePlan(
            mode=mode.value,
            tracking=tracking,
            current_version=str(version.value),
            next_version=str(step.value.next),
            changes=ArtifactChanges(
                version=str(step.value.next),
                build_number=next_build,
                drop_build=drop_build,
                args=args,
                drop_args=drop_args,
            ),
            commit_message=f"{tag_name}{extra}",
            tag_name=tag_name,
            build_number=next_build,
            push=flags.push,
        )
    )


def _plan_build_only(
    *,
    git: GitFacade,
    config: ReleaseConfig,
    flags: ReleaseFlags,
    tracking: TrackingInfo,
    current: Version,
    next_build: int,
    args: str | None,
    drop_args: bool,
    extra: str,
) -> Result[ReleasePlan, ReleaseError]:
    tag_name = f"{config.build_tag_prefix}{next_build}"
    if git.ref_exists(f"refs/tags/{tag_name}"):
        return Err(precondition(f"tag '{tag_name}' already exists"))

    return Ok(
        ReleasePlan(
            mode=ReleaseMode.BUILD_ONLY,
            tracking=tracking,
            current_version=str(current),
            next_version=None,
            changes=ArtifactChanges(build_number=next_build, args=args, drop_args=drop_args),
            commit_message=f"v: b{next_build}{extra}",
            tag_name=tag_name,
            build_number=next_build,
            push=flags.push,
        )
    )


def _plan_branch(
    *,
    git: GitFacade,
    config: ReleaseConfig,
    flags: ReleaseFlags,
    tracking: TrackingInfo,
    mode: ReleaseMode,
    current: Version,
    next_build: int | None,
    drop_build: bool,
    has_build_file: bool,
    args: str | None,
    drop_args: bool,
    extra: str,
) -> Result[ReleasePlan, ReleaseError]:
    if current.is_prerelease:
        return Err(
            precondition(
                "do not branch from a release branch before first release commit",
                hint=f"commit {current}0 first!",
            )
        )

    policy = IncrementPolicy.SLIDING_WINDOW if mode is ReleaseMode.BRANCH2 else IncrementPolicy.CONVENTIONAL
    step = increment(current, policy)
    if isinstance(step, Err):
        return step

    base = step.value.branch_base
    new_branch = f"{config.branch_prefix}{base}"

    if git.ref_exists(f"refs/remotes/{tracking.remote}/{new_branch}"):
        return Err(precondition(f"branch named '{new_branch}' already in remote repo?!"))
    if git.ref_exists(f"refs/heads/{new_branch}"):
        return Err(precondition(f"a local branch named '{new_branch}' already exists"))
    if git.ref_exists(f"refs/heads/{config.checkpoint_branch}"):
        return Err(
            precondition(
                f"'{config.checkpoint_branch}' branch exists, left behind by an earlier release attempt",
                hint=f"merge or delete '{config.checkpoint_branch}', then release again",
            )
        )

    # The new branch starts at the pre-invocation head, where the build file
    # (if any) still exists; it is removed there unconditionally.
    if mode is ReleaseMode.BRANCH or current.is_mainline:
        marker = prerelease_marker(base)
        new_changes = ArtifactChanges(
            version=str(marker),
            drop_build=has_build_file,
            args=args,
            drop_args=drop_args,
        )
        new_message = f"v: pre-{config.release_prefix}{marker}0{extra}"
    else:
        new_changes = ArtifactChanges(drop_build=has_build_file, args=args, drop_args=drop_args)
        new_message = f"{new_branch} branch{extra}"

    return Ok(
        ReleasePlan(
            mode=mode,
            tracking=tracking,
            current_version=str(current),
            next_version=str(step.value.next),
            changes=ArtifactChanges(
                version=str(step.value.next),
                build_number=next_build,
                drop_build=drop_build,
                args=args,
                drop_args=drop_args,
            ),
            commit_message=f"{new_branch} branched off{extra}",
            new_branch=new_branch,
            new_branch_changes=new_changes,
            new_branch_message=new_message,
            build_number=next_build,
            push=flags.push,
        )
    )
