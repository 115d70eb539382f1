from __future__ import annotations

from dataclasses import replace

from gitrel.core.config import ReleaseConfig
from gitrel.core.result import Err, Ok, Result
from gitrel.git.facade import GitFacade
from gitrel.output.console import ConsoleProtocol, Style
from gitrel.services.release.artifacts import ArtifactFiles
from gitrel.services.release.errors import ReleaseError, from_git_error, precondition
from gitrel.services.release.hooks import HookDispatcher
from gitrel.services.release.model import ReleaseFlags, ReleaseMode, ReleasePlan, ReleaseReport
from gitrel.services.release.policy import plan_release, resolve_tracking
from gitrel.services.release.transaction import ReleaseTransaction

BLESS_REMOTE = "origin"


def print_plan(plan: ReleasePlan, console: ConsoleProtocol, *, extra_text: str = "") -> None:
    if plan.mode is ReleaseMode.BUILD_ONLY:
        console.print(f"Tagging Build #{plan.build_number}")
    else:
        console.print(f"Branch: {plan.tracking.branch}")
        console.print(f"From version : {plan.current_version}")
        console.print(f"To   version : {plan.next_version}")
    if plan.new_branch is not None:
        console.print(f"New branch    : {plan.new_branch}")
    if extra_text:
        console.newline()
        console.print(f"Extra args: {extra_text}")


def print_report(report: ReleaseReport, console: ConsoleProtocol) -> None:
    console.newline()
    if report.deferred:
        console.info(f"awaiting server acceptance: {', '.join(report.deferred)}")
    if not report.pushed:
        console.warning("nothing was pushed (--no-push); publish the new refs by hand")

    match report.mode:
        case ReleaseMode.BRANCH2:
            console.success(f"{report.new_branch} branched off.")
            console.print(
                f" * you can switch to the created branch using 'git checkout {report.new_branch}'"
            )
        case ReleaseMode.BRANCH:
            console.success(f"NOW ON BRANCH {report.new_branch}.")
            console.print(" * release again to tag a specific version on this branch")
            console.print(f" * switch back to the former branch with 'git checkout {report.branch}'")
        case _:
            console.success(f"{report.tag_name} tagged")


def run_release(
    *,
    git: GitFacade,
    config: ReleaseConfig,
    flags: ReleaseFlags,
    console: ConsoleProtocol,
    hooks: HookDispatcher,
) -> Result[ReleaseReport, ReleaseError]:
    """Plan and execute one release of the current branch.

    Every precondition is checked before the first mutation; `--no-push`
    skips the fetch and every push but keeps the local commits and tags.
    """
    tracking = resolve_tracking(git, config)
    if isinstance(tracking, Err):
        return tracking

    if flags.push:
        fetched = git.fetch()
        if isinstance(fetched, Err):
            error = from_git_error(fetched.error, f"cannot fetch from {tracking.value.remote}")
            return Err(
                replace(
                    error,
                    kind="precondition",
                    hint="check the network and the remote, or release with --no-push",
                )
            )

    artifacts = ArtifactFiles(git.root, config)
    plan = plan_release(
        git=git,
        config=config,
        flags=flags,
        tracking=tracking.value,
        artifacts=artifacts,
    )
    if isinstance(plan, Err):
        return plan

    print_plan(plan.value, console, extra_text=flags.extra_text)

    transaction = ReleaseTransaction(
        git=git,
        config=config,
        plan=plan.value,
        artifacts=artifacts,
        hooks=hooks,
        console=console,
    )
    return transaction.run()


def build_needed(git: GitFacade, config: ReleaseConfig) -> Result[bool, ReleaseError]:
    """False when the last commit already touched a release file.

    A release commit is always followed by a build of it, so building again
    would only repeat that work.
    """
    paths = git.last_commit_paths()
    if isinstance(paths, Err):
        return Err(from_git_error(paths.error, "cannot list the files of the last commit"))
    released = set(config.artifact_paths)
    return Ok(not any(path in released for path in paths.value))


def bless(git: GitFacade, console: ConsoleProtocol) -> Result[str, ReleaseError]:
    """Make the current branch track its namesake on origin, with rebase."""
    branch = git.current_branch()
    if branch is None:
        return Err(precondition("not in a local branch?"))

    for key, value in (
        (f"branch.{branch}.remote", BLESS_REMOTE),
        (f"branch.{branch}.merge", f"refs/heads/{branch}"),
        (f"branch.{branch}.rebase", "true"),
    ):
        result = git.config_set(key, value)
        if isinstance(result, Err):
            return Err(from_git_error(result.error, f"cannot set {key}"))
        console.print(f"{key} = {value}", Style.DIM)

    return Ok(branch)
