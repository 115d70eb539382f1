"""The release transaction: local mutations, publication, and rollback.

A plan is executed as a small state machine. Every handler either advances
to the next state or fails; a failure before anything was published rolls
the repository back to where the operator started, a failure after
something was published stops with `manual_reconciliation` and says what
is left to do.

Branch path::

    INIT -> CHECKPOINTED -> LOCAL_COMMITTED -> REMOTE_BRANCH_PUBLISHED
         -> MAINLINE_PUBLISHED -> CLEANED -> DONE

Tag and build-only path::

    INIT -> CHECKPOINTED -> LOCAL_COMMITTED -> MAINLINE_PUBLISHED
         -> TAG_PUBLISHED -> DONE

Any failure appends ABORTED to the history.

The checkpoint branch pins the pre-invocation head while the branch path
runs. If the mainline push is rejected after the new branch went public,
it is moved to the local version commit so the operator can merge it by
hand; otherwise it is deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from gitrel.core.config import ReleaseConfig
from gitrel.core.result import Err, Ok, Result
from gitrel.git.facade import GitError, GitFacade, PushResult
from gitrel.output.console import ConsoleProtocol, Style
from gitrel.services.release.artifacts import ArtifactFiles
from gitrel.services.release.errors import ReleaseError, from_git_error
from gitrel.services.release.fsm import StepHandler, StepOutcome, advance, finish, run_state_machine
from gitrel.services.release.hooks import HookDispatcher, LifecyclePoint
from gitrel.services.release.model import (
    ArtifactChanges,
    ReleaseMode,
    ReleasePlan,
    ReleaseReport,
)


class TxState(Enum):
    INIT = "init"
    CHECKPOINTED = "checkpointed"
    LOCAL_COMMITTED = "local-committed"
    REMOTE_BRANCH_PUBLISHED = "remote-branch-published"
    MAINLINE_PUBLISHED = "mainline-published"
    TAG_PUBLISHED = "tag-published"
    CLEANED = "cleaned"
    DONE = "done"
    ABORTED = "aborted"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class TxSession:
    """What the transaction has done so far.

    Attributes:
        state: Current state.
        base_sha: Head of the current branch before the release.
        bump_sha: The local version commit on the current branch.
        stashed: Working-tree changes were stashed and must be restored.
        touched: Artifact paths written on the current branch.
        deferred: Refs whose push the server deferred.
    """

    state: TxState = TxState.INIT
    base_sha: str | None = None
    bump_sha: str | None = None
    stashed: bool = False
    touched: tuple[str, ...] = ()
    deferred: tuple[str, ...] = ()


Step = Result[StepOutcome[TxSession], ReleaseError]


class ReleaseTransaction:
    """Execute one ReleasePlan against a repository."""

    def __init__(
        self,
        *,
        git: GitFacade,
        config: ReleaseConfig,
        plan: ReleasePlan,
        artifacts: ArtifactFiles,
        hooks: HookDispatcher,
        console: ConsoleProtocol,
    ) -> None:
        self.git = git
        self.config = config
        self.plan = plan
        self.artifacts = artifacts
        self.hooks = hooks
        self.console = console
        self.history: list[TxState] = []

    def run(self) -> Result[ReleaseReport, ReleaseError]:
        handlers = self._branch_handlers() if self.plan.mode.is_branch else self._tag_handlers()
        self.history = [TxState.INIT]

        result = run_state_machine(
            initial_state=TxSession(),
            get_step=lambda s: s.state.value,
            handlers=handlers,
            on_transition=lambda s: self.history.append(s.state),
        )
        if isinstance(result, Err):
            self.history.append(TxState.ABORTED)
            return result
        return Ok(self._report(result.value))

    def _report(self, s: TxSession) -> ReleaseReport:
        plan = self.plan
        final = plan.tracking.branch
        if plan.mode is ReleaseMode.BRANCH and plan.new_branch is not None:
            final = plan.new_branch
        return ReleaseReport(
            mode=plan.mode,
            branch=plan.tracking.branch,
            next_version=plan.next_version,
            tag_name=plan.tag_name,
            new_branch=plan.new_branch,
            final_branch=final,
            deferred=s.deferred,
            pushed=plan.push,
        )

    # -- shared helpers ---------------------------------------------------

    def _apply(self, changes: ArtifactChanges) -> Result[list[str], ReleaseError]:
        written: list[str] = []
        try:
            return Ok(self.artifacts.apply(changes, touched=written))
        except OSError as e:
            # Files written before the failure go back to their committed content.
            problems = self._restore_paths("HEAD", tuple(written))
            error = ReleaseError(kind="git_failed", message=f"failed to write release files: {e}")
            return Err(self._with_problems(error, problems))

    def _push(self, refspec: str) -> PushResult:
        remote = self.plan.tracking.remote
        self.console.print(f"git push {remote} {refspec}", Style.DIM)
        return self.git.push(remote, refspec)

    def _skip_push(self, what: str) -> None:
        self.console.print(f"--no-push: {what} not pushed", Style.DIM)

    def _restore_paths(self, ref: str, paths: tuple[str, ...]) -> list[str]:
        """Put `paths` back to their content at `ref`, in index and working tree.

        Paths that do not exist at `ref` are removed. Returns problems.
        """
        problems: list[str] = []
        if not paths:
            return problems

        unstaged = self.git.unstage(ref, list(paths))
        if isinstance(unstaged, Err):
            problems.append(f"unstage {', '.join(paths)}: {unstaged.error.message}")

        existing = [p for p in paths if self.git.path_exists_at(ref, p)]
        restored = self.git.checkout_paths(ref, existing)
        if isinstance(restored, Err):
            problems.append(f"restore {', '.join(existing)}: {restored.error.message}")

        for path in paths:
            if path in existing:
                continue
            try:
                self.artifacts.remove(path)
            except OSError as e:
                problems.append(f"remove {path}: {e}")
        return problems

    def _pop_stash(self, s: TxSession, problems: list[str]) -> None:
        if not s.stashed:
            return
        popped = self.git.stash_pop()
        if isinstance(popped, Err):
            problems.append(f"stash pop: {popped.error.message}")

    @staticmethod
    def _note(problems: list[str], label: str, result: Result[None, GitError]) -> bool:
        if isinstance(result, Err):
            problems.append(f"{label}: {result.error.message.strip()}")
            return False
        return True

    @staticmethod
    def _with_problems(error: ReleaseError, problems: list[str]) -> ReleaseError:
        if not problems:
            return error
        detail = "; ".join(problems)
        hint = f"rollback incomplete ({detail})"
        if error.hint:
            hint = f"{error.hint}; {hint}"
        return replace(error, hint=hint)

    # -- branch path ------------------------------------------------------

    def _branch_handlers(self) -> dict[str, StepHandler[TxSession]]:
        return {
            TxState.INIT.value: self._branch_checkpoint,
            TxState.CHECKPOINTED.value: self._branch_commit,
            TxState.LOCAL_COMMITTED.value: self._branch_create,
            TxState.REMOTE_BRANCH_PUBLISHED.value: self._branch_publish_mainline,
            TxState.MAINLINE_PUBLISHED.value: self._branch_cleanup,
            TxState.CLEANED.value: self._branch_done,
        }

    def _branch_checkpoint(self, s: TxSession) -> Step:
        plan = self.plan
        checkpoint = self.config.checkpoint_branch
        self.hooks.fire(LifecyclePoint.PRE_BRANCH)

        base = self.git.rev_parse("HEAD")
        if isinstance(base, Err):
            return Err(from_git_error(base.error, "cannot read HEAD"))

        stashed = self.git.stash_push(f"git-release: before {plan.new_branch}")
        if isinstance(stashed, Err):
            return Err(from_git_error(stashed.error, "cannot stash working-tree changes"))
        s = replace(s, base_sha=base.value, stashed=stashed.value)

        created = self.git.create_branch(checkpoint, base.value)
        if isinstance(created, Err):
            problems: list[str] = []
            self._pop_stash(s, problems)
            error = from_git_error(created.error, f"cannot create '{checkpoint}' branch")
            return Err(self._with_problems(error, problems))

        return Ok(advance(replace(s, state=TxState.CHECKPOINTED)))

    def _branch_commit(self, s: TxSession) -> Step:
        touched = self._apply(self.plan.changes)
        if isinstance(touched, Err):
            return self._branch_rollback(s, touched.error, on_new_branch=False)
        s = replace(s, touched=tuple(touched.value))

        committed = self.git.commit_paths(self.plan.commit_message, touched.value)
        if isinstance(committed, Err):
            error = from_git_error(committed.error, "version commit failed")
            return self._branch_rollback(s, error, on_new_branch=False)

        return Ok(advance(replace(s, state=TxState.LOCAL_COMMITTED, bump_sha=committed.value)))

    def _branch_create(self, s: TxSession) -> Step:
        plan = self.plan
        tracking = plan.tracking
        new = plan.new_branch
        assert new is not None and s.base_sha is not None

        self.console.print(f"git checkout -b {new} {s.base_sha[:12]}", Style.DIM)
        created = self.git.checkout_new_branch(new, self.config.checkpoint_branch)
        if isinstance(created, Err):
            error = from_git_error(created.error, f"cannot create branch '{new}'")
            return self._branch_rollback(s, error, on_new_branch=False)

        for key, value in (
            (f"branch.{new}.remote", tracking.remote),
            (f"branch.{new}.merge", f"refs/heads/{new}"),
        ):
            configured = self.git.config_set(key, value)
            if isinstance(configured, Err):
                error = from_git_error(configured.error, f"cannot set {key}")
                return self._branch_rollback(s, error, on_new_branch=True)

        self.hooks.fire(LifecyclePoint.NEW_BRANCH)

        if plan.new_branch_changes is not None and plan.new_branch_message is not None:
            touched = self._apply(plan.new_branch_changes)
            if isinstance(touched, Err):
                return self._branch_rollback(s, touched.error, on_new_branch=True)
            if touched.value:
                committed = self.git.commit_paths(plan.new_branch_message, touched.value)
                if isinstance(committed, Err):
                    error = from_git_error(committed.error, f"commit on '{new}' failed")
                    return self._branch_rollback(s, error, on_new_branch=True)

        if not plan.push:
            self._skip_push(f"branch {new}")
            return Ok(advance(replace(s, state=TxState.REMOTE_BRANCH_PUBLISHED)))

        pushed = self._push(f"refs/heads/{new}:refs/heads/{new}")
        if pushed.rejected:
            self.console.error(f"branch creation request for {new} failed")
            error = ReleaseError(
                kind="rolled_back",
                message=f"the server rejected branch '{new}'; nothing was published",
                hint="the repository is back where it started; fetch, then release again",
                diagnostic=pushed.raw,
            )
            return self._branch_rollback(s, error, on_new_branch=True)
        if pushed.deferred:
            self.console.info(f"{new} branch creation deferred, continuing...")
            s = replace(s, deferred=(*s.deferred, new))

        return Ok(advance(replace(s, state=TxState.REMOTE_BRANCH_PUBLISHED)))

    def _branch_publish_mainline(self, s: TxSession) -> Step:
        tracking = self.plan.tracking
        if not self.plan.push:
            self._skip_push(f"branch {tracking.branch}")
            return Ok(advance(replace(s, state=TxState.MAINLINE_PUBLISHED)))

        pushed = self._push(f"refs/heads/{tracking.branch}:{tracking.merge_ref}")
        if pushed.rejected:
            self.console.error(
                f"branch creation succeeded, but the {tracking.branch} version commit failed"
            )
            return self._branch_reconcile(s, pushed.raw)
        if pushed.deferred:
            self.console.info(f"{tracking.branch} commit deferred, continuing...")
            s = replace(s, deferred=(*s.deferred, tracking.branch))

        return Ok(advance(replace(s, state=TxState.MAINLINE_PUBLISHED)))

    def _branch_cleanup(self, s: TxSession) -> Step:
        plan = self.plan
        checkpoint = self.config.checkpoint_branch

        # Past this point the release is public; cleanup failures only warn.
        if plan.mode is ReleaseMode.BRANCH2:
            back = self.git.checkout(plan.tracking.branch)
            if isinstance(back, Err):
                self.console.warning(
                    f"could not switch back to {plan.tracking.branch}: {back.error.message.strip()}"
                )

        deleted = self.git.delete_branch(checkpoint)
        if isinstance(deleted, Err):
            self.console.warning(f"could not delete '{checkpoint}': {deleted.error.message.strip()}")

        if s.stashed:
            popped = self.git.stash_pop()
            if isinstance(popped, Err):
                self.console.warning(
                    "could not restore your uncommitted changes; they are still in 'git stash list'"
                )

        return Ok(advance(replace(s, state=TxState.CLEANED)))

    def _branch_done(self, s: TxSession) -> Step:
        self.hooks.fire(LifecyclePoint.POST_BRANCH)
        return Ok(finish(replace(s, state=TxState.DONE)))

    def _branch_rollback(self, s: TxSession, error: ReleaseError, *, on_new_branch: bool) -> Step:
        """Undo every local mutation of the branch path, then fail with `error`."""
        plan = self.plan
        problems: list[str] = []
        assert s.base_sha is not None

        on_original = True
        if on_new_branch:
            on_original = self._note(
                problems,
                f"checkout {plan.tracking.branch}",
                self.git.checkout(plan.tracking.branch, force=True),
            )

        if on_original:
            self._note(problems, "reset", self.git.reset(s.base_sha, mode="hard"))
            # Files created by the release are untracked at base and survive a reset.
            for path in s.touched:
                if not self.git.path_exists_at(s.base_sha, path):
                    try:
                        self.artifacts.remove(path)
                    except OSError as e:
                        problems.append(f"remove {path}: {e}")

        if on_new_branch and plan.new_branch is not None:
            self._note(problems, f"delete {plan.new_branch}", self.git.delete_branch(plan.new_branch))
        self._note(
            problems,
            f"delete {self.config.checkpoint_branch}",
            self.git.delete_branch(self.config.checkpoint_branch),
        )
        self._pop_stash(s, problems)

        return Err(self._with_problems(error, problems))

    def _branch_reconcile(self, s: TxSession, raw: str) -> Step:
        """New branch is public but the mainline push was refused."""
        plan = self.plan
        tracking = plan.tracking
        checkpoint = self.config.checkpoint_branch
        problems: list[str] = []
        assert s.base_sha is not None and s.bump_sha is not None

        back = self.git.checkout(tracking.branch, force=True)
        if self._note(problems, f"checkout {tracking.branch}", back):
            self._note(problems, f"move {checkpoint}", self.git.force_branch(checkpoint, s.bump_sha))
            self._note(problems, "reset", self.git.reset(s.base_sha, mode="hard"))
        self._pop_stash(s, problems)

        hint = (
            f"the version commit for {tracking.branch} is on the '{checkpoint}' branch and "
            f"should probably be merged with the new remote {tracking.remote_branch}, "
            f"then '{checkpoint}' deleted before the next release"
        )
        error = ReleaseError(
            kind="manual_reconciliation",
            message=f"branch '{plan.new_branch}' was published, but the server rejected "
            f"the {tracking.branch} version commit",
            hint=hint,
            diagnostic=raw,
        )
        return Err(self._with_problems(error, problems))

    # -- tag path ---------------------------------------------------------

    def _tag_handlers(self) -> dict[str, StepHandler[TxSession]]:
        return {
            TxState.INIT.value: self._tag_prepare,
            TxState.CHECKPOINTED.value: self._tag_commit,
            TxState.LOCAL_COMMITTED.value: self._tag_publish_branch,
            TxState.MAINLINE_PUBLISHED.value: self._tag_publish_tag,
            TxState.TAG_PUBLISHED.value: self._tag_done,
        }

    @property
    def _is_build(self) -> bool:
        return self.plan.mode is ReleaseMode.BUILD_ONLY

    def _tag_prepare(self, s: TxSession) -> Step:
        self.hooks.fire(LifecyclePoint.PRE_BUILD if self._is_build else LifecyclePoint.PRE_RELEASE)

        touched = self._apply(self.plan.changes)
        if isinstance(touched, Err):
            return Err(touched.error)
        s = replace(s, touched=tuple(touched.value))

        self.hooks.fire(LifecyclePoint.PRE_TAG)

        # Taken after the hooks, which may commit work of their own.
        base = self.git.rev_parse("HEAD")
        if isinstance(base, Err):
            problems = self._restore_paths("HEAD", s.touched)
            error = from_git_error(base.error, "cannot read HEAD")
            return Err(self._with_problems(error, problems))
        return Ok(advance(replace(s, state=TxState.CHECKPOINTED, base_sha=base.value)))

    def _tag_commit(self, s: TxSession) -> Step:
        plan = self.plan
        assert plan.tag_name is not None and s.base_sha is not None

        committed = self.git.commit_paths(plan.commit_message, list(s.touched))
        if isinstance(committed, Err):
            problems = self._restore_paths(s.base_sha, s.touched)
            error = from_git_error(committed.error, "version commit failed")
            return Err(self._with_problems(error, problems))
        s = replace(s, bump_sha=committed.value)

        tagged = self.git.tag_create(plan.tag_name, plan.tag_name)
        if isinstance(tagged, Err):
            undo: list[str] = []
            self._note(undo, "reset", self.git.reset(s.base_sha, mode="soft"))
            undo.extend(self._restore_paths(s.base_sha, s.touched))
            error = from_git_error(tagged.error, f"cannot create tag '{plan.tag_name}'")
            return Err(self._with_problems(error, undo))

        return Ok(advance(replace(s, state=TxState.LOCAL_COMMITTED)))

    def _tag_publish_branch(self, s: TxSession) -> Step:
        tracking = self.plan.tracking
        if not self.plan.push:
            self._skip_push(f"branch {tracking.branch}")
            return Ok(advance(replace(s, state=TxState.MAINLINE_PUBLISHED)))

        pushed = self._push(f"refs/heads/{tracking.branch}:{tracking.merge_ref}")
        if pushed.rejected:
            return self._tag_rollback(s, pushed.raw)
        if pushed.deferred:
            self.console.info(f"{tracking.branch} commit deferred, continuing...")
            s = replace(s, deferred=(*s.deferred, tracking.branch))

        return Ok(advance(replace(s, state=TxState.MAINLINE_PUBLISHED)))

    def _tag_publish_tag(self, s: TxSession) -> Step:
        tag = self.plan.tag_name
        assert tag is not None
        if not self.plan.push:
            self._skip_push(f"tag {tag}")
            return Ok(advance(replace(s, state=TxState.TAG_PUBLISHED)))

        pushed = self._push(f"refs/tags/{tag}")
        if pushed.rejected:
            fetched = self.git.fetch()
            if isinstance(fetched, Err):
                self.console.warning(f"fetch failed: {fetched.error.message.strip()}")
            return Err(
                ReleaseError(
                    kind="manual_reconciliation",
                    message="server accepted branch-advancement, but rejected tag placement",
                    hint=f"there will likely be conflicting {tag} tags; "
                    f"compare the local and remote {tag} before releasing again",
                    diagnostic=pushed.raw,
                )
            )
        if pushed.deferred:
            self.console.info(f"{tag} tag commit deferred, continuing...")
            # The server places the tag itself once it accepts it.
            deleted = self.git.tag_delete(tag)
            if isinstance(deleted, Err):
                self.console.warning(f"could not delete local tag {tag}: {deleted.error.message.strip()}")
            s = replace(s, deferred=(*s.deferred, tag))

        return Ok(advance(replace(s, state=TxState.TAG_PUBLISHED)))

    def _tag_done(self, s: TxSession) -> Step:
        self.hooks.fire(LifecyclePoint.POST_TAG)
        self.hooks.fire(LifecyclePoint.POST_BUILD if self._is_build else LifecyclePoint.POST_RELEASE)
        return Ok(finish(replace(s, state=TxState.DONE)))

    def _tag_rollback(self, s: TxSession, raw: str) -> Step:
        """Undo the local version commit and tag after the branch push was refused."""
        plan = self.plan
        assert s.base_sha is not None and plan.tag_name is not None
        problems: list[str] = []

        self.console.error(
            f"{plan.tracking.branch} commit was rejected, "
            "this probably means that your repo is not up-to-date with the server"
        )
        self._note(problems, "reset", self.git.reset(s.base_sha, mode="soft"))
        problems.extend(self._restore_paths(s.base_sha, s.touched))
        self._note(problems, f"delete tag {plan.tag_name}", self.git.tag_delete(plan.tag_name))

        error = ReleaseError(
            kind="rolled_back",
            message=f"the server rejected the {plan.tracking.branch} version commit; "
            f"{plan.tag_name} was not released",
            hint="pull or fetch and merge the remote changes, then release again",
            diagnostic=raw,
        )
        return Err(self._with_problems(error, problems))
