"""State machine tests for ReleaseTransaction against FakeGit."""

from __future__ import annotations

from pathlib import Path

from gitrel.core.config import ReleaseConfig
from gitrel.core.result import Err, Ok
from gitrel.git.facade import PushOutcome
from gitrel.output.console import MockConsole
from gitrel.services.release.artifacts import ArtifactFiles
from gitrel.services.release.hooks import HookDispatcher, LifecyclePoint
from gitrel.services.release.model import ReleaseFlags, ReleaseMode
from gitrel.services.release.policy import plan_release, resolve_tracking
from gitrel.services.release.transaction import ReleaseTransaction, TxState
from gitrel.test.services.fake_git import FakeGit

BRANCH_PATH = [
    TxState.INIT,
    TxState.CHECKPOINTED,
    TxState.LOCAL_COMMITTED,
    TxState.REMOTE_BRANCH_PUBLISHED,
    TxState.MAINLINE_PUBLISHED,
    TxState.CLEANED,
    TxState.DONE,
]

TAG_PATH = [
    TxState.INIT,
    TxState.CHECKPOINTED,
    TxState.LOCAL_COMMITTED,
    TxState.MAINLINE_PUBLISHED,
    TxState.TAG_PUBLISHED,
    TxState.DONE,
]


class Recorder:
    """Hook registry that records which lifecycle points fired."""

    def __init__(self) -> None:
        self.fired: list[LifecyclePoint] = []

    def dispatcher(self) -> HookDispatcher:
        return HookDispatcher(
            {point: [lambda p=point: self.fired.append(p)] for point in LifecyclePoint}
        )


def make_transaction(
    git: FakeGit,
    flags: ReleaseFlags,
    *,
    config: ReleaseConfig | None = None,
    console: MockConsole | None = None,
    hooks: HookDispatcher | None = None,
) -> ReleaseTransaction:
    config = config or ReleaseConfig()
    tracking = resolve_tracking(git, config)
    assert isinstance(tracking, Ok)
    artifacts = ArtifactFiles(git.root, config)
    plan = plan_release(
        git=git, config=config, flags=flags, tracking=tracking.value, artifacts=artifacts
    )
    assert isinstance(plan, Ok), plan
    return ReleaseTransaction(
        git=git,
        config=config,
        plan=plan.value,
        artifacts=artifacts,
        hooks=hooks or HookDispatcher(),
        console=console or MockConsole(),
    )


class TestTagPath:
    def version_line(self, tmp_path: Path) -> FakeGit:
        return FakeGit(tmp_path, branch="version-3", files={".version": "3.2\n"})

    def test_happy_path(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        tx = make_transaction(git, ReleaseFlags())

        result = tx.run()

        assert isinstance(result, Ok)
        assert tx.history == TAG_PATH
        assert git.read(".version") == "3.3\n"
        assert git.tags["v3.3"] == git.head_sha()
        assert git.messages[git.head_sha()] == "v3.3"
        assert git.pushes == ["refs/heads/version-3:refs/heads/version-3", "refs/tags/v3.3"]
        assert result.value.tag_name == "v3.3"
        assert result.value.final_branch == "version-3"

    def test_hooks_fire_in_order(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        recorder = Recorder()

        make_transaction(git, ReleaseFlags(), hooks=recorder.dispatcher()).run()

        assert recorder.fired == [
            LifecyclePoint.PRE_RELEASE,
            LifecyclePoint.PRE_TAG,
            LifecyclePoint.POST_TAG,
            LifecyclePoint.POST_RELEASE,
        ]

    def test_build_only_hooks_and_files(self, tmp_path: Path) -> None:
        git = FakeGit(tmp_path, files={".version": "4\n", ".build_number": "41\n"})
        recorder = Recorder()

        result = make_transaction(
            git, ReleaseFlags(build_only=True), hooks=recorder.dispatcher()
        ).run()

        assert isinstance(result, Ok)
        assert recorder.fired == [
            LifecyclePoint.PRE_BUILD,
            LifecyclePoint.PRE_TAG,
            LifecyclePoint.POST_TAG,
            LifecyclePoint.POST_BUILD,
        ]
        assert git.read(".version") == "4\n"
        assert git.read(".build_number") == "42\n"
        assert git.changed[git.head_sha()] == (".build_number",)
        assert "build/42" in git.tags
        assert git.messages[git.head_sha()] == "v: b42"

    def test_branch_push_rejected_rolls_back(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        base = git.head_sha()
        git.set_push(
            "refs/heads/version-3:refs/heads/version-3",
            PushOutcome.REJECTED,
            " ! [rejected] version-3 -> version-3 (fetch first)",
        )
        console = MockConsole()
        tx = make_transaction(git, ReleaseFlags(), console=console)

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "rolled_back"
        assert result.error.diagnostic is not None and "fetch first" in result.error.diagnostic
        assert tx.history == [
            TxState.INIT,
            TxState.CHECKPOINTED,
            TxState.LOCAL_COMMITTED,
            TxState.ABORTED,
        ]
        assert git.head_sha() == base
        assert git.read(".version") == "3.2\n"
        assert "v3.3" not in git.tags
        assert git.pushes == ["refs/heads/version-3:refs/heads/version-3"]
        assert console.find("not up-to-date with the server")

    def test_rollback_keeps_commits_made_by_pre_tag_hook(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        base = git.head_sha()
        hook_commit: list[str] = []

        def changelog() -> None:
            (tmp_path / "CHANGELOG").write_text("3.3: fixes\n")
            committed = git.commit_paths("changelog for 3.3", ["CHANGELOG"])
            assert isinstance(committed, Ok)
            hook_commit.append(committed.value)

        git.set_push("refs/heads/version-3:refs/heads/version-3", PushOutcome.REJECTED)
        tx = make_transaction(
            git, ReleaseFlags(), hooks=HookDispatcher({LifecyclePoint.PRE_TAG: [changelog]})
        )

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "rolled_back"
        assert git.head_sha() == hook_commit[0]
        assert git.head_sha() != base
        assert "CHANGELOG" in git.head_files()
        assert git.read(".version") == "3.2\n"
        assert "v3.3" not in git.tags

    def test_failed_write_restores_files_already_written(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        base = git.head_sha()
        # A directory in the way makes the extra-args write fail after .version landed.
        (tmp_path / ".version_args").mkdir()
        tx = make_transaction(git, ReleaseFlags(extra_args=("hotfix",)))

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "git_failed"
        assert "failed to write release files" in result.error.message
        assert tx.history == [TxState.INIT, TxState.ABORTED]
        assert git.read(".version") == "3.2\n"
        assert git.head_sha() == base
        assert not any(call.startswith("commit") for call in git.calls)

    def test_rollback_removes_files_created_by_release(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        git.set_push("refs/heads/version-3:refs/heads/version-3", PushOutcome.REJECTED)

        result = make_transaction(git, ReleaseFlags(extra_args=("hotfix",))).run()

        assert isinstance(result, Err)
        assert git.read(".version_args") is None
        assert git.read(".version") == "3.2\n"

    def test_tag_push_rejected_needs_reconciliation(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        git.set_push("refs/tags/v3.3", PushOutcome.REJECTED, "! [rejected] v3.3 (already exists)")
        tx = make_transaction(git, ReleaseFlags())

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "manual_reconciliation"
        assert "rejected tag placement" in result.error.message
        assert result.error.hint is not None and "conflicting v3.3 tags" in result.error.hint
        assert tx.history[-2:] == [TxState.MAINLINE_PUBLISHED, TxState.ABORTED]
        assert git.fetches == 1
        assert "v3.3" in git.tags
        assert git.read(".version") == "3.3\n"

    def test_deferred_branch_push_continues(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        git.set_push(
            "refs/heads/version-3:refs/heads/version-3",
            PushOutcome.DEFERRED,
            "remote: queued, will apply later",
        )
        console = MockConsole()
        tx = make_transaction(git, ReleaseFlags(), console=console)

        result = tx.run()

        assert isinstance(result, Ok)
        assert tx.history == TAG_PATH
        assert result.value.deferred == ("version-3",)
        assert console.find("version-3 commit deferred, continuing...")

    def test_deferred_tag_push_deletes_local_tag(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        git.set_push("refs/tags/v3.3", PushOutcome.DEFERRED, "remote: deferred")
        console = MockConsole()

        result = make_transaction(git, ReleaseFlags(), console=console).run()

        assert isinstance(result, Ok)
        assert "v3.3" not in git.tags
        assert result.value.deferred == ("v3.3",)
        assert console.find("v3.3 tag commit deferred, continuing...")

    def test_no_push_keeps_local_commit_and_tag(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        tx = make_transaction(git, ReleaseFlags(push=False))

        result = tx.run()

        assert isinstance(result, Ok)
        assert tx.history == TAG_PATH
        assert git.pushes == []
        assert git.fetches == 0
        assert "v3.3" in git.tags
        assert result.value.pushed is False

    def test_commit_failure_restores_files(self, tmp_path: Path) -> None:
        git = self.version_line(tmp_path)
        base = git.head_sha()
        git.fail("commit", "error: unable to write")
        tx = make_transaction(git, ReleaseFlags())

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "git_failed"
        assert git.head_sha() == base
        assert git.read(".version") == "3.2\n"
        assert git.pushes == []


class TestBranchPath:
    def mainline(self, tmp_path: Path, *, dirty: bool = False) -> FakeGit:
        return FakeGit(tmp_path, files={".version": "3\n", ".build_number": "7\n"}, dirty=dirty)

    def test_branch2_happy_path(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path)
        tx = make_transaction(git, ReleaseFlags(mode_flag="branch2"))

        result = tx.run()

        assert isinstance(result, Ok)
        assert tx.history == BRANCH_PATH
        assert git.current == "master"
        assert git.read(".version") == "4\n"
        assert git.read(".build_number") == "8\n"
        assert git.messages[git.branches["master"]] == "version-3 branched off"

        new_tip = git.branches["version-3"]
        assert git.commits[new_tip] == {".version": "3.\n"}
        assert git.messages[new_tip] == "v: pre-v3.0"
        assert git.config["branch.version-3.remote"] == "origin"
        assert git.config["branch.version-3.merge"] == "refs/heads/version-3"
        assert "release-attempt" not in git.branches
        assert git.pushes == [
            "refs/heads/version-3:refs/heads/version-3",
            "refs/heads/master:refs/heads/master",
        ]
        assert result.value.final_branch == "master"

    def test_conventional_branch_ends_on_new_branch(self, tmp_path: Path) -> None:
        git = FakeGit(tmp_path, branch="version-3", files={".version": "3.2\n"})

        result = make_transaction(git, ReleaseFlags(mode_flag="branch1")).run()

        assert isinstance(result, Ok)
        assert git.current == "version-3.2"
        assert git.read(".version") == "3.2.\n"
        assert git.commits[git.branches["version-3"]] == {".version": "3.3\n"}
        assert result.value.final_branch == "version-3.2"

    def test_branch2_off_version_line_skips_empty_commit(self, tmp_path: Path) -> None:
        git = FakeGit(tmp_path, branch="version-1", files={".version": "1.2.3\n"})
        base = git.head_sha()

        result = make_transaction(git, ReleaseFlags(mode_flag="branch2")).run()

        assert isinstance(result, Ok)
        assert git.branches["version-1.2"] == base
        assert git.commits[git.branches["version-1"]] == {".version": "1.3.\n"}

    def test_hooks_fire_in_order(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path)
        recorder = Recorder()

        make_transaction(git, ReleaseFlags(mode_flag="branch2"), hooks=recorder.dispatcher()).run()

        assert recorder.fired == [
            LifecyclePoint.PRE_BRANCH,
            LifecyclePoint.NEW_BRANCH,
            LifecyclePoint.POST_BRANCH,
        ]

    def test_stash_restored_on_final_branch(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path, dirty=True)

        result = make_transaction(git, ReleaseFlags(mode_flag="branch2")).run()

        assert isinstance(result, Ok)
        assert git.stash == []
        assert git.calls[-1] == "stash pop on master"

    def test_new_branch_rejected_rolls_back_completely(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path, dirty=True)
        base = git.head_sha()
        config_before = dict(git.config)
        git.set_push(
            "refs/heads/version-3:refs/heads/version-3",
            PushOutcome.REJECTED,
            "! [remote rejected] version-3 (hook declined)",
        )
        console = MockConsole()
        tx = make_transaction(git, ReleaseFlags(mode_flag="branch2"), console=console)

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "rolled_back"
        assert tx.history == [
            TxState.INIT,
            TxState.CHECKPOINTED,
            TxState.LOCAL_COMMITTED,
            TxState.ABORTED,
        ]
        assert git.current == "master"
        assert git.branches == {"master": base}
        assert git.config == config_before
        assert git.read(".version") == "3\n"
        assert git.read(".build_number") == "7\n"
        assert git.stash == []
        assert git.dirty is True
        assert console.find("branch creation request for version-3 failed")

    def test_mainline_rejected_keeps_checkpoint(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path)
        base = git.head_sha()
        git.set_push("refs/heads/master:refs/heads/master", PushOutcome.REJECTED, "! [rejected]")
        tx = make_transaction(git, ReleaseFlags(mode_flag="branch2"))

        result = tx.run()

        assert isinstance(result, Err)
        assert result.error.kind == "manual_reconciliation"
        assert result.error.hint is not None
        assert "release-attempt" in result.error.hint
        assert "should probably be merged" in result.error.hint
        assert tx.history[-2:] == [TxState.REMOTE_BRANCH_PUBLISHED, TxState.ABORTED]
        assert git.current == "master"
        assert git.branches["master"] == base
        assert git.messages[git.branches["release-attempt"]] == "version-3 branched off"
        assert "version-3" in git.branches
        assert git.read(".version") == "3\n"

    def test_deferred_pushes_continue(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path)
        git.set_push(
            "refs/heads/version-3:refs/heads/version-3", PushOutcome.DEFERRED, "deferred"
        )
        git.set_push("refs/heads/master:refs/heads/master", PushOutcome.DEFERRED, "later")
        tx = make_transaction(git, ReleaseFlags(mode_flag="branch2"))

        result = tx.run()

        assert isinstance(result, Ok)
        assert tx.history == BRANCH_PATH
        assert result.value.deferred == ("version-3", "master")

    def test_no_push_branches_locally(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path)
        tx = make_transaction(git, ReleaseFlags(mode_flag="branch2", push=False))

        result = tx.run()

        assert isinstance(result, Ok)
        assert tx.history == BRANCH_PATH
        assert git.pushes == []
        assert "version-3" in git.branches
        assert "release-attempt" not in git.branches

    def test_checkpoint_failure_restores_stash(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path, dirty=True)
        git.fail("branch", "fatal: cannot lock ref")

        result = make_transaction(git, ReleaseFlags(mode_flag="branch2")).run()

        assert isinstance(result, Err)
        assert result.error.kind == "git_failed"
        assert git.stash == []
        assert git.dirty is True
        assert git.branches.keys() == {"master"}

    def test_commit_failure_rolls_back(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path)
        base = git.head_sha()
        git.fail("commit")

        result = make_transaction(git, ReleaseFlags(mode_flag="branch2")).run()

        assert isinstance(result, Err)
        assert git.branches == {"master": base}
        assert git.read(".version") == "3\n"
        assert git.read(".build_number") == "7\n"

    def test_incomplete_rollback_is_reported(self, tmp_path: Path) -> None:
        git = self.mainline(tmp_path, dirty=True)
        git.set_push("refs/heads/version-3:refs/heads/version-3", PushOutcome.REJECTED)
        git.fail("stash-pop", "CONFLICT in src/main.c")

        result = make_transaction(git, ReleaseFlags(mode_flag="branch2")).run()

        assert isinstance(result, Err)
        assert result.error.kind == "rolled_back"
        assert result.error.hint is not None
        assert "rollback incomplete" in result.error.hint
        assert "CONFLICT" in result.error.hint


def test_report_mode(tmp_path: Path) -> None:
    git = FakeGit(tmp_path, files={".version": "3\n"})

    result = make_transaction(git, ReleaseFlags(mode_flag="branch2")).run()

    assert isinstance(result, Ok)
    assert result.value.mode is ReleaseMode.BRANCH2
    assert result.value.new_branch == "version-3"
    assert result.value.branch == "master"
