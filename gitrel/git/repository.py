"""Git repository backed by the git executable.

Repository implements GitFacade. Every operation runs one git subprocess
and returns a Result; only push has a three-way outcome.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.rev_parse("HEAD"):
        case Ok(sha):
            print(f"HEAD is {sha}")
        case Err(e):
            print(f"Error: {e.message}")

    result = repo.push("origin", "master:refs/heads/master")
    if result.rejected:
        print(result.raw)
"""

from __future__ import annotations

from pathlib import Path

from gitrel.core.result import Err, Ok, Result
from gitrel.git.facade import GitError, PushResult, ResetMode, classify_push_outcome
from gitrel.platform.process import ProcessError
from gitrel.platform.process import run as run_process

# Local operations only; network operations block until git returns.
_GIT_TIMEOUT_SECONDS = 30.0
_NETWORK_COMMANDS = frozenset({"fetch", "push"})

__all__ = ["Repository", "find_repo_root"]


def find_repo_root(start: Path) -> Path | None:
    """Top-level directory of the working tree containing start."""
    result = run_process(
        ["git", "rev-parse", "--show-toplevel"], cwd=start, timeout=_GIT_TIMEOUT_SECONDS
    )
    match result:
        case Ok(stdout):
            top = stdout.strip()
            return Path(top) if top else None
        case Err(_):
            return None


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def root(self) -> Path:
        return self.path

    def current_branch(self) -> str | None:
        """Current local branch name, None on detached HEAD or error."""
        result = self._run(["symbolic-ref", "--quiet", "--short", "HEAD"])
        match result:
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def config_get(self, key: str) -> str | None:
        result = self._run(["config", "--get", key])
        match result:
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def config_set(self, key: str, value: str) -> Result[None, GitError]:
        return self._call(["config", key, value]).map(lambda _: None)

    def rev_parse(self, ref: str) -> Result[str, GitError]:
        return self._call(["rev-parse", "--verify", f"{ref}^{{commit}}"]).map(str.strip)

    def ref_exists(self, ref: str) -> bool:
        return isinstance(self._run(["rev-parse", "--verify", "--quiet", ref]), Ok)

    def path_exists_at(self, ref: str, path: str) -> bool:
        return isinstance(self._run(["cat-file", "-e", f"{ref}:{path}"]), Ok)

    def is_clean(self) -> bool:
        """True if the working tree has no tracked or untracked changes.

        Returns False if status cannot be determined.
        """
        result = self._run(["status", "--porcelain"])
        match result:
            case Ok(stdout):
                return stdout.strip() == ""
            case Err(_):
                return False

    def stash_push(self, message: str) -> Result[bool, GitError]:
        if self.is_clean():
            return Ok(False)
        result = self._call(["stash", "push", "--include-untracked", "-m", message])
        match result:
            case Err(e):
                return Err(e)
            case Ok(stdout):
                return Ok("No local changes to save" not in stdout)

    def stash_pop(self) -> Result[None, GitError]:
        return self._call(["stash", "pop", "--index"]).map(lambda _: None)

    def create_branch(self, name: str, start: str) -> Result[None, GitError]:
        return self._call(["branch", name, start]).map(lambda _: None)

    def force_branch(self, name: str, target: str) -> Result[None, GitError]:
        return self._call(["branch", "-f", name, target]).map(lambda _: None)

    def delete_branch(self, name: str) -> Result[None, GitError]:
        """Delete a local branch, merged or not, along with its config section."""
        return self._call(["branch", "-D", name]).map(lambda _: None)

    def checkout(self, ref: str, *, force: bool = False) -> Result[None, GitError]:
        args = ["checkout", "-q"]
        if force:
            args.append("-f")
        return self._call([*args, ref]).map(lambda _: None)

    def checkout_new_branch(self, name: str, start: str) -> Result[None, GitError]:
        return self._call(["checkout", "-q", "-b", name, start]).map(lambda _: None)

    def checkout_paths(self, ref: str, paths: list[str]) -> Result[None, GitError]:
        if not paths:
            return Ok(None)
        return self._call(["checkout", ref, "--", *paths]).map(lambda _: None)

    def commit_paths(self, message: str, paths: list[str]) -> Result[str, GitError]:
        """Stage exactly `paths` (including deletions) and commit only them.

        Other staged or unstaged changes in the working tree are left alone.
        """
        return (
            self._call(["add", "-A", "--", *paths])
            .flat_map(lambda _: self._call(["commit", "-q", "-m", message, "--", *paths]))
            .flat_map(lambda _: self.rev_parse("HEAD"))
        )

    def reset(self, ref: str, *, mode: ResetMode) -> Result[None, GitError]:
        return self._call(["reset", "-q", f"--{mode}", ref]).map(lambda _: None)

    def unstage(self, ref: str, paths: list[str]) -> Result[None, GitError]:
        if not paths:
            return Ok(None)
        return self._call(["reset", "-q", ref, "--", *paths]).map(lambda _: None)

    def tag_create(self, name: str, message: str) -> Result[None, GitError]:
        """Create an annotated tag at HEAD."""
        return self._call(["tag", "-a", "-m", message, name]).map(lambda _: None)

    def tag_delete(self, name: str) -> Result[None, GitError]:
        return self._call(["tag", "-d", name]).map(lambda _: None)

    def fetch(self) -> Result[str, GitError]:
        return self._call(["fetch"]).map(str.strip)

    def push(self, remote: str, refspec: str) -> PushResult:
        """Push one refspec and classify the outcome.

        The raw output is kept on every outcome so callers can show the
        operator what the server said.
        """
        result = self._run(["push", remote, refspec])
        match result:
            case Ok(stdout):
                return PushResult(outcome=classify_push_outcome(True, stdout), raw=stdout.strip())
            case Err(e):
                raw = e.output
                return PushResult(outcome=classify_push_outcome(False, raw), raw=raw)

    def last_commit_paths(self) -> Result[tuple[str, ...], GitError]:
        """Paths touched by the HEAD commit."""
        result = self._call(["show", "--name-only", "--format=", "HEAD"])
        match result:
            case Err(e):
                return Err(e)
            case Ok(stdout):
                return Ok(tuple(ln.strip() for ln in stdout.splitlines() if ln.strip()))

    def _call(self, args: list[str]) -> Result[str, GitError]:
        """Run git and turn a process failure into a GitError."""
        result = self._run(args)
        match result:
            case Err(e):
                return Err(
                    GitError(
                        command=args[0],
                        message=e.output or f"git {args[0]} failed",
                        returncode=e.returncode,
                    )
                )
            case Ok(stdout):
                return Ok(stdout)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = None if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)
