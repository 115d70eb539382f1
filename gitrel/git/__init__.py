"""Git operations module.

- GitFacade: the operations a release needs, as a protocol
- Repository: implementation on top of the git executable
- classify_push_outcome: accepted / deferred / rejected from push output

Usage:
    from gitrel.git import Repository, PushOutcome

    repo = Repository(Path("/path/to/repo"))
    if repo.push("origin", "refs/tags/v3.3").outcome is PushOutcome.DEFERRED:
        print("tag will appear once the server accepts it")
"""

from gitrel.git.facade import (
    GitError,
    GitFacade,
    PushOutcome,
    PushResult,
    ResetMode,
    classify_push_outcome,
)
from gitrel.git.repository import Repository, find_repo_root

__all__ = [
    # facade
    "GitError",
    "GitFacade",
    "PushOutcome",
    "PushResult",
    "ResetMode",
    "classify_push_outcome",
    # repository
    "Repository",
    "find_repo_root",
]
