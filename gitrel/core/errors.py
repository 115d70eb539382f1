"""Exit codes for the git-release command.

The tool has a deliberately narrow contract with scripts and CI jobs that
wrap it: zero means the release (or query) succeeded, one means anything
else. `--build-needed` reuses the same two codes as a boolean answer.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Process exit codes. Values are part of the CLI contract."""

    OK = 0
    FAILURE = 1

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
