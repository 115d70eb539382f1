"""Dotted version strings and how they advance.

A version is whatever the version file holds: a bare integer on the
mainline ("4"), a dotted line version ("3.2"), or a pre-release marker
ending in a bare separator ("3.") on a branch that has not been released
yet. Parsing never rejects content; only incrementing needs numbers.

Two increment policies exist:

- conventional: bump the last component ("3.2" -> "3.3", "3." -> "3.0");
  a new branch forked from "1.2" is named after "1.2" and starts at "1.2.".
- sliding window: drop the last component and bump the one before it,
  ending with a bare separator ("1.2.3" -> "1.3."); the new branch is named
  after "1.2" and keeps counting "1.2.4", "1.2.5", ... from the old line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from gitrel.core.result import Err, Ok, Result
from gitrel.services.release.errors import ReleaseError

SEPARATOR = "."

_NUMBER_RE = re.compile(r"[0-9]+")


class IncrementPolicy(Enum):
    CONVENTIONAL = "conventional"
    SLIDING_WINDOW = "sliding-window"


@dataclass(frozen=True, slots=True)
class Version:
    raw: str

    @property
    def is_mainline(self) -> bool:
        """No separator: a major number on the mainline."""
        return SEPARATOR not in self.raw

    @property
    def is_prerelease(self) -> bool:
        """Ends in a bare separator: branched but never released."""
        return self.raw.endswith(SEPARATOR)

    @property
    def components(self) -> tuple[str, ...]:
        return tuple(self.raw.split(SEPARATOR))

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True, slots=True)
class VersionStep:
    """Result of one increment.

    Attributes:
        current: Version before the increment.
        next: Version after the increment.
        branch_base: Version a new branch is named after.
    """

    current: Version
    next: Version
    branch_base: Version


def parse_version(raw: str) -> Version:
    return Version(raw.strip())


def _bumped(component: str, *, version: Version) -> Result[int, ReleaseError]:
    # An empty trailing component is a pre-release marker: its successor is 0.
    if component == "":
        return Ok(0)
    if _NUMBER_RE.fullmatch(component) is None:
        return Err(
            ReleaseError(
                kind="invalid_version",
                message=f"cannot increment version '{version}': '{component}' is not a number",
                hint="fix the version file by hand, then release again",
            )
        )
    return Ok(int(component) + 1)


def increment(version: Version, policy: IncrementPolicy) -> Result[VersionStep, ReleaseError]:
    """Compute the next version under `policy`.

    Mainline versions ignore the policy: "n" always becomes "n+1" and a
    branch forked from it is named after "n".
    """
    parts = version.components

    if len(parts) == 1:
        if parts[0] == "":
            return Err(ReleaseError(kind="invalid_version", message="version file is empty"))
        bumped = _bumped(parts[0], version=version)
        if isinstance(bumped, Err):
            return bumped
        return Ok(VersionStep(current=version, next=Version(str(bumped.value)), branch_base=version))

    if policy is IncrementPolicy.SLIDING_WINDOW:
        smallest, prefix, base = parts[-2], parts[:-2], parts[:-1]
    else:
        smallest, prefix, base = parts[-1], parts[:-1], parts

    bumped = _bumped(smallest, version=version)
    if isinstance(bumped, Err):
        return bumped

    head = SEPARATOR.join([*prefix, str(bumped.value)])
    if policy is IncrementPolicy.SLIDING_WINDOW:
        # Provisional: the next tag on this line appends its own component.
        head += SEPARATOR

    return Ok(
        VersionStep(
            current=version,
            next=Version(head),
            branch_base=Version(SEPARATOR.join(base)),
        )
    )


def prerelease_marker(base: Version) -> Version:
    """Version written on a freshly created conventional branch."""
    return Version(f"{base.raw}{SEPARATOR}")
