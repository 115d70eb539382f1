from __future__ import annotations

from pathlib import Path

from gitrel.core.config import ReleaseConfig
from gitrel.core.result import Err, Ok, Result
from gitrel.platform.files import read_scalar, write_scalar
from gitrel.services.release.errors import ReleaseError, precondition
from gitrel.services.release.model import ArtifactChanges
from gitrel.services.release.version import Version, parse_version

DEFAULT_VERSION = "1"


class ArtifactFiles:
    """The version, build-number and extra-args files of one working tree.

    Paths are relative to the repository root, as configured. Only `apply`
    and `remove` write; everything else is read-only.
    """

    def __init__(self, root: Path, config: ReleaseConfig) -> None:
        self.root = root
        self.config = config

    def _path(self, rel: str) -> Path:
        return self.root / rel

    def has_args_file(self) -> bool:
        return self._path(self.config.args_file).is_file()

    def read_version(self) -> Result[Version, ReleaseError]:
        """Read the version file, defaulting to "1" when it does not exist."""
        path = self._path(self.config.version_file)
        try:
            raw = read_scalar(path)
        except (OSError, UnicodeDecodeError) as e:
            return Err(
                ReleaseError(
                    kind="malformed_version",
                    message=f"{self.config.version_file}: unreadable ({e})",
                )
            )
        return Ok(parse_version(DEFAULT_VERSION if raw is None else raw))

    def read_build_number(self) -> Result[int | None, ReleaseError]:
        """Last build number, or None when the project has no build file."""
        name = self.config.build_file
        try:
            raw = read_scalar(self._path(name))
        except (OSError, UnicodeDecodeError) as e:
            return Err(precondition(f"{name}: unreadable ({e})"))
        if raw is None:
            return Ok(None)
        value = raw.strip()
        if not value.isascii() or not value.isdigit():
            return Err(
                precondition(
                    f"{name}: unreadable build number {raw!r}",
                    hint="it must hold one non-negative integer followed by an end-of-line marker",
                )
            )
        return Ok(int(value))

    def apply(self, changes: ArtifactChanges, *, touched: list[str] | None = None) -> list[str]:
        """Write `changes` to the working tree; return the paths touched.

        Removing a file that does not exist is not a change and is not
        reported. Paths are appended to `touched` as each write lands, so
        a caller still knows what changed when a later write raises.
        """
        touched = [] if touched is None else touched
        cfg = self.config

        if changes.version is not None:
            write_scalar(self._path(cfg.version_file), changes.version)
            touched.append(cfg.version_file)

        if changes.build_number is not None:
            write_scalar(self._path(cfg.build_file), str(changes.build_number))
            touched.append(cfg.build_file)
        elif changes.drop_build and self.remove(cfg.build_file):
            touched.append(cfg.build_file)

        if changes.args is not None:
            write_scalar(self._path(cfg.args_file), changes.args)
            touched.append(cfg.args_file)
        elif changes.drop_args and self.remove(cfg.args_file):
            touched.append(cfg.args_file)

        return touched

    def remove(self, rel: str) -> bool:
        path = self._path(rel)
        if not path.exists():
            return False
        path.unlink()
        return True
