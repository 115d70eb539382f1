"""Typed release configuration.

The release policy switches (tag the mainline or branch it, which branching
arithmetic to use, naming prefixes) live in one frozen dataclass that is
passed explicitly to the policy and the transaction. Repositories can
override the defaults with a `.git-release.toml` file at their root:

    tag_mainline = false
    branch2 = false
    branch_prefix = "release-"
    mainline_branches = ["trunk"]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, WrongType, as_str_dict, get_bool, get_str, get_str_list

__all__ = [
    "CONFIG_FILE_NAME",
    "ConfigError",
    "ReleaseConfig",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = ".git-release.toml"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when the config file cannot be loaded or has bad values."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Static release policy for one repository.

    Attributes:
        release_machine: When set, the tracked remote URL must contain it.
        version_file: Version scalar, relative to the repository root.
        args_file: Extra-args scalar recorded for audit.
        build_file: Optional monotonic build number (mainline only).
        tag_mainline: Releasing on the mainline tags it instead of branching.
        branch2: Default branch policy is the sliding window
            (master:1.2.3 -> branch 1.2.4, master 1.3.0) rather than the
            conventional one (master:1.2 -> branch 1.2.0, master 1.3).
        release_prefix: Prefix of release tag names.
        branch_prefix: Prefix of version branch names.
        build_tag_prefix: Prefix of build-only tag names.
        checkpoint_branch: Local branch used as the rollback marker.
        mainline_branches: Remote branch names treated as the mainline.
    """

    release_machine: str | None = None
    version_file: str = ".version"
    args_file: str = ".version_args"
    build_file: str = ".build_number"
    tag_mainline: bool = True
    branch2: bool = True
    release_prefix: str = "v"
    branch_prefix: str = "version-"
    build_tag_prefix: str = "build/"
    checkpoint_branch: str = "release-attempt"
    mainline_branches: tuple[str, ...] = ("master", "main")

    @property
    def artifact_paths(self) -> tuple[str, str, str]:
        """All scalar files the tool may commit, version file first."""
        return (self.version_file, self.build_file, self.args_file)

    def is_mainline(self, remote_branch: str) -> bool:
        return remote_branch in self.mainline_branches

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ReleaseConfig | WrongType:
        """Build a config from a parsed TOML table.

        Missing keys keep their defaults; the first badly typed key is
        returned instead of a config.
        """
        values: dict[str, object] = {}
        for f in fields(cls):
            if f.name in {"tag_mainline", "branch2"}:
                value = get_bool(data, f.name)
            elif f.name == "mainline_branches":
                value = get_str_list(data, f.name)
            else:
                value = get_str(data, f.name)
            if isinstance(value, WrongType):
                return value
            if value is not None:
                values[f.name] = value
        return cls(**values)  # type: ignore[arg-type]


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[ReleaseConfig, ConfigError]:
    """Load release configuration from a TOML file."""
    parsed = _parse_toml(path)
    if isinstance(parsed, Err):
        return parsed

    config = ReleaseConfig.from_dict(parsed.value)
    if isinstance(config, WrongType):
        return Err(ConfigError(f"Invalid config: {config.describe()}", path=path))
    return Ok(config)


def load_config_or_default(repo_root: Path) -> Result[ReleaseConfig, ConfigError]:
    """Load `.git-release.toml` from repo_root, or defaults when it is absent.

    A present but broken file is an error, never a fallback to defaults.
    """
    path = repo_root / CONFIG_FILE_NAME
    if not path.exists():
        return Ok(ReleaseConfig())
    return load_config(path)
