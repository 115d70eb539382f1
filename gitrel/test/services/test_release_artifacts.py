from __future__ import annotations

from pathlib import Path

from gitrel.core.config import ReleaseConfig
from gitrel.core.result import Err, Ok
from gitrel.services.release.artifacts import ArtifactFiles
from gitrel.services.release.model import ArtifactChanges
from gitrel.services.release.version import Version


def test_read_version_defaults_to_one(tmp_path: Path) -> None:
    assert ArtifactFiles(tmp_path, ReleaseConfig()).read_version() == Ok(Version("1"))


def test_read_version_from_configured_file(tmp_path: Path) -> None:
    (tmp_path / "VERSION").write_text("3.2\n")
    files = ArtifactFiles(tmp_path, ReleaseConfig(version_file="VERSION"))
    assert files.read_version() == Ok(Version("3.2"))


def test_read_version_not_utf8(tmp_path: Path) -> None:
    (tmp_path / ".version").write_bytes(b"\xff\xfe3\n")

    result = ArtifactFiles(tmp_path, ReleaseConfig()).read_version()

    assert isinstance(result, Err)
    assert result.error.kind == "malformed_version"


def test_read_build_number(tmp_path: Path) -> None:
    files = ArtifactFiles(tmp_path, ReleaseConfig())
    assert files.read_build_number() == Ok(None)

    (tmp_path / ".build_number").write_text("41\n")
    assert files.read_build_number() == Ok(41)


def test_read_build_number_rejects_garbage(tmp_path: Path) -> None:
    (tmp_path / ".build_number").write_text("-3\n")

    result = ArtifactFiles(tmp_path, ReleaseConfig()).read_build_number()

    assert isinstance(result, Err)
    assert result.error.kind == "precondition"


def test_apply_writes_and_reports(tmp_path: Path) -> None:
    files = ArtifactFiles(tmp_path, ReleaseConfig())

    touched = files.apply(ArtifactChanges(version="3.3", build_number=42, args="hotfix"))

    assert touched == [".version", ".build_number", ".version_args"]
    assert (tmp_path / ".version").read_text() == "3.3\n"
    assert (tmp_path / ".build_number").read_text() == "42\n"
    assert (tmp_path / ".version_args").read_text() == "hotfix\n"


def test_apply_drops_only_existing_files(tmp_path: Path) -> None:
    (tmp_path / ".build_number").write_text("7\n")
    files = ArtifactFiles(tmp_path, ReleaseConfig())

    touched = files.apply(ArtifactChanges(drop_build=True, drop_args=True))

    assert touched == [".build_number"]
    assert not (tmp_path / ".build_number").exists()


def test_apply_empty_changes(tmp_path: Path) -> None:
    changes = ArtifactChanges()
    assert changes.is_empty
    assert ArtifactFiles(tmp_path, ReleaseConfig()).apply(changes) == []
