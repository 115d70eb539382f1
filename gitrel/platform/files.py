"""Single-line scalar files.

The version, build-number and extra-args files each hold one line of text
followed by a newline. Writes go through a temp file + replace so a crash
never leaves a half-written scalar behind.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

__all__ = ["atomic_write_text", "read_scalar", "write_scalar"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def read_scalar(path: Path) -> str | None:
    """Return the first line of path without its newline, or None if absent.

    Raises:
        OSError: The file exists but cannot be read.
        UnicodeDecodeError: The file is not UTF-8.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    first, _, _ = text.partition("\n")
    return first.rstrip("\r")


def write_scalar(path: Path, value: str) -> None:
    atomic_write_text(path, f"{value}\n")
