"""Platform abstraction layer: processes and files."""

from .files import atomic_write_text, read_scalar, write_scalar
from .process import ProcessError, run, run_silent

__all__ = [
    # files
    "atomic_write_text",
    "read_scalar",
    "write_scalar",
    # process
    "ProcessError",
    "run",
    "run_silent",
]
