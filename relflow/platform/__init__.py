"""Process and filesystem helpers."""

from .files import write_bytes_once
from .process import ProcessError, run, run_silent

__all__ = [
    "ProcessError",
    "run",
    "run_silent",
    "write_bytes_once",
]
