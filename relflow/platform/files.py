"""Filesystem helpers."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

__all__ = ["write_bytes_once"]


def write_bytes_once(path: Path, data: bytes) -> None:
    """Publish ``data`` at ``path`` only if nothing exists there yet.

    The bytes are fully written to a temp file first and then hard-linked
    into place, so readers never observe a partial file and a concurrent
    writer for the same path loses with ``FileExistsError``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.link(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)
