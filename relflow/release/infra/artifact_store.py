from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.platform.files import write_bytes_once
from relflow.release.errors import ReleaseError

_NAME_RE = re.compile(r"[0-9A-Za-z._-]+", re.ASCII)


def _validate_name(name: str) -> Result[str, ReleaseError]:
    if _NAME_RE.fullmatch(name) is None or name in {".", ".."}:
        return Err(
            ReleaseError(
                kind="store_failure",
                message=f"invalid artifact name: {name!r}",
                hint="Allowed: letters, digits, '.', '_', '-'",
            )
        )
    return Ok(name)


@dataclass(frozen=True, slots=True)
class LocalArtifactStore:
    """Write-once artifact store backed by a directory.

    CI uploads the directory as a build artifact; the store only
    guarantees that a name is written once and never partially.
    """

    root: Path

    def path_for(self, name: str) -> Path:
        return self.root / name

    def store(self, name: str, data: bytes) -> Result[Path, ReleaseError]:
        valid = _validate_name(name)
        if isinstance(valid, Err):
            return valid

        path = self.path_for(name)
        try:
            write_bytes_once(path, data)
        except FileExistsError:
            return Err(
                ReleaseError(
                    kind="store_failure",
                    message=f"artifact already stored: {name}",
                    hint=str(path),
                )
            )
        except OSError as e:
            return Err(
                ReleaseError(
                    kind="store_failure",
                    message=f"failed to store artifact {name}: {e}",
                    hint=str(path),
                )
            )
        return Ok(path)

    def retrieve(self, name: str) -> bytes | None:
        if isinstance(_validate_name(name), Err):
            return None
        try:
            return self.path_for(name).read_bytes()
        except FileNotFoundError:
            return None
