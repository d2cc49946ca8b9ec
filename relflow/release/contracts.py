"""Contracts the pipeline needs from its external collaborators.

Neither contract is transactional. Callers check existence and then
create; between the two calls another run may win, which surfaces as a
``tag_conflict``/``release_conflict`` error rather than a silent no-op.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from relflow.core.result import Result
from relflow.release.errors import ReleaseError


class ReleaseRegistry(Protocol):
    """Remote tag/release service. Every query hits live state."""

    def tag_exists(self, name: str) -> Result[bool, ReleaseError]: ...

    def create_tag(self, name: str, commit: str) -> Result[None, ReleaseError]:
        """Create ``name`` at ``commit``; ``tag_conflict`` if it already exists."""
        ...

    def release_exists(self, tag: str) -> Result[bool, ReleaseError]: ...

    def create_release(self, tag: str, assets: Sequence[Path]) -> Result[None, ReleaseError]:
        """Create the release for ``tag``; ``release_conflict`` if one exists."""
        ...

    def delete_release(self, tag: str) -> Result[None, ReleaseError]:
        """Remove a release this run created, keeping its tag. Only used to roll back."""
        ...

    def delete_tag(self, name: str) -> Result[None, ReleaseError]:
        """Remove a tag this run created. Only used to roll back."""
        ...


class ArtifactPublisher(Protocol):
    """Write-once store of named build artifacts."""

    def store(self, name: str, data: bytes) -> Result[Path, ReleaseError]:
        """Persist ``data`` under ``name``; ``store_failure`` if the name is taken."""
        ...

    def retrieve(self, name: str) -> bytes | None: ...


class StepRunner(Protocol):
    """Opaque lint/build/test/package commands.

    The pipeline only sees pass/fail, plus the tarball path from ``package``.
    """

    def run(self, name: str) -> Result[None, ReleaseError]: ...

    def package(self) -> Result[Path, ReleaseError]: ...
