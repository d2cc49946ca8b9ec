"""Error payload for the release bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ReleaseErrorKind = Literal[
    "version_malformed",
    "manifest_unreadable",
    "not_bumped",
    "already_released",
    "tag_conflict",
    "release_conflict",
    "store_failure",
    "step_failed",
    "registry_failed",
    "invalid_input",
    "gh_missing",
    "gh_auth_required",
    "config_invalid",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical failure of a pipeline run.

    Every layer returns this inside ``Err``; the CLI maps ``kind`` to an
    exit code and renders ``message``/``hint``.
    """

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
