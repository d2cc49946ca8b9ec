from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TriggerKind(Enum):
    """The closed set of events a pipeline run can start from."""

    PR_UPDATE = "pr"
    LABEL_VERIFY = "verify"
    LABEL_PUBLISH = "publish"
    MERGE = "merge"

    def __str__(self) -> str:
        return self.value


VERIFY_LABEL = "verify"
PUBLISH_LABEL = "publish"


@dataclass(frozen=True, slots=True)
class Trigger:
    """Metadata of the event under evaluation.

    ``base_version`` wins over ``base_ref`` when both are given; the merge
    path also needs ``merge_commit``.
    """

    kind: TriggerKind
    revision: str
    base_version: str | None = None
    base_ref: str | None = None
    merge_commit: str | None = None
    label: str | None = None


class Decision(Enum):
    ALLOWED = "allowed"
    BLOCKED_NOT_BUMPED = "blocked_not_bumped"
    BLOCKED_ALREADY_RELEASED = "blocked_already_released"

    def __str__(self) -> str:
        return self.value

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOWED


class DecisionRules(Enum):
    # PR updates only check the bump; no tag can exist for an unmerged version
    NOT_BUMPED_ONLY = "not_bumped_only"
    FULL = "full"


class Stage(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    CANDIDATE_BUILD = "candidate_build"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value
