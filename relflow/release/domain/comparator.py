"""The bump/duplicate decision.

Only equality with the base version is forbidden. A version lower than
the base still passes; tightening that would change which PRs can merge,
so it is left as a product decision.
"""

from __future__ import annotations

from relflow.core.result import Err, Ok, Result
from relflow.release.contracts import ReleaseRegistry
from relflow.release.domain.version import Version
from relflow.release.errors import ReleaseError
from relflow.release.model import Decision, DecisionRules


def decide(
    candidate: Version,
    base: Version,
    registry: ReleaseRegistry,
    *,
    rules: DecisionRules = DecisionRules.FULL,
) -> Result[Decision, ReleaseError]:
    """Decide whether ``candidate`` may move forward.

    The registry is queried on every call; callers must not reuse a
    decision across a rebuild or across runs.
    """
    if candidate == base:
        return Ok(Decision.BLOCKED_NOT_BUMPED)

    if rules is DecisionRules.NOT_BUMPED_ONLY:
        return Ok(Decision.ALLOWED)

    exists = registry.tag_exists(candidate.to_tag())
    if isinstance(exists, Err):
        return exists
    if exists.value:
        return Ok(Decision.BLOCKED_ALREADY_RELEASED)

    return Ok(Decision.ALLOWED)


def decision_error(decision: Decision, *, candidate: Version, base: Version) -> ReleaseError:
    """Describe a blocked decision as the run's failure."""
    match decision:
        case Decision.BLOCKED_NOT_BUMPED:
            return ReleaseError(
                kind="not_bumped",
                message=f"version {candidate} is not bumped (base is {base})",
                hint="Bump the version in the manifest before publishing",
            )
        case Decision.BLOCKED_ALREADY_RELEASED:
            return ReleaseError(
                kind="already_released",
                message=f"version {candidate} is already released ({candidate.to_tag()} exists)",
                hint="Bump to a version that has not been tagged yet",
            )
        case Decision.ALLOWED:
            raise AssertionError("allowed decision has no error")
