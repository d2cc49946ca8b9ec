from __future__ import annotations

import re

from relflow.core.config import DEFAULT_RC_SUFFIX
from relflow.core.result import Err, Ok, Result
from relflow.release.domain.version import Version
from relflow.release.errors import ReleaseError

# Matches git's default abbreviated sha length.
REVISION_LENGTH = 7

_REVISION_RE = re.compile(r"[0-9a-f]+", re.ASCII)


def compose_candidate(
    version: Version, suffix: str | None, revision: str
) -> Result[str, ReleaseError]:
    """Build the pre-merge identifier ``MAJOR.MINOR.PATCH-SUFFIX-REVISION``.

    Same inputs, same string: artifact names derived from it are stable
    across re-runs on the same commit.
    """
    rev = revision.strip().lower()
    if len(rev) < REVISION_LENGTH or _REVISION_RE.fullmatch(rev) is None:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"invalid revision: {revision!r}",
                hint=f"Expected a hex commit id of at least {REVISION_LENGTH} characters",
            )
        )

    label = (suffix or "").strip() or DEFAULT_RC_SUFFIX
    return Ok(f"{version}-{label}-{rev[:REVISION_LENGTH]}")
