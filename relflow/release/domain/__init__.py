"""Pure release rules: no I/O beyond the registry passed in."""

from .candidate import DEFAULT_RC_SUFFIX, REVISION_LENGTH, compose_candidate
from .comparator import decide, decision_error
from .version import Version, extract_version, parse_version, read_manifest_version

__all__ = [
    "DEFAULT_RC_SUFFIX",
    "REVISION_LENGTH",
    "Version",
    "compose_candidate",
    "decide",
    "decision_error",
    "extract_version",
    "parse_version",
    "read_manifest_version",
]
