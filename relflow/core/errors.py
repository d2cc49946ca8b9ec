"""Error codes for CLI exit status.

These values are the process exit codes reported to the triggering CI
platform, so they double as the merge-gate verdict and must remain stable:
- 0: Success
- 1: User error (bad input, version policy block)
- 2: Environment error (missing gh, missing auth, bad config)
- 3: Build error (a lint/build/test/package step failed)
- 4: Network error (registry query failed, tag/release conflict)
- 5: I/O error (manifest unreadable, artifact store failed)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        """Return human-readable name."""
        return self.name.lower().replace("_", " ")
