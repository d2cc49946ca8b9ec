"""Error presentation and exit code mapping."""

from __future__ import annotations

from typing import TYPE_CHECKING

from relflow.core.errors import ErrorCode
from relflow.output.console import Style
from relflow.release.errors import ReleaseError

if TYPE_CHECKING:
    from relflow.output.console import ConsoleProtocol

__all__ = ["print_release_error", "release_error_exit_code"]


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    console.error(error.message)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def release_error_exit_code(error: ReleaseError) -> int:
    match error.kind:
        case "not_bumped" | "already_released" | "invalid_input" | "version_malformed":
            return int(ErrorCode.USER_ERROR)
        case "gh_missing" | "gh_auth_required" | "config_invalid":
            return int(ErrorCode.ENV_ERROR)
        case "step_failed":
            return int(ErrorCode.BUILD_ERROR)
        case "tag_conflict" | "release_conflict" | "registry_failed":
            return int(ErrorCode.NETWORK_ERROR)
        case "manifest_unreadable" | "store_failure":
            return int(ErrorCode.IO_ERROR)
