"""Thin layer over the GitHub CLI.

Reads go through ``run_gh``, which retries transient network failures.
Mutations (see ``gh_registry``) call ``run_process`` directly and run
exactly once.
"""

from __future__ import annotations

import base64
import binascii
import json
import shutil
from pathlib import Path
from time import sleep

from relflow.core.result import Err, Ok, Result
from relflow.core.structured import StrDict, as_str_dict, get_list, get_str
from relflow.platform.process import ProcessError
from relflow.platform.process import run as run_process
from relflow.release.errors import ReleaseError
from relflow.release.infra.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
)

_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "network is unreachable",
    "http 429",
    "http 500",
    "http 502",
    "http 503",
    "http 504",
)


def _output_text(error: ProcessError) -> str:
    return f"{error.stderr}\n{error.stdout}".lower()


def is_transient(error: ProcessError) -> bool:
    text = _output_text(error)
    return any(marker in text for marker in _TRANSIENT_MARKERS)


def is_not_found(error: ProcessError) -> bool:
    text = _output_text(error)
    return "http 404" in text or "not found" in text


def run_gh(
    *,
    workspace_root: Path,
    cmd: list[str],
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ProcessError]:
    """Run a read-only gh command, retrying transient network failures.

    Only for idempotent reads: a retried mutation could succeed twice.
    """
    attempt = 1
    while True:
        result = run_process(cmd, cwd=workspace_root, timeout=timeout)
        if isinstance(result, Ok) or attempt >= retry_attempts:
            return result
        if not is_transient(result.error):
            return result
        sleep(GH_READ_RETRY_DELAY_SECONDS * attempt)
        attempt += 1


def ensure_gh_available() -> Result[None, ReleaseError]:
    if shutil.which("gh") is not None:
        return Ok(None)
    return Err(
        ReleaseError(
            kind="gh_missing",
            message="gh: missing",
            hint="Install GitHub CLI: https://cli.github.com/",
        )
    )


def ensure_gh_auth(*, workspace_root: Path) -> Result[None, ReleaseError]:
    result = run_process(["gh", "auth", "status"], cwd=workspace_root, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Ok):
        return Ok(None)
    return Err(
        ReleaseError(
            kind="gh_auth_required",
            message="gh auth required",
            hint="Run: gh auth login (or set GH_TOKEN in CI)",
        )
    )


def ensure_repo_access(*, workspace_root: Path, repo: str) -> Result[None, ReleaseError]:
    """Fail unless ``repo`` is readable with the current credentials.

    Tag and release lookups read a 404 as "absent". GitHub answers 404 for
    a misspelled repository and for one the token cannot see. Run this
    before the first lookup.
    """
    result = run_gh(workspace_root=workspace_root, cmd=["gh", "api", f"repos/{repo}"])
    if isinstance(result, Ok):
        return Ok(None)
    if is_not_found(result.error):
        return Err(
            ReleaseError(
                kind="config_invalid",
                message=f"repository {repo} not found or not readable",
                hint="Check GITHUB_REPOSITORY (or [project].repo) and the token's access",
            )
        )
    return Err(
        ReleaseError(
            kind="registry_failed",
            message=f"failed to read repository {repo}",
            hint=result.error.stderr.strip() or None,
        )
    )


def _api_error(endpoint: str, message: str, hint: str | None = None) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="registry_failed", message=message, hint=hint or endpoint))


def gh_api_json(*, workspace_root: Path, endpoint: str) -> Result[StrDict, ReleaseError]:
    """GET ``endpoint`` and return its JSON object body."""
    result = run_gh(workspace_root=workspace_root, cmd=["gh", "api", endpoint])
    if isinstance(result, Err):
        return _api_error(endpoint, f"gh api failed: {endpoint}", result.error.stderr.strip())

    try:
        obj: object = json.loads(result.value)
    except json.JSONDecodeError as e:
        return _api_error(endpoint, f"gh api returned invalid JSON: {e}")

    data = as_str_dict(obj)
    if data is None:
        return _api_error(endpoint, f"gh api returned a non-object payload: {endpoint}")
    return Ok(data)


def get_repo_file_text(
    *,
    workspace_root: Path,
    repo: str,
    path: str,
    ref: str,
) -> Result[str, ReleaseError]:
    """Read one file of ``repo`` at ``ref`` without a local checkout."""
    endpoint = f"repos/{repo}/contents/{path}?ref={ref}"
    data = gh_api_json(workspace_root=workspace_root, endpoint=endpoint)
    if isinstance(data, Err):
        return data

    content = get_str(data.value, "content")
    if get_str(data.value, "encoding") != "base64" or content is None:
        return _api_error(endpoint, f"{repo}/{path}@{ref} is not a base64 file payload")

    try:
        raw = base64.b64decode(content)
    except (binascii.Error, ValueError) as e:
        return _api_error(endpoint, f"failed to decode {repo}/{path}@{ref}: {e}")

    try:
        return Ok(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        return Err(
            ReleaseError(
                kind="manifest_unreadable",
                message=f"invalid UTF-8 in {path}@{ref}: {e}",
                hint=endpoint,
            )
        )


def get_first_parent_sha(*, workspace_root: Path, repo: str, sha: str) -> Result[str, ReleaseError]:
    """Return the first parent of ``sha`` (the base side of a merge commit)."""
    endpoint = f"repos/{repo}/commits/{sha}"
    data = gh_api_json(workspace_root=workspace_root, endpoint=endpoint)
    if isinstance(data, Err):
        return data

    parents = get_list(data.value, "parents") or []
    first = as_str_dict(parents[0]) if parents else None
    parent_sha = get_str(first, "sha") if first is not None else None
    if parent_sha is None or len(parent_sha) != 40:
        return _api_error(endpoint, f"no first parent in commit payload: {repo}@{sha}")
    return Ok(parent_sha)
