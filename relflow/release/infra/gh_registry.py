from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.platform.process import ProcessError
from relflow.platform.process import run as run_process
from relflow.release.errors import ReleaseError, ReleaseErrorKind
from relflow.release.infra.gh import is_not_found, run_gh
from relflow.release.infra.timeouts import GH_TIMEOUT_SECONDS, GH_UPLOAD_TIMEOUT_SECONDS


def _mentions_existing(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    return "already exists" in text or "already_exists" in text


def _failure(
    error: ProcessError, *, kind: ReleaseErrorKind, message: str
) -> Err[ReleaseError]:
    return Err(ReleaseError(kind=kind, message=message, hint=error.stderr.strip() or None))


@dataclass(frozen=True, slots=True)
class GhReleaseRegistry:
    """Tags and releases of one GitHub repository, through the ``gh`` CLI.

    Reads retry transient failures. Mutations run exactly once; with
    ``dry_run`` they are printed and skipped.
    """

    repo: str
    workspace_root: Path
    console: ConsoleProtocol
    dry_run: bool = False

    def tag_exists(self, name: str) -> Result[bool, ReleaseError]:
        result = run_gh(
            workspace_root=self.workspace_root,
            cmd=["gh", "api", f"repos/{self.repo}/git/ref/tags/{name}"],
        )
        if isinstance(result, Ok):
            return Ok(True)
        if is_not_found(result.error):
            return Ok(False)
        return _failure(
            result.error,
            kind="registry_failed",
            message=f"failed to query tag {name} in {self.repo}",
        )

    def release_exists(self, tag: str) -> Result[bool, ReleaseError]:
        result = run_gh(
            workspace_root=self.workspace_root,
            cmd=["gh", "release", "view", tag, "--repo", self.repo, "--json", "tagName"],
        )
        if isinstance(result, Ok):
            return Ok(True)
        if is_not_found(result.error):
            return Ok(False)
        return _failure(
            result.error,
            kind="registry_failed",
            message=f"failed to query release {tag} in {self.repo}",
        )

    def create_tag(self, name: str, commit: str) -> Result[None, ReleaseError]:
        cmd = [
            "gh",
            "api",
            "-X",
            "POST",
            f"repos/{self.repo}/git/refs",
            "-f",
            f"ref=refs/tags/{name}",
            "-f",
            f"sha={commit}",
        ]
        if not self._mutate(cmd, f"create tag {name} at {commit}"):
            return Ok(None)

        result = run_process(cmd, cwd=self.workspace_root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            if _mentions_existing(result.error) or "http 422" in result.error.stderr.lower():
                return _failure(
                    result.error,
                    kind="tag_conflict",
                    message=f"tag {name} was created concurrently in {self.repo}",
                )
            return _failure(
                result.error,
                kind="registry_failed",
                message=f"failed to create tag {name} in {self.repo}",
            )
        return Ok(None)

    def create_release(self, tag: str, assets: Sequence[Path]) -> Result[None, ReleaseError]:
        cmd = [
            "gh",
            "release",
            "create",
            tag,
            *[str(p) for p in assets],
            "--repo",
            self.repo,
            "--verify-tag",
            "--title",
            tag,
            "--generate-notes",
        ]
        if not self._mutate(cmd, f"create release {tag} ({len(assets)} asset(s))"):
            return Ok(None)

        result = run_process(cmd, cwd=self.workspace_root, timeout=GH_UPLOAD_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            if _mentions_existing(result.error):
                return _failure(
                    result.error,
                    kind="release_conflict",
                    message=f"release {tag} was created concurrently in {self.repo}",
                )
            return _failure(
                result.error,
                kind="registry_failed",
                message=f"failed to create release {tag} in {self.repo}",
            )
        return Ok(None)

    def delete_release(self, tag: str) -> Result[None, ReleaseError]:
        cmd = ["gh", "release", "delete", tag, "--repo", self.repo, "--yes"]
        if not self._mutate(cmd, f"delete release {tag}"):
            return Ok(None)

        result = run_process(cmd, cwd=self.workspace_root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return _failure(
                result.error,
                kind="registry_failed",
                message=f"failed to delete release {tag} in {self.repo}",
            )
        return Ok(None)

    def delete_tag(self, name: str) -> Result[None, ReleaseError]:
        cmd = ["gh", "api", "-X", "DELETE", f"repos/{self.repo}/git/refs/tags/{name}"]
        if not self._mutate(cmd, f"delete tag {name}"):
            return Ok(None)

        result = run_process(cmd, cwd=self.workspace_root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return _failure(
                result.error,
                kind="registry_failed",
                message=f"failed to delete tag {name} in {self.repo}",
            )
        return Ok(None)

    def _mutate(self, cmd: list[str], what: str) -> bool:
        """Announce a mutation; False means dry-run, skip it."""
        self.console.print(" ".join(cmd[:3]) + " ...", Style.DIM)
        if self.dry_run:
            self.console.print(f"dry-run: would {what}", Style.DIM)
            return False
        return True


@dataclass(frozen=True, slots=True)
class UnconfiguredRegistry:
    """Registry used when no repository is configured.

    PR updates and verify runs never query the registry, so they work
    without one; anything that does query it fails with a config error.
    """

    def _missing(self) -> Err[ReleaseError]:
        return Err(
            ReleaseError(
                kind="config_invalid",
                message="no repository configured for tag/release queries",
                hint="Set GITHUB_REPOSITORY or [project].repo in relflow.toml",
            )
        )

    def tag_exists(self, name: str) -> Result[bool, ReleaseError]:
        return self._missing()

    def release_exists(self, tag: str) -> Result[bool, ReleaseError]:
        return self._missing()

    def create_tag(self, name: str, commit: str) -> Result[None, ReleaseError]:
        return self._missing()

    def create_release(self, tag: str, assets: Sequence[Path]) -> Result[None, ReleaseError]:
        return self._missing()

    def delete_release(self, tag: str) -> Result[None, ReleaseError]:
        return self._missing()

    def delete_tag(self, name: str) -> Result[None, ReleaseError]:
        return self._missing()
