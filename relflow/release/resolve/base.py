from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from relflow.core.config import PipelineConfig
from relflow.core.result import Err, Ok, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.release.domain.version import (
    Version,
    extract_version,
    manifest_format_for,
    parse_version,
)
from relflow.release.errors import ReleaseError
from relflow.release.infra.gh import get_first_parent_sha, get_repo_file_text
from relflow.release.model import Trigger


def _manifest_repo_path(config: PipelineConfig) -> Result[str, ReleaseError]:
    try:
        rel = config.manifest.relative_to(config.project_root)
    except ValueError:
        return Err(
            ReleaseError(
                kind="config_invalid",
                message=f"manifest is outside the project root: {config.manifest}",
            )
        )
    return Ok(rel.as_posix())


@dataclass(frozen=True, slots=True)
class GhBaseResolver:
    """Resolve the base version of a trigger.

    An explicit ``base_version`` wins. Otherwise the manifest is read at
    ``base_ref`` through the GitHub contents API; for a merge without a
    base ref, at the merge commit's first parent.
    """

    config: PipelineConfig
    workspace_root: Path
    console: ConsoleProtocol

    def __call__(self, trigger: Trigger) -> Result[Version, ReleaseError]:
        if trigger.base_version is not None:
            return parse_version(trigger.base_version)

        repo = self.config.repo
        if repo is None:
            return Err(
                ReleaseError(
                    kind="config_invalid",
                    message="cannot read the base manifest: no repository configured",
                    hint="Set GITHUB_REPOSITORY or [project].repo, or pass --base-version",
                )
            )

        ref = trigger.base_ref
        if ref is None:
            if trigger.merge_commit is None:
                return Err(ReleaseError(kind="invalid_input", message="trigger has no base"))
            parent = get_first_parent_sha(
                workspace_root=self.workspace_root, repo=repo, sha=trigger.merge_commit
            )
            if isinstance(parent, Err):
                return parent
            ref = parent.value

        path = _manifest_repo_path(self.config)
        if isinstance(path, Err):
            return path
        fmt = manifest_format_for(self.config.manifest)
        if fmt is None:
            return Err(
                ReleaseError(
                    kind="manifest_unreadable",
                    message=f"unsupported manifest type: {self.config.manifest.name}",
                )
            )

        self.console.print(f"base manifest: {repo}/{path}@{ref[:12]}", Style.DIM)
        text = get_repo_file_text(
            workspace_root=self.workspace_root, repo=repo, path=path.value, ref=ref
        )
        if isinstance(text, Err):
            return text
        base = extract_version(text.value, manifest_format=fmt)
        if isinstance(base, Err):
            return Err(
                ReleaseError(
                    kind=base.error.kind,
                    message=f"base {base.error.message}",
                    hint=base.error.hint,
                )
            )
        return Ok(base.value)
