from __future__ import annotations

from pathlib import Path

import typer

from relflow.cli.commands._helpers import exit_on_error, fail
from relflow.cli.context import CLIContext, build_context
from relflow.core.result import Err, Ok, Result
from relflow.output.errors import print_release_error, release_error_exit_code
from relflow.release.contracts import ReleaseRegistry
from relflow.release.errors import ReleaseError
from relflow.release.flow.controller import PipelineDeps, run_pipeline
from relflow.release.infra.artifact_store import LocalArtifactStore
from relflow.release.infra.gh import ensure_gh_auth, ensure_gh_available, ensure_repo_access
from relflow.release.infra.gh_registry import GhReleaseRegistry, UnconfiguredRegistry
from relflow.release.infra.steps import ShellSteps
from relflow.release.model import Trigger, TriggerKind
from relflow.release.resolve.base import GhBaseResolver
from relflow.release.resolve.trigger import (
    load_github_event,
    trigger_from_event,
    trigger_from_options,
)
from relflow.release.view.report import output_values, render_run, write_github_output


def _needs_gh(trigger: Trigger, ctx: CLIContext) -> bool:
    if ctx.config.repo is None:
        return False
    if trigger.kind in (TriggerKind.LABEL_PUBLISH, TriggerKind.MERGE):
        return True
    return trigger.kind is TriggerKind.PR_UPDATE and trigger.base_version is None


def ensure_gh(ctx: CLIContext) -> Result[None, ReleaseError]:
    available = ensure_gh_available()
    if isinstance(available, Err):
        return available
    auth = ensure_gh_auth(workspace_root=ctx.project_root)
    if isinstance(auth, Err) or ctx.config.repo is None:
        return auth
    return ensure_repo_access(workspace_root=ctx.project_root, repo=ctx.config.repo)


def build_deps(ctx: CLIContext, *, dry_run: bool) -> PipelineDeps:
    registry: ReleaseRegistry
    if ctx.config.repo is None:
        registry = UnconfiguredRegistry()
    else:
        registry = GhReleaseRegistry(
            repo=ctx.config.repo,
            workspace_root=ctx.project_root,
            console=ctx.console,
            dry_run=dry_run,
        )

    return PipelineDeps(
        config=ctx.config,
        registry=registry,
        publisher=LocalArtifactStore(root=ctx.config.artifact_dir),
        steps=ShellSteps(config=ctx.config, console=ctx.console),
        resolve_base=GhBaseResolver(
            config=ctx.config,
            workspace_root=ctx.project_root,
            console=ctx.console,
        ),
        console=ctx.console,
    )


def execute(trigger: Trigger, ctx: CLIContext, *, dry_run: bool) -> None:
    """Run one pipeline and turn its outcome into the process exit code."""
    if _needs_gh(trigger, ctx):
        exit_on_error(ensure_gh(ctx), ctx)

    if dry_run:
        ctx.console.warning("dry-run: registry mutations are skipped")

    run = exit_on_error(run_pipeline(trigger, build_deps(ctx, dry_run=dry_run)), ctx)
    render_run(run, ctx.console)
    written = write_github_output(output_values(run), ctx.env)

    if run.error is not None:
        # The run's own failure decides the exit code.
        if isinstance(written, Err):
            print_release_error(written.error, ctx.console)
        raise typer.Exit(code=release_error_exit_code(run.error))
    exit_on_error(written, ctx)


def _explicit(
    kind: TriggerKind,
    *,
    revision: str,
    base_version: str | None,
    base_ref: str | None,
    merge_commit: str | None,
    manifest: Path | None,
    dry_run: bool,
) -> None:
    ctx = build_context(manifest=manifest)
    trigger = exit_on_error(
        trigger_from_options(
            kind=kind,
            revision=revision,
            base_version=base_version,
            base_ref=base_ref,
            merge_commit=merge_commit,
        ),
        ctx,
    )
    execute(trigger, ctx, dry_run=dry_run)


_REVISION = typer.Option(..., "--revision", "-r", help="Commit under evaluation (sha)")
_BASE_VERSION = typer.Option(None, "--base-version", help="Base branch version (X.Y.Z)")
_BASE_REF = typer.Option(None, "--base-ref", help="Read the base manifest at this ref")
_MANIFEST = typer.Option(None, "--manifest", help="Manifest path (overrides relflow.toml)")
_DRY_RUN = typer.Option(False, "--dry-run", help="Do not create tags or releases")


def pr(
    revision: str = _REVISION,
    base_version: str | None = _BASE_VERSION,
    base_ref: str | None = _BASE_REF,
    manifest: Path | None = _MANIFEST,
) -> None:
    """PR opened/updated: lint, build, test, then require a version bump."""
    _explicit(
        TriggerKind.PR_UPDATE,
        revision=revision,
        base_version=base_version,
        base_ref=base_ref,
        merge_commit=None,
        manifest=manifest,
        dry_run=False,
    )


def verify(
    revision: str = _REVISION,
    manifest: Path | None = _MANIFEST,
) -> None:
    """'verify' label: build and run the e2e suite."""
    _explicit(
        TriggerKind.LABEL_VERIFY,
        revision=revision,
        base_version=None,
        base_ref=None,
        merge_commit=None,
        manifest=manifest,
        dry_run=False,
    )


def publish(
    revision: str = _REVISION,
    base_version: str | None = _BASE_VERSION,
    base_ref: str | None = _BASE_REF,
    manifest: Path | None = _MANIFEST,
) -> None:
    """'publish' label: build and store a release candidate artifact."""
    _explicit(
        TriggerKind.LABEL_PUBLISH,
        revision=revision,
        base_version=base_version,
        base_ref=base_ref,
        merge_commit=None,
        manifest=manifest,
        dry_run=False,
    )


def merge(
    revision: str = _REVISION,
    merge_commit: str | None = typer.Option(
        None, "--merge-commit", help="Commit to tag (defaults to --revision)"
    ),
    base_version: str | None = _BASE_VERSION,
    base_ref: str | None = _BASE_REF,
    manifest: Path | None = _MANIFEST,
    dry_run: bool = _DRY_RUN,
) -> None:
    """Publish-labeled PR merged: rebuild, then tag and release the version."""
    _explicit(
        TriggerKind.MERGE,
        revision=revision,
        base_version=base_version,
        base_ref=base_ref,
        merge_commit=merge_commit,
        manifest=manifest,
        dry_run=dry_run,
    )


def run(
    manifest: Path | None = _MANIFEST,
    dry_run: bool = _DRY_RUN,
) -> None:
    """Resolve the trigger from the GitHub Actions event and run it."""
    ctx = build_context(manifest=manifest)
    event = exit_on_error(load_github_event(ctx.env), ctx)
    name, payload = event

    match trigger_from_event(name, payload):
        case Err(error):
            fail(error, ctx)
        case Ok(None):
            ctx.console.info(f"{name}/{payload.get('action')}: nothing to do")
        case Ok(trigger):
            execute(trigger, ctx, dry_run=dry_run)
