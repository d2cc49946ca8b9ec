"""Read-only commands: nothing is built, tagged or stored."""

from __future__ import annotations

from pathlib import Path

import typer

from relflow.cli.commands._helpers import exit_on_error, fail
from relflow.cli.commands.pipeline_cmd import build_deps, ensure_gh
from relflow.cli.context import build_context
from relflow.output.console import Style
from relflow.release.domain.candidate import compose_candidate
from relflow.release.domain.comparator import decide, decision_error
from relflow.release.domain.version import read_manifest_version
from relflow.release.errors import ReleaseError
from relflow.release.model import Trigger, TriggerKind


def candidate(
    revision: str = typer.Option(..., "--revision", "-r", help="Commit under evaluation (sha)"),
    manifest: Path | None = typer.Option(None, "--manifest", help="Manifest path"),
) -> None:
    """Print the release candidate identifier for the current manifest."""
    ctx = build_context(manifest=manifest)
    version = exit_on_error(read_manifest_version(ctx.config.manifest), ctx)
    value = exit_on_error(compose_candidate(version, ctx.config.rc_suffix, revision), ctx)
    typer.echo(value)


def check(
    base_version: str | None = typer.Option(None, "--base-version", help="Base version"),
    base_ref: str | None = typer.Option(None, "--base-ref", help="Base manifest ref"),
    manifest: Path | None = typer.Option(None, "--manifest", help="Manifest path"),
) -> None:
    """Evaluate the full version decision against the live registry."""
    ctx = build_context(manifest=manifest)
    if base_version is None and base_ref is None:
        fail(
            ReleaseError(
                kind="invalid_input",
                message="check needs a base version",
                hint="Pass --base-version X.Y.Z or --base-ref <sha|branch>",
            ),
            ctx,
        )

    trigger = Trigger(
        kind=TriggerKind.LABEL_PUBLISH,
        revision="",
        base_version=base_version,
        base_ref=base_ref,
    )
    if ctx.config.repo is not None:
        exit_on_error(ensure_gh(ctx), ctx)
    deps = build_deps(ctx, dry_run=True)

    version = exit_on_error(read_manifest_version(ctx.config.manifest), ctx)
    base = exit_on_error(deps.resolve_base(trigger), ctx)
    decision = exit_on_error(decide(version, base, deps.registry), ctx)

    ctx.console.print(f"version: {version} (base {base})", Style.DIM)
    ctx.console.print(f"tag: {version.to_tag()}", Style.DIM)
    if not decision.allowed:
        fail(decision_error(decision, candidate=version, base=base), ctx)
    ctx.console.success(f"{version}: {decision}")
