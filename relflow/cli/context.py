from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from relflow.core.config import PipelineConfig, load_config
from relflow.core.errors import ErrorCode
from relflow.core.result import Err
from relflow.output.console import ConsoleProtocol, RichConsole

ENV_PROJECT_ROOT = "RELFLOW_PROJECT_ROOT"


@dataclass(frozen=True, slots=True)
class CLIContext:
    project_root: Path
    config: PipelineConfig
    console: ConsoleProtocol
    env: dict[str, str]


def project_root_from_env(env: dict[str, str]) -> Path:
    value = (env.get(ENV_PROJECT_ROOT) or "").strip()
    if value:
        return Path(value)
    return Path.cwd()


def build_context(*, manifest: Path | None = None) -> CLIContext:
    """Resolve the per-run configuration once, from the environment as it is now."""
    env = dict(os.environ)
    root = project_root_from_env(env)
    console = RichConsole(stderr=True)

    config_result = load_config(root, env=env, manifest_override=manifest)
    if isinstance(config_result, Err):
        error = config_result.error
        where = f" ({error.path})" if error.path is not None else ""
        typer.echo(f"error: {error.message}{where}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        project_root=root,
        config=config_result.value,
        console=console,
        env=env,
    )
