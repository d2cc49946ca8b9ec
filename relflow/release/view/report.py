from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.release.errors import ReleaseError
from relflow.release.flow.controller import PipelineRun

ENV_GITHUB_OUTPUT = "GITHUB_OUTPUT"


def render_run(run: PipelineRun, console: ConsoleProtocol) -> None:
    console.header("Summary")
    console.print(f"trigger: {run.trigger.kind}", Style.DIM)
    console.print("stages: " + " -> ".join(str(s) for s in run.stages), Style.DIM)
    if run.version is not None:
        base = f" (base {run.base})" if run.base is not None else ""
        console.print(f"version: {run.version}{base}")
    if run.decision is not None:
        console.print(f"decision: {run.decision}")
    if run.candidate is not None:
        console.print(f"candidate: {run.candidate}")
    if run.tag is not None:
        console.print(f"tag: {run.tag}")
    if run.artifact is not None:
        console.print(f"artifact: {run.artifact}", Style.DIM)

    if run.success:
        console.success(f"{run.trigger.kind}: done")
    elif run.error is not None:
        console.error(run.error.message)
        if run.error.hint:
            console.print(f"hint: {run.error.hint}", Style.DIM)


def output_values(run: PipelineRun) -> dict[str, str]:
    values = {"success": "true" if run.success else "false"}
    if run.version is not None:
        values["version"] = str(run.version)
    if run.decision is not None:
        values["decision"] = str(run.decision)
    if run.candidate is not None:
        values["candidate"] = run.candidate
    if run.tag is not None:
        values["tag"] = run.tag
    return values


def write_github_output(
    values: Mapping[str, str], env: Mapping[str, str]
) -> Result[Path | None, ReleaseError]:
    """Append ``key=value`` lines to the step output file, if CI provides one."""
    target = (env.get(ENV_GITHUB_OUTPUT) or "").strip()
    if not target:
        return Ok(None)
    path = Path(target)
    try:
        with path.open("a", encoding="utf-8") as handle:
            for key, value in values.items():
                handle.write(f"{key}={value}\n")
    except OSError as e:
        return Err(
            ReleaseError(
                kind="store_failure",
                message=f"failed to write step outputs to {path}: {e.strerror or e}",
                hint=f"Check {ENV_GITHUB_OUTPUT}",
            )
        )
    return Ok(path)
