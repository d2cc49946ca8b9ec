from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from relflow.core.config import ENV_BUILD_TOOL_VERSION, PipelineConfig
from relflow.core.result import Err, Ok, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.platform.process import run as run_process
from relflow.platform.process import run_silent
from relflow.release.errors import ReleaseError


def _split(name: str, command: str) -> Result[list[str], ReleaseError]:
    try:
        argv = shlex.split(command)
    except ValueError as e:
        return Err(
            ReleaseError(
                kind="config_invalid",
                message=f"invalid {name} command: {e}",
                hint=command,
            )
        )
    if not argv:
        return Err(ReleaseError(kind="config_invalid", message=f"empty {name} command"))
    return Ok(argv)


@dataclass(frozen=True, slots=True)
class ShellSteps:
    """Run the configured step commands in the project root.

    Each command sees ``BUILD_TOOL_VERSION`` so it can pick its toolchain.
    Steps without a command are skipped with a warning; ``package`` is
    required because its output is what gets stored and released.
    """

    config: PipelineConfig
    console: ConsoleProtocol

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env[ENV_BUILD_TOOL_VERSION] = self.config.build_tool_version
        return env

    def run(self, name: str) -> Result[None, ReleaseError]:
        command = self.config.steps.get(name)
        if command is None:
            self.console.warning(f"{name}: no command configured, skipped")
            return Ok(None)

        argv = _split(name, command)
        if isinstance(argv, Err):
            return argv

        self.console.print(f"$ {command}", Style.DIM)
        result = run_silent(argv.value, cwd=self.config.project_root, env=self._env())
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="step_failed",
                    message=f"{name} failed (exit {result.error.returncode})",
                    hint=result.error.stderr.strip() or command,
                )
            )
        self.console.success(name)
        return Ok(None)

    def package(self) -> Result[Path, ReleaseError]:
        command = self.config.steps.package
        if command is None:
            return Err(
                ReleaseError(
                    kind="config_invalid",
                    message="package: no command configured",
                    hint="Set [steps].package in relflow.toml (e.g. npm pack)",
                )
            )

        argv = _split("package", command)
        if isinstance(argv, Err):
            return argv

        self.console.print(f"$ {command}", Style.DIM)
        result = run_process(argv.value, cwd=self.config.project_root, env=self._env())
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="step_failed",
                    message=f"package failed (exit {result.error.returncode})",
                    hint=result.error.stderr.strip() or command,
                )
            )

        # Like `npm pack`, the last line printed names the tarball.
        lines = [line.strip() for line in result.value.splitlines() if line.strip()]
        for line in lines[:-1]:
            self.console.print(line, Style.DIM)
        if not lines:
            return Err(
                ReleaseError(
                    kind="step_failed",
                    message="package printed no tarball path",
                    hint=command,
                )
            )

        tarball = Path(lines[-1])
        if not tarball.is_absolute():
            tarball = self.config.project_root / tarball
        if not tarball.is_file():
            return Err(
                ReleaseError(
                    kind="step_failed",
                    message=f"package output not found: {tarball}",
                    hint=command,
                )
            )
        self.console.success(f"package: {tarball.name}")
        return Ok(tarball)
