"""Subprocess execution returning ``Result`` values.

    match run(["gh", "auth", "status"], cwd=Path(".")):
        case Ok(stdout):
            ...
        case Err(error):
            console.error(f"{error}: {error.stderr}")
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from relflow.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_silent"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that could not start or exited non-zero.

    ``returncode`` is -1 when the process never ran or was killed on
    timeout. ``stdout``/``stderr`` are empty for streamed commands.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        shown = " ".join(self.command[:3])
        if len(self.command) > 3:
            shown += " ..."
        return f"{shown} failed (exit {self.returncode})"


def _not_started(cmd: list[str], reason: str, stdout: str = "") -> Err[ProcessError]:
    return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout=stdout, stderr=reason))


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Run ``cmd`` with captured output and return its stdout.

    ``env`` replaces the environment when given; ``timeout`` is in seconds.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.stdout if isinstance(e.stdout, str) else ""
        return _not_started(cmd, f"Command timed out after {timeout}s", partial)
    except OSError as e:
        return _not_started(cmd, str(e))

    if proc.returncode == 0:
        return Ok(proc.stdout)
    return Err(
        ProcessError(
            command=tuple(cmd),
            returncode=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
        )
    )


def run_silent(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
) -> Result[None, ProcessError]:
    """Run ``cmd`` with its output streaming to the terminal.

    Used for the opaque lint/build/test steps, whose logs belong in the
    CI job output rather than in memory.
    """
    try:
        returncode = subprocess.run(cmd, cwd=str(cwd), env=env, check=False).returncode
    except OSError as e:
        return _not_started(cmd, str(e))

    if returncode == 0:
        return Ok(None)
    return Err(ProcessError(command=tuple(cmd), returncode=returncode, stdout="", stderr=""))
