"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import typer

from relflow.core.result import Ok, Result
from relflow.output.errors import print_release_error, release_error_exit_code
from relflow.release.errors import ReleaseError

if TYPE_CHECKING:
    from relflow.cli.context import CLIContext


def exit_on_error[T](result: Result[T, ReleaseError], ctx: CLIContext) -> T:
    """Return the value of ``result`` or render the error and exit.

    The exit code follows the error kind, so CI can tell a version
    policy block from a broken build or a registry race.
    """
    if isinstance(result, Ok):
        return result.value
    print_release_error(result.error, ctx.console)
    raise typer.Exit(code=release_error_exit_code(result.error))


def fail(error: ReleaseError, ctx: CLIContext) -> NoReturn:
    print_release_error(error, ctx.console)
    raise typer.Exit(code=release_error_exit_code(error))

