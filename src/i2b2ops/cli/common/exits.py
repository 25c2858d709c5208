"""Exit handling utilities for the CLI."""

from typing import NoReturn

import typer

from i2b2ops.cli.common.output import out
from i2b2ops.core.errors import (
    IdentifierError,
    MutationError,
    PreconditionError,
    ProvisionError,
)

USAGE_EXIT = 2


def ok_exit(msg: str | None = None) -> NoReturn:
    """Exit successfully with an optional informational message."""
    if msg:
        out.info(msg)
    raise typer.Exit(0)


def die(msg: str, code: int = 1) -> NoReturn:
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = 0) -> NoReturn:
    """Exit with a warning message and optional exit code."""
    out.warn(msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str, code: int = 1) -> NoReturn:
    """Print an error message and exit, chaining the original exception."""
    out.error(message)
    raise typer.Exit(code) from exc


def exit_for_error(exc: Exception) -> NoReturn:
    """
    Map a core exception onto a diagnostic and exit code.

    Usage errors exit with 2 like Click's own usage errors; every other
    provisioning failure exits with 1. The tool's output is shown verbatim.
    """
    if isinstance(exc, IdentifierError):
        exit_from_exc(exc, message=str(exc), code=USAGE_EXIT)
    if isinstance(exc, PreconditionError):
        exit_from_exc(exc, message=f"Precondition failed: {exc}", code=1)
    if isinstance(exc, MutationError):
        exit_from_exc(
            exc,
            message=_mutation_message(exc),
            code=1,
        )
    if isinstance(exc, ProvisionError):
        exit_from_exc(exc, message=str(exc), code=1)
    raise exc


def _mutation_message(exc: MutationError) -> str:
    if not exc.completed:
        return f"{exc}\nNo earlier step had changed anything."
    done = ", ".join(exc.completed)
    return f"{exc}\nCompleted before the failure (not rolled back): {done}."
