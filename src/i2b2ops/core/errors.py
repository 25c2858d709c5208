"""Error taxonomy for provisioning.

Usage errors (bad identifiers, missing values) are raised before any side
effect. Precondition failures abort before the first mutation. Command and
mutation failures carry the external tool's output verbatim so the CLI can
surface it unchanged.
"""

from __future__ import annotations

from typing import Sequence


class ProvisionError(RuntimeError):
    """Base class for provisioning failures."""


class IdentifierError(ValueError):
    """Raised when a schema/role/database name or password is rejected."""


class PreconditionError(ProvisionError):
    """Raised when a collaborator is unreachable or the source schema is missing."""


class CommandError(ProvisionError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(self._format())

    @property
    def output(self) -> str:
        """Return the tool's own error text, falling back to stdout."""
        return (self.stderr or self.stdout).strip()

    def _format(self) -> str:
        cmd = " ".join(self.argv)
        detail = self.output
        if detail:
            return f"`{cmd}` exited with {self.returncode}:\n{detail}"
        return f"`{cmd}` exited with {self.returncode}"


class MutationError(ProvisionError):
    """Raised when a mutating step fails; earlier steps are not rolled back."""

    def __init__(
        self,
        step: str,
        cause: CommandError,
        completed: Sequence[str] = (),
    ) -> None:
        self.step = step
        self.cause = cause
        self.completed = list(completed)
        super().__init__(f"Step '{step}' failed. {cause}")


class StructureConflictError(ProvisionError):
    """Raised when an existing destination holds a structure other than the source's."""
