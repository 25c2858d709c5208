from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from i2b2ops.core.errors import CommandError

REDACTED = "<hidden>"


@dataclass(frozen=True)
class ExecResult:
    """Captured result of a finished command."""

    returncode: int
    stdout: str
    stderr: str


class ContainerExec(Protocol):
    """The part of the container runtime the database and server adapters need."""

    def exec(
        self,
        container: str,
        argv: Sequence[str],
        *,
        stdin: str | None = None,
        redact: Sequence[str] = (),
    ) -> ExecResult:
        """Run a command inside a container."""
        ...


def redact_text(text: str, secrets: Sequence[str]) -> str:
    """Return text with every occurrence of a secret replaced."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, REDACTED)
    return text


def redact_argv(argv: Sequence[str], secrets: Sequence[str]) -> list[str]:
    """Return argv with every occurrence of a secret replaced."""
    return [redact_text(arg, secrets) for arg in argv]


class DockerRuntime:
    """Adapter around the `docker` CLI (list containers, exec into them)."""

    def __init__(
        self,
        binary: str = "docker",
        on_command: Callable[[list[str]], None] | None = None,
    ) -> None:
        self.binary = binary
        self.on_command = on_command

    def _run(
        self,
        argv: list[str],
        *,
        stdin: str | None = None,
        redact: Sequence[str] = (),
    ) -> ExecResult:
        """Run a command to completion, raising CommandError on failure."""
        shown = redact_argv(argv, redact)
        if self.on_command is not None:
            self.on_command(shown)
        try:
            proc = subprocess.run(
                argv,
                input=stdin,
                stdin=subprocess.DEVNULL if stdin is None else None,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CommandError(shown, 127, stderr=str(exc)) from exc

        if proc.returncode != 0:
            raise CommandError(
                shown,
                proc.returncode,
                redact_text(proc.stdout, redact),
                redact_text(proc.stderr, redact),
            )
        return ExecResult(proc.returncode, proc.stdout, proc.stderr)

    def running_containers(self) -> list[str]:
        """Return the names of all running containers."""
        result = self._run([self.binary, "ps", "--format", "{{.Names}}"])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def is_running(self, name: str) -> bool:
        """Return True if a running container has exactly this name."""
        return name in self.running_containers()

    def exec(
        self,
        container: str,
        argv: Sequence[str],
        *,
        stdin: str | None = None,
        redact: Sequence[str] = (),
    ) -> ExecResult:
        """
        Run `argv` inside `container` via `docker exec -i`.

        Args:
            container: Name of a running container.
            argv: Command and arguments to run inside the container.
            stdin: Optional text piped to the command.
            redact: Secrets to mask in echoed commands and error messages.
        """
        return self._run(
            [self.binary, "exec", "-i", container, *argv],
            stdin=stdin,
            redact=redact,
        )
