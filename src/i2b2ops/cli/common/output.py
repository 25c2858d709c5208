"""Output formatting utilities for the CLI."""

from __future__ import annotations

import shlex
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from i2b2ops.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {escape(msg)}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {escape(msg)}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {escape(msg)}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{escape(title)}[/]")

    def detail(self, msg: str) -> None:
        """Print an indented, unstyled line (lists, hints)."""
        console.print(escape(msg), highlight=False)

    def command(self, argv: list[str]) -> None:
        """Echo an external command (already redacted) in verbose mode."""
        console.print(f"[meta]$ {escape(shlex.join(argv))}[/]", highlight=False)

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {escape(str(v))}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation using a standardized Questionary prompt.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise.
        """
        return bool(
            questionary.confirm(
                message,
                default=default,
                style=QUESTIONARY_STYLE_CONFIRM,
                qmark="✦",
                instruction="(y/N) ",
            ).ask()
        )

    def counts_table(self, counts: Mapping[str, int], title: str = "Objects") -> None:
        """Render object counts per kind (tables, sequences, ...)."""
        t = Table(title=title, show_lines=False)
        t.add_column("Kind", style="meta")
        t.add_column("Count", style="ok", justify="right")
        for kind, n in counts.items():
            t.add_row(kind, str(n))
        console.print(t)

    def relations_table(self, relations: Iterable[Any], title: str = "Relations") -> None:
        """
        Expects objects with .name .kind .owner
        (like i2b2ops.core.adapters.postgres.Relation)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Name", style="ok")
        t.add_column("Kind", style="meta")
        t.add_column("Owner", style="meta")
        for r in relations:
            t.add_row(r.name, r.kind, r.owner)
        console.print(t)

    def names_table(
        self,
        names: Iterable[str],
        *,
        column: str,
        title: str,
        highlight: str | None = None,
    ) -> None:
        """Render a one-column list of names, marking `highlight` if present."""
        t = Table(title=title, show_lines=False)
        t.add_column(column, style="ok")
        t.add_column("")
        for name in names:
            t.add_row(name, "[title]configured[/]" if name == highlight else "")
        console.print(t)


@dataclass(frozen=True)
class OutReporter:
    """Adapts `Out` to the provisioner's Reporter protocol."""

    out: Out

    def step(self, msg: str) -> None:
        self.out.info(msg)

    def ok(self, msg: str) -> None:
        self.out.success(msg)

    def warn(self, msg: str) -> None:
        self.out.warn(msg)

    def detail(self, msg: str) -> None:
        self.out.detail(msg)


out = Out()
