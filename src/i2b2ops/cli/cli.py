"""CLI application for i2b2 CRC provisioning."""

import typer

from i2b2ops.cli.commands.core import core_app
from i2b2ops.cli.commands.crc import crc_app

app = typer.Typer(
    help="i2b2ops - i2b2 database provisioning tooling",
    no_args_is_help=True,
)

app.add_typer(crc_app, name="crc", help="Provision / check CRC schemas.")
app.add_typer(core_app, name="core", help="Inspect the i2b2 core server.")


if __name__ == "__main__":
    app()
