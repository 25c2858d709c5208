"""Commands for inspecting the i2b2 core (WildFly) server."""

import typer

from i2b2ops.cli.common.context import AppContext, build_context
from i2b2ops.cli.common.exits import die, exit_for_error, warn_exit
from i2b2ops.cli.common.options import CoreContainerOpt, DatasourceOpt, VerboseOpt
from i2b2ops.cli.common.output import out
from i2b2ops.core.errors import ProvisionError

core_app = typer.Typer(
    help="Inspect the running i2b2 core server.",
    no_args_is_help=False,
    invoke_without_command=True,
)


@core_app.callback()
def _init(
    ctx: typer.Context,
    core_container: str | None = CoreContainerOpt,
    datasource: str | None = DatasourceOpt,
    verbose: bool = VerboseOpt,
):
    """Initialize core server context."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)
    ctx.obj = build_context(
        verbose=verbose,
        core_container=core_container,
        datasource=datasource,
    )


@core_app.command()
def datasources(ctx: typer.Context):
    """List the datasources configured in the core server."""
    appctx: AppContext = ctx.obj
    settings = appctx.settings

    try:
        with out.status("Checking containers..."):
            running = appctx.runtime.is_running(settings.core_container)
        if not running:
            die(f"Core container '{settings.core_container}' not running.")
        with out.status("Loading datasources..."):
            names = appctx.server.list_datasources()
    except ProvisionError as exc:
        exit_for_error(exc)

    if not names:
        warn_exit("No datasources configured.")

    out.names_table(
        names,
        column="Datasource",
        title="Datasources",
        highlight=settings.datasource,
    )
    if settings.datasource not in names:
        out.warn(
            f"Configured datasource '{settings.datasource}' is not among them; "
            "pass --datasource to choose one for --switch-core."
        )
