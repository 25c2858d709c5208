"""Commands for provisioning i2b2 CRC schemas."""

from pathlib import Path

import typer

from i2b2ops.cli.common.context import AppContext, build_context
from i2b2ops.cli.common.exits import exit_for_error, ok_exit
from i2b2ops.cli.common.options import (
    CoreContainerOpt,
    DatabaseOpt,
    DatasourceOpt,
    DbContainerOpt,
    DropFirstOpt,
    DryRunOpt,
    SaveSqlOpt,
    SourceSchemaOpt,
    SuperuserOpt,
    SwitchCoreOpt,
    VerboseOpt,
    YesOpt,
)
from i2b2ops.cli.common.output import out
from i2b2ops.core.errors import ProvisionError
from i2b2ops.core.provision import DatasourceOutcome, ProvisionRequest

crc_app = typer.Typer(
    help="Provision CRC schemas cloned from the demo schema.",
    no_args_is_help=False,
    invoke_without_command=True,
)


@crc_app.callback()
def _init(
    ctx: typer.Context,
    db_container: str | None = DbContainerOpt,
    core_container: str | None = CoreContainerOpt,
    database: str | None = DatabaseOpt,
    superuser: str | None = SuperuserOpt,
    source_schema: str | None = SourceSchemaOpt,
    datasource: str | None = DatasourceOpt,
    verbose: bool = VerboseOpt,
):
    """Initialize provisioning context."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)
    ctx.obj = build_context(
        verbose=verbose,
        db_container=db_container,
        core_container=core_container,
        database=database,
        superuser=superuser,
        source_schema=source_schema,
        datasource=datasource,
    )


@crc_app.command()
def provision(
    ctx: typer.Context,
    schema: str = typer.Argument(..., help="Destination schema, e.g. i2b2patientdata"),
    role: str = typer.Argument(..., help="Login role that will own the schema"),
    password: str = typer.Argument(..., help="Password for the login role"),
    drop_first: bool = DropFirstOpt,
    switch_core: bool = SwitchCoreOpt,
    dry_run: bool = DryRunOpt,
    yes: bool = YesOpt,
    save_sql: Path | None = SaveSqlOpt,
):
    """
    Clone the demo schema's structure into SCHEMA, owned by ROLE.
    """
    appctx: AppContext = ctx.obj
    request = ProvisionRequest(
        schema=schema,
        role=role,
        password=password,
        drop_first=drop_first,
        switch_core=switch_core,
        dry_run=dry_run,
        save_sql=save_sql,
    )

    try:
        request.validate(appctx.settings)
    except ValueError as exc:
        exit_for_error(exc)

    out.header(f"Provision '{schema}' from '{appctx.settings.source_schema}'")
    out.kv(
        {
            "database": f"{appctx.settings.database} @ {appctx.settings.db_container}",
            "role": role,
            "drop first": "yes" if drop_first else "no",
            "switch core": "yes" if switch_core else "no",
        }
    )

    if drop_first and not dry_run and not yes:
        if not out.confirm(f"Drop schema '{schema}' and everything in it?"):
            ok_exit("Cancelled")

    try:
        result = appctx.provisioner().run(request)
    except ProvisionError as exc:
        exit_for_error(exc)

    if result.objects:
        out.counts_table(result.objects, title="Cloned structure")

    if result.dry_run:
        if save_sql:
            out.info(f"Rewritten DDL written to {save_sql}")
        ok_exit("Dry-run enabled: nothing was changed")

    if result.datasource == DatasourceOutcome.PROPERTY_ONLY:
        out.warn(
            f"Datasource '{appctx.settings.datasource}' was not updated; "
            "set its user/password manually."
        )


@crc_app.command()
def check(
    ctx: typer.Context,
    switch_core: bool = SwitchCoreOpt,
):
    """
    Run the provisioning preflight checks only.
    """
    appctx: AppContext = ctx.obj
    settings = appctx.settings

    try:
        appctx.provisioner().preflight(switch_core=switch_core)
        with out.status(f"Listing relations in '{settings.source_schema}'..."):
            relations = appctx.database.list_relations(settings.source_schema)
    except ProvisionError as exc:
        exit_for_error(exc)

    out.success(f"Source schema '{settings.source_schema}' is ready to clone.")
    out.relations_table(relations, title=f"Relations in {settings.source_schema}")
