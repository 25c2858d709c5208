"""Common CLI options for the CLI."""

import typer

DbContainerOpt = typer.Option(
    None,
    "--db-container",
    help="Postgres container name [env: I2B2OPS_DB_CONTAINER, default: i2b2-data-pgsql]",
    show_default=False,
)

CoreContainerOpt = typer.Option(
    None,
    "--core-container",
    help="i2b2 core (WildFly) container name "
    "[env: I2B2OPS_CORE_CONTAINER, default: i2b2-core-server]",
    show_default=False,
)

DatabaseOpt = typer.Option(
    None,
    "--database",
    "-d",
    help="Database holding the CRC schemas [env: I2B2OPS_DATABASE, default: i2b2]",
    show_default=False,
)

SuperuserOpt = typer.Option(
    None,
    "--superuser",
    "-U",
    help="Postgres superuser used for provisioning "
    "[env: I2B2OPS_SUPERUSER, default: postgres]",
    show_default=False,
)

SourceSchemaOpt = typer.Option(
    None,
    "--source-schema",
    help="Schema whose structure is cloned "
    "[env: I2B2OPS_SOURCE_SCHEMA, default: i2b2demodata]",
    show_default=False,
)

DatasourceOpt = typer.Option(
    None,
    "--datasource",
    help="Core datasource to repoint "
    "[env: I2B2OPS_DATASOURCE, default: QueryToolDemoDS]",
    show_default=False,
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Echo every external command (secrets hidden)",
)

DropFirstOpt = typer.Option(
    False,
    "--drop-first",
    help="DROP the destination schema (CASCADE) before recreating it",
)

SwitchCoreOpt = typer.Option(
    False,
    "--switch-core",
    help="Repoint the running core server at the new schema/role (runtime only)",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Check preconditions and preview the clone, but change nothing",
)

YesOpt = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt")

SaveSqlOpt = typer.Option(
    None,
    "--save-sql",
    help="Also write the rewritten DDL to this file",
    dir_okay=False,
    writable=True,
)
