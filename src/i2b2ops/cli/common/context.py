"""Application context management for the CLI."""

from dataclasses import dataclass

from i2b2ops.cli.common.exits import exit_for_error
from i2b2ops.cli.common.output import OutReporter, out
from i2b2ops.core.adapters.docker import DockerRuntime
from i2b2ops.core.adapters.postgres import PostgresAdapter
from i2b2ops.core.adapters.wildfly import WildFlyAdapter
from i2b2ops.core.errors import IdentifierError
from i2b2ops.core.provision import Provisioner
from i2b2ops.core.settings import Settings


@dataclass
class AppContext:
    """Settings plus the adapters built from them, shared by all commands."""

    settings: Settings
    runtime: DockerRuntime
    database: PostgresAdapter
    server: WildFlyAdapter

    def provisioner(self) -> Provisioner:
        """Return a provisioner that reports through the CLI output."""
        return Provisioner(
            self.settings,
            self.runtime,
            self.database,
            self.server,
            reporter=OutReporter(out),
        )


def build_context(*, verbose: bool = False, **overrides: str | None) -> AppContext:
    """Build the application context from env settings and CLI overrides.

    Args:
        verbose: Echo every external command before running it.
        overrides: Setting values given on the command line (None = unset).

    Returns:
        AppContext: Validated settings and configured adapters.
    """
    try:
        settings = Settings.from_env().with_overrides(**overrides).validate()
    except IdentifierError as exc:
        exit_for_error(exc)

    runtime = DockerRuntime(
        settings.docker_bin,
        on_command=out.command if verbose else None,
    )
    database = PostgresAdapter(
        runtime,
        settings.db_container,
        settings.database,
        settings.superuser,
    )
    server = WildFlyAdapter(runtime, settings.core_container, settings.jboss_cli)
    return AppContext(settings=settings, runtime=runtime, database=database, server=server)
