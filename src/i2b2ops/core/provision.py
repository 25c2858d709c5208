"""Schema provisioning for an i2b2 CRC database.

This module holds the provisioning procedure: clone the structure of the
demo CRC schema into a new schema, set up a login role that owns it, grant
privileges, and optionally repoint the running i2b2 core server. It talks to
Postgres and WildFly only through adapters and reports progress through a
`Reporter`, so it has no CLI concerns of its own.

Every step is sequential and blocking. A failing step aborts the rest of the
run; nothing done by earlier steps is rolled back.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol, TypeVar

from i2b2ops.core.adapters.postgres import Relation
from i2b2ops.core.errors import (
    CommandError,
    IdentifierError,
    MutationError,
    PreconditionError,
    StructureConflictError,
)
from i2b2ops.core.identifiers import validate_identifier, validate_password
from i2b2ops.core.settings import Settings
from i2b2ops.core.transform import apply_rules, clone_rules, count_objects

T = TypeVar("T")

# Rules every usable dump of the source schema triggers at least once.
_REQUIRED_RULES = ("rename-schema", "owner")

NO_DATA_REMINDER = (
    "No data was copied (structure only). Load production data into '{schema}' "
    "with a separate ETL step (patient_dimension, visit_dimension, "
    "concept_dimension, observation_fact, ...) before using it."
)


class DatasourceOutcome(str, Enum):
    """What the runtime repoint step did to the core server."""

    SKIPPED = "skipped"
    REPOINTED = "repointed"
    PROPERTY_ONLY = "property_only"


class Reporter(Protocol):
    """Receives operator-facing progress messages."""

    def step(self, msg: str) -> None: ...

    def ok(self, msg: str) -> None: ...

    def warn(self, msg: str) -> None: ...

    def detail(self, msg: str) -> None: ...


class NullReporter:
    """Reporter that discards everything."""

    def step(self, msg: str) -> None:
        pass

    def ok(self, msg: str) -> None:
        pass

    def warn(self, msg: str) -> None:
        pass

    def detail(self, msg: str) -> None:
        pass


class RuntimeLister(Protocol):
    def running_containers(self) -> list[str]: ...


class SchemaDatabase(Protocol):
    """Database operations the provisioner relies on."""

    def wait_ready(self) -> None: ...

    def schema_exists(self, schema: str) -> bool: ...

    def drop_schema(self, schema: str) -> None: ...

    def ensure_schema(self, schema: str) -> None: ...

    def ensure_role(self, role: str, password: str) -> None: ...

    def dump_structure(self, schema: str) -> str: ...

    def apply_sql(self, sql: str) -> None: ...

    def list_relations(self, schema: str) -> list[Relation]: ...

    def reassign_owner(self, schema: str, role: str) -> None: ...

    def grant_privileges(self, schema: str, role: str) -> None: ...


class CoreServer(Protocol):
    """Application server operations used by the runtime repoint."""

    def list_datasources(self) -> list[str]: ...

    def repoint_datasource(
        self,
        datasource: str,
        user: str,
        password: str,
        schema_property: str,
        schema: str,
    ) -> None: ...

    def set_system_property(self, name: str, value: str) -> None: ...


@dataclass(frozen=True)
class ProvisionRequest:
    """
    Operator input for one provisioning run.

    Attributes:
        schema: Destination schema to create (or refresh).
        role: Login role that will own the schema objects.
        password: Password for `role`; only ever bound as a literal.
        drop_first: Drop the destination schema (CASCADE) before anything else.
        switch_core: Repoint the running core server at the new schema/role.
        dry_run: Check preconditions and preview the clone, change nothing.
        save_sql: Optional path to keep a copy of the rewritten DDL.
    """

    schema: str
    role: str
    password: str = field(repr=False)
    drop_first: bool = False
    switch_core: bool = False
    dry_run: bool = False
    save_sql: Path | None = None

    def validate(self, settings: Settings) -> "ProvisionRequest":
        """Reject unusable input before any external call is made."""
        validate_identifier(self.schema, "schema")
        validate_identifier(self.role, "role")
        validate_password(self.password)
        if self.schema == settings.source_schema:
            raise IdentifierError(
                f"Destination schema must differ from the source schema "
                f"'{settings.source_schema}'."
            )
        return self


@dataclass
class ProvisionResult:
    """Summary of what a run did."""

    schema: str
    role: str
    dry_run: bool = False
    dropped: bool = False
    cloned: bool = False
    objects: dict[str, int] = field(default_factory=dict)
    datasource: DatasourceOutcome = DatasourceOutcome.SKIPPED
    datasources_found: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)


class Provisioner:
    """Runs the provisioning procedure against the configured collaborators."""

    def __init__(
        self,
        settings: Settings,
        runtime: RuntimeLister,
        database: SchemaDatabase,
        server: CoreServer | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.settings = settings
        self.runtime = runtime
        self.database = database
        self.server = server
        self.reporter = reporter or NullReporter()

    def _mutate(self, step: str, result: ProvisionResult, fn: Callable[[], T]) -> T:
        """Run one mutating step, converting tool failures into MutationError."""
        try:
            value = fn()
        except CommandError as exc:
            raise MutationError(step, exc, result.steps) from exc
        result.steps.append(step)
        return value

    def _core_server(self) -> CoreServer:
        if self.server is None:
            raise PreconditionError("No core server adapter configured.")
        return self.server

    def preflight(self, *, switch_core: bool = False) -> None:
        """
        Verify every precondition without changing anything.

        Raises:
            PreconditionError: If a container is not running, Postgres is not
                ready, or the source schema does not exist.
        """
        s = self.settings
        rep = self.reporter

        rep.step("Checking containers...")
        try:
            running = self.runtime.running_containers()
        except CommandError as exc:
            raise PreconditionError(f"Cannot list running containers.\n{exc}") from exc
        if s.db_container not in running:
            raise PreconditionError(f"DB container '{s.db_container}' not running.")
        if switch_core and s.core_container not in running:
            raise PreconditionError(
                f"Core container '{s.core_container}' not running "
                "(needed for --switch-core)."
            )
        if switch_core:
            self._core_server()

        rep.step("Waiting for Postgres to be ready...")
        self.database.wait_ready()

        rep.step(f"Verifying source schema '{s.source_schema}' exists...")
        try:
            found = self.database.schema_exists(s.source_schema)
        except CommandError as exc:
            raise PreconditionError(
                f"Cannot query schemas in database '{s.database}'.\n{exc}"
            ) from exc
        if not found:
            raise PreconditionError(f"Source schema '{s.source_schema}' not found.")

    def clone_script(self, request: ProvisionRequest) -> tuple[str, dict[str, int]]:
        """Dump the source structure and rewrite it for the destination."""
        s = self.settings
        dump = self.database.dump_structure(s.source_schema)
        rewritten = apply_rules(dump, clone_rules(s.source_schema, request.schema, request.role))
        for rule in _REQUIRED_RULES:
            if not rewritten.hits.get(rule):
                self.reporter.warn(
                    f"Rewrite rule '{rule}' matched nothing in the dump of "
                    f"'{s.source_schema}'; check the rewritten DDL (--save-sql)."
                )
        return rewritten.sql, count_objects(rewritten.sql)

    def run(self, request: ProvisionRequest) -> ProvisionResult:
        """
        Provision the destination schema described by `request`.

        Raises:
            IdentifierError: On invalid input (before any side effect).
            PreconditionError: If a precondition fails (before any mutation).
            StructureConflictError: If the existing destination holds a
                different structure and `drop_first` was not requested.
            MutationError: If a mutating step fails; the run stops there.
        """
        request.validate(self.settings)
        self.preflight(switch_core=request.switch_core)

        if request.dry_run:
            return self._dry_run(request)

        s = self.settings
        rep = self.reporter
        result = ProvisionResult(schema=request.schema, role=request.role)

        if request.drop_first:
            rep.warn(f"Dropping schema '{request.schema}' (CASCADE) if it exists...")
            self._mutate("drop schema", result, lambda: self.database.drop_schema(request.schema))
            result.dropped = True

        rep.step(f"Creating schema '{request.schema}' (idempotent, owner={s.superuser})...")
        self._mutate("ensure schema", result, lambda: self.database.ensure_schema(request.schema))
        rep.ok("Schema ensured.")

        rep.step(f"Creating/altering login role '{request.role}'...")
        self._mutate(
            "ensure role",
            result,
            lambda: self.database.ensure_role(request.role, request.password),
        )
        rep.ok("Role ensured.")

        self._clone(request, result)

        rep.step(f"Granting privileges to '{request.role}' on '{request.schema}'...")
        self._mutate(
            "grant privileges",
            result,
            lambda: self.database.grant_privileges(request.schema, request.role),
        )
        rep.ok("Privileges granted.")

        rep.warn(NO_DATA_REMINDER.format(schema=request.schema))

        if request.switch_core:
            self._switch_core(request, result)
        else:
            self._persistent_hint(request)

        rep.ok(f"All done. '{request.schema}' holds structure only; data loading is still pending.")
        return result

    def _clone(self, request: ProvisionRequest, result: ProvisionResult) -> None:
        s = self.settings
        rep = self.reporter
        step = "clone structure"

        try:
            existing = self.database.list_relations(request.schema)
            source = self.database.list_relations(s.source_schema)
        except CommandError as exc:
            raise MutationError(step, exc, result.steps) from exc

        if existing:
            missing = _missing_relations(source, existing)
            if missing:
                raise StructureConflictError(
                    f"Schema '{request.schema}' already holds objects but lacks "
                    f"{len(missing)} of the source's ({', '.join(missing[:5])}"
                    f"{', ...' if len(missing) > 5 else ''}). "
                    "Re-run with --drop-first to recreate it."
                )
            rep.detail(
                f"'{request.schema}' already has the structure of '{s.source_schema}'; "
                "skipping DDL replay."
            )
        else:
            rep.step(f"Cloning structure from '{s.source_schema}' to '{request.schema}'...")
            try:
                sql, counts = self.clone_script(request)
            except CommandError as exc:
                raise MutationError(step, exc, result.steps) from exc
            result.objects = counts
            self._mutate(step, result, lambda: self._replay(sql, request.save_sql))
            result.cloned = True

        self._mutate(
            "reassign owner",
            result,
            lambda: self.database.reassign_owner(request.schema, request.role),
        )
        rep.ok(f"Structure present in '{request.schema}' with owner={request.role}.")

    def _replay(self, sql: str, save_sql: Path | None) -> None:
        """Write the rewritten DDL to a temporary file and apply it."""
        fd, name = tempfile.mkstemp(prefix="i2b2ops_", suffix=".sql")
        path = Path(name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(sql)
            if save_sql is not None:
                save_sql.write_text(sql, encoding="utf-8")
            self.database.apply_sql(path.read_text(encoding="utf-8"))
        finally:
            path.unlink(missing_ok=True)

    def _switch_core(self, request: ProvisionRequest, result: ProvisionResult) -> None:
        s = self.settings
        rep = self.reporter
        server = self._core_server()

        rep.step("Switching i2b2 core to the new CRC schema/user (runtime via JBoss CLI)...")
        names = self._mutate("list datasources", result, server.list_datasources)
        result.datasources_found = list(names)

        if s.datasource in names:
            self._mutate(
                "repoint datasource",
                result,
                lambda: server.repoint_datasource(
                    s.datasource,
                    request.role,
                    request.password,
                    s.schema_property,
                    request.schema,
                ),
            )
            result.datasource = DatasourceOutcome.REPOINTED
        else:
            rep.warn(f"Datasource '{s.datasource}' not found. Available datasources:")
            for name in names:
                rep.detail(f"  {name}")
            rep.warn(
                f"Setting only system property {s.schema_property}; "
                "adjust datasource user/password manually if needed."
            )
            self._mutate(
                "set schema property",
                result,
                lambda: server.set_system_property(s.schema_property, request.schema),
            )
            result.datasource = DatasourceOutcome.PROPERTY_ONLY

        rep.ok("Core reconfigured (runtime). Note: this reverts if the container is recreated.")

    def _persistent_hint(self, request: ProvisionRequest) -> None:
        rep = self.reporter
        rep.warn("Not switching the core automatically (no --switch-core).")
        rep.warn(
            f"To persistently point CRC to '{request.schema}', update your core "
            "environment and recreate the container:"
        )
        rep.detail(f"  DS_CRC_SCHEMA={request.schema}")
        rep.detail(f"  DS_CRC_USER={request.role}")
        rep.detail("  DS_CRC_PASS=<hidden>")

    def _dry_run(self, request: ProvisionRequest) -> ProvisionResult:
        s = self.settings
        rep = self.reporter
        result = ProvisionResult(schema=request.schema, role=request.role, dry_run=True)

        try:
            sql, counts = self.clone_script(request)
            existing = self.database.list_relations(request.schema)
        except CommandError as exc:
            raise PreconditionError(f"Cannot preview the clone.\n{exc}") from exc
        result.objects = counts
        if request.save_sql is not None:
            request.save_sql.write_text(sql, encoding="utf-8")

        if request.drop_first:
            rep.detail(f"would drop schema '{request.schema}' (CASCADE)")
        rep.detail(f"would ensure schema '{request.schema}' and login role '{request.role}'")
        if existing and not request.drop_first:
            rep.detail(f"would skip DDL replay ('{request.schema}' already has objects)")
        else:
            rep.detail(f"would replay the rewritten structure of '{s.source_schema}'")
        rep.detail(f"would grant CRUD and sequence privileges to '{request.role}'")

        if request.switch_core:
            try:
                names = self._core_server().list_datasources()
            except CommandError as exc:
                raise PreconditionError(f"Cannot list core datasources.\n{exc}") from exc
            result.datasources_found = list(names)
            if s.datasource in names:
                rep.detail(f"would repoint datasource '{s.datasource}' and {s.schema_property}")
            else:
                rep.detail(
                    f"datasource '{s.datasource}' not found; would set only {s.schema_property}"
                )
        return result


def _missing_relations(source: list[Relation], existing: list[Relation]) -> list[str]:
    """Return source relations (as `kind name`) absent from `existing`."""
    have = {(r.kind, r.name) for r in existing}
    return [f"{r.kind} {r.name}" for r in source if (r.kind, r.name) not in have]
