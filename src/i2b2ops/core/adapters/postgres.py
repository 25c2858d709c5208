from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from i2b2ops.core.adapters.docker import ContainerExec
from i2b2ops.core.errors import CommandError, PreconditionError
from i2b2ops.core.identifiers import psql_quote

_RELKINDS = {
    "r": "table",
    "p": "table",
    "S": "sequence",
    "v": "view",
    "m": "materialized view",
}

_LIST_RELATIONS_SQL = """\
SELECT c.relname, c.relkind, pg_catalog.pg_get_userbyid(c.relowner)
  FROM pg_catalog.pg_class c
  JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
 WHERE n.nspname = :'schema'
   AND c.relkind IN ('r', 'p', 'S', 'v', 'm')
 ORDER BY c.relname;
"""

_ENSURE_SCHEMA_SQL = """\
SELECT format('CREATE SCHEMA %I AUTHORIZATION %I', :'schema', :'owner')
 WHERE NOT EXISTS (
   SELECT 1 FROM pg_catalog.pg_namespace WHERE nspname = :'schema'
 ) \\gexec
"""

_ENSURE_ROLE_SQL = """\
SELECT CASE
         WHEN EXISTS (SELECT 1 FROM pg_catalog.pg_roles WHERE rolname = :'role')
         THEN format('ALTER ROLE %I WITH LOGIN PASSWORD %L', :'role', :'password')
         ELSE format('CREATE ROLE %I LOGIN PASSWORD %L', :'role', :'password')
       END \\gexec
"""

# Sequences linked to a table column follow the table's owner and cannot be
# re-owned on their own.
_REASSIGN_OWNER_SQL = """\
SELECT format(
         'ALTER %s %I.%I OWNER TO %I',
         CASE c.relkind
           WHEN 'S' THEN 'SEQUENCE'
           WHEN 'v' THEN 'VIEW'
           WHEN 'm' THEN 'MATERIALIZED VIEW'
           ELSE 'TABLE'
         END,
         n.nspname, c.relname, :'role')
  FROM pg_catalog.pg_class c
  JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
 WHERE n.nspname = :'schema'
   AND c.relkind IN ('r', 'p', 'S', 'v', 'm')
   AND pg_catalog.pg_get_userbyid(c.relowner) <> :'role'
   AND NOT EXISTS (
     SELECT 1 FROM pg_catalog.pg_depend d
      WHERE d.classid = 'pg_catalog.pg_class'::regclass
        AND d.objid = c.oid
        AND d.refclassid = 'pg_catalog.pg_class'::regclass
        AND d.deptype IN ('a', 'i')
   ) \\gexec
SELECT format('ALTER ROUTINE %s OWNER TO %I', p.oid::regprocedure, :'role')
  FROM pg_catalog.pg_proc p
  JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
 WHERE n.nspname = :'schema'
   AND pg_catalog.pg_get_userbyid(p.proowner) <> :'role' \\gexec
"""

_GRANT_SQL = """\
GRANT USAGE ON SCHEMA :"schema" TO :"role";
GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA :"schema" TO :"role";
GRANT USAGE, SELECT ON ALL SEQUENCES IN SCHEMA :"schema" TO :"role";
ALTER DEFAULT PRIVILEGES IN SCHEMA :"schema"
  GRANT SELECT, INSERT, UPDATE, DELETE ON TABLES TO :"role";
ALTER DEFAULT PRIVILEGES IN SCHEMA :"schema"
  GRANT USAGE, SELECT ON SEQUENCES TO :"role";
"""


@dataclass(frozen=True)
class Relation:
    """A table, view or sequence found in a schema."""

    name: str
    kind: str
    owner: str


def psql_script(variables: Mapping[str, str], body: str) -> str:
    """
    Prefix a SQL script with psql `\\set` lines binding `variables`.

    The body refers to them as `:'name'` (escaped literal) or `:"name"`
    (quoted identifier), so values never need to be spliced into SQL text.
    """
    lines = [f"\\set {name} {psql_quote(value)}" for name, value in variables.items()]
    return "\n".join([*lines, body])


def parse_relations(text: str) -> list[Relation]:
    """Parse `psql -tA -F '|'` output of the relation listing query."""
    rels: list[Relation] = []
    for line in text.splitlines():
        parts = line.strip().split("|")
        if len(parts) != 3:
            continue
        name, relkind, owner = parts
        rels.append(Relation(name=name, kind=_RELKINDS.get(relkind, relkind), owner=owner))
    return rels


class PostgresAdapter:
    """Runs psql / pg_dump as the superuser inside the database container."""

    def __init__(
        self,
        runtime: ContainerExec,
        container: str,
        database: str,
        superuser: str,
    ) -> None:
        self.runtime = runtime
        self.container = container
        self.database = database
        self.superuser = superuser

    def _psql(
        self,
        body: str,
        variables: Mapping[str, str] | None = None,
        *,
        tuples: bool = False,
        redact: Sequence[str] = (),
    ) -> str:
        argv = ["psql", "-X", "-q", "-v", "ON_ERROR_STOP=1"]
        if tuples:
            argv += ["-t", "-A", "-F", "|"]
        argv += ["-U", self.superuser, "-d", self.database]
        script = psql_script(variables or {}, body)
        result = self.runtime.exec(self.container, argv, stdin=script, redact=redact)
        return result.stdout

    def wait_ready(self) -> None:
        """Check that Postgres accepts connections (pg_isready)."""
        try:
            self.runtime.exec(
                self.container,
                ["pg_isready", "-U", self.superuser, "-d", self.database, "-h", "localhost"],
            )
        except CommandError as exc:
            raise PreconditionError(
                f"Postgres in '{self.container}' is not accepting connections.\n"
                f"{exc.output}"
            ) from exc

    def schema_exists(self, schema: str) -> bool:
        """Return True if `schema` exists in the database."""
        out = self._psql(
            "SELECT 1 FROM information_schema.schemata WHERE schema_name = :'schema';",
            {"schema": schema},
            tuples=True,
        )
        return out.strip() == "1"

    def drop_schema(self, schema: str) -> None:
        """Drop `schema` and everything in it, if it exists."""
        self._psql('DROP SCHEMA IF EXISTS :"schema" CASCADE;', {"schema": schema})

    def ensure_schema(self, schema: str) -> None:
        """Create `schema` owned by the superuser unless it already exists."""
        self._psql(_ENSURE_SCHEMA_SQL, {"schema": schema, "owner": self.superuser})

    def ensure_role(self, role: str, password: str) -> None:
        """Create the login role, or reset its password and LOGIN if present."""
        self._psql(
            _ENSURE_ROLE_SQL,
            {"role": role, "password": password},
            redact=(password,),
        )

    def dump_structure(self, schema: str) -> str:
        """Return a schema-only (no data) pg_dump of `schema`."""
        result = self.runtime.exec(
            self.container,
            ["pg_dump", "-U", self.superuser, "-d", self.database, "-n", schema, "-s"],
        )
        return result.stdout

    def apply_sql(self, sql: str) -> None:
        """Replay a SQL script, stopping at the first error."""
        self._psql(sql)

    def list_relations(self, schema: str) -> list[Relation]:
        """List tables, views and sequences in `schema` with their owners."""
        out = self._psql(_LIST_RELATIONS_SQL, {"schema": schema}, tuples=True)
        return parse_relations(out)

    def reassign_owner(self, schema: str, role: str) -> None:
        """Make `role` the owner of every relation and routine in `schema`."""
        self._psql(_REASSIGN_OWNER_SQL, {"schema": schema, "role": role})

    def grant_privileges(self, schema: str, role: str) -> None:
        """Grant CRUD and sequence usage, now and for future objects."""
        self._psql(_GRANT_SQL, {"schema": schema, "role": role})
