from __future__ import annotations

import re
import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from i2b2ops.core.adapters.postgres import Relation  # noqa: E402
from i2b2ops.core.errors import CommandError, PreconditionError  # noqa: E402

DEMO_DUMP = """\
--
-- PostgreSQL database dump
--

SET statement_timeout = 0;
SET client_encoding = 'UTF8';
SELECT pg_catalog.set_config('search_path', '', false);
SET search_path = i2b2demodata, pg_catalog;

CREATE SCHEMA i2b2demodata;
ALTER SCHEMA i2b2demodata OWNER TO i2b2demodata;
COMMENT ON SCHEMA i2b2demodata IS 'i2b2 demo CRC data';
SET ROLE postgres;

SET default_tablespace = '';

CREATE TABLE i2b2demodata.observation_fact (
    encounter_num integer NOT NULL,
    patient_num integer NOT NULL,
    concept_cd character varying(50) NOT NULL
);

ALTER TABLE i2b2demodata.observation_fact OWNER TO i2b2demodata;
COMMENT ON TABLE i2b2demodata.observation_fact IS 'seeded from i2b2demodata_backup';

CREATE SEQUENCE i2b2demodata.upload_status_upload_id_seq
    START WITH 1
    INCREMENT BY 1
    NO MINVALUE
    NO MAXVALUE
    CACHE 1;

ALTER SEQUENCE i2b2demodata.upload_status_upload_id_seq OWNER TO i2b2demodata;

ALTER TABLE ONLY i2b2demodata.observation_fact
    ADD CONSTRAINT observation_fact_pk PRIMARY KEY (patient_num, concept_cd, encounter_num);

CREATE INDEX of_idx_clusteredconcept ON i2b2demodata.observation_fact USING btree (concept_cd);

REVOKE ALL ON SCHEMA i2b2demodata FROM PUBLIC;
GRANT ALL ON SCHEMA i2b2demodata TO i2b2demodata;
GRANT SELECT ON TABLE i2b2demodata.observation_fact TO i2b2;
ALTER DEFAULT PRIVILEGES FOR ROLE postgres IN SCHEMA i2b2demodata GRANT ALL ON TABLES TO i2b2demodata;
"""

_CREATE_RE = re.compile(r"^CREATE (TABLE|SEQUENCE) (\w+)\.(\w+)", re.MULTILINE)


class FakeRuntime:
    """Container runtime that only knows which containers are running."""

    def __init__(self, running: list[str] | None = None, fail: bool = False):
        self.running = running if running is not None else ["i2b2-data-pgsql", "i2b2-core-server"]
        self.fail = fail

    def running_containers(self) -> list[str]:
        if self.fail:
            raise CommandError(["docker", "ps"], 1, stderr="Cannot connect to the Docker daemon")
        return list(self.running)

    def is_running(self, name: str) -> bool:
        return name in self.running_containers()


class FakeDatabase:
    """In-memory stand-in for PostgresAdapter, tracking schemas, roles and grants."""

    MUTATIONS = {
        "drop_schema",
        "ensure_schema",
        "ensure_role",
        "apply_sql",
        "reassign_owner",
        "grant_privileges",
    }

    def __init__(self, *, ready: bool = True, with_source: bool = True, fail_on: str | None = None):
        self.ready = ready
        self.fail_on = fail_on
        self.schemas: dict[str, list[Relation]] = {}
        if with_source:
            self.schemas["i2b2demodata"] = [
                Relation("observation_fact", "table", "i2b2demodata"),
                Relation("upload_status_upload_id_seq", "sequence", "i2b2demodata"),
            ]
        self.roles: dict[str, str] = {}
        self.grants: set[tuple[str, str]] = set()
        self.calls: list[str] = []
        self.applied: list[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise CommandError(["psql"], 3, stderr=f"ERROR:  {name} failed")

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if c in self.MUTATIONS]

    def wait_ready(self) -> None:
        self._call("wait_ready")
        if not self.ready:
            raise PreconditionError("Postgres is not accepting connections.")

    def schema_exists(self, schema: str) -> bool:
        self._call("schema_exists")
        return schema in self.schemas

    def drop_schema(self, schema: str) -> None:
        self._call("drop_schema")
        self.schemas.pop(schema, None)
        self.grants = {g for g in self.grants if g[0] != schema}

    def ensure_schema(self, schema: str) -> None:
        self._call("ensure_schema")
        self.schemas.setdefault(schema, [])

    def ensure_role(self, role: str, password: str) -> None:
        self._call("ensure_role")
        self.roles[role] = password

    def dump_structure(self, schema: str) -> str:
        self._call("dump_structure")
        return DEMO_DUMP

    def apply_sql(self, sql: str) -> None:
        self._call("apply_sql")
        self.applied.append(sql)
        for kind, schema, name in _CREATE_RE.findall(sql):
            rels = self.schemas[schema]
            if any(r.name == name for r in rels):
                raise CommandError(["psql"], 3, stderr=f'ERROR:  relation "{name}" already exists')
            owner = "postgres"
            m = re.search(rf"{schema}\.{name} OWNER TO (\w+);", sql)
            if m:
                owner = m.group(1)
            rels.append(Relation(name, kind.lower(), owner))

    def list_relations(self, schema: str) -> list[Relation]:
        self._call("list_relations")
        return list(self.schemas.get(schema, []))

    def reassign_owner(self, schema: str, role: str) -> None:
        self._call("reassign_owner")
        self.schemas[schema] = [Relation(r.name, r.kind, role) for r in self.schemas[schema]]

    def grant_privileges(self, schema: str, role: str) -> None:
        self._call("grant_privileges")
        self.grants.add((schema, role))


class FakeServer:
    """Core server stand-in recording what was rewritten."""

    def __init__(self, datasources: list[str] | None = None):
        self.datasources = datasources if datasources is not None else ["ExampleDS", "QueryToolDemoDS"]
        self.calls: list[tuple] = []

    def list_datasources(self) -> list[str]:
        return list(self.datasources)

    def repoint_datasource(self, datasource, user, password, schema_property, schema) -> None:
        self.calls.append(("repoint", datasource, user, password, schema_property, schema))

    def set_system_property(self, name: str, value: str) -> None:
        self.calls.append(("property", name, value))


class RecordingReporter:
    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def _add(self, level: str, msg: str) -> None:
        self.messages.append((level, msg))

    def step(self, msg: str) -> None:
        self._add("step", msg)

    def ok(self, msg: str) -> None:
        self._add("ok", msg)

    def warn(self, msg: str) -> None:
        self._add("warn", msg)

    def detail(self, msg: str) -> None:
        self._add("detail", msg)

    def text(self, level: str | None = None) -> str:
        return "\n".join(m for lvl, m in self.messages if level is None or lvl == level)


@pytest.fixture
def demo_dump() -> str:
    return DEMO_DUMP


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()
