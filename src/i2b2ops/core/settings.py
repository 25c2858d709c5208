"""Collaborator settings for the provisioner.

The defaults match the stock i2b2 docker images. Each value can be
overridden through an `I2B2OPS_*` environment variable, and the CLI exposes
the same values as options.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping

from i2b2ops.core.identifiers import validate_identifier, validate_resource_name

_ENV_PREFIX = "I2B2OPS_"

# Fields that end up as SQL identifiers and must pass the allow-list.
_IDENTIFIER_FIELDS = ("database", "superuser", "source_schema")


@dataclass(frozen=True)
class Settings:
    """Names of the containers, database objects and server resources to use."""

    db_container: str = "i2b2-data-pgsql"
    core_container: str = "i2b2-core-server"
    database: str = "i2b2"
    superuser: str = "postgres"
    source_schema: str = "i2b2demodata"
    datasource: str = "QueryToolDemoDS"
    schema_property: str = "DS_CRC_SCHEMA"
    jboss_cli: str = "/opt/jboss/wildfly/bin/jboss-cli.sh"
    docker_bin: str = "docker"

    @staticmethod
    def env_name(field_name: str) -> str:
        """Return the environment variable that overrides `field_name`."""
        return f"{_ENV_PREFIX}{field_name.upper()}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from defaults, overridden by non-empty env values."""
        env = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for f in fields(cls):
            raw = env.get(cls.env_name(f.name), "").strip()
            if raw:
                overrides[f.name] = raw
        return cls(**overrides)

    def with_overrides(self, **values: str | None) -> "Settings":
        """Return a copy with every non-empty value in `values` applied."""
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in values.items():
            if key not in current:
                raise TypeError(f"Unknown setting: {key}")
            if value:
                current[key] = value
        return Settings(**current)

    def validate(self) -> "Settings":
        """Check that identifier-typed settings are safe to embed in SQL."""
        for name in _IDENTIFIER_FIELDS:
            validate_identifier(getattr(self, name), name.replace("_", " "))
        validate_resource_name(self.datasource, "datasource")
        validate_resource_name(self.schema_property, "schema property")
        return self
