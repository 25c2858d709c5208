import pytest

from i2b2ops.core.errors import IdentifierError
from i2b2ops.core.settings import Settings


def test_defaults_match_stock_images():
    s = Settings()

    assert s.db_container == "i2b2-data-pgsql"
    assert s.core_container == "i2b2-core-server"
    assert s.source_schema == "i2b2demodata"
    assert s.datasource == "QueryToolDemoDS"


def test_from_env_overrides_non_empty_values():
    s = Settings.from_env(
        {
            "I2B2OPS_DB_CONTAINER": "pg",
            "I2B2OPS_DATABASE": " crc ",
            "I2B2OPS_SUPERUSER": "",
            "UNRELATED": "x",
        }
    )

    assert s.db_container == "pg"
    assert s.database == "crc"
    assert s.superuser == "postgres"


def test_with_overrides_ignores_unset_values():
    s = Settings().with_overrides(database="crc", superuser=None)

    assert s.database == "crc"
    assert s.superuser == "postgres"


def test_command_line_value_wins_over_environment():
    s = Settings.from_env({"I2B2OPS_DB_CONTAINER": "pg-env"}).with_overrides(
        db_container="pg-cli", core_container=None
    )

    assert s.db_container == "pg-cli"
    assert s.core_container == "i2b2-core-server"


def test_with_overrides_rejects_unknown_keys():
    with pytest.raises(TypeError, match="bogus"):
        Settings().with_overrides(bogus="x")


def test_validate_rejects_unsafe_identifiers():
    assert Settings().validate() == Settings()
    with pytest.raises(IdentifierError, match="source schema"):
        Settings(source_schema="demo;drop").validate()
    with pytest.raises(IdentifierError, match="datasource"):
        Settings(datasource="a b").validate()
