from types import SimpleNamespace

import pytest

from i2b2ops.core.adapters.docker import ExecResult
from i2b2ops.core.adapters.wildfly import WildFlyAdapter, parse_dmr_list
from i2b2ops.core.errors import CommandError, IdentifierError

CLI = "/opt/jboss/wildfly/bin/jboss-cli.sh"

DATASOURCES = """\
{
    "outcome" => "success",
    "result" => [
        "ExampleDS",
        "QueryToolDemoDS"
    ]
}
"""

PROPERTIES = """\
{
    "outcome" => "success",
    "result" => ["DS_CRC_SCHEMA", "DS_HIVE_SCHEMA"]
}
"""

FAILED = """\
{
    "outcome" => "failed",
    "failure-description" => "WFLYCTL0030: No resource definition is registered",
    "rolled-back" => true
}
"""


class _Runtime:
    def __init__(self, properties: str = PROPERTIES, fail_file: bool = False):
        self.properties = properties
        self.fail_file = fail_file
        self.calls: list[SimpleNamespace] = []

    def exec(self, container, argv, *, stdin=None, redact=()):
        argv = list(argv)
        self.calls.append(SimpleNamespace(container=container, argv=argv, stdin=stdin))
        if argv[0] == "sh":
            return ExecResult(0, "/tmp/i2b2ops.abc123\n", "")
        if argv[-1].startswith("--file="):
            if self.fail_file:
                raise CommandError(argv, 1, stderr="WFLYCTL0216: not found")
            return ExecResult(0, "", "")
        if argv[-1].startswith("--command=/subsystem=datasources"):
            return ExecResult(0, DATASOURCES.replace("\n", "\r\n"), "")
        if argv[-1].startswith("--command=:read-children-names"):
            return ExecResult(0, self.properties, "")
        return ExecResult(0, "", "")


def _adapter(runtime: _Runtime) -> WildFlyAdapter:
    return WildFlyAdapter(runtime, "i2b2-core-server", CLI)


def test_parse_dmr_list():
    assert parse_dmr_list(DATASOURCES) == ["ExampleDS", "QueryToolDemoDS"]
    assert parse_dmr_list('{"outcome" => "success", "result" => []}') == []


def test_parse_dmr_list_reports_failure_description():
    with pytest.raises(ValueError, match="WFLYCTL0030"):
        parse_dmr_list(FAILED)


def test_list_datasources_runs_in_core_container():
    runtime = _Runtime()

    assert _adapter(runtime).list_datasources() == ["ExampleDS", "QueryToolDemoDS"]
    call = runtime.calls[0]
    assert call.container == "i2b2-core-server"
    assert call.argv[:2] == [CLI, "--connect"]


def test_list_failure_becomes_command_error():
    runtime = _Runtime(properties=FAILED)

    with pytest.raises(CommandError, match="WFLYCTL0030"):
        _adapter(runtime).list_system_properties()


def test_repoint_writes_script_over_stdin_and_cleans_up():
    runtime = _Runtime()

    _adapter(runtime).repoint_datasource(
        "QueryToolDemoDS", "crc_user", 'pa"ss', "DS_CRC_SCHEMA", "crc"
    )

    script = next(c.stdin for c in runtime.calls if c.argv[0] == "sh").splitlines()
    assert script == [
        '/subsystem=datasources/data-source=QueryToolDemoDS:write-attribute(name=user-name,value="crc_user")',
        '/subsystem=datasources/data-source=QueryToolDemoDS:write-attribute(name=password,value="pa\\"ss")',
        '/system-property=DS_CRC_SCHEMA:write-attribute(name=value,value="crc")',
        ":reload",
    ]
    assert all('pa"ss' not in arg for c in runtime.calls for arg in c.argv)
    assert [CLI, "--connect", "--file=/tmp/i2b2ops.abc123"] in [c.argv for c in runtime.calls]
    assert runtime.calls[-1].argv == ["rm", "-f", "/tmp/i2b2ops.abc123"]


def test_missing_system_property_is_added():
    runtime = _Runtime(properties='{"outcome" => "success", "result" => []}')

    _adapter(runtime).set_system_property("DS_CRC_SCHEMA", "crc")

    script = next(c.stdin for c in runtime.calls if c.argv[0] == "sh")
    assert '/system-property=DS_CRC_SCHEMA:add(value="crc")' in script
    assert script.rstrip().endswith(":reload")


def test_script_file_removed_when_cli_fails():
    runtime = _Runtime(fail_file=True)

    with pytest.raises(CommandError, match="WFLYCTL0216"):
        _adapter(runtime).set_system_property("DS_CRC_SCHEMA", "crc")

    assert runtime.calls[-1].argv == ["rm", "-f", "/tmp/i2b2ops.abc123"]


def test_password_with_line_break_never_reaches_the_script():
    runtime = _Runtime()

    with pytest.raises(IdentifierError, match="control characters"):
        _adapter(runtime).repoint_datasource(
            "QueryToolDemoDS", "crc_user", "ab\n:shutdown", "DS_CRC_SCHEMA", "crc"
        )

    assert runtime.calls == []
