from __future__ import annotations

import re
from typing import Sequence

from i2b2ops.core.adapters.docker import ContainerExec
from i2b2ops.core.errors import CommandError
from i2b2ops.core.identifiers import jboss_quote

_OUTCOME_RE = re.compile(r'"outcome"\s*=>\s*"(\w+)"')
_RESULT_LIST_RE = re.compile(r'"result"\s*=>\s*\[(.*?)\]', re.DOTALL)
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_FAILURE_RE = re.compile(r'"failure-description"\s*=>\s*"((?:[^"\\]|\\.)*)"')

_LIST_DATASOURCES = "/subsystem=datasources:read-children-names(child-type=data-source)"
_LIST_PROPERTIES = ":read-children-names(child-type=system-property)"


def parse_dmr_list(text: str) -> list[str]:
    """
    Extract the string list from a jboss-cli DMR response.

    Expects output of the form::

        {
            "outcome" => "success",
            "result" => ["ExampleDS", "QueryToolDemoDS"]
        }

    Raises:
        ValueError: If the outcome is not `success` or no result list is found.
    """
    outcome = _OUTCOME_RE.search(text)
    if not outcome or outcome.group(1) != "success":
        failure = _FAILURE_RE.search(text)
        reason = failure.group(1) if failure else text.strip()
        raise ValueError(f"jboss-cli operation failed: {reason}")
    match = _RESULT_LIST_RE.search(text)
    if not match:
        if re.search(r'"result"\s*=>\s*undefined', text):
            return []
        raise ValueError("jboss-cli response has no result list.")
    return _QUOTED_RE.findall(match.group(1))


class WildFlyAdapter:
    """Drives `jboss-cli.sh --connect` inside the i2b2 core container."""

    def __init__(self, runtime: ContainerExec, container: str, cli_path: str) -> None:
        self.runtime = runtime
        self.container = container
        self.cli_path = cli_path

    def _command(self, command: str) -> str:
        argv = [self.cli_path, "--connect", f"--command={command}"]
        return self.runtime.exec(self.container, argv).stdout.replace("\r", "")

    def _read_names(self, command: str) -> list[str]:
        text = self._command(command)
        try:
            return parse_dmr_list(text)
        except ValueError as exc:
            raise CommandError([self.cli_path, "--connect", command], 1, stdout=str(exc)) from exc

    def list_datasources(self) -> list[str]:
        """Return the names of all configured (non-XA) datasources."""
        return self._read_names(_LIST_DATASOURCES)

    def list_system_properties(self) -> list[str]:
        """Return the names of all server system properties."""
        return self._read_names(_LIST_PROPERTIES)

    def run_script(self, lines: Sequence[str], *, redact: Sequence[str] = ()) -> None:
        """
        Run a CLI script through a temporary file inside the container.

        The script travels over stdin so secrets never appear on a command
        line; the file is removed even if the script fails.
        """
        created = self.runtime.exec(
            self.container,
            ["sh", "-c", 'f=$(mktemp /tmp/i2b2ops.XXXXXX) && cat > "$f" && echo "$f"'],
            stdin="\n".join(lines) + "\n",
            redact=redact,
        )
        path = created.stdout.strip()
        try:
            self.runtime.exec(
                self.container,
                [self.cli_path, "--connect", f"--file={path}"],
                redact=redact,
            )
        finally:
            self.runtime.exec(self.container, ["rm", "-f", path])

    def _property_line(self, name: str, value: str) -> str:
        if name in self.list_system_properties():
            return f"/system-property={name}:write-attribute(name=value,value={jboss_quote(value)})"
        return f"/system-property={name}:add(value={jboss_quote(value)})"

    def repoint_datasource(
        self,
        datasource: str,
        user: str,
        password: str,
        schema_property: str,
        schema: str,
    ) -> None:
        """Rewrite a datasource's credentials and the schema property, then reload."""
        base = f"/subsystem=datasources/data-source={datasource}"
        self.run_script(
            [
                f"{base}:write-attribute(name=user-name,value={jboss_quote(user)})",
                f"{base}:write-attribute(name=password,value={jboss_quote(password)})",
                self._property_line(schema_property, schema),
                ":reload",
            ],
            redact=(password,),
        )

    def set_system_property(self, name: str, value: str) -> None:
        """Set (or add) a system property, then reload."""
        self.run_script([self._property_line(name, value), ":reload"])
