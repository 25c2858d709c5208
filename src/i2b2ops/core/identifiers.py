"""Validation and quoting of names and secrets embedded in generated commands.

Database objects are addressed by identifiers that must pass a strict
allow-list. The role password may hold any printable text but no control
characters, since the JBoss CLI reads its scripts line by line; it is only
ever emitted through the quoting helpers below, which bind it as a literal
for the respective tool.
"""

from __future__ import annotations

import re

from i2b2ops.core.errors import IdentifierError

# Lower case only: pg_dump -n and unquoted DDL fold names to lower case.
_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_RESOURCE_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")
_MAX_IDENT_LEN = 63
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")

_PSQL_ESCAPES = {
    "\\": "\\\\",
    "'": "''",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def validate_identifier(value: str | None, kind: str = "identifier") -> str:
    """
    Return `value` if it is a safe, unquoted Postgres identifier.

    Accepted names start with a lower-case letter or underscore, contain
    only lower-case ASCII letters, digits and underscores, and fit
    Postgres' 63-byte limit.

    Raises:
        IdentifierError: If the value is empty or outside the allow-list.
    """
    if not value:
        raise IdentifierError(f"{kind} must not be empty.")
    if len(value) > _MAX_IDENT_LEN:
        raise IdentifierError(
            f"{kind} '{value}' is longer than {_MAX_IDENT_LEN} characters."
        )
    if not _IDENT_RE.match(value):
        raise IdentifierError(
            f"{kind} '{value}' is not a valid name (lower-case letters, digits "
            "and underscores; must not start with a digit)."
        )
    return value


def validate_resource_name(value: str | None, kind: str = "name") -> str:
    """Return `value` if it is a plain application-server resource name."""
    if not value:
        raise IdentifierError(f"{kind} must not be empty.")
    if not _RESOURCE_RE.match(value):
        raise IdentifierError(f"{kind} '{value}' contains unsupported characters.")
    return value


def validate_password(value: str | None) -> str:
    """Return the password if it is non-empty and free of control characters."""
    if not value:
        raise IdentifierError("password must not be empty.")
    if _CONTROL_RE.search(value):
        raise IdentifierError("password must not contain control characters (line breaks, tabs).")
    return value


def psql_quote(value: str) -> str:
    """
    Quote a value for a psql `\\set name '<value>'` meta-command.

    psql interprets backslash escapes inside single-quoted meta-command
    arguments and reads the command up to the end of the line, so
    backslashes, quotes and line breaks are all escaped.
    """
    return "'" + "".join(_PSQL_ESCAPES.get(ch, ch) for ch in value) + "'"


def jboss_quote(value: str) -> str:
    """
    Return a double-quoted JBoss CLI attribute value.

    Raises:
        IdentifierError: If the value holds a control character; a line break
            would end the CLI command early.
    """
    if _CONTROL_RE.search(value):
        raise IdentifierError("JBoss CLI values must not contain control characters.")
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
