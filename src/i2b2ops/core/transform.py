"""Declarative rewriting of schema-only dumps.

A `pg_dump -s` script of the source schema is turned into a script that
recreates the same structure under a different schema name, owned by a
different role, without any of the source's schema-level statements or
privileges. Each rewrite is a `Rule`; rules are applied line by line in
order, and a rule without a replacement drops the matching line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_OBJECT_PATTERNS = {
    "tables": re.compile(r"^CREATE (?:UNLOGGED )?TABLE ", re.MULTILINE),
    "sequences": re.compile(r"^CREATE SEQUENCE ", re.MULTILINE),
    "indexes": re.compile(r"^CREATE (?:UNIQUE )?INDEX ", re.MULTILINE),
    "views": re.compile(r"^CREATE (?:MATERIALIZED )?VIEW ", re.MULTILINE),
    "functions": re.compile(r"^CREATE (?:OR REPLACE )?(?:FUNCTION|PROCEDURE) ", re.MULTILINE),
    "constraints": re.compile(r"^[ \t]+ADD CONSTRAINT ", re.MULTILINE),
}


@dataclass(frozen=True)
class Rule:
    """One rewrite: substitute `replacement` for `pattern`, or drop the line."""

    name: str
    pattern: re.Pattern[str]
    replacement: str | None = None

    @property
    def drops_line(self) -> bool:
        return self.replacement is None


@dataclass
class TransformResult:
    """Rewritten script plus how often each rule fired."""

    sql: str
    hits: dict[str, int] = field(default_factory=dict)


def clone_rules(source: str, dest: str, owner: str) -> list[Rule]:
    """
    Build the rule set that clones `source` into `dest`, owned by `owner`.

    `source`, `dest` and `owner` must already be validated identifiers; they
    are used verbatim in replacements.
    """
    return [
        Rule("rename-schema", re.compile(rf"\b{re.escape(source)}\b"), dest),
        Rule("drop-create-schema", re.compile(r"^CREATE SCHEMA ")),
        Rule("drop-alter-schema", re.compile(r"^ALTER SCHEMA ")),
        Rule("drop-comment-schema", re.compile(r"^COMMENT ON SCHEMA ")),
        Rule("drop-set-role", re.compile(r"^SET ROLE ")),
        Rule(
            "search-path",
            re.compile(r"^SET search_path = .+;"),
            f"SET search_path = {dest}, pg_catalog;",
        ),
        Rule("drop-grant", re.compile(r"^GRANT ")),
        Rule("drop-revoke", re.compile(r"^REVOKE ")),
        Rule("drop-default-privileges", re.compile(r"^ALTER DEFAULT PRIVILEGES ")),
        Rule("owner", re.compile(r"OWNER TO [^;]+;"), f"OWNER TO {owner};"),
    ]


def apply_rules(sql: str, rules: list[Rule]) -> TransformResult:
    """Apply `rules` to every line of `sql`, in rule order."""
    hits = {rule.name: 0 for rule in rules}
    kept: list[str] = []

    for line in sql.splitlines():
        dropped = False
        for rule in rules:
            if rule.drops_line:
                if rule.pattern.search(line):
                    hits[rule.name] += 1
                    dropped = True
                    break
                continue
            line, n = rule.pattern.subn(rule.replacement, line)
            hits[rule.name] += n
        if not dropped:
            kept.append(line)

    text = "\n".join(kept)
    if sql.endswith("\n"):
        text += "\n"
    return TransformResult(sql=text, hits=hits)


def count_objects(sql: str) -> dict[str, int]:
    """Count the structural objects a dump script creates, by kind."""
    return {kind: len(rx.findall(sql)) for kind, rx in _OBJECT_PATTERNS.items()}
