"""
Rule YAML parser — loads and validates Tripwire rule documents.

Usage::

    rules = load_rules("~/.tripwire/rules.yaml")
    rules = parse_rules(yaml_string)

Only the document structure is checked here; patterns are compiled later
by :func:`tripwire.core.rules.compiler.compile_rules`.
"""

from __future__ import annotations

import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from tripwire.core.constants import RULES_SCHEMA_VERSION
from tripwire.core.exceptions import RuleParseError
from tripwire.core.rules.model import Rule, RuleFile


class _RuleLoader(yaml.SafeLoader):
    """SafeLoader with YAML 1.2 booleans: only true/false, so `on:` stays a string key."""


_BOOL_TAG = "tag:yaml.org,2002:bool"
_RuleLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _BOOL_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_RuleLoader.add_implicit_resolver(
    _BOOL_TAG, re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"), list("tTfF")
)


def load_rules(path: str | Path) -> list[Rule]:
    """
    Load and validate the rules declared in a YAML file.

    Raises:
        RuleParseError: if the file is missing, unreadable, or invalid.
    """
    p = Path(path).expanduser()
    if not p.exists():
        raise RuleParseError(f"Rules file not found: {p}")
    try:
        content = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuleParseError(f"Cannot read rules file {p}: {exc}") from exc
    return parse_rules(content, source=str(p))


def parse_rules(yaml_text: str, source: str = "<string>") -> list[Rule]:
    """
    Parse and validate a YAML rule document.

    Args:
        yaml_text: Raw YAML content.
        source:    Human-readable source label for error messages.

    Returns:
        The rules in declaration order. An empty document yields no rules.

    Raises:
        RuleParseError: on YAML syntax errors, a wrong ``version`` or schema
        violations.
    """
    try:
        data = yaml.load(yaml_text, Loader=_RuleLoader)  # noqa: S506
    except yaml.YAMLError as exc:
        raise RuleParseError(f"YAML syntax error in {source}: {exc}") from exc

    if data is None:
        return []
    if not isinstance(data, dict):
        raise RuleParseError(
            f"Rules document {source} must be a YAML mapping (got {type(data).__name__})"
        )

    version = data.get("version")
    if version != RULES_SCHEMA_VERSION:
        raise RuleParseError(
            f"Unsupported rules version in {source}: {version!r} "
            f"(expected {RULES_SCHEMA_VERSION})"
        )

    try:
        return RuleFile.model_validate(data).rules
    except ValidationError as exc:
        lines = [f"Rule validation failed in {source}:"]
        for err in exc.errors():
            loc = " → ".join(str(x) for x in err["loc"]) if err["loc"] else "(root)"
            lines.append(f"  {loc}: {err['msg']}")
        raise RuleParseError("\n".join(lines)) from exc


def validate_rules_file(path: str | Path) -> list[str]:
    """
    Parse and compile a rules file, returning human-readable error strings.

    Returns an empty list if every rule in the file is valid.
    """
    from tripwire.core.exceptions import RuleCompileError
    from tripwire.core.rules.compiler import CompiledRule

    try:
        rules = load_rules(path)
    except RuleParseError as exc:
        return str(exc).splitlines()

    errors: list[str] = []
    for rule in rules:
        try:
            CompiledRule.compile(rule)
        except RuleCompileError as exc:
            errors.append(str(exc))
    return errors
