"""
Rule source discovery.

Sources are loaded additively, in this order:

    1. ~/.tripwire/rules.yaml              (user-level rules)
    2. ./.tripwire.yaml                    (project root)
    3. ./.tripwire/**/*.yaml               (project rule directory, sorted by path)

Missing sources are skipped. A source that fails to parse, or a rule that
fails to compile, is logged and skipped; the rest still load.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from tripwire.core.config import tripwire_dir
from tripwire.core.constants import (
    PROJECT_RULES_DIR,
    PROJECT_RULES_FILENAME,
    RULE_FILE_SUFFIX,
    USER_RULES_FILENAME,
)
from tripwire.core.exceptions import RuleParseError
from tripwire.core.rules.compiler import CompiledRule, compile_rules
from tripwire.core.rules.evaluator import Registry
from tripwire.core.rules.parser import load_rules

logger = logging.getLogger(__name__)


def rule_sources(cwd: Path | None = None, user_dir: Path | None = None) -> list[Path]:
    """Existing rule files, in load order, without duplicates."""
    cwd = cwd or Path.cwd()
    user_dir = user_dir or tripwire_dir()

    candidates = [user_dir / USER_RULES_FILENAME, cwd / PROJECT_RULES_FILENAME]
    rules_dir = cwd / PROJECT_RULES_DIR
    if rules_dir.is_dir():
        candidates.extend(sorted(rules_dir.rglob(f"*{RULE_FILE_SUFFIX}")))

    sources: list[Path] = []
    seen: set[Path] = set()
    for path in candidates:
        if not path.is_file():
            continue
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        sources.append(path)
    return sources


def load_registry(sources: Iterable[Path]) -> Registry:
    """Parse and compile every source into one registry, skipping broken ones."""
    compiled: list[CompiledRule] = []
    for path in sources:
        try:
            rules = load_rules(path)
        except RuleParseError as exc:
            logger.error("Skipping rules source %s: %s", path, exc)
            continue
        loaded = compile_rules(rules, source=str(path), strict=False)
        logger.debug("Loaded %d of %d rules from %s", len(loaded), len(rules), path)
        compiled.extend(loaded)
    return Registry(compiled)


def discover_registry(cwd: Path | None = None) -> Registry:
    """Discover rule sources for ``cwd`` and load them."""
    return load_registry(rule_sources(cwd))
