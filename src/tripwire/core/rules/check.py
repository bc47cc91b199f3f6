"""
Project checks — run file-content rules over files on disk.

Usage::

    report = check_files(registry, collect_files(paths, root), root)
    for issue in report.issues:
        print(f"{issue.path}:{issue.line} [{issue.rule}]")

Every ``PreToolUse`` rule that inspects ``content`` or ``new_string`` for a
``Write`` or ``Edit`` tool is applied to each file its ``file`` glob
accepts, as if the agent were writing the file's current contents. This
lets the rules an agent sees run in CI or as a standalone linter.

Files are collected from the given paths (files, directories or glob
patterns), or from the whole project when none are given. Paths ignored by
the project's ``.gitignore`` and the ``.git`` directory are never walked.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from pathspec import GitIgnoreSpec, PathSpec

from tripwire.core.constants import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from tripwire.core.rules.compiler import CompiledEntry, CompiledRule
from tripwire.core.rules.evaluator import Event, Registry, evaluate_rule
from tripwire.core.rules.model import HookKind
from tripwire.core.rules.project import ProjectState

logger = logging.getLogger(__name__)

_CONTENT_FIELDS = frozenset({"content", "new_string"})
_FILE_TOOLS = ("Write", "Edit")
_GLOB_CHARS = frozenset("*?[")


@dataclass(frozen=True, order=True)
class Issue:
    """One rule violation in one file."""

    path: str
    line: int
    rule: str
    message: str
    label: str = ""


@dataclass(frozen=True)
class CheckReport:
    issues: tuple[Issue, ...]
    files_checked: int
    rules: int
    rules_by_source: dict[str, int]

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def files_with_issues(self) -> int:
        return len({issue.path for issue in self.issues})


# ---------------------------------------------------------------------------
# File collection
# ---------------------------------------------------------------------------


def _gitignore(root: Path) -> GitIgnoreSpec | None:
    path = root / ".gitignore"
    if not path.is_file():
        return None
    return GitIgnoreSpec.from_lines(path.read_text(encoding="utf-8").splitlines())


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _walk(directory: Path, root: Path, ignore: GitIgnoreSpec | None) -> Iterable[Path]:
    for current, dirnames, filenames in os.walk(directory):
        base = Path(current)
        kept = []
        for name in sorted(dirnames):
            if name == ".git":
                continue
            if ignore is not None and ignore.match_file(_relative(base / name, root) + "/"):
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in sorted(filenames):
            path = base / name
            if ignore is not None and ignore.match_file(_relative(path, root)):
                continue
            yield path


def collect_files(paths: Sequence[str | Path], root: Path) -> list[Path]:
    """
    Files to check, in a stable order and without duplicates.

    With no ``paths`` the whole of ``root`` is walked. A path containing
    ``*``, ``?`` or ``[`` is a gitwildmatch pattern over files below
    ``root``; a directory is walked; a missing path is logged and skipped.
    """
    ignore = _gitignore(root)
    found: list[Path] = []
    if not paths:
        found.extend(_walk(root, root, ignore))
    for raw in paths:
        text = str(raw)
        path = Path(raw)
        if _GLOB_CHARS & set(text):
            spec = PathSpec.from_lines("gitwildmatch", [text])
            walked = _walk(root, root, ignore)
            found.extend(p for p in walked if spec.match_file(_relative(p, root)))
        elif path.is_dir():
            found.extend(_walk(path, root, ignore))
        elif path.is_file():
            found.append(path)
        else:
            logger.warning("Path %s does not exist; skipping", path)

    unique: dict[Path, None] = {}
    for path in found:
        unique.setdefault(path, None)
    return list(unique)


# ---------------------------------------------------------------------------
# Checking
# ---------------------------------------------------------------------------


def _entry_tool(entry: CompiledEntry) -> str | None:
    if entry.hook is not HookKind.PRE_TOOL_USE:
        return None
    if not any(check.field in _CONTENT_FIELDS for check in entry.fields):
        return None
    return next((tool for tool in _FILE_TOOLS if entry.tool_matches(tool)), None)


def inspects_files(rule: CompiledRule) -> bool:
    """Whether ``rule`` looks at the contents a file tool writes."""
    return any(_entry_tool(entry) is not None for entry in rule.entries)


def file_tool(rule: CompiledRule, path: str) -> str | None:
    """The file tool under which ``rule`` inspects ``path``'s contents, if any."""
    for entry in rule.entries:
        tool = _entry_tool(entry)
        if tool is not None and entry.file_matches(path):
            return tool
    return None


def _event(tool: str, path: str, text: str) -> Event:
    if tool == "Edit":
        return Event.pre_tool_use("Edit", file_path=path, new_string=text)
    return Event.pre_tool_use("Write", file_path=path, content=text)


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def check_files(
    registry: Registry,
    files: Iterable[Path],
    root: Path,
    project: ProjectState | None = None,
    external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
) -> CheckReport:
    """Apply every file-content rule in ``registry`` to ``files``."""
    project = project or ProjectState(root)
    issues: set[Issue] = set()
    checked = 0

    for path in files:
        rel = _relative(path, root)
        applicable = []
        for rule in registry.rules:
            tool = file_tool(rule, rel)
            if tool is not None:
                applicable.append((rule, tool))
        if not applicable:
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Skipping %s (could not read: %s)", path, exc)
            continue
        checked += 1

        for rule, tool in applicable:
            outcome = evaluate_rule(rule, _event(tool, rel, text), project, external_timeout)
            if not outcome.matched:
                continue
            if not outcome.violations:
                issues.add(Issue(rel, 1, rule.name, outcome.message))
            for violation in outcome.violations:
                issues.add(
                    Issue(
                        rel,
                        _line_of(text, violation.span.start),
                        rule.name,
                        outcome.message,
                        violation.label,
                    )
                )

    sources = Counter(rule.source or "<string>" for rule in registry.rules)
    logger.debug("Checked %d files, %d issues", checked, len(issues))
    return CheckReport(
        issues=tuple(sorted(issues)),
        files_checked=checked,
        rules=len(registry),
        rules_by_source=dict(sources),
    )
