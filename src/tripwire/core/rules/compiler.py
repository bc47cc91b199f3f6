"""
Rule compiler — turns validated :class:`Rule` models into evaluators.

Every regex, glob and tree-sitter query in a rule is compiled exactly once
here. A single bad pattern rejects the whole rule with a
:class:`RuleCompileError` naming the rule and the offending field, e.g.::

    rule 'no-inline-imports': invalid on[0].content[1].query: ...

Compiled objects are immutable and safe to share across threads.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from pathspec import PathSpec
from tree_sitter import QueryError

from tripwire.core.constants import DEFAULT_EXTERNAL_TIMEOUT_SECONDS, DEFAULT_FILE_GLOB
from tripwire.core.exceptions import RuleCompileError
from tripwire.core.rules.external import TEMPLATE_KEYS, ExternalCommand, ProcessTracker
from tripwire.core.rules.model import (
    Activation,
    ExternalMatcher,
    GitState,
    HookKind,
    RegexMatcher,
    Rule,
    RuleAction,
    SyntaxTreeMatcher,
    TextMatcher,
    ValidatorSpec,
)
from tripwire.core.rules.pattern import RegexPattern, TextPattern
from tripwire.core.rules.project import ProjectState
from tripwire.core.rules.span import LabeledSpan, Match, Span
from tripwire.core.rules.syntax import (
    GrammarUnavailableError,
    Language,
    StructuralQuery,
)
from tripwire.core.rules.template import BUILTIN_KEYS, interpolate, placeholders
from tripwire.core.rules.validator import Failure, Validator, ValidatorKind

logger = logging.getLogger(__name__)


class MatcherKind(StrEnum):
    REGEX = "Regex"
    TEXT = "Text"
    SYNTAX_TREE = "SyntaxTree"
    EXTERNAL = "External"


Pattern = RegexPattern | TextPattern | StructuralQuery | ExternalCommand


# ---------------------------------------------------------------------------
# Matcher results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """One offending location: a span into the checked field plus a short label."""

    span: Span
    label: str = ""
    field: str = "content"
    rule: str = ""


@dataclass(frozen=True)
class MatcherHit:
    """
    What one matcher found against one text field.

    ``values`` holds the template values of the first violating match
    (captures, plus command output for external matchers). ``failures``
    counts the matches that violated; the first one is the representative.
    """

    field: str
    source: str
    violations: tuple[Violation, ...]
    values: dict[str, str]
    suggestion: str | None
    failures: int


def capture_values(source: str, match: Match) -> dict[str, str]:
    """Template values for one match: each capture's text keyed by its label."""
    if not match.captures:
        return {"0": match.span.text(source)}
    values: dict[str, str] = {}
    for cap in match.captures:
        values.setdefault(cap.label, cap.span.text(source))
    return values


# ---------------------------------------------------------------------------
# Compiled matchers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledMatcher:
    kind: MatcherKind
    pattern: Pattern
    suggestion: str | None = None
    validators: tuple[Validator, ...] = ()

    def describe(self) -> str:
        if isinstance(self.pattern, ExternalCommand):
            text = f"External {self.pattern.command_line!r}"
        elif isinstance(self.pattern, StructuralQuery):
            text = f"SyntaxTree[{self.pattern.language.value}] {self.pattern.source!r}"
        else:
            text = f"{self.kind.value} {self.pattern.as_str()!r}"
        if self.validators:
            text += " validate(" + ", ".join(v.describe() for v in self.validators) + ")"
        return text

    @property
    def template_keys(self) -> frozenset[str]:
        """Template values a hit of this matcher can provide."""
        if isinstance(self.pattern, ExternalCommand):
            return TEMPLATE_KEYS | {"0"}
        return self.pattern.capture_labels | {"0"}

    def run(
        self,
        field_name: str,
        target: str,
        context: Mapping[str, str] | None = None,
        external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
        tracker: ProcessTracker | None = None,
    ) -> MatcherHit | None:
        """
        Match ``target``; return a hit, or None when nothing counts against it.

        Raises :class:`MatcherError` (including external failures) and
        :class:`ValidatorError`; the caller decides what an error means.
        """
        context = context or {}
        extra: dict[str, str] = {}
        if isinstance(self.pattern, ExternalCommand):
            result = self.pattern.run(target, timeout=external_timeout, tracker=tracker)
            if not result.matched:
                return None
            extra = self.pattern.template_values(result)
            matches = [Match(span=Span(0, len(target)))]
        else:
            matches = self.pattern.find_all(target).as_matches()
            if not matches:
                return None

        violations: list[Violation] = []
        first_values: dict[str, str] | None = None
        for match in matches:
            values = {**capture_values(target, match), **extra}
            if self.validators:
                failure = self._first_failure(target, match)
                if failure is None:
                    continue
                violation = Violation(
                    span=failure.span,
                    label=f"expected {failure.expected}, found {failure.actual!r}",
                    field=field_name,
                )
            else:
                violation = Violation(
                    span=match.span,
                    label=self._render_suggestion(values, context) or "",
                    field=field_name,
                )
            violations.append(violation)
            if first_values is None:
                first_values = values

        if first_values is None:
            return None
        return MatcherHit(
            field=field_name,
            source=target,
            violations=tuple(violations),
            values=first_values,
            suggestion=self._render_suggestion(first_values, context),
            failures=len(violations),
        )

    def _first_failure(self, target: str, match: Match) -> Failure | None:
        # Plain spans have no captures; validators see the whole match as "0".
        captures = match.captures or (LabeledSpan("0", match.span),)
        for validator in self.validators:
            failure = validator.validate(target, captures)
            if failure is not None:
                return failure
        return None

    def _render_suggestion(
        self, values: Mapping[str, str], context: Mapping[str, str]
    ) -> str | None:
        if self.suggestion is None:
            return None
        return interpolate(self.suggestion, {**context, **values})


@dataclass(frozen=True)
class FieldCheck:
    """The matchers declared for one event text field (AND-combined)."""

    field: str
    matchers: tuple[CompiledMatcher, ...]


@dataclass(frozen=True)
class BranchCondition:
    """``project_state: [{kind: Git, branch: [...]}]``: every matcher must hit the branch."""

    matchers: tuple[RegexPattern | TextPattern, ...]

    def describe(self) -> str:
        return "git branch " + " and ".join(repr(m.as_str()) for m in self.matchers)

    def satisfied(self, project: ProjectState) -> bool:
        branch = project.branch
        if branch is None:
            return False
        return all(m.is_match(branch) for m in self.matchers)


# ---------------------------------------------------------------------------
# Entries and rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledEntry:
    """One compiled ``on`` entry."""

    hook: HookKind
    tool: RegexPattern | None = None
    file_glob: str = DEFAULT_FILE_GLOB
    file_spec: PathSpec | None = None
    fields: tuple[FieldCheck, ...] = ()
    project_state: tuple[BranchCondition, ...] = ()

    def tool_matches(self, tool_name: str | None) -> bool:
        if self.tool is None:
            return True
        return tool_name is not None and self.tool.is_exact_match(tool_name)

    def file_matches(self, file_path: str | None) -> bool:
        if self.file_spec is None:
            return True
        if not file_path:
            return False
        return self.file_spec.match_file(file_path.replace("\\", "/").lstrip("/"))

    def activation_failure(
        self, hook: HookKind, tool_name: str | None, file_path: str | None
    ) -> str | None:
        """Why this entry does not apply to the event, or None if it does."""
        if hook is not self.hook:
            return f"hook {hook.value} is not {self.hook.value}"
        if self.tool is not None and not self.tool_matches(tool_name):
            return f"tool {tool_name!r} does not match {self.tool.as_str()!r}"
        if not self.file_matches(file_path):
            return f"file {file_path!r} does not match {self.file_glob!r}"
        return None


@dataclass(frozen=True)
class CompiledRule:
    name: str
    message: str
    action: RuleAction
    entries: tuple[CompiledEntry, ...]
    description: str | None = None
    source: str | None = field(default=None, compare=False)

    @classmethod
    def compile(cls, rule: Rule, source: str | None = None) -> CompiledRule:
        """Compile every pattern in ``rule``; raises :class:`RuleCompileError`."""
        entries = tuple(
            _compile_entry(rule.name, f"on[{i}]", entry) for i, entry in enumerate(rule.on)
        )
        logger.debug("Compiled rule %r with %d entries", rule.name, len(entries))
        _warn_unknown_placeholders(rule, entries)
        return cls(
            name=rule.name,
            message=rule.message,
            action=rule.resolved_action,
            entries=entries,
            description=rule.description,
            source=source,
        )


def compile_rules(
    rules: Iterable[Rule],
    source: str | None = None,
    strict: bool = True,
) -> list[CompiledRule]:
    """
    Compile ``rules`` in order.

    With ``strict`` the first invalid rule raises :class:`RuleCompileError`;
    otherwise invalid rules are logged and left out.
    """
    compiled: list[CompiledRule] = []
    for rule in rules:
        try:
            compiled.append(CompiledRule.compile(rule, source=source))
        except RuleCompileError as exc:
            if strict:
                raise
            logger.error("Skipping rule from %s: %s", source or "<string>", exc)
    return compiled


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _warn_unknown_placeholders(rule: Rule, entries: tuple[CompiledEntry, ...]) -> None:
    matchers = [m for entry in entries for check in entry.fields for m in check.matchers]
    known = BUILTIN_KEYS.union(*(m.template_keys for m in matchers))
    templates = [rule.message, *(m.suggestion for m in matchers if m.suggestion is not None)]
    unknown = [
        name for text in templates for name in placeholders(text) if name not in known
    ]
    if unknown:
        logger.warning(
            "Rule %r references {{ $%s }}, which no matcher or event provides; "
            "it will be left as written",
            rule.name,
            " }}, {{ $".join(dict.fromkeys(unknown)),
        )


def _compile_entry(rule: str, path: str, entry: Activation) -> CompiledEntry:
    tool = None
    if entry.tool is not None:
        tool = _strict_regex(rule, f"{path}.tool", entry.tool)

    file_spec = None
    file_glob = DEFAULT_FILE_GLOB
    if entry.file is not None:
        file_glob = entry.file
        try:
            file_spec = PathSpec.from_lines("gitwildmatch", [entry.file])
        except ValueError as exc:
            raise RuleCompileError(rule, f"{path}.file", f"{entry.file!r}: {exc}") from exc

    fields = tuple(
        FieldCheck(
            field=name,
            matchers=tuple(
                _compile_matcher(rule, f"{path}.{name}[{j}]", spec)
                for j, spec in enumerate(specs)
            ),
        )
        for name, specs in entry.text_matchers().items()
    )

    conditions = tuple(
        _compile_git_state(rule, f"{path}.project_state[{k}]", state)
        for k, state in enumerate(entry.project_state or ())
    )

    return CompiledEntry(
        hook=entry.hook,
        tool=tool,
        file_glob=file_glob,
        file_spec=file_spec,
        fields=fields,
        project_state=conditions,
    )


def _compile_matcher(
    rule: str,
    path: str,
    spec: RegexMatcher | TextMatcher | SyntaxTreeMatcher | ExternalMatcher,
) -> CompiledMatcher:
    if isinstance(spec, ExternalMatcher):
        try:
            command = ExternalCommand(spec.command)
        except ValueError as exc:
            raise RuleCompileError(rule, f"{path}.command", str(exc)) from exc
        return CompiledMatcher(MatcherKind.EXTERNAL, command, suggestion=spec.suggestion)

    pattern: Pattern
    if isinstance(spec, RegexMatcher):
        kind = MatcherKind.REGEX
        pattern = _strict_regex(rule, f"{path}.pattern", spec.pattern)
    elif isinstance(spec, TextMatcher):
        kind = MatcherKind.TEXT
        pattern = TextPattern(spec.pattern)
    else:
        kind = MatcherKind.SYNTAX_TREE
        pattern = _structural_query(rule, path, spec)

    validators = tuple(
        _compile_validator(rule, f"{path}.validate[{k}]", v, pattern.capture_labels)
        for k, v in enumerate(spec.validators)
    )
    return CompiledMatcher(kind, pattern, suggestion=spec.suggestion, validators=validators)


def _compile_validator(
    rule: str, path: str, spec: ValidatorSpec, labels: frozenset[str]
) -> Validator:
    if spec.type is ValidatorKind.EXISTS:
        return Validator.exists()
    if spec.type is ValidatorKind.NOT_EXISTS:
        return Validator.not_exists()

    assert spec.from_ is not None and spec.to is not None and spec.pattern is not None
    for key, label in (("from", spec.from_), ("to", spec.to)):
        if label not in labels:
            raise RuleCompileError(
                rule,
                f"{path}.{key}",
                f"capture {label!r} is never produced by this matcher "
                f"(available: {sorted(labels)})",
            )
    factory = {
        ValidatorKind.CONTAINS: Validator.contains,
        ValidatorKind.NOT_CONTAINS: Validator.not_contains,
        ValidatorKind.EQUALS: Validator.equals,
    }[spec.type]
    return factory(spec.from_, spec.to, spec.pattern)


def _compile_git_state(rule: str, path: str, state: GitState) -> BranchCondition:
    matchers: list[RegexPattern | TextPattern] = []
    for j, spec in enumerate(state.branch):
        if isinstance(spec, RegexMatcher):
            matchers.append(_strict_regex(rule, f"{path}.branch[{j}].pattern", spec.pattern))
        else:
            matchers.append(TextPattern(spec.pattern))
    return BranchCondition(tuple(matchers))


def _strict_regex(rule: str, path: str, pattern: str) -> RegexPattern:
    try:
        return RegexPattern(pattern)
    except re.error as exc:
        raise RuleCompileError(rule, path, f"{pattern!r}: {exc}") from exc


def _structural_query(rule: str, path: str, spec: SyntaxTreeMatcher) -> StructuralQuery:
    try:
        language = Language(spec.language)
    except ValueError as exc:
        supported = ", ".join(lang.value for lang in Language)
        raise RuleCompileError(
            rule,
            f"{path}.language",
            f"unsupported language {spec.language!r} (supported: {supported})",
        ) from exc
    try:
        return StructuralQuery(language, spec.query)
    except GrammarUnavailableError as exc:
        raise RuleCompileError(rule, f"{path}.language", str(exc)) from exc
    except QueryError as exc:
        raise RuleCompileError(rule, f"{path}.query", f"{spec.query!r}: {exc}") from exc
