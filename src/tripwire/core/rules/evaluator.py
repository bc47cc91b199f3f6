"""
Rule evaluator — aggregate-all rule engine.

Usage::

    registry = Registry.from_rules(parse_rules(yaml_text))
    response = registry.evaluate(
        Event.pre_tool_use("Write", file_path="src/main.rs", content="fn main() {}"),
    )

Every rule is evaluated against the event. Each rule that fires contributes
its rendered message; messages are joined in rule declaration order and the
overall action is ``interrupt`` if any contributing rule interrupts,
``continue`` if at least one contributes, and ``passthrough`` otherwise.

A rule whose matcher fails to evaluate (external command timeout, validator
misconfiguration) is logged and left out of the aggregate; it never blocks
or crashes the evaluation of the others.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path

from tripwire.core.constants import (
    DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    DEFAULT_WORKERS,
    MESSAGE_SEPARATOR,
)
from tripwire.core.exceptions import DeadlineExceededError, TripwireError
from tripwire.core.rules.compiler import (
    CompiledEntry,
    CompiledRule,
    MatcherHit,
    Violation,
    compile_rules,
)
from tripwire.core.rules.external import ProcessTracker
from tripwire.core.rules.model import HookKind, Rule, RuleAction
from tripwire.core.rules.project import ProjectState
from tripwire.core.rules.template import interpolate

logger = logging.getLogger(__name__)


class Action(StrEnum):
    PASSTHROUGH = "passthrough"
    CONTINUE = "continue"
    INTERRUPT = "interrupt"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Event:
    """
    One intercepted agent action, reduced to what rules can look at.

    ``fields`` maps text field names (``content``, ``new_string``,
    ``old_string``, ``url``, ``command``, ``prompt``) to their values.
    """

    hook: HookKind
    tool_name: str | None = None
    file_path: str | None = None
    fields: Mapping[str, str] = field(default_factory=dict)
    cwd: str | None = None

    @classmethod
    def pre_tool_use(
        cls,
        tool_name: str,
        file_path: str | None = None,
        cwd: str | None = None,
        **fields: str,
    ) -> Event:
        return cls(HookKind.PRE_TOOL_USE, tool_name, file_path, dict(fields), cwd)

    @classmethod
    def user_prompt(cls, prompt: str, cwd: str | None = None) -> Event:
        return cls(HookKind.USER_PROMPT_SUBMIT, fields={"prompt": prompt}, cwd=cwd)

    def text(self, name: str) -> str | None:
        """Value of text field ``name``; ``content`` falls back to an Edit's ``new_string``."""
        value = self.fields.get(name)
        if value is None and name == "content":
            value = self.fields.get("new_string")
        return value

    def context(self) -> dict[str, str]:
        """Template values describing the event itself."""
        values = {"hook": self.hook.value}
        if self.tool_name is not None:
            values["tool_name"] = self.tool_name
        if self.file_path is not None:
            values["file_path"] = self.file_path
        return values


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class OutcomeStatus(StrEnum):
    SKIPPED = "skipped"
    MATCHED = "matched"
    ERRORED = "errored"


@dataclass(frozen=True)
class RuleOutcome:
    """Result of evaluating one rule against one event."""

    rule: str
    status: OutcomeStatus
    action: RuleAction
    message: str = ""
    source: str | None = None
    violations: tuple[Violation, ...] = ()
    failures: int = 0
    error: str | None = None
    reasons: tuple[str, ...] = ()

    @property
    def matched(self) -> bool:
        return self.status is OutcomeStatus.MATCHED


@dataclass(frozen=True)
class Response:
    """The decision for a whole event."""

    action: Action = Action.PASSTHROUGH
    message: str = ""
    source: str | None = None
    violations: tuple[Violation, ...] = ()

    @classmethod
    def passthrough(cls) -> Response:
        return cls()


def aggregate(outcomes: Iterable[RuleOutcome]) -> Response:
    """Fold per-rule outcomes (in declaration order) into one response."""
    fired = [o for o in outcomes if o.matched]
    if not fired:
        return Response.passthrough()

    interrupt = any(o.action is RuleAction.INTERRUPT for o in fired)
    message = MESSAGE_SEPARATOR.join(o.message for o in fired)

    # Snippet data: the first text that produced violations, and every
    # violation found in that same field.
    first = next((o for o in fired if o.violations), None)
    source = None
    violations: tuple[Violation, ...] = ()
    if first is not None:
        source = first.source
        fld = first.violations[0].field
        violations = tuple(v for o in fired for v in o.violations if v.field == fld)

    return Response(
        action=Action.INTERRUPT if interrupt else Action.CONTINUE,
        message=message,
        source=source,
        violations=violations,
    )


# ---------------------------------------------------------------------------
# Single-rule evaluation
# ---------------------------------------------------------------------------


def _content_hits(
    entry: CompiledEntry,
    event: Event,
    context: Mapping[str, str],
    external_timeout: float,
    tracker: ProcessTracker | None,
) -> list[MatcherHit] | None:
    """All hits for the entry's content matchers, or None at the first miss."""
    hits: list[MatcherHit] = []
    for check in entry.fields:
        target = event.text(check.field)
        assert target is not None
        for matcher in check.matchers:
            hit = matcher.run(check.field, target, context, external_timeout, tracker)
            if hit is None:
                return None
            hits.append(hit)
    return hits


def _render(rule: CompiledRule, hits: Sequence[MatcherHit], context: Mapping[str, str]) -> str:
    values = dict(context)
    captures: dict[str, str] = {}
    for hit in hits:
        for key, value in hit.values.items():
            captures.setdefault(key, value)
    values.update(captures)
    suggestion = next((h.suggestion for h in hits if h.suggestion is not None), None)
    if suggestion is not None:
        values["suggestion"] = suggestion
    return interpolate(rule.message, values)


def evaluate_rule(
    rule: CompiledRule,
    event: Event,
    project: ProjectState,
    external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    tracker: ProcessTracker | None = None,
) -> RuleOutcome:
    """
    Evaluate one rule. ``on`` entries are tried in order; the first that
    fires decides the outcome. Matcher and validator errors become an
    ``errored`` outcome.
    """
    context = event.context()
    reasons: list[str] = []
    try:
        for i, entry in enumerate(rule.entries):
            failure = entry.activation_failure(event.hook, event.tool_name, event.file_path)
            if failure is not None:
                reasons.append(f"✗ on[{i}]: {failure}")
                continue

            missing = [c.field for c in entry.fields if event.text(c.field) is None]
            if missing:
                reasons.append(f"✗ on[{i}]: event has no {', '.join(missing)}")
                continue

            unmet = next((c for c in entry.project_state if not c.satisfied(project)), None)
            if unmet is not None:
                reasons.append(f"✗ on[{i}]: {unmet.describe()} not satisfied")
                continue

            hits = _content_hits(entry, event, context, external_timeout, tracker)
            if hits is None:
                reasons.append(f"✗ on[{i}]: content did not match")
                continue

            reasons.append(f"✓ on[{i}]: matched")
            violations = tuple(
                replace(v, rule=rule.name) for h in hits for v in h.violations
            )
            return RuleOutcome(
                rule=rule.name,
                status=OutcomeStatus.MATCHED,
                action=rule.action,
                message=_render(rule, hits, context),
                source=hits[0].source if hits else None,
                violations=violations,
                failures=sum(h.failures for h in hits),
                reasons=tuple(reasons),
            )
    except TripwireError as exc:
        if tracker is not None and tracker.cancelled:
            logger.debug("Rule %r abandoned: %s", rule.name, exc)
        else:
            logger.warning("Rule %r failed to evaluate: %s", rule.name, exc)
        reasons.append(f"! error: {exc}")
        return RuleOutcome(
            rule=rule.name,
            status=OutcomeStatus.ERRORED,
            action=rule.action,
            error=str(exc),
            reasons=tuple(reasons),
        )

    return RuleOutcome(
        rule=rule.name,
        status=OutcomeStatus.SKIPPED,
        action=rule.action,
        reasons=tuple(reasons),
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class Registry:
    """An immutable, ordered set of compiled rules."""

    def __init__(self, rules: Iterable[CompiledRule] = ()) -> None:
        self._rules: tuple[CompiledRule, ...] = tuple(rules)
        seen: dict[str, str | None] = {}
        for rule in self._rules:
            if rule.name in seen:
                logger.warning(
                    "Duplicate rule name %r (in %s and %s); both are evaluated",
                    rule.name,
                    seen[rule.name] or "<string>",
                    rule.source or "<string>",
                )
            else:
                seen[rule.name] = rule.source

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"Registry({len(self._rules)} rules)"

    @property
    def rules(self) -> tuple[CompiledRule, ...]:
        return self._rules

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[Rule],
        source: str | Path | None = None,
        strict: bool = False,
    ) -> Registry:
        """
        Compile ``rules`` into a registry.

        With ``strict`` the first invalid rule raises :class:`RuleCompileError`;
        otherwise it is logged and left out.
        """
        label = str(source) if source is not None else None
        return cls(compile_rules(rules, source=label, strict=strict))

    def evaluate_all(
        self,
        event: Event,
        project: ProjectState | None = None,
        workers: int = DEFAULT_WORKERS,
        deadline: float | None = None,
        external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    ) -> list[RuleOutcome]:
        """
        Evaluate every rule; outcomes are returned in declaration order.

        Raises :class:`DeadlineExceededError` if ``deadline`` seconds pass
        before every rule has finished. External commands still running at
        that point are killed, so no worker outlives the call for long.
        """
        if project is None:
            project = ProjectState(event.cwd)

        if workers <= 1 and deadline is None:
            return [evaluate_rule(r, event, project, external_timeout) for r in self._rules]

        started = time.monotonic()
        tracker = ProcessTracker() if deadline is not None else None
        pool = ThreadPoolExecutor(max_workers=max(workers, 1), thread_name_prefix="tripwire")
        try:
            futures = [
                pool.submit(evaluate_rule, r, event, project, external_timeout, tracker)
                for r in self._rules
            ]
            _done, pending = wait(futures, timeout=deadline)
            if pending:
                assert tracker is not None
                tracker.cancel()
                raise DeadlineExceededError(
                    f"{len(pending)} of {len(futures)} rules still running after "
                    f"{time.monotonic() - started:.2f}s (deadline {deadline:g}s)"
                )
            return [f.result() for f in futures]
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def evaluate(
        self,
        event: Event,
        project: ProjectState | None = None,
        workers: int = DEFAULT_WORKERS,
        deadline: float | None = None,
        external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    ) -> Response:
        """Evaluate every rule and aggregate; an exceeded deadline yields passthrough."""
        try:
            outcomes = self.evaluate_all(event, project, workers, deadline, external_timeout)
        except DeadlineExceededError as exc:
            logger.warning("Evaluation aborted, letting the action through: %s", exc)
            return Response.passthrough()

        response = aggregate(outcomes)
        logger.debug(
            "Evaluated %d rules: %d matched, %d errored -> %s",
            len(outcomes),
            sum(o.matched for o in outcomes),
            sum(o.status is OutcomeStatus.ERRORED for o in outcomes),
            response.action,
        )
        return response
