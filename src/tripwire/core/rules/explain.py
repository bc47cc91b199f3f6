"""
Rule explain — human-readable output for ``tripwire test --explain``.

Usage::

    output = explain_event(registry, event)
    print(output)

or, for outcomes already computed by :meth:`Registry.evaluate_all`::

    print(explain_outcomes(event, outcomes))
"""

from __future__ import annotations

from collections.abc import Sequence

from tripwire.core.constants import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from tripwire.core.rules.evaluator import (
    Event,
    OutcomeStatus,
    Registry,
    RuleOutcome,
    aggregate,
    evaluate_rule,
)
from tripwire.core.rules.project import ProjectState

_STATUS_LABEL = {
    OutcomeStatus.MATCHED: "MATCH",
    OutcomeStatus.SKIPPED: "skip",
    OutcomeStatus.ERRORED: "ERROR",
}


def explain_outcome(outcome: RuleOutcome) -> list[str]:
    """Lines describing one rule's outcome, indented for a listing."""
    lines = [f"  Rule {outcome.rule!r:40s} [{_STATUS_LABEL[outcome.status]}]"]
    for reason in outcome.reasons:
        lines.append(f"      {reason}")
    if outcome.matched:
        lines.append(f"      → action: {outcome.action.value}")
        if outcome.failures > 1:
            lines.append(f"      → {outcome.failures} violating matches")
        for line in outcome.message.splitlines():
            lines.append(f"      │ {line}")
    return lines


def explain_event(
    registry: Registry,
    event: Event,
    project: ProjectState | None = None,
    external_timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
) -> str:
    """
    Walk every rule against ``event`` and show which fired, which were
    skipped and why, then the aggregate decision.
    """
    project = project or ProjectState(event.cwd)
    outcomes = [evaluate_rule(rule, event, project, external_timeout) for rule in registry.rules]
    return explain_outcomes(event, outcomes)


def explain_outcomes(event: Event, outcomes: Sequence[RuleOutcome]) -> str:
    """Render outcomes that were already computed for ``event``."""
    lines: list[str] = []
    lines.append(f"Rules:  {len(outcomes)}")
    lines.append(
        f"Input:  hook={event.hook.value!r}  tool={event.tool_name!r}  file={event.file_path!r}"
    )
    for name in sorted(event.fields):
        lines.append(f"        {name}: {len(event.fields[name])} chars")
    lines.append("")

    for outcome in outcomes:
        lines.extend(explain_outcome(outcome))
        lines.append("")

    response = aggregate(outcomes)
    fired = sum(o.matched for o in outcomes)
    errored = sum(o.status is OutcomeStatus.ERRORED for o in outcomes)
    lines.append(
        f"Decision: {response.action.value.upper()}  "
        f"({fired} matched, {errored} errored, {len(outcomes) - fired - errored} skipped)"
    )
    return "\n".join(lines)
