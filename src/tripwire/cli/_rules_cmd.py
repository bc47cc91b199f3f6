"""tripwire validate / tripwire test — rule authoring commands."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console

from tripwire.core.config import TripwireConfig
from tripwire.core.constants import ExitCode


def cmd_validate(rule_files: tuple[str, ...], console: Console) -> None:
    from tripwire.core.rules.discovery import rule_sources
    from tripwire.core.rules.parser import load_rules, validate_rules_file

    paths = [Path(p) for p in rule_files] or rule_sources()
    if not paths:
        console.print("[yellow]No rule files found.[/yellow]")
        console.print(
            "  Create [cyan].tripwire.yaml[/cyan] or [cyan]~/.tripwire/rules.yaml[/cyan]."
        )
        sys.exit(ExitCode.ERROR)

    failed = False
    for path in paths:
        errors = validate_rules_file(path)
        if errors:
            failed = True
            click.echo(f"✗  {path}", err=True)
            for line in errors:
                click.echo(f"   {line}", err=True)
        else:
            count = len(load_rules(path))
            click.echo(f"✓  {path} is valid ({count} rule(s))")

    sys.exit(ExitCode.ERROR if failed else ExitCode.SUCCESS)


def cmd_test(
    config: TripwireConfig,
    rule_files: tuple[str, ...],
    hook_name: str | None,
    tool_name: str,
    file_path: str | None,
    fields: dict[str, str],
    prompt: str | None,
    branch: str | None,
    explain: bool,
    console: Console,
) -> None:
    from tripwire.core.exceptions import (
        DeadlineExceededError,
        RuleCompileError,
        RuleParseError,
    )
    from tripwire.core.hook import feedback
    from tripwire.core.rules.compiler import compile_rules
    from tripwire.core.rules.discovery import discover_registry
    from tripwire.core.rules.evaluator import Event, Registry, Response, aggregate
    from tripwire.core.rules.explain import explain_outcomes
    from tripwire.core.rules.model import HookKind
    from tripwire.core.rules.parser import load_rules
    from tripwire.core.rules.project import ProjectState

    if rule_files:
        try:
            compiled = [
                rule
                for path in rule_files
                for rule in compile_rules(load_rules(path), source=path, strict=True)
            ]
        except (RuleParseError, RuleCompileError) as exc:
            click.echo(str(exc), err=True)
            sys.exit(ExitCode.ERROR)
        registry = Registry(compiled)
    else:
        registry = discover_registry()

    hook = HookKind(hook_name) if hook_name else None
    if hook is None:
        hook = HookKind.USER_PROMPT_SUBMIT if prompt is not None else HookKind.PRE_TOOL_USE

    if hook is HookKind.USER_PROMPT_SUBMIT:
        event = Event.user_prompt(prompt or "")
    else:
        event = Event(hook, tool_name=tool_name, file_path=file_path, fields=fields)

    project = ProjectState(branch=branch)
    settings = {
        "workers": config.evaluation.workers,
        "deadline": config.evaluation.deadline_seconds,
        "external_timeout": config.evaluation.external_timeout_seconds,
    }

    if explain:
        try:
            outcomes = registry.evaluate_all(event, project, **settings)
        except DeadlineExceededError as exc:
            click.echo(f"Evaluation aborted: {exc}", err=True)
            response = Response.passthrough()
        else:
            click.echo(explain_outcomes(event, outcomes))
            click.echo("")
            response = aggregate(outcomes)
    else:
        response = registry.evaluate(event, project, **settings)

    console.print(f"Decision: [bold]{response.action.value.upper()}[/bold]")
    text = feedback(response)
    if text:
        click.echo("")
        click.echo(text)
