"""tripwire check — run file-content rules over the project, for CI."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console

from tripwire.core.config import TripwireConfig
from tripwire.core.constants import ExitCode


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def cmd_check(
    config: TripwireConfig,
    paths: tuple[str, ...],
    rule_files: tuple[str, ...],
    console: Console,
) -> None:
    from tripwire.core.exceptions import RuleCompileError, RuleParseError
    from tripwire.core.rules.check import check_files, collect_files, inspects_files
    from tripwire.core.rules.compiler import compile_rules
    from tripwire.core.rules.discovery import discover_registry
    from tripwire.core.rules.evaluator import Registry
    from tripwire.core.rules.parser import load_rules

    root = Path.cwd()
    if rule_files:
        try:
            registry = Registry(
                rule
                for path in rule_files
                for rule in compile_rules(load_rules(path), source=path, strict=True)
            )
        except (RuleParseError, RuleCompileError) as exc:
            click.echo(str(exc), err=True)
            sys.exit(ExitCode.ERROR)
    else:
        registry = discover_registry(root)

    if not any(inspects_files(rule) for rule in registry.rules):
        console.print("[yellow]No file-based rules found.[/yellow]")
        sys.exit(ExitCode.SUCCESS)

    report = check_files(
        registry,
        collect_files(paths, root),
        root,
        external_timeout=config.evaluation.external_timeout_seconds,
    )
    summary = (
        f"Checked {_plural(report.files_checked, 'file')} "
        f"against {_plural(report.rules, 'rule')}"
    )

    if report.ok:
        click.echo(f"✓ {summary}")
        for source, count in report.rules_by_source.items():
            click.echo(f"  - {source}: {_plural(count, 'rule')}")
        sys.exit(ExitCode.SUCCESS)

    click.echo(
        f"✗ Found {_plural(len(report.issues), 'issue')} "
        f"in {_plural(report.files_with_issues, 'file')}"
    )
    click.echo("")
    for issue in report.issues:
        click.echo(f"{issue.path}:{issue.line} [{issue.rule}]")
        for line in issue.message.splitlines():
            click.echo(f"  {line}")
        if issue.label:
            click.echo(f"  → {issue.label}")
        click.echo("")
    click.echo(summary)
    sys.exit(ExitCode.ERROR)
