"""tripwire syntax — show how tree-sitter sees a piece of source."""

from __future__ import annotations

import sys

import click
from rich.console import Console

from tripwire.core.constants import ExitCode


def cmd_syntax(language: str, text: str, query: str | None, console: Console) -> None:
    from tree_sitter import QueryError

    from tripwire.core.rules.syntax import (
        GrammarUnavailableError,
        Language,
        StructuralQuery,
        render_tree,
    )

    try:
        lang = Language(language)
    except ValueError:
        supported = ", ".join(lang.value for lang in Language)
        click.echo(f"Unsupported language {language!r} (supported: {supported})", err=True)
        sys.exit(ExitCode.ERROR)

    try:
        click.echo(render_tree(lang, text))
        if query is None:
            return
        compiled = StructuralQuery(lang, query)
    except GrammarUnavailableError as exc:
        click.echo(str(exc), err=True)
        sys.exit(ExitCode.ERROR)
    except QueryError as exc:
        click.echo(f"Invalid query: {exc}", err=True)
        sys.exit(ExitCode.ERROR)

    matches = compiled.find_all(text).as_matches()
    console.print(f"\n[bold]{len(matches)} match(es)[/bold]")
    for i, match in enumerate(matches):
        click.echo(f"  [{i}] {match.span}: {match.span.text(text)!r}")
        for cap in match.captures:
            click.echo(f"      @{cap.label} {cap.span}: {cap.span.text(text)!r}")
