"""tripwire setup — register `tripwire hook` in the agent's project settings."""

from __future__ import annotations

import json
import shlex
import shutil
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from tripwire.core.constants import (
    AGENT_NOTES_FILENAME,
    AGENT_SETTINGS_FILENAME,
    HOOK_TIMEOUT_SECONDS,
    ExitCode,
)
from tripwire.core.exceptions import ConfigError

NOTES_HEADING = "## Tripwire"

NOTES_SECTION = """
## Tripwire

This project uses Tripwire to check tool calls against its coding rules.
When a `Write` or `Edit` is denied, the reason names the rule and points at
the offending lines: fix them and try again. If a rule looks wrong, say so
rather than working around it.

After changing `.tripwire.yaml`, run `tripwire validate`; to see how the
rules judge an example, run `tripwire test --explain`.
"""


def default_hook_command() -> str:
    exe = shutil.which("tripwire")
    return f"{shlex.quote(exe)} hook" if exe else "tripwire hook"


def merge_hooks(settings: dict[str, Any], command: str) -> list[str]:
    """
    Register ``command`` for every hook Tripwire answers.

    Existing settings are kept; an identical registration is not added
    twice. Returns the hook events that were added.
    """
    handler = {"type": "command", "command": command, "timeout": HOOK_TIMEOUT_SECONDS}
    desired = {
        "PreToolUse": {"matcher": "*", "hooks": [handler]},
        "UserPromptSubmit": {"hooks": [handler]},
    }

    hooks = settings.setdefault("hooks", {})
    if not isinstance(hooks, dict):
        raise ConfigError("'hooks' must be a JSON object")

    added: list[str] = []
    for event, matcher in desired.items():
        matchers = hooks.setdefault(event, [])
        if not isinstance(matchers, list):
            raise ConfigError(f"'hooks.{event}' must be a JSON array")
        if matcher not in matchers:
            matchers.append(matcher)
            added.append(event)
    return added


def _read_settings(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def _add_notes(project_root: Path, notes: bool | None, console: Console) -> None:
    path = project_root / AGENT_NOTES_FILENAME
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    if NOTES_HEADING in existing:
        console.print(f"{AGENT_NOTES_FILENAME} already has a Tripwire section, skipping.")
        return

    if notes is None:
        console.print(f"\nThis section can be added to {escape(str(path))}:", soft_wrap=True)
        for line in NOTES_SECTION.strip().splitlines():
            console.print(f"  [dim]{escape(line)}[/dim]")
        notes = Confirm.ask(f"\nAdd it to {AGENT_NOTES_FILENAME}?", default=True, console=console)
    if not notes:
        console.print(f"Skipped {AGENT_NOTES_FILENAME}.")
        return

    if existing and not existing.endswith("\n"):
        existing += "\n"
    path.write_text(existing + NOTES_SECTION, encoding="utf-8")
    console.print(
        f"[green]✓[/green] Added a Tripwire section to {escape(str(path))}", soft_wrap=True
    )


def run_setup(
    settings_dir: Path,
    command: str | None,
    notes: bool | None,
    console: Console,
) -> None:
    """Register the hook and, optionally, explain Tripwire in the agent notes."""
    path = settings_dir / AGENT_SETTINGS_FILENAME
    try:
        settings = _read_settings(path)
        added = merge_hooks(settings, command or default_hook_command())
    except ConfigError as exc:
        click.echo(f"tripwire: cannot update {path}: {exc}", err=True)
        sys.exit(ExitCode.ERROR)

    settings_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2) + "\n", encoding="utf-8")
    if added:
        console.print(
            f"[green]✓[/green] Registered the hook for {', '.join(added)} in {escape(str(path))}",
            soft_wrap=True,
        )
    else:
        console.print(f"Hook already registered in {escape(str(path))}", soft_wrap=True)

    _add_notes(settings_dir.resolve().parent, notes, console)

    console.print("\nNext: run [cyan]tripwire validate[/cyan] to check your rules.")
