"""
Tripwire CLI entry point.

Commands:
  tripwire hook                     — answer one agent hook (JSON on stdin)
  tripwire validate [FILES...]      — check rule files for errors
  tripwire test [OPTIONS]           — evaluate rules against a synthetic event
  tripwire check [PATHS...]         — run file-content rules over project files (CI)
  tripwire syntax LANGUAGE [INPUT]  — print a parse tree to help write queries
  tripwire setup                    — register the hook in the agent settings
"""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

import click
from rich.console import Console

from tripwire import __version__
from tripwire.core.config import TripwireConfig
from tripwire.core.constants import AGENT_SETTINGS_DIR

console = Console()
err_console = Console(stderr=True)


def _load_config() -> TripwireConfig:
    """Load config and set up logging; a broken config falls back to defaults."""
    from tripwire.core.config import load_config
    from tripwire.core.exceptions import ConfigError
    from tripwire.core.log import configure_logging

    try:
        config = load_config()
    except ConfigError as exc:
        configure_logging()
        err_console.print(
            f"tripwire: {exc} (using defaults)", style="yellow", markup=False, soft_wrap=True
        )
        return TripwireConfig()
    configure_logging(config.logging.level, config.logging.format)
    return config


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="tripwire %(version)s")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Tripwire — rule-driven guardrails for AI coding agents."""
    ctx.obj = _load_config()


# ---------------------------------------------------------------------------
# hook
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_obj
def hook(config: TripwireConfig) -> None:
    """Answer one hook event: JSON payload on stdin, response on stdout."""
    from tripwire.cli._hook import cmd_hook

    cmd_hook(config=config)


# ---------------------------------------------------------------------------
# validate / test
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("rule_files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
def validate(rule_files: tuple[str, ...]) -> None:
    """
    Validate rule files (default: every discovered rule source).

    Exits 0 if every rule is valid, 1 otherwise.
    """
    from tripwire.cli._rules_cmd import cmd_validate

    cmd_validate(rule_files=rule_files, console=console)


@cli.command()
@click.option(
    "--rules",
    "--rule",
    "rule_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Rule file to load (repeatable; default: discovered sources).",
)
@click.option(
    "--hook",
    "hook_name",
    type=click.Choice(["PreToolUse", "UserPromptSubmit"]),
    default=None,
    help="Hook kind (default: UserPromptSubmit with --prompt, else PreToolUse).",
)
@click.option("--tool", "tool_name", default="Write", show_default=True, help="Tool name.")
@click.option("--file", "file_path", default=None, help="File path the tool acts on.")
@click.option("--content", default=None, help="Write content (or Edit new_string).")
@click.option("--new-string", default=None, help="Edit new_string.")
@click.option("--old-string", default=None, help="Edit old_string.")
@click.option("--command", default=None, help="Bash command.")
@click.option("--url", default=None, help="WebFetch URL.")
@click.option("--prompt", default=None, help="User prompt text.")
@click.option("--branch", default=None, help="Pretend the git branch is this.")
@click.option(
    "--explain",
    is_flag=True,
    default=False,
    help="Show per-rule match details (verbose).",
)
@click.pass_obj
def test(
    config: TripwireConfig,
    rule_files: tuple[str, ...],
    hook_name: str | None,
    tool_name: str,
    file_path: str | None,
    content: str | None,
    new_string: str | None,
    old_string: str | None,
    command: str | None,
    url: str | None,
    prompt: str | None,
    branch: str | None,
    explain: bool,
) -> None:
    """
    Evaluate rules against a synthetic event and show the decision.

    Example::

        tripwire test --rules .tripwire.yaml --tool Write \\
            --file src/main.rs --content "fn main() { use std::io; }" --explain
    """
    from tripwire.cli._rules_cmd import cmd_test

    fields = {
        "content": content,
        "new_string": new_string,
        "old_string": old_string,
        "command": command,
        "url": url,
    }
    cmd_test(
        config=config,
        rule_files=rule_files,
        hook_name=hook_name,
        tool_name=tool_name,
        file_path=file_path,
        fields={k: v for k, v in fields.items() if v is not None},
        prompt=prompt,
        branch=branch,
        explain=explain,
        console=console,
    )


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("paths", nargs=-1)
@click.option(
    "--rules",
    "--rule",
    "rule_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Rule file to load (repeatable; default: discovered sources).",
)
@click.pass_obj
def check(config: TripwireConfig, paths: tuple[str, ...], rule_files: tuple[str, ...]) -> None:
    """
    Check project files against the Write/Edit content rules.

    PATHS may be files, directories or glob patterns (default: the whole
    project, minus .gitignore'd paths). Exits 1 if any issue is found.
    """
    from tripwire.cli._check import cmd_check

    cmd_check(config=config, paths=paths, rule_files=rule_files, console=console)


# ---------------------------------------------------------------------------
# syntax
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("language")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--query", "-q", default=None, help="Also run this tree-sitter query.")
def syntax(language: str, source: TextIO, query: str | None) -> None:
    """Print the parse tree of SOURCE (a file, or '-' for stdin) in LANGUAGE."""
    from tripwire.cli._syntax import cmd_syntax

    cmd_syntax(language=language, text=source.read(), query=query, console=console)


# ---------------------------------------------------------------------------
# setup
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--settings-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=AGENT_SETTINGS_DIR,
    show_default=True,
    help="Agent settings directory of the project.",
)
@click.option("--command", default=None, help="Hook command (default: this tripwire + ' hook').")
@click.option(
    "--notes/--no-notes",
    default=None,
    help="Add (or skip) the Tripwire section in the agent notes without asking.",
)
def setup(settings_dir: Path, command: str | None, notes: bool | None) -> None:
    """Register `tripwire hook` in the agent's project settings."""
    from tripwire.cli._setup import run_setup

    run_setup(settings_dir=settings_dir, command=command, notes=notes, console=console)


if __name__ == "__main__":
    cli()
