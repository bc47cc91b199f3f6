"""tripwire hook — answer one agent hook event."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from tripwire.core.config import TripwireConfig
from tripwire.core.constants import ExitCode

logger = logging.getLogger(__name__)


def run_hook(raw: str, config: TripwireConfig, cwd: Path | None = None) -> str | None:
    """
    Evaluate one raw hook payload and return what to print, if anything.

    Any failure is logged and turns into passthrough (None): a fault in
    Tripwire must never block the agent.
    """
    from tripwire.core.hook import parse_payload, render_response
    from tripwire.core.rules.discovery import discover_registry
    from tripwire.core.rules.project import ProjectState

    try:
        event = parse_payload(raw)
        if event is None:
            return None
        root = Path(event.cwd) if event.cwd else (cwd or Path.cwd())
        registry = discover_registry(root)
        response = registry.evaluate(
            event,
            project=ProjectState(root),
            workers=config.evaluation.workers,
            deadline=config.evaluation.deadline_seconds,
            external_timeout=config.evaluation.external_timeout_seconds,
        )
        return render_response(event, response)
    except Exception:  # noqa: BLE001
        logger.exception("Hook evaluation failed; letting the action through")
        return None


def cmd_hook(config: TripwireConfig) -> None:
    output = run_hook(sys.stdin.read(), config)
    if output is not None:
        click.echo(output)
    sys.exit(ExitCode.SUCCESS)
