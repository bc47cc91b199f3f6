"""
Ambient project state consulted by ``project_state`` rule conditions.

A :class:`ProjectState` is built once per evaluation and handed to the
evaluator; nothing here is global. The current branch is resolved lazily,
so rules that never ask for it never spawn ``git``.
"""

from __future__ import annotations

import logging
import subprocess
from functools import cached_property
from pathlib import Path

from tripwire.core.constants import GIT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def current_branch(cwd: Path) -> str | None:
    """
    Return the checked-out git branch in ``cwd``.

    Returns None when ``cwd`` is not inside a repository, git fails or is
    missing, or HEAD is detached.
    """
    try:
        proc = subprocess.run(
            ["git", "-C", str(cwd), "branch", "--show-current"],
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("Cannot query git branch in %s: %s", cwd, exc)
        return None

    if proc.returncode != 0:
        logger.warning("git branch failed in %s: %s", cwd, proc.stderr.strip())
        return None
    branch = proc.stdout.strip()
    return branch or None


class ProjectState:
    """Read-only view of the project the event happened in."""

    def __init__(self, cwd: Path | str | None = None, branch: str | None = None) -> None:
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        if branch is not None:
            # Pre-seeded (tests, or a caller that already knows).
            self.__dict__["branch"] = branch

    def __repr__(self) -> str:
        return f"ProjectState(cwd={str(self.cwd)!r})"

    @cached_property
    def branch(self) -> str | None:
        return current_branch(self.cwd)
