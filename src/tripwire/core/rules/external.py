"""
External command matcher.

The argv is fixed when the rule is compiled. At evaluation time the target
text is piped to the command's stdin; a nonzero exit status means the
command "matched" (the check failed), zero means it did not.

Every run is bounded by a timeout. Running out of time, failing to spawn,
or producing non-UTF-8 output raises :class:`ExternalMatcherError`: the
caller must treat the check as failed-to-evaluate, never as pass or fail.

Commands started on behalf of one evaluation can be registered with a
:class:`ProcessTracker`, which kills them all at once when the evaluation's
deadline passes.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from dataclasses import dataclass

from tripwire.core.constants import DEFAULT_EXTERNAL_TIMEOUT_SECONDS
from tripwire.core.exceptions import ExternalMatcherError
from tripwire.core.rules.span import Matches, NoMatches, Span, unlabeled

logger = logging.getLogger(__name__)

# Template values set by every run, on top of the whole-target capture "0".
TEMPLATE_KEYS = frozenset({"command", "stdout", "stderr", "exit_code"})


@dataclass(frozen=True)
class ExternalResult:
    """What one run of the command produced."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def matched(self) -> bool:
        return self.exit_code != 0


class ProcessTracker:
    """The external commands running for one evaluation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[subprocess.Popen[bytes]] = set()
        self._cancelled = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._running)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def spawn(self, argv: tuple[str, ...]) -> subprocess.Popen[bytes]:
        """Start ``argv`` with piped stdio; refuses once the tracker is cancelled."""
        with self._lock:
            if self._cancelled:
                raise ExternalMatcherError(
                    f"external command {shlex.join(argv)!r} not started: evaluation cancelled"
                )
            proc = _popen(argv)
            self._running.add(proc)
            return proc

    def release(self, proc: subprocess.Popen[bytes]) -> None:
        with self._lock:
            self._running.discard(proc)

    def cancel(self) -> int:
        """Kill every running command and refuse new ones; returns how many were killed."""
        with self._lock:
            self._cancelled = True
            running = list(self._running)
            self._running.clear()
        for proc in running:
            proc.kill()
        if running:
            logger.debug("Killed %d running external command(s)", len(running))
        return len(running)


def _popen(argv: tuple[str, ...]) -> subprocess.Popen[bytes]:
    return subprocess.Popen(
        argv,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


class ExternalCommand:
    """A command whose exit status decides whether the target matched."""

    __slots__ = ("argv",)

    def __init__(self, argv: list[str] | tuple[str, ...]) -> None:
        if not argv:
            raise ValueError("external command must have at least one argument")
        if not all(isinstance(arg, str) for arg in argv):
            raise ValueError("external command arguments must all be strings")
        self.argv: tuple[str, ...] = tuple(argv)

    def __repr__(self) -> str:
        return f"ExternalCommand({self.command_line!r})"

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)

    def run(
        self,
        target: str,
        timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
        tracker: ProcessTracker | None = None,
    ) -> ExternalResult:
        """Pipe ``target`` to the command and wait for it to exit."""
        try:
            proc = tracker.spawn(self.argv) if tracker is not None else _popen(self.argv)
        except OSError as exc:
            raise ExternalMatcherError(
                f"external command {self.command_line!r} could not be started: {exc}"
            ) from exc

        try:
            out, err = proc.communicate(target.encode("utf-8"), timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            proc.kill()
            proc.communicate()
            raise ExternalMatcherError(
                f"external command {self.command_line!r} timed out after {timeout:g}s"
            ) from exc
        finally:
            if tracker is not None:
                tracker.release(proc)

        if tracker is not None and tracker.cancelled:
            raise ExternalMatcherError(
                f"external command {self.command_line!r} killed: evaluation cancelled"
            )

        try:
            stdout = out.decode("utf-8")
            stderr = err.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExternalMatcherError(
                f"external command {self.command_line!r} produced non-UTF-8 output"
            ) from exc

        logger.debug("External %r exited %d", self.command_line, proc.returncode)
        return ExternalResult(exit_code=proc.returncode, stdout=stdout, stderr=stderr)

    def find_all(
        self,
        target: str,
        timeout: float = DEFAULT_EXTERNAL_TIMEOUT_SECONDS,
    ) -> Matches:
        """One span covering the whole target on a nonzero exit, else nothing."""
        result = self.run(target, timeout=timeout)
        if not result.matched:
            return NoMatches()
        return unlabeled([Span(0, len(target))])

    def template_values(self, result: ExternalResult) -> dict[str, str]:
        """Values exposed to message templates after a run."""
        return {
            "command": self.command_line,
            "stdout": result.stdout.strip(),
            "stderr": result.stderr.strip(),
            "exit_code": str(result.exit_code),
        }
