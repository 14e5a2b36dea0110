"""Spawn agent CLIs under an optional kill-after-N-seconds guard."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from ..services.settings import DEFAULT_TIMEOUT_SECONDS, TIMEOUT_ENV
from .errors import ExternalError

__all__ = [
    "ProcessOutcome",
    "ProcessRunner",
    "TIMEOUT_EXIT_CODES",
    "format_exit_failure",
]

LOGGER = logging.getLogger(__name__)

# `timeout` exits 124 when the limit expires; with --signal=KILL it reports 128 + 9.
TIMEOUT_EXIT_CODES = frozenset({124, 137})

SpawnFunc = Callable[..., Any]
WhichFunc = Callable[[str], "str | None"]


@dataclass(slots=True, frozen=True)
class ProcessOutcome:
    """Captured result of one agent invocation."""

    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def timed_out(self) -> bool:
        return self.returncode in TIMEOUT_EXIT_CODES


def format_exit_failure(program: str, outcome: ProcessOutcome) -> str:
    """Build the user-facing message for a nonzero exit status."""

    if outcome.returncode < 0:
        message = f"{program} failed (killed by signal {-outcome.returncode})"
    else:
        message = f"{program} failed (exit status {outcome.returncode})"
    if outcome.timed_out:
        message = f"{message} (timed out; set {TIMEOUT_ENV})"
    if outcome.stderr:
        message = f"{message}\n\nstderr:\n{outcome.stderr}"
    elif outcome.stdout:
        message = f"{message}\n\nstdout:\n{outcome.stdout}"
    return message


class ProcessRunner:
    """Runs one agent command to completion and classifies its exit status."""

    def __init__(
        self,
        *,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        spawn: SpawnFunc | None = None,
        which: WhichFunc | None = None,
    ) -> None:
        self.timeout_seconds = max(1, int(timeout_seconds))
        self._spawn = spawn or subprocess.run
        self._which = which or shutil.which

    def wrap_with_timeout(self, argv: Sequence[str]) -> list[str]:
        """Prefix ``argv`` with the ``timeout`` guard when it is available."""

        if os.name == "nt":
            return list(argv)
        guard = self._which("timeout")
        if not guard:
            LOGGER.debug("timeout utility not found; running agent without a time limit")
            return list(argv)
        return [guard, "--signal=KILL", f"{self.timeout_seconds}s", *argv]

    def run(self, program: str, argv: Sequence[str]) -> ProcessOutcome:
        """Spawn ``argv`` with stdin closed and capture both output streams."""

        command = self.wrap_with_timeout(argv)
        LOGGER.debug("Spawning %s (%s args, timeout=%ss)", program, len(command), self.timeout_seconds)
        try:
            completed = self._spawn(
                command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            LOGGER.warning("Failed to spawn %s: %s", program, exc)
            raise ExternalError(f"Failed to run {program} CLI: {exc.strerror or exc}") from exc
        outcome = ProcessOutcome(
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            returncode=int(completed.returncode),
        )
        LOGGER.debug(
            "%s exited with status %s (stdout=%s chars, stderr=%s chars)",
            program,
            outcome.returncode,
            len(outcome.stdout),
            len(outcome.stderr),
        )
        return outcome

    @staticmethod
    def check_exit(program: str, outcome: ProcessOutcome) -> None:
        """Raise :class:`ExternalError` unless the process exited with status 0."""

        if outcome.ok:
            return
        if outcome.timed_out:
            LOGGER.warning("%s timed out (exit status %s)", program, outcome.returncode)
        else:
            LOGGER.warning("%s failed with exit status %s", program, outcome.returncode)
        raise ExternalError(format_exit_failure(program, outcome), timed_out=outcome.timed_out)
