"""Shared test helpers and stub classes.

Import from here instead of duplicating these fakes in individual test files.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from llmdesk.ai.completion import CompletionResult
from llmdesk.ai.errors import CompletionError
from llmdesk.ai.orchestration.tool_protocol import JobResult
from llmdesk.ai.providers import ProviderKind


@dataclass(slots=True)
class FakeRun:
    """Scripted outcome for one spawned agent process."""

    stdout: str = ""
    stderr: str = ""
    returncode: int = 0
    reply_file: str | None = None


class FakeSpawn:
    """Stand-in for :func:`subprocess.run` that records every argv.

    When a scripted run has ``reply_file`` set, its text is written to the path
    following ``--output-last-message`` the way codex does.
    """

    def __init__(self, *runs: FakeRun | BaseException) -> None:
        self._runs = list(runs) or [FakeRun()]
        self.calls: list[list[str]] = []
        self.kwargs: list[dict[str, Any]] = []
        self.output_paths: list[Path] = []

    def __call__(self, argv: Sequence[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        command = list(argv)
        self.calls.append(command)
        self.kwargs.append(kwargs)
        run = self._runs.pop(0) if len(self._runs) > 1 else self._runs[0]
        if isinstance(run, BaseException):
            raise run
        if "--output-last-message" in command:
            path = Path(command[command.index("--output-last-message") + 1])
            self.output_paths.append(path)
            if run.reply_file is not None:
                path.write_text(run.reply_file, encoding="utf-8")
        return subprocess.CompletedProcess(command, run.returncode, run.stdout, run.stderr)


class FakeCompleter:
    """Scripted :class:`~llmdesk.ai.orchestration.tool_protocol.Completer`."""

    def __init__(self, *results: str | CompletionError) -> None:
        self._results = list(results)
        self.prompts: list[str] = []
        self.providers: list[ProviderKind] = []

    def complete_with_error(self, provider: ProviderKind, prompt: str) -> CompletionResult:
        self.providers.append(provider)
        self.prompts.append(prompt)
        if not self._results:
            raise AssertionError("FakeCompleter ran out of scripted replies")
        result = self._results.pop(0)
        if isinstance(result, CompletionError):
            return CompletionResult.failure(result)
        return CompletionResult.success(result)


class RecordingView:
    """Collects :class:`~llmdesk.ui.job_bridge.AssistantView` updates."""

    def __init__(self) -> None:
        self.busy_states: list[bool] = []
        self.statuses: list[str] = []
        self.replies: list[str] = []

    @property
    def busy(self) -> bool:
        return bool(self.busy_states) and self.busy_states[-1]

    def set_busy(self, busy: bool) -> None:
        self.busy_states.append(busy)

    def set_status(self, text: str) -> None:
        self.statuses.append(text)

    def show_reply(self, text: str) -> None:
        self.replies.append(text)


class ImmediateThread:
    """Thread stand-in that runs its target synchronously on ``start``."""

    def __init__(self, target: Callable[..., Any], args: tuple[Any, ...] = (), **_kwargs: Any) -> None:
        self._target = target
        self._args = args

    def start(self) -> None:
        self._target(*self._args)


class DeferredThread:
    """Thread stand-in whose target only runs when the test calls :meth:`run`."""

    def __init__(self, target: Callable[..., Any], args: tuple[Any, ...] = (), **kwargs: Any) -> None:
        self._target = target
        self._args = args
        self.name = kwargs.get("name")
        self.daemon = kwargs.get("daemon")
        self.started = False

    def start(self) -> None:
        self.started = True

    def run(self) -> None:
        self._target(*self._args)


class DeferredThreads:
    """``thread_factory`` that keeps every :class:`DeferredThread` it creates."""

    def __init__(self) -> None:
        self.threads: list[DeferredThread] = []

    def __call__(self, target: Callable[..., Any], args: tuple[Any, ...] = (), **kwargs: Any) -> DeferredThread:
        thread = DeferredThread(target, args, **kwargs)
        self.threads.append(thread)
        return thread


class StaticEngine:
    """Engine stub returning a fixed :class:`JobResult` and recording its inputs."""

    def __init__(self, result: JobResult | BaseException) -> None:
        self._result = result
        self.requests: list[Any] = []
        self.snapshots: list[Any] = []

    def run(self, request: Any, snapshot: Any) -> JobResult:
        self.requests.append(request)
        self.snapshots.append(snapshot)
        if isinstance(self._result, BaseException):
            raise self._result
        return self._result
