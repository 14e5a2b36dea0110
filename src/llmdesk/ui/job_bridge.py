"""Runs assistant jobs on worker threads and hands results back to the UI loop."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Protocol

from ..ai.completion import CompletionRequest
from ..ai.orchestration.tool_protocol import JobResult, ToolProtocolEngine
from ..ai.prompts import PromptOptions, build_full_prompt
from ..ai.providers import ProviderKind
from ..session.snapshot import ContextSnapshot, SessionContextSource, capture_snapshot

__all__ = [
    "AssistantView",
    "AssistantJob",
    "ResultSlot",
    "AssistantRegistry",
    "AssistantSession",
]

_LOGGER = logging.getLogger(__name__)

WORKING_STATUS = "Working..."


class AssistantView(Protocol):
    """UI surface updated by :class:`AssistantSession` on the UI loop only."""

    def set_busy(self, busy: bool) -> None:
        ...

    def set_status(self, text: str) -> None:
        ...

    def show_reply(self, text: str) -> None:
        ...


@dataclass(slots=True, frozen=True)
class AssistantJob:
    """One ask-to-answer unit; owned by its worker until the handoff."""

    job_id: int
    request: CompletionRequest
    snapshot: ContextSnapshot


class ResultSlot:
    """Single-use channel carrying one :class:`JobResult` onto the UI loop.

    ``post`` may be called once, from any thread. Delivery happens on ``loop``
    via ``call_soon_threadsafe`` and runs the callback at most once.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, deliver: Callable[[JobResult], None]) -> None:
        self._loop = loop
        self._deliver = deliver
        self._lock = threading.Lock()
        self._posted = False
        self._consumed = False

    @property
    def posted(self) -> bool:
        return self._posted

    @property
    def consumed(self) -> bool:
        return self._consumed

    def post(self, result: JobResult) -> None:
        with self._lock:
            if self._posted:
                raise RuntimeError("ResultSlot already received a result")
            self._posted = True
        try:
            self._loop.call_soon_threadsafe(self._deliver_once, result)
        except RuntimeError:
            _LOGGER.warning("UI event loop is closed; dropping assistant result")

    def _deliver_once(self, result: JobResult) -> None:
        if self._consumed:
            return
        self._consumed = True
        self._deliver(result)


class AssistantRegistry:
    """Tracks the single assistant surface that is currently open."""

    def __init__(self) -> None:
        self._current: AssistantSession | None = None

    @property
    def current(self) -> "AssistantSession | None":
        return self._current

    def present_or_create(self, factory: Callable[[], "AssistantSession"]) -> "AssistantSession":
        """Return the open surface, creating one through ``factory`` if needed."""

        current = self._current
        if current is not None and current.alive:
            return current
        session = factory()
        self.register(session)
        return session

    def register(self, session: "AssistantSession") -> None:
        self._current = session

    def release(self, session: "AssistantSession") -> None:
        if self._current is session:
            self._current = None

    def is_current(self, session: "AssistantSession") -> bool:
        return self._current is session


@dataclass(slots=True, eq=False)
class AssistantSession:
    """Per-surface job controller: busy flag, worker start, and result handoff."""

    engine: ToolProtocolEngine
    context_source: SessionContextSource
    view: AssistantView
    loop: asyncio.AbstractEventLoop
    registry: AssistantRegistry | None = None
    thread_factory: Callable[..., threading.Thread] = threading.Thread
    on_finished: Callable[[JobResult], None] | None = None

    busy: bool = False
    last_reply: str = ""
    last_insert: str = ""
    _alive: bool = field(default=True, repr=False)
    _job_seq: int = field(default=0, repr=False)
    _active_job: AssistantJob | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.registry is not None:
            self.registry.register(self)

    @property
    def alive(self) -> bool:
        return self._alive

    def ask(
        self,
        prompt: str,
        options: PromptOptions,
        provider: ProviderKind = ProviderKind.NONE,
    ) -> bool:
        """Start a job; returns False when busy, closed, or the prompt is empty."""

        if not self._alive:
            return False
        if self.busy:
            _LOGGER.debug("Ignoring ask while a job is in flight")
            return False
        if not prompt:
            return False

        snapshot = capture_snapshot(self.context_source)
        request = CompletionRequest(
            provider=provider,
            prompt=build_full_prompt(prompt, snapshot, options),
            tools_enabled=options.tools_enabled,
        )
        self._job_seq += 1
        job = AssistantJob(job_id=self._job_seq, request=request, snapshot=snapshot)
        self._active_job = job
        self.busy = True
        self.view.set_busy(True)
        self.view.set_status(WORKING_STATUS)

        slot = ResultSlot(self.loop, lambda result: self._apply_result(job, result))
        worker = self.thread_factory(
            target=self._run_job,
            args=(job, slot),
            name=f"llmdesk-ai-{job.job_id}",
            daemon=True,
        )
        _LOGGER.debug(
            "Starting assistant job %s (provider=%s, tools=%s)",
            job.job_id,
            provider.value,
            options.tools_enabled,
        )
        try:
            worker.start()
        except RuntimeError as exc:
            _LOGGER.error("Unable to start assistant job %s: %s", job.job_id, exc)
            self._apply_result(job, JobResult.failure(f"Unable to start assistant job: {exc}"))
            return False
        return True

    def close(self) -> None:
        """Mark the surface gone; any in-flight result will be discarded."""

        self._alive = False
        if self.registry is not None:
            self.registry.release(self)

    def text_to_insert(self) -> str:
        """Return the proposed insert, or the whole reply when there is none."""

        return self.last_insert or self.last_reply

    def _run_job(self, job: AssistantJob, slot: ResultSlot) -> None:
        # Worker thread: touches only the job and the slot.
        try:
            result = self.engine.run(job.request, job.snapshot)
        except Exception as exc:
            _LOGGER.exception("Assistant job %s crashed", job.job_id)
            result = JobResult.failure(f"Assistant job failed: {exc}")
        slot.post(result)

    def _apply_result(self, job: AssistantJob, result: JobResult) -> None:
        if not self._owns(job):
            _LOGGER.debug("Discarding result of job %s; surface is no longer active", job.job_id)
            return
        self._active_job = None
        self.busy = False
        self.last_reply = result.reply_text
        self.last_insert = result.insert_text
        self.view.show_reply(result.reply_text)
        self.view.set_busy(False)
        self.view.set_status("")
        _LOGGER.debug("Assistant job %s finished (rounds=%s, ok=%s)", job.job_id, result.rounds, result.ok)
        if self.on_finished is not None:
            self.on_finished(result)

    def _owns(self, job: AssistantJob) -> bool:
        if not self._alive or self._active_job is not job:
            return False
        return self.registry is None or self.registry.is_current(self)
