"""Uniform entry point for one-shot agent completions.

Two calling conventions are offered:

``complete``
    Raises :class:`~llmdesk.ai.errors.CompletionError` and records the message
    in a process-wide error channel (see :func:`last_error_message`). Meant for
    callers on the UI thread.
``complete_with_error``
    Returns a :class:`CompletionResult` and never touches shared state. Worker
    threads must use this one.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..services.settings import AgentSettings, load_agent_settings
from .errors import CompletionError, DataError, ExternalError
from .providers import AgentProvider, ProviderKind, build_provider, provider_from_string
from .runner import ProcessRunner

__all__ = [
    "CompletionRequest",
    "CompletionResult",
    "CompletionService",
    "last_error_message",
    "clear_error",
]

LOGGER = logging.getLogger(__name__)

_ERROR_LOCK = threading.Lock()
_LAST_ERROR: str | None = None

ProviderFactory = Callable[[ProviderKind, AgentSettings], AgentProvider]


def last_error_message() -> str | None:
    """Return the message recorded by the most recent failed :meth:`CompletionService.complete`."""

    with _ERROR_LOCK:
        return _LAST_ERROR


def clear_error() -> None:
    global _LAST_ERROR
    with _ERROR_LOCK:
        _LAST_ERROR = None


def _set_error(message: str | None) -> None:
    global _LAST_ERROR
    with _ERROR_LOCK:
        _LAST_ERROR = message


@dataclass(slots=True, frozen=True)
class CompletionRequest:
    """One ask: which agent, what to send, and whether tools may be used."""

    provider: ProviderKind
    prompt: str
    tools_enabled: bool = True


@dataclass(slots=True, frozen=True)
class CompletionResult:
    """Either a non-empty reply or an error message, never both."""

    reply: str | None = None
    error: str | None = None
    error_kind: str | None = None

    def __post_init__(self) -> None:
        if self.reply and self.error:
            raise ValueError("CompletionResult cannot carry both a reply and an error")
        if not self.reply and not self.error:
            raise ValueError("CompletionResult requires a reply or an error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, reply: str) -> "CompletionResult":
        return cls(reply=reply)

    @classmethod
    def failure(cls, exc: CompletionError) -> "CompletionResult":
        return cls(error=exc.message or "LLM call failed", error_kind=exc.kind)


class CompletionService:
    """Resolves a provider and executable, then runs one completion."""

    def __init__(
        self,
        settings: AgentSettings | None = None,
        *,
        runner: ProcessRunner | None = None,
        which: Callable[[str], str | None] | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self._settings = settings or load_agent_settings()
        self._runner = runner or ProcessRunner(timeout_seconds=self._settings.timeout_seconds)
        self._which = which or shutil.which
        self._provider_factory = provider_factory or build_provider

    @property
    def settings(self) -> AgentSettings:
        return self._settings

    def default_provider(self) -> ProviderKind:
        try:
            kind = provider_from_string(self._settings.default_provider)
        except DataError:
            kind = ProviderKind.NONE
        return ProviderKind.CODEX if kind is ProviderKind.NONE else kind

    def resolve_provider(self, kind: ProviderKind) -> ProviderKind:
        return self.default_provider() if kind is ProviderKind.NONE else kind

    def find_executable(self, provider: AgentProvider) -> str | None:
        """Override variable, then the fixed fallback path, then ``PATH``."""

        override = self._settings.binary_override(provider.program)
        if override:
            return override
        fallback = provider.fallback_path
        if self._is_executable(fallback):
            return str(fallback)
        return self._which(provider.program)

    def complete(self, provider: ProviderKind, prompt: str) -> str:
        """Run a completion, raising on failure and recording the error message."""

        try:
            reply = self._complete(provider, prompt)
        except CompletionError as exc:
            _set_error(exc.message)
            raise
        _set_error(None)
        return reply

    def complete_with_error(self, provider: ProviderKind, prompt: str) -> CompletionResult:
        """Run a completion and return the reply or the error message."""

        try:
            return CompletionResult.success(self._complete(provider, prompt))
        except CompletionError as exc:
            return CompletionResult.failure(exc)

    def _complete(self, kind: ProviderKind, prompt: str) -> str:
        if not prompt:
            raise DataError("Missing prompt")
        resolved = self.resolve_provider(kind)
        provider = self._provider_factory(resolved, self._settings)
        binary = self.find_executable(provider)
        if not binary:
            raise ExternalError(
                f"Cannot find {provider.program} executable (set {provider.binary_env})"
            )
        LOGGER.debug("Running %s completion via %s (prompt=%s chars)", provider.program, binary, len(prompt))
        with provider.invocation(binary, prompt) as invocation:
            outcome = self._runner.run(provider.program, provider.build_argv(invocation))
            self._runner.check_exit(provider.program, outcome)
            reply = provider.extract_reply(invocation, outcome)
        LOGGER.debug("%s returned %s chars", provider.program, len(reply))
        return reply

    @staticmethod
    def _is_executable(path: Path) -> bool:
        return path.is_file() and os.access(path, os.X_OK)
