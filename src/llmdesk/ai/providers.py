"""Provider capability for the two supported agent CLIs.

Both agents are one-shot batch invocations. They differ in how the prompt is
passed and where the final answer ends up:

* ``codex`` writes its last message to a file named on the command line.
* ``gemini`` prints a JSON document, usually surrounded by banner noise.
"""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import ClassVar, Iterator

from ..services.settings import AgentSettings
from .errors import DataError, ExternalError
from .extract import describe_output, extract_embedded_reply, read_reply_file
from .runner import ProcessOutcome

__all__ = [
    "ProviderKind",
    "AgentInvocation",
    "AgentProvider",
    "CodexProvider",
    "GeminiProvider",
    "provider_from_string",
    "provider_name",
    "build_provider",
]

LOGGER = logging.getLogger(__name__)


class ProviderKind(Enum):
    """Selectable agents; ``NONE`` resolves to the configured default."""

    NONE = "none"
    CODEX = "codex"
    GEMINI = "gemini"


def provider_from_string(value: str | None) -> ProviderKind:
    """Parse a provider selector (case-insensitive); empty means ``NONE``."""

    text = (value or "").strip().lower()
    if not text:
        return ProviderKind.NONE
    for kind in ProviderKind:
        if kind.value == text:
            return kind
    raise DataError(f"Unknown LLM provider '{value}' (expected codex|gemini)")


def provider_name(kind: ProviderKind) -> str:
    return kind.value


@dataclass(slots=True)
class AgentInvocation:
    """Per-call inputs handed to a provider's argv builder and extractor."""

    binary: str
    prompt: str
    output_path: Path | None = None


class AgentProvider(ABC):
    """One external agent: how to call it and how to read its answer."""

    kind: ClassVar[ProviderKind]
    program: ClassVar[str]
    binary_env: ClassVar[str]

    @property
    def fallback_path(self) -> Path:
        """Fixed install location checked before searching ``PATH``."""

        return Path.home() / ".local" / "bin" / self.program

    @contextmanager
    def invocation(self, binary: str, prompt: str) -> Iterator[AgentInvocation]:
        """Allocate per-call resources for one run and release them afterwards."""

        yield AgentInvocation(binary=binary, prompt=prompt)

    @abstractmethod
    def build_argv(self, invocation: AgentInvocation) -> list[str]:
        """Return the argument vector (without the timeout guard)."""

    @abstractmethod
    def extract_reply(self, invocation: AgentInvocation, outcome: ProcessOutcome) -> str:
        """Return the non-empty reply of a successful run or raise."""


class CodexProvider(AgentProvider):
    """File-channel agent: ``--output-last-message <tmpfile>``."""

    kind = ProviderKind.CODEX
    program = "codex"
    binary_env = "LLMDESK_CODEX_BIN"

    def __init__(self, *, dangerous: bool = False) -> None:
        self.dangerous = dangerous

    @contextmanager
    def invocation(self, binary: str, prompt: str) -> Iterator[AgentInvocation]:
        try:
            fd, name = tempfile.mkstemp(prefix="llmdesk_codex_lastmsg_")
        except OSError as exc:
            raise ExternalError(f"Failed to create temp file for codex output: {exc.strerror or exc}") from exc
        os.close(fd)
        path = Path(name)
        try:
            yield AgentInvocation(binary=binary, prompt=prompt, output_path=path)
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                LOGGER.debug("Unable to remove codex output file %s", path, exc_info=True)

    def build_argv(self, invocation: AgentInvocation) -> list[str]:
        output = str(invocation.output_path)
        if self.dangerous:
            return [
                invocation.binary,
                "exec",
                "--dangerously-bypass-approvals-and-sandbox",
                "--color", "never",
                "--skip-git-repo-check",
                "--output-last-message", output,
                invocation.prompt,
            ]
        return [
            invocation.binary,
            "-a", "never",
            "exec",
            "-s", "read-only",
            "--color", "never",
            "--skip-git-repo-check",
            "--output-last-message", output,
            invocation.prompt,
        ]

    def extract_reply(self, invocation: AgentInvocation, outcome: ProcessOutcome) -> str:
        if invocation.output_path is None:
            raise ExternalError("codex output file was not allocated")
        reply = read_reply_file(invocation.output_path)
        if not reply:
            raise ExternalError(describe_output("codex returned no reply", outcome.stdout, outcome.stderr))
        return reply


class GeminiProvider(AgentProvider):
    """Embedded-JSON agent: ``--output-format json`` on stdout."""

    kind = ProviderKind.GEMINI
    program = "gemini"
    binary_env = "LLMDESK_GEMINI_BIN"

    NONE_SENTINEL = "llmdesk-none"
    REPLY_FIELD = "response"
    _CRITICAL_MARKER = "An unexpected critical error occurred"

    def build_argv(self, invocation: AgentInvocation) -> list[str]:
        # MCP servers and tools are disabled so the CLI cannot block on approval prompts.
        return [
            invocation.binary,
            "-p", invocation.prompt,
            "--output-format", "json",
            "--allowed-mcp-server-names", self.NONE_SENTINEL,
            "--allowed-tools", self.NONE_SENTINEL,
        ]

    def extract_reply(self, invocation: AgentInvocation, outcome: ProcessOutcome) -> str:
        if self._CRITICAL_MARKER in outcome.stderr:
            raise ExternalError(f"gemini CLI error:\n{outcome.stderr}")
        reply = extract_embedded_reply(outcome.stdout, self.REPLY_FIELD)
        if reply is None:
            if outcome.stdout:
                raise ExternalError(f"Failed to parse gemini response (output follows)\n{outcome.stdout}")
            if outcome.stderr:
                raise ExternalError(f"gemini returned no JSON (stderr follows)\n{outcome.stderr}")
            raise ExternalError("gemini returned no reply")
        if not reply:
            raise ExternalError("gemini returned no reply")
        return reply


def build_provider(kind: ProviderKind, settings: AgentSettings | None = None) -> AgentProvider:
    """Instantiate the provider for a concrete ``kind``."""

    active = settings or AgentSettings()
    if kind is ProviderKind.CODEX:
        return CodexProvider(dangerous=active.codex_dangerous)
    if kind is ProviderKind.GEMINI:
        return GeminiProvider()
    raise DataError("No LLM provider selected")
