"""Immutable per-job capture of session context.

The host application supplies context through :class:`SessionContextSource`.
A job reads it exactly once, when the user asks, so later session changes can
never leak into an answer that is already in flight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

__all__ = [
    "SessionContextSource",
    "ContextSnapshot",
    "StaticSessionContext",
    "capture_snapshot",
    "cap_text",
    "cap_tail",
    "TRUNCATION_MARKER",
    "SCRIPT_CHAR_LIMIT",
    "TEXT_CHAR_LIMIT",
    "COMMAND_LOG_CHAR_LIMIT",
]

LOGGER = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n...[truncated]...\n"
SCRIPT_CHAR_LIMIT = 32_000
TEXT_CHAR_LIMIT = 32_000
COMMAND_LOG_CHAR_LIMIT = 200_000


class SessionContextSource(Protocol):
    """Read-only view of the host session. ``None`` means "not available"."""

    def dataset_summary(self) -> str | None:
        ...

    def last_error(self) -> str | None:
        ...

    def script_selection(self) -> str | None:
        ...

    def script_full(self) -> str | None:
        ...

    def command_log(self) -> str | None:
        ...

    def last_model_summary(self, full: bool) -> str | None:
        ...


def cap_text(text: str | None, limit: int) -> str | None:
    """Keep the head of ``text``, appending the truncation marker when cut."""

    if text is None or len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def cap_tail(text: str | None, limit: int) -> str | None:
    """Keep the tail of ``text``, prefixing a truncation marker when cut."""

    if text is None or len(text) <= limit:
        return text
    return TRUNCATION_MARKER.lstrip("\n") + text[-limit:]


@dataclass(slots=True, frozen=True)
class ContextSnapshot:
    """Session text captured once at job start."""

    dataset_summary: str | None = None
    last_error: str | None = None
    script_selection: str | None = None
    script_full: str | None = None
    command_log: str | None = None
    last_model_simple: str | None = None
    last_model_full: str | None = None

    def script_text(self) -> tuple[str | None, bool]:
        """Return the selection when present, else the full script, and whether it was the selection."""

        if self.script_selection:
            return self.script_selection, True
        return self.script_full, False


def _safe_read(label: str, reader: Callable[[], str | None]) -> str | None:
    try:
        value = reader()
    except Exception:
        LOGGER.warning("Context source failed to provide %s", label, exc_info=True)
        return None
    if value is not None and not isinstance(value, str):
        value = str(value)
    return value


def capture_snapshot(source: SessionContextSource) -> ContextSnapshot:
    """Query ``source`` once per field and apply the documented size caps."""

    snapshot = ContextSnapshot(
        dataset_summary=cap_text(_safe_read("dataset summary", source.dataset_summary), TEXT_CHAR_LIMIT),
        last_error=cap_text(_safe_read("last error", source.last_error), TEXT_CHAR_LIMIT),
        script_selection=cap_text(_safe_read("script selection", source.script_selection), SCRIPT_CHAR_LIMIT),
        script_full=cap_text(_safe_read("full script", source.script_full), SCRIPT_CHAR_LIMIT),
        command_log=cap_tail(_safe_read("command log", source.command_log), COMMAND_LOG_CHAR_LIMIT),
        last_model_simple=cap_text(
            _safe_read("model summary", lambda: source.last_model_summary(False)), TEXT_CHAR_LIMIT
        ),
        last_model_full=cap_text(
            _safe_read("full model summary", lambda: source.last_model_summary(True)), TEXT_CHAR_LIMIT
        ),
    )
    LOGGER.debug(
        "Captured context snapshot (dataset=%s, script=%s, log=%s chars)",
        snapshot.dataset_summary is not None,
        snapshot.script_full is not None,
        len(snapshot.command_log or ""),
    )
    return snapshot


@dataclass(slots=True, frozen=True)
class StaticSessionContext:
    """Fixed context values, e.g. loaded from files for headless use."""

    dataset: str | None = None
    error: str | None = None
    selection: str | None = None
    script: str | None = None
    log: str | None = None
    model_simple: str | None = None
    model_full: str | None = None

    @classmethod
    def from_files(
        cls,
        *,
        dataset: Path | None = None,
        error: Path | None = None,
        selection: Path | None = None,
        script: Path | None = None,
        log: Path | None = None,
        model_simple: Path | None = None,
        model_full: Path | None = None,
    ) -> "StaticSessionContext":
        def _read(path: Path | None) -> str | None:
            if path is None:
                return None
            return Path(path).read_text(encoding="utf-8", errors="replace")

        return cls(
            dataset=_read(dataset),
            error=_read(error),
            selection=_read(selection),
            script=_read(script),
            log=_read(log),
            model_simple=_read(model_simple),
            model_full=_read(model_full),
        )

    def dataset_summary(self) -> str | None:
        return self.dataset

    def last_error(self) -> str | None:
        return self.error

    def script_selection(self) -> str | None:
        return self.selection

    def script_full(self) -> str | None:
        return self.script

    def command_log(self) -> str | None:
        return self.log

    def last_model_summary(self, full: bool) -> str | None:
        return self.model_full if full else self.model_simple
