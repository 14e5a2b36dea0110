"""Bounded two-round tool protocol between the assistant and an agent CLI.

Round one sends the user's prompt. When tools are enabled the agent answers
with a JSON object that may list read-only ``tool_calls``; those are resolved
against the job's :class:`~llmdesk.session.snapshot.ContextSnapshot` and sent
back in round two together with the original prompt. Round two is always
final: any tool calls it requests are ignored, so a job never performs more
than two agent invocations.

Reply parsing is textual (see :mod:`llmdesk.ai.json_scan`) and is limited to
the three schema fields ``assistant_text``, ``proposed_insert`` and
``tool_calls``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Mapping, Protocol, Sequence

from ...session.snapshot import TRUNCATION_MARKER, ContextSnapshot, cap_text
from ..completion import CompletionRequest, CompletionResult
from ..json_scan import (
    extract_span,
    extract_string_field,
    find_field_value_start,
    match_closing,
    read_int,
    skip_ws,
)
from ..prompts import build_followup_prompt
from ..providers import ProviderKind

__all__ = [
    "MAX_ROUNDS",
    "MAX_TOOL_CALLS",
    "DEFAULT_LOG_LINES",
    "UNAVAILABLE",
    "ProtocolState",
    "ToolCall",
    "ParsedReply",
    "JobResult",
    "Completer",
    "ToolProtocolEngine",
    "parse_model_reply",
    "tail_lines",
    "resolve_tool_call",
    "execute_tool_calls",
    "format_reply_for_display",
]

LOGGER = logging.getLogger(__name__)

MAX_ROUNDS = 2
MAX_TOOL_CALLS = 8
DEFAULT_LOG_LINES = 50
LOG_TAIL_CHAR_LIMIT = 32_000
TOOL_RESULTS_CHAR_LIMIT = 40_000
UNAVAILABLE = "(unavailable)"
PROPOSED_INSERT_LABEL = "[Proposed script]\n"


class ProtocolState(Enum):
    START = auto()
    ROUND1 = auto()
    PARSE1 = auto()
    NO_TOOLS = auto()
    HAS_TOOLS = auto()
    EXECUTE = auto()
    ROUND2 = auto()
    PARSE2 = auto()
    FAILED = auto()
    DONE = auto()


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A model request for one read-only context item."""

    name: str
    n_lines: int = DEFAULT_LOG_LINES
    style: str = "simple"


@dataclass(slots=True, frozen=True)
class ParsedReply:
    assistant_text: str = ""
    proposed_insert: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(slots=True, frozen=True)
class JobResult:
    """Immutable outcome of one job, handed from the worker to the UI loop."""

    reply_text: str
    insert_text: str = ""
    error: str | None = None
    rounds: int = 0
    tool_calls: tuple[ToolCall, ...] = ()
    trace: tuple[ProtocolState, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        message: str | None,
        *,
        rounds: int = 0,
        trace: Sequence[ProtocolState] = (),
    ) -> "JobResult":
        text = message or "LLM call failed"
        return cls(reply_text=text, error=text, rounds=rounds, trace=tuple(trace))


class Completer(Protocol):
    def complete_with_error(self, provider: ProviderKind, prompt: str) -> CompletionResult:
        ...


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_tool_call(obj: str) -> ToolCall | None:
    name = extract_string_field(obj, "name")
    if not name:
        return None
    if name not in _TOOL_RESOLVERS:
        LOGGER.debug("Dropping unknown tool call %r", name)
        return None
    n_lines = DEFAULT_LOG_LINES
    style = "simple"
    span = extract_span(obj, "args", "{", "}")
    if span is not None:
        args = obj[span[0] : span[1] + 1]
        if name == "get_command_log_tail":
            start = find_field_value_start(args, "n_lines")
            parsed = read_int(args, start) if start is not None else None
            if parsed is not None and parsed[0] > 0:
                n_lines = parsed[0]
        elif name == "get_last_model_summary":
            if extract_string_field(args, "style") == "full":
                style = "full"
    return ToolCall(name=name, n_lines=n_lines, style=style)


def _parse_tool_calls(text: str) -> tuple[ToolCall, ...]:
    span = extract_span(text, "tool_calls", "[", "]")
    if span is None:
        return ()
    pos, end = span[0] + 1, span[1]
    calls: list[ToolCall] = []
    while pos < end and len(calls) < MAX_TOOL_CALLS:
        pos = skip_ws(text, pos)
        if pos >= end:
            break
        if text[pos] == ",":
            pos += 1
            continue
        if text[pos] != "{":
            break
        obj_end = match_closing(text, pos, "{", "}")
        if obj_end is None or obj_end > end:
            break
        call = _parse_tool_call(text[pos : obj_end + 1])
        if call is not None:
            calls.append(call)
        pos = obj_end + 1
    return tuple(calls)


def parse_model_reply(raw: str) -> ParsedReply:
    """Read the reply schema out of ``raw`` model text.

    When none of the schema fields can be located the whole text becomes
    ``assistant_text`` and no tools are requested.
    """

    text = raw or ""
    assistant_text = extract_string_field(text, "assistant_text")
    proposed_insert = extract_string_field(text, "proposed_insert")
    has_array = extract_span(text, "tool_calls", "[", "]") is not None
    if assistant_text is None and proposed_insert is None and not has_array:
        return ParsedReply(assistant_text=text)
    return ParsedReply(
        assistant_text=assistant_text or "",
        proposed_insert=proposed_insert or "",
        tool_calls=_parse_tool_calls(text) if has_array else (),
    )


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


def tail_lines(text: str, n_lines: int) -> str:
    """Return the last ``n_lines`` lines of ``text`` by counting newlines backwards."""

    if n_lines <= 0:
        n_lines = DEFAULT_LOG_LINES
    pos = len(text)
    for _ in range(n_lines + 1):
        pos = text.rfind("\n", 0, pos)
        if pos == -1:
            tail = text
            break
    else:
        tail = text[pos + 1 :]
    return cap_text(tail, LOG_TAIL_CHAR_LIMIT) or ""


def _log_tail(call: ToolCall, snapshot: ContextSnapshot) -> str | None:
    if snapshot.command_log is None:
        return None
    return tail_lines(snapshot.command_log, call.n_lines)


def _model_summary(call: ToolCall, snapshot: ContextSnapshot) -> str | None:
    return snapshot.last_model_full if call.style == "full" else snapshot.last_model_simple


_TOOL_RESOLVERS: Mapping[str, Callable[[ToolCall, ContextSnapshot], str | None]] = {
    "get_dataset_summary": lambda _call, snap: snap.dataset_summary,
    "get_last_error": lambda _call, snap: snap.last_error,
    "get_script_selection": lambda _call, snap: snap.script_selection,
    "get_script_full": lambda _call, snap: snap.script_full,
    "get_command_log_tail": _log_tail,
    "get_last_model_summary": _model_summary,
}


def resolve_tool_call(call: ToolCall, snapshot: ContextSnapshot) -> str:
    resolver = _TOOL_RESOLVERS.get(call.name)
    value = resolver(call, snapshot) if resolver is not None else None
    return UNAVAILABLE if value is None else value


def execute_tool_calls(calls: Sequence[ToolCall], snapshot: ContextSnapshot) -> str:
    """Render each accepted call (at most eight) as a delimited result block."""

    blocks: list[str] = []
    for call in list(calls)[:MAX_TOOL_CALLS]:
        text = resolve_tool_call(call, snapshot)
        if not text.endswith("\n"):
            text += "\n"
        blocks.append(f"--- tool:{call.name} ---\n{text}--- end ---\n")
    combined = "".join(blocks)
    if len(combined) > TOOL_RESULTS_CHAR_LIMIT:
        combined = combined[:TOOL_RESULTS_CHAR_LIMIT] + TRUNCATION_MARKER
    return combined


def format_reply_for_display(reply: ParsedReply, fallback: str) -> str:
    """Render assistant text plus a labelled proposed insert, else ``fallback``."""

    text = reply.assistant_text
    if reply.proposed_insert:
        if text:
            text += "\n\n"
        text += PROPOSED_INSERT_LABEL + reply.proposed_insert
        if not text.endswith("\n"):
            text += "\n"
    return text or fallback


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ToolProtocolEngine:
    """Runs the round sequence for one job synchronously on the calling thread."""

    def __init__(self, completer: Completer) -> None:
        self._completer = completer

    def run(self, request: CompletionRequest, snapshot: ContextSnapshot) -> JobResult:
        trace: list[ProtocolState] = [ProtocolState.START, ProtocolState.ROUND1]
        first = self._round(request.provider, request.prompt, 1)
        if not first.ok:
            trace += [ProtocolState.FAILED, ProtocolState.DONE]
            return JobResult.failure(first.error, rounds=1, trace=trace)
        raw = first.reply or ""

        if not request.tools_enabled:
            trace.append(ProtocolState.DONE)
            return JobResult(reply_text=raw, rounds=1, trace=tuple(trace))

        trace.append(ProtocolState.PARSE1)
        parsed = parse_model_reply(raw)
        if not parsed.tool_calls:
            trace += [ProtocolState.NO_TOOLS, ProtocolState.DONE]
            return self._finalize(parsed, raw, rounds=1, trace=trace)

        trace += [ProtocolState.HAS_TOOLS, ProtocolState.EXECUTE]
        tool_results = execute_tool_calls(parsed.tool_calls, snapshot)
        LOGGER.debug(
            "Executed %s tool call(s): %s",
            len(parsed.tool_calls),
            ", ".join(call.name for call in parsed.tool_calls),
        )

        trace.append(ProtocolState.ROUND2)
        second = self._round(request.provider, build_followup_prompt(request.prompt, tool_results), 2)
        if not second.ok:
            trace += [ProtocolState.FAILED, ProtocolState.DONE]
            return JobResult.failure(second.error, rounds=2, trace=trace)
        final_raw = second.reply or ""

        trace.append(ProtocolState.PARSE2)
        final = parse_model_reply(final_raw)
        if final.tool_calls:
            LOGGER.info("Ignoring %s tool call(s) requested in the final round", len(final.tool_calls))
        trace.append(ProtocolState.DONE)
        return self._finalize(final, final_raw, rounds=2, trace=trace, tool_calls=parsed.tool_calls)

    def _round(self, provider: ProviderKind, prompt: str, number: int) -> CompletionResult:
        LOGGER.debug("Round %s/%s via %s (prompt=%s chars)", number, MAX_ROUNDS, provider.value, len(prompt))
        result = self._completer.complete_with_error(provider, prompt)
        if not result.ok:
            summary = (result.error or "").splitlines()
            LOGGER.warning("Round %s failed: %s", number, summary[0] if summary else "unknown error")
        return result

    @staticmethod
    def _finalize(
        reply: ParsedReply,
        raw: str,
        *,
        rounds: int,
        trace: Sequence[ProtocolState],
        tool_calls: tuple[ToolCall, ...] = (),
    ) -> JobResult:
        return JobResult(
            reply_text=format_reply_for_display(reply, raw),
            insert_text=reply.proposed_insert,
            rounds=rounds,
            tool_calls=tool_calls,
            trace=tuple(trace),
        )
