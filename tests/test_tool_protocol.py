"""Tests for the two-round tool protocol engine."""

from __future__ import annotations

import json

import pytest

from llmdesk.ai.completion import CompletionRequest
from llmdesk.ai.errors import ExternalError
from llmdesk.ai.orchestration.tool_protocol import (
    MAX_TOOL_CALLS,
    TOOL_RESULTS_CHAR_LIMIT,
    ParsedReply,
    ProtocolState,
    ToolCall,
    ToolProtocolEngine,
    execute_tool_calls,
    format_reply_for_display,
    parse_model_reply,
    tail_lines,
)
from llmdesk.ai.providers import ProviderKind
from llmdesk.session.snapshot import TRUNCATION_MARKER, ContextSnapshot
from tests.helpers import FakeCompleter


def _reply(assistant_text: str = "", proposed_insert: str = "", tool_calls: list[dict] | None = None) -> str:
    return json.dumps(
        {
            "assistant_text": assistant_text,
            "proposed_insert": proposed_insert,
            "tool_calls": tool_calls or [],
        }
    )


def _request(prompt: str = "Why did my regression fail?", *, tools: bool = True) -> CompletionRequest:
    return CompletionRequest(provider=ProviderKind.CODEX, prompt=prompt, tools_enabled=tools)


def test_log_tail_tool_result_reaches_second_round() -> None:
    completer = FakeCompleter(
        _reply(tool_calls=[{"name": "get_command_log_tail", "args": {"n_lines": 2}}]),
        _reply(assistant_text="done"),
    )
    snapshot = ContextSnapshot(command_log="a\nb\nc\n")

    result = ToolProtocolEngine(completer).run(_request(), snapshot)

    assert result.ok
    assert result.reply_text == "done"
    assert result.rounds == 2
    assert len(completer.prompts) == 2
    assert "--- tool:get_command_log_tail ---\nb\nc\n--- end ---\n" in completer.prompts[1]
    assert completer.prompts[1].startswith("Why did my regression fail?\n\nTool results:\n")
    assert completer.prompts[1].endswith("Now respond using the JSON schema.\n")
    assert result.trace == (
        ProtocolState.START,
        ProtocolState.ROUND1,
        ProtocolState.PARSE1,
        ProtocolState.HAS_TOOLS,
        ProtocolState.EXECUTE,
        ProtocolState.ROUND2,
        ProtocolState.PARSE2,
        ProtocolState.DONE,
    )


def test_tools_disabled_runs_single_round_and_returns_raw_reply() -> None:
    raw = _reply(tool_calls=[{"name": "get_last_error"}])
    completer = FakeCompleter(raw)

    result = ToolProtocolEngine(completer).run(_request(tools=False), ContextSnapshot())

    assert len(completer.prompts) == 1
    assert result.reply_text == raw
    assert result.insert_text == ""
    assert result.rounds == 1


def test_reply_without_tool_calls_finishes_after_one_round() -> None:
    completer = FakeCompleter(_reply(assistant_text="Try HAC errors.", proposed_insert="ols y const x --robust"))

    result = ToolProtocolEngine(completer).run(_request(), ContextSnapshot())

    assert len(completer.prompts) == 1
    assert result.reply_text == "Try HAC errors.\n\n[Proposed script]\nols y const x --robust\n"
    assert result.insert_text == "ols y const x --robust"
    assert result.trace[-2:] == (ProtocolState.NO_TOOLS, ProtocolState.DONE)


def test_second_round_tool_requests_are_ignored() -> None:
    completer = FakeCompleter(
        _reply(tool_calls=[{"name": "get_dataset_summary"}]),
        _reply(assistant_text="final", tool_calls=[{"name": "get_last_error"}]),
    )

    result = ToolProtocolEngine(completer).run(_request(), ContextSnapshot(dataset_summary="3 series"))

    assert len(completer.prompts) == 2
    assert result.reply_text == "final"
    assert result.tool_calls == (ToolCall(name="get_dataset_summary"),)


def test_plain_text_reply_is_shown_verbatim() -> None:
    completer = FakeCompleter("I could not produce JSON, sorry.")

    result = ToolProtocolEngine(completer).run(_request(), ContextSnapshot())

    assert result.reply_text == "I could not produce JSON, sorry."
    assert result.rounds == 1


def test_first_round_failure_ends_job() -> None:
    completer = FakeCompleter(ExternalError("codex failed (exit status 1)"))

    result = ToolProtocolEngine(completer).run(_request(), ContextSnapshot())

    assert result.error == "codex failed (exit status 1)"
    assert result.reply_text == result.error
    assert result.rounds == 1
    assert result.trace[-2:] == (ProtocolState.FAILED, ProtocolState.DONE)


def test_second_round_failure_reports_its_error() -> None:
    completer = FakeCompleter(
        _reply(tool_calls=[{"name": "get_last_error"}]),
        ExternalError("gemini returned no reply"),
    )

    result = ToolProtocolEngine(completer).run(_request(), ContextSnapshot(last_error="oops"))

    assert result.error == "gemini returned no reply"
    assert result.rounds == 2
    assert len(completer.prompts) == 2


def test_parse_model_reply_caps_tool_calls() -> None:
    calls = [{"name": "get_dataset_summary"} for _ in range(MAX_TOOL_CALLS + 4)]

    parsed = parse_model_reply(_reply(tool_calls=calls))

    assert len(parsed.tool_calls) == MAX_TOOL_CALLS


def test_parse_model_reply_normalizes_arguments() -> None:
    raw = _reply(
        tool_calls=[
            {"name": "delete_everything"},
            {"name": "get_command_log_tail", "args": {"n_lines": -5}},
            {"name": "get_command_log_tail", "args": {"n_lines": 7}},
            {"name": "get_last_model_summary", "args": {"style": "FULL"}},
            {"name": "get_last_model_summary", "args": {"style": "full"}},
            {"args": {}},
        ]
    )

    parsed = parse_model_reply(raw)

    assert parsed.tool_calls == (
        ToolCall(name="get_command_log_tail", n_lines=50),
        ToolCall(name="get_command_log_tail", n_lines=7),
        ToolCall(name="get_last_model_summary", style="simple"),
        ToolCall(name="get_last_model_summary", style="full"),
    )


def test_parse_model_reply_tolerates_surrounding_noise() -> None:
    raw = 'Sure!\n{"assistant_text": "hi", "proposed_insert": "", "tool_calls": []}\nBye'

    assert parse_model_reply(raw) == ParsedReply(assistant_text="hi")


def test_execute_tool_calls_marks_missing_context_unavailable(sample_snapshot: ContextSnapshot) -> None:
    empty = ContextSnapshot()

    text = execute_tool_calls([ToolCall(name="get_last_error"), ToolCall(name="get_script_selection")], empty)

    assert text == (
        "--- tool:get_last_error ---\n(unavailable)\n--- end ---\n"
        "--- tool:get_script_selection ---\n(unavailable)\n--- end ---\n"
    )
    full = execute_tool_calls([ToolCall(name="get_last_model_summary", style="full")], sample_snapshot)
    assert "coefficient  std. error" in full


def test_execute_tool_calls_truncates_combined_output() -> None:
    snapshot = ContextSnapshot(dataset_summary="x" * 30_000)
    calls = [ToolCall(name="get_dataset_summary")] * 2

    text = execute_tool_calls(calls, snapshot)

    assert text.endswith(TRUNCATION_MARKER)
    assert len(text) == TOOL_RESULTS_CHAR_LIMIT + len(TRUNCATION_MARKER)


@pytest.mark.parametrize(
    ("log", "n_lines", "expected"),
    [
        ("a\nb\nc\n", 2, "b\nc\n"),
        ("a\nb\nc\n", 10, "a\nb\nc\n"),
        ("only line", 3, "only line"),
        ("a\nb\nc\n", 0, "a\nb\nc\n"),
    ],
)
def test_tail_lines(log: str, n_lines: int, expected: str) -> None:
    assert tail_lines(log, n_lines) == expected


def test_format_reply_for_display_falls_back_to_raw_text() -> None:
    assert format_reply_for_display(ParsedReply(), "raw model text") == "raw model text"
    assert format_reply_for_display(ParsedReply(proposed_insert="x\n"), "raw") == "[Proposed script]\nx\n"


def test_parse_model_reply_takes_first_textual_field_occurrence() -> None:
    raw = (
        'Schema reminder: {"assistant_text": "decoy"}\n'
        '{"assistant_text": "real", "proposed_insert": "", "tool_calls": []}'
    )

    assert parse_model_reply(raw).assistant_text == "decoy"
