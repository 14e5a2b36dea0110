"""Tests for context snapshot capture."""

from __future__ import annotations

from pathlib import Path

import pytest

from llmdesk.session.snapshot import (
    COMMAND_LOG_CHAR_LIMIT,
    SCRIPT_CHAR_LIMIT,
    TRUNCATION_MARKER,
    ContextSnapshot,
    StaticSessionContext,
    cap_tail,
    cap_text,
    capture_snapshot,
)


class _MutableSource:
    def __init__(self) -> None:
        self.dataset = "before"
        self.calls = 0

    def dataset_summary(self) -> str | None:
        self.calls += 1
        return self.dataset

    def last_error(self) -> str | None:
        raise RuntimeError("session locked")

    def script_selection(self) -> str | None:
        return None

    def script_full(self) -> str | None:
        return None

    def command_log(self) -> str | None:
        return None

    def last_model_summary(self, full: bool) -> str | None:
        return "full" if full else "simple"


def test_cap_text_and_cap_tail() -> None:
    assert cap_text("short", 10) == "short"
    assert cap_text("abcdef", 3) == "abc" + TRUNCATION_MARKER
    assert cap_text(None, 3) is None
    assert cap_tail("abcdef", 3) == "...[truncated]...\ndef"


def test_capture_snapshot_is_isolated_from_later_changes() -> None:
    source = _MutableSource()

    snapshot = capture_snapshot(source)
    source.dataset = "after"

    assert snapshot.dataset_summary == "before"
    assert source.calls == 1


def test_capture_snapshot_treats_failing_reader_as_unavailable(caplog: pytest.LogCaptureFixture) -> None:
    snapshot = capture_snapshot(_MutableSource())

    assert snapshot.last_error is None
    assert snapshot.last_model_simple == "simple"
    assert snapshot.last_model_full == "full"
    assert "last error" in caplog.text


def test_capture_snapshot_applies_size_caps() -> None:
    log = "".join(f"line {index}\n" for index in range(40_000))
    source = StaticSessionContext(script="s" * (SCRIPT_CHAR_LIMIT + 5), log=log)

    snapshot = capture_snapshot(source)

    assert snapshot.script_full == "s" * SCRIPT_CHAR_LIMIT + TRUNCATION_MARKER
    assert snapshot.command_log is not None
    assert snapshot.command_log.startswith("...[truncated]...\n")
    assert snapshot.command_log.endswith("line 39999\n")
    assert len(snapshot.command_log) == COMMAND_LOG_CHAR_LIMIT + len("...[truncated]...\n")


def test_script_text_prefers_selection() -> None:
    assert ContextSnapshot(script_selection="sel", script_full="all").script_text() == ("sel", True)
    assert ContextSnapshot(script_selection="", script_full="all").script_text() == ("all", False)
    assert ContextSnapshot().script_text() == (None, False)


def test_static_context_from_files(tmp_path: Path) -> None:
    dataset = tmp_path / "dataset.txt"
    dataset.write_text("3 series", encoding="utf-8")
    log = tmp_path / "session.inp"
    log.write_text("ols y const x\n", encoding="utf-8")

    context = StaticSessionContext.from_files(dataset=dataset, log=log)

    assert context.dataset_summary() == "3 series"
    assert context.command_log() == "ols y const x\n"
    assert context.last_error() is None
    assert context.last_model_summary(True) is None
