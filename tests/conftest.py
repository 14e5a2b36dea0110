"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from llmdesk.ai import completion
from llmdesk.session.snapshot import ContextSnapshot

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the developer's agent configuration and home directory."""

    for name in (
        "LLMDESK_LLM_PROVIDER",
        "LLMDESK_CODEX_BIN",
        "LLMDESK_GEMINI_BIN",
        "LLMDESK_LLM_TIMEOUT_SEC",
        "LLMDESK_LLM_UNSAFE",
        "LLMDESK_CODEX_DANGEROUS",
        "LLMDESK_DEBUG",
        "LLMDESK_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LLMDESK_LOG_DIR", str(tmp_path / "logs"))
    completion.clear_error()


@pytest.fixture
def sample_snapshot() -> ContextSnapshot:
    return ContextSnapshot(
        dataset_summary="Dataset: 3 series, 120 observations (quarterly)",
        last_error="Error: variable 'gdp' not found",
        script_selection=None,
        script_full="ols y const x\n",
        command_log="open data.gdt\nols y const x\nmodtest --normality\n",
        last_model_simple="Model 1: OLS, using observations 1-120",
        last_model_full="Model 1: OLS, using observations 1-120\n  coefficient  std. error",
    )
