"""Prompt templates for the assistant.

The prompt is assembled from a fixed preamble, the reply schema (only when
tools are enabled), the user's literal request, and whichever context blocks
the user chose to inline.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..session.snapshot import TRUNCATION_MARKER, ContextSnapshot

__all__ = [
    "PromptOptions",
    "SYSTEM_PREAMBLE",
    "TOOL_NAMES",
    "PROMPT_BLOCK_LIMIT",
    "tool_schema_instructions",
    "build_full_prompt",
    "build_followup_prompt",
    "dataset_block",
    "last_error_block",
    "script_block",
]

PROMPT_BLOCK_LIMIT = 32_000

SYSTEM_PREAMBLE = (
    "You are an assistant embedded in an econometrics desktop application. "
    "Be concise. If you propose code, output plain script code without Markdown fences.\n\n"
)

TOOL_NAMES: tuple[str, ...] = (
    "get_dataset_summary",
    "get_last_error",
    "get_script_selection",
    "get_script_full",
    "get_command_log_tail",
    "get_last_model_summary",
)


@dataclass(slots=True, frozen=True)
class PromptOptions:
    """Toggles captured from the assistant panel at ask time."""

    include_dataset: bool = True
    include_last_error: bool = False
    include_script: bool = False
    tools_enabled: bool = True


def tool_schema_instructions() -> str:
    """Describe the JSON reply schema and the read-only tools."""

    return (
        "Return ONLY a single JSON object with this schema:\n"
        '{"assistant_text": "...", "proposed_insert": "...", '
        '"tool_calls": [{"name":"...","args":{...}}]}\n'
        "If you do not need tools, set tool_calls to [].\n"
        "Available read-only tools:\n"
        "- get_dataset_summary\n"
        "- get_last_error\n"
        "- get_script_selection\n"
        "- get_script_full\n"
        '- get_command_log_tail (args: {"n_lines": 50})\n'
        '- get_last_model_summary (args: {"style": "simple"|"full"})\n'
        "Do not include Markdown fences.\n\n"
    )


def _block(header: str, text: str, *, limit: int = PROMPT_BLOCK_LIMIT, details: str | None = None) -> str:
    truncated = text.endswith(TRUNCATION_MARKER)
    if truncated:
        text = text[: -len(TRUNCATION_MARKER)]
    if len(text) > limit:
        text = text[:limit]
        truncated = True
    notes = [details] if details else []
    if truncated:
        notes.append("truncated")
    title = f"[{header}]"
    if notes:
        title = f"{title} ({'; '.join(notes)})"
    if not text.endswith("\n"):
        text += "\n"
    return f"{title}\n{text}"


def dataset_block(snapshot: ContextSnapshot) -> str:
    return _block("Dataset", snapshot.dataset_summary or "(no dataset loaded)")


def last_error_block(snapshot: ContextSnapshot) -> str:
    return _block("Last error", snapshot.last_error or "(none)")


def script_block(snapshot: ContextSnapshot) -> str:
    text, is_selection = snapshot.script_text()
    if text is None:
        return _block("Script", "(no active script editor)")
    return _block("Script", text, details="selection" if is_selection else "full")


def build_full_prompt(user_prompt: str, snapshot: ContextSnapshot, options: PromptOptions) -> str:
    """Assemble the round-one prompt."""

    parts = [SYSTEM_PREAMBLE]
    if options.tools_enabled:
        parts.append(tool_schema_instructions())
    parts.append("User request:\n")
    parts.append(user_prompt or "")
    parts.append("\n\n")
    if options.include_dataset:
        parts.append(dataset_block(snapshot) + "\n")
    if options.include_last_error:
        parts.append(last_error_block(snapshot) + "\n")
    if options.include_script:
        parts.append(script_block(snapshot) + "\n")
    return "".join(parts)


def build_followup_prompt(prompt: str, tool_results: str) -> str:
    """Append the tool-result block to the original prompt for round two."""

    return f"{prompt}\n\nTool results:\n{tool_results}\n\nNow respond using the JSON schema.\n"
