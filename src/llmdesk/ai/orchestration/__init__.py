"""Orchestration for multi-round assistant jobs."""

from .tool_protocol import (
    JobResult,
    ParsedReply,
    ProtocolState,
    ToolCall,
    ToolProtocolEngine,
    execute_tool_calls,
    format_reply_for_display,
    parse_model_reply,
)

__all__ = [
    "JobResult",
    "ParsedReply",
    "ProtocolState",
    "ToolCall",
    "ToolProtocolEngine",
    "execute_tool_calls",
    "format_reply_for_display",
    "parse_model_reply",
]
