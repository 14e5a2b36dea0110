"""Reply extraction for the two agent output channels."""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import ExternalError, TooLongError
from .json_scan import extract_string_field

__all__ = [
    "MAX_REPLY_BYTES",
    "strip_to_json",
    "read_reply_file",
    "extract_embedded_reply",
    "describe_output",
]

LOGGER = logging.getLogger(__name__)

MAX_REPLY_BYTES = 2 * 1024 * 1024


def describe_output(prefix: str, stdout: str | None, stderr: str | None, *, prefer: str = "stderr") -> str:
    """Append the most useful captured stream to ``prefix`` as a diagnostic."""

    streams = [("stderr", stderr), ("stdout", stdout)]
    if prefer == "stdout":
        streams.reverse()
    for label, text in streams:
        if text:
            return f"{prefix} ({label} follows)\n{text}"
    return prefix


def read_reply_file(path: Path | str, *, limit: int = MAX_REPLY_BYTES) -> str:
    """Read the agent's final message from the file it was told to write."""

    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise ExternalError(f"Failed to read LLM output file: {exc.strerror or exc}") from exc
    if len(data) > limit:
        LOGGER.warning("Reply file %s is %s bytes (limit %s)", path, len(data), limit)
        raise TooLongError("LLM reply too long")
    return data.decode("utf-8", errors="replace")


def strip_to_json(text: str | None) -> str | None:
    """Slice ``text`` from its first ``{`` to its last ``}`` inclusive.

    Braces are not balanced: trailing noise containing ``}`` widens the slice
    and a ``{`` in leading noise starts it early.
    """

    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_embedded_reply(stdout: str | None, field: str = "response", *, limit: int = MAX_REPLY_BYTES) -> str | None:
    """Pull the string ``field`` out of the JSON object embedded in ``stdout``.

    Returns ``None`` when no object or no string field could be located.
    """

    payload = strip_to_json(stdout)
    if payload is None:
        return None
    value = extract_string_field(payload, field)
    if value is None:
        return None
    if len(value.encode("utf-8", errors="replace")) > limit:
        raise TooLongError("LLM reply too long")
    return value
