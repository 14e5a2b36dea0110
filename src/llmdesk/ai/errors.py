"""Error taxonomy for agent completions.

Every failure surfaced by the completion stack is a :class:`CompletionError`
carrying a human readable message that can be shown verbatim in the UI.
"""

from __future__ import annotations

from typing import ClassVar

__all__ = [
    "CompletionError",
    "DataError",
    "ExternalError",
    "TooLongError",
]


class CompletionError(Exception):
    """Base class for completion failures."""

    kind: ClassVar[str] = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class DataError(CompletionError):
    """Invalid input rejected before any process is spawned."""

    kind: ClassVar[str] = "data"


class ExternalError(CompletionError):
    """The external agent could not be run or did not produce a usable reply."""

    kind: ClassVar[str] = "external"

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class TooLongError(CompletionError):
    """The agent reply exceeded its size cap."""

    kind: ClassVar[str] = "too_long"
