"""Session context captured for assistant jobs."""

from .snapshot import ContextSnapshot, SessionContextSource, StaticSessionContext, capture_snapshot

__all__ = ["ContextSnapshot", "SessionContextSource", "StaticSessionContext", "capture_snapshot"]
